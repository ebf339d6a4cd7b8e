"""
Génération des credenciales : QR code encodant l'identité de l'élève
au format exact attendu par le scanner (4 lignes RUN / Nombre / Grado / Curso).
"""

import io

import qrcode

from qrpases.models.student import Student
from qrpases.schemas.attendance import StudentIdentity
from qrpases.services.qr_parser import build_payload


def credential_payload(student: Student) -> str:
    """Texte encodé dans le QR de la credencial."""
    identity = StudentIdentity(
        run=student.run,
        display_run=student.run.upper(),
        full_name=student.nombre_completo,
        grade=student.grado or "",
        section=student.letra or "",
    )
    return build_payload(identity)


def generate_credential_png(student: Student) -> bytes:
    """Génère une image PNG du QR code de la credencial."""
    qr = qrcode.QRCode(version=None, box_size=10, border=4)
    qr.add_data(credential_payload(student))
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
