"""
Backend normalisé (PostgreSQL via SQLAlchemy).

- estudiantes : upsert par RUN normalisé
- registros : une ligne immuable par scan
- justificaciones : au plus une par registro (contrainte unique)

La jointure registro ↔ justification est calculée par la base (outer join),
l'historial est trié par fecha puis hora décroissantes.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from qrpases.exceptions import AlreadyJustified, NetworkFailure, RecordNotFound
from qrpases.models.attendance import AttendanceRecord, Justification
from qrpases.models.student import Student
from qrpases.schemas.attendance import HistoryEntry, JustificationRecord, RecordKey
from qrpases.schemas.student import GuardianContact, StudentRef
from qrpases.stores.base import NormalizedRecordStore, RecordRef

logger = logging.getLogger(__name__)

CONTACT_FIELDS = (
    "nombre_apoderado",
    "telefono_apoderado",
    "nombre_apoderado_suplente",
    "telefono_apoderado_suplente",
)


def _to_entry(record: AttendanceRecord, student: Student, justification: Optional[Justification]) -> HistoryEntry:
    apoderado = justification.apoderado if justification is not None else None
    return HistoryEntry(
        registro_id=record.id,
        run=student.run,
        nombre=student.nombre_completo,
        curso=student.curso,
        fecha=record.fecha,
        hora=record.hora,
        tipo=record.tipo,
        comentario=record.comentario,
        justificado=bool(apoderado and apoderado.strip()),
        apoderado=apoderado,
        fecha_justificacion=justification.fecha_justificacion if justification is not None else None,
    )


def _to_ref(student: Student) -> StudentRef:
    return StudentRef(
        id=student.id,
        run=student.run,
        nombre_completo=student.nombre_completo,
        curso=student.curso,
        has_contact=bool(student.telefono_apoderado or student.telefono_apoderado_suplente),
    )


def _history_select():
    """Équivalent de la vue historial_completo : registro + élève + justification éventuelle."""
    return (
        select(AttendanceRecord, Student, Justification)
        .join(Student, AttendanceRecord.estudiante_id == Student.id)
        .outerjoin(Justification, Justification.registro_id == AttendanceRecord.id)
    )


class SqlRecordStore(NormalizedRecordStore):

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _backend_call(self, action: str):
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Échec base de données (%s) : %s", action, exc, exc_info=True)
            raise NetworkFailure(f"Erreur base de données lors de : {action}.") from exc

    # --- Lecture ---

    def query_history(self, run: Optional[str] = None) -> List[HistoryEntry]:
        stmt = _history_select()
        if run is not None:
            stmt = stmt.where(Student.run == run)
        stmt = stmt.order_by(AttendanceRecord.fecha.desc(), AttendanceRecord.hora.desc())

        with self._backend_call("lecture de l'historial"):
            rows = self.db.execute(stmt).all()
        return [_to_entry(rec, stu, just) for rec, stu, just in rows]

    def query_justifications(self, run: str) -> List[JustificationRecord]:
        stmt = (
            select(Justification, AttendanceRecord, Student)
            .join(AttendanceRecord, Justification.registro_id == AttendanceRecord.id)
            .join(Student, AttendanceRecord.estudiante_id == Student.id)
            .where(Student.run == run)
        )
        with self._backend_call("lecture des justifications"):
            rows = self.db.execute(stmt).all()
        return [
            JustificationRecord(
                run=stu.run,
                fecha=rec.fecha,
                hora=rec.hora,
                tipo=rec.tipo,
                apoderado=just.apoderado,
                fecha_justificacion=just.fecha_justificacion,
                registro_id=rec.id,
            )
            for just, rec, stu in rows
        ]

    def find_record(self, ref: RecordRef) -> Optional[HistoryEntry]:
        stmt = _history_select()
        if isinstance(ref, RecordKey):
            stmt = stmt.where(
                Student.run == ref.run,
                AttendanceRecord.fecha == ref.fecha,
                AttendanceRecord.hora == ref.hora,
                AttendanceRecord.tipo == ref.tipo,
            )
        else:
            stmt = stmt.where(AttendanceRecord.id == ref)

        with self._backend_call("recherche du registro"):
            row = self.db.execute(stmt).first()
        if row is None:
            return None
        rec, stu, just = row
        return _to_entry(rec, stu, just)

    def find_justification(self, record: HistoryEntry) -> Optional[JustificationRecord]:
        with self._backend_call("recherche de la justification"):
            just = self.db.execute(
                select(Justification).where(Justification.registro_id == record.registro_id)
            ).scalar_one_or_none()
        if just is None:
            return None
        return JustificationRecord(
            run=record.run,
            fecha=record.fecha,
            hora=record.hora,
            tipo=record.tipo,
            apoderado=just.apoderado,
            fecha_justificacion=just.fecha_justificacion,
            registro_id=record.registro_id,
        )

    def get_student(self, run: str) -> Optional[Student]:
        with self._backend_call("lecture de l'élève"):
            return self.db.execute(
                select(Student).where(Student.run == run)
            ).scalar_one_or_none()

    def get_guardian_contact(self, run: str) -> Optional[GuardianContact]:
        student = self.get_student(run)
        if student is None:
            return None
        return GuardianContact.model_validate(student)

    # --- Écriture ---

    def upsert_student(self, run: str, fields: dict) -> StudentRef:
        """Crée l'élève s'il est inconnu, sinon met à jour les champs non vides."""
        with self._backend_call("upsert de l'élève"):
            student = self.db.execute(
                select(Student).where(Student.run == run)
            ).scalar_one_or_none()

            if student is None:
                student = Student(id=uuid.uuid4(), run=run, **fields)
                self.db.add(student)
                logger.debug("Nouvel élève créé depuis un scan : %s", run)
            else:
                for field, value in fields.items():
                    if value:
                        setattr(student, field, value)

            self.db.commit()
            self.db.refresh(student)
        return _to_ref(student)

    def insert_attendance(self, student: StudentRef, fields: dict) -> HistoryEntry:
        record = AttendanceRecord(id=uuid.uuid4(), estudiante_id=student.id, **fields)
        with self._backend_call("insertion du registro"):
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        return HistoryEntry(
            registro_id=record.id,
            run=student.run,
            nombre=student.nombre_completo,
            curso=student.curso,
            fecha=record.fecha,
            hora=record.hora,
            tipo=record.tipo,
            comentario=record.comentario,
        )

    def insert_justification(
        self, record: HistoryEntry, guardian_name: str, fecha: date
    ) -> JustificationRecord:
        justification = Justification(
            id=uuid.uuid4(),
            registro_id=record.registro_id,
            apoderado=guardian_name,
            fecha_justificacion=fecha,
        )
        with self._backend_call("insertion de la justification"):
            self.db.add(justification)
            try:
                self.db.commit()
            except IntegrityError as exc:
                # Contrainte unique sur registro_id : justification concurrente
                self.db.rollback()
                raise AlreadyJustified("Ce registro est déjà justifié.") from exc

        return JustificationRecord(
            run=record.run,
            fecha=record.fecha,
            hora=record.hora,
            tipo=record.tipo,
            apoderado=guardian_name,
            fecha_justificacion=fecha,
            registro_id=record.registro_id,
        )

    def update_guardian_contact(self, run: str, contact: GuardianContact) -> GuardianContact:
        with self._backend_call("mise à jour des contacts"):
            student = self.db.execute(
                select(Student).where(Student.run == run)
            ).scalar_one_or_none()
            if student is None:
                raise RecordNotFound(f"Élève {run} introuvable.")
            for field in CONTACT_FIELDS:
                setattr(student, field, getattr(contact, field))
            self.db.commit()
            self.db.refresh(student)
        return GuardianContact.model_validate(student)
