"""
Modèles SQLAlchemy pour les registres d'assistance et leurs justifications.

- Un registre est immuable une fois créé (append-only) : un atraso ou une inasistencia.
- Une justification référence directement son registre (registro_id).
  La contrainte unique garantit au plus une justification par registre.
"""

import uuid
from sqlalchemy import Column, Date, DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from qrpases.database import Base


class AttendanceRecord(Base):
    """Atraso ou inasistencia enregistré au moment du scan."""
    __tablename__ = "registros"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    estudiante_id = Column(UUID(as_uuid=True), ForeignKey("estudiantes.id", ondelete="CASCADE"), nullable=False)
    fecha = Column(Date, nullable=False)
    hora = Column(String(5), nullable=False)       # "HH:MM"
    tipo = Column(String(20), nullable=False)      # Atrasos, Inasistencias
    comentario = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Justification(Base):
    """Justification confirmée par un apoderado pour un registre."""
    __tablename__ = "justificaciones"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    registro_id = Column(
        UUID(as_uuid=True),
        ForeignKey("registros.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    apoderado = Column(String(150), nullable=False)
    fecha_justificacion = Column(Date, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
