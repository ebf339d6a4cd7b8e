"""
Modèle SQLAlchemy pour la table estudiantes.
Le RUN est stocké normalisé (minuscules, sans espaces) et sert de clé métier.
"""

import uuid
from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from qrpases.database import Base


class Student(Base):
    __tablename__ = "estudiantes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run = Column(String(20), unique=True, nullable=False)       # Ex: "12345678-k"
    nombres = Column(String(150), nullable=False)
    apellido_paterno = Column(String(100), nullable=True)
    apellido_materno = Column(String(100), nullable=True)
    grado = Column(String(50), nullable=True)                   # Ex: "1° Medio"
    letra = Column(String(5), nullable=True)                    # Ex: "A"

    # Contacts des apoderados (téléphones normalisés +56XXXXXXXXX)
    nombre_apoderado = Column(String(150), nullable=True)
    telefono_apoderado = Column(String(20), nullable=True)
    nombre_apoderado_suplente = Column(String(150), nullable=True)
    telefono_apoderado_suplente = Column(String(20), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def nombre_completo(self) -> str:
        parts = [self.nombres, self.apellido_paterno, self.apellido_materno]
        return " ".join(p for p in parts if p)

    @property
    def curso(self) -> str:
        return " ".join(p for p in (self.grado, self.letra) if p)
