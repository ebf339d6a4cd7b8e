"""
Schémas Pydantic pour les élèves et les contacts d'apoderados.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator


class StudentResponse(BaseModel):
    """Schéma de réponse pour un élève (GET /students)."""
    id: uuid.UUID
    run: str
    nombres: str
    apellido_paterno: Optional[str]
    apellido_materno: Optional[str]
    nombre_completo: str
    grado: Optional[str]
    letra: Optional[str]
    curso: str
    nombre_apoderado: Optional[str]
    telefono_apoderado: Optional[str]
    nombre_apoderado_suplente: Optional[str]
    telefono_apoderado_suplente: Optional[str]
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}


class GuardianContactUpdate(BaseModel):
    """
    Mise à jour des contacts d'un élève (PUT /students/{run}/contact).
    Les quatre champs vides suppriment les contacts existants.
    """
    nombre_apoderado: str = ""
    telefono_apoderado: str = ""
    nombre_apoderado_suplente: str = ""
    telefono_apoderado_suplente: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def strip(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    def is_empty(self) -> bool:
        return not any((
            self.nombre_apoderado,
            self.telefono_apoderado,
            self.nombre_apoderado_suplente,
            self.telefono_apoderado_suplente,
        ))


class GuardianContact(BaseModel):
    """Contacts persistés d'un élève (téléphones normalisés +56XXXXXXXXX)."""
    run: str
    nombre_apoderado: Optional[str] = None
    telefono_apoderado: Optional[str] = None
    nombre_apoderado_suplente: Optional[str] = None
    telefono_apoderado_suplente: Optional[str] = None

    model_config = {"from_attributes": True}

    @property
    def has_phone(self) -> bool:
        return bool(self.telefono_apoderado or self.telefono_apoderado_suplente)


class StudentRef(BaseModel):
    """Référence vers un élève persisté, renvoyée par l'upsert du mode normalisé."""
    id: uuid.UUID
    run: str
    nombre_completo: str
    curso: str
    has_contact: bool = False


# --- Import CSV ---

class ImportRowError(BaseModel):
    """Détail d'une ligne rejetée lors de l'import."""
    row: int
    content: str
    reason: str


class StudentImportReport(BaseModel):
    """Rapport retourné après un import CSV (POST /students/import)."""
    total_rows: int
    inserted: int
    updated: int
    rejected: int
    duplicates_in_file: int
    errors: List[ImportRowError]
