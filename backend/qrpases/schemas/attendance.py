"""
Schémas Pydantic pour les scans, l'historial et les justifications.
"""

import re
import uuid
from datetime import date, datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, field_validator, model_validator

TARDY = "Atrasos"
ABSENCE = "Inasistencias"
VALID_EVENT_TYPES = (TARDY, ABSENCE)

MODE_NORMALIZED = "normalized"
MODE_TALLY = "tally"

HORA_REGEX = re.compile(r"^\d{2}:\d{2}$")


def canonical_event_type(value: str) -> Optional[str]:
    """Retourne le nom canonique du type ("Atrasos", "Inasistencias"), insensible à la casse."""
    cleaned = (value or "").strip().lower()
    for tipo in VALID_EVENT_TYPES:
        if tipo.lower() == cleaned:
            return tipo
    return None


def _check_event_type(v: str) -> str:
    tipo = canonical_event_type(v)
    if tipo is None:
        raise ValueError(f"Type d'événement invalide. Valeurs acceptées : {VALID_EVENT_TYPES}")
    return tipo


def _check_hora(v: str) -> str:
    v = (v or "").strip()
    if not HORA_REGEX.match(v):
        raise ValueError("L'heure doit être au format HH:MM.")
    return v


class StudentIdentity(BaseModel):
    """Identité d'un élève décodée depuis le QR. Éphémère : jamais persistée telle quelle."""
    run: str               # normalisé (trim + minuscules)
    display_run: str       # casse d'origine, pour l'affichage
    full_name: str = ""
    grade: str = ""
    section: str = ""

    model_config = {"frozen": True}

    @property
    def course(self) -> str:
        return " ".join(p for p in (self.grade, self.section) if p)


# --- Scan (enregistrement) ---

class ScanRequest(BaseModel):
    """Scan d'un QR pour enregistrer un atraso ou une inasistencia."""
    payload: str
    tipo: str
    comentario: Optional[str] = None
    device_id: str = "default"
    scanned_at: Optional[datetime] = None   # Horloge de l'appareil ; sinon horloge serveur

    @field_validator("tipo")
    @classmethod
    def valid_tipo(cls, v: str) -> str:
        return _check_event_type(v)


class LookupRequest(BaseModel):
    """Scan d'un QR pour consulter l'historial ou les registres en attente."""
    payload: str
    device_id: str = "default"


class StepResult(BaseModel):
    """Résultat d'un appel au backend de stockage."""
    step: str
    ok: bool
    detail: Optional[str] = None


class RegistrationResult(BaseModel):
    """Rapport renvoyé après l'enregistrement d'un scan."""
    run: str
    nombre: str
    tipo: str
    fecha: date
    hora: str
    mode: str
    total_registros: Optional[int] = None      # mode compteur
    registro_id: Optional[uuid.UUID] = None    # mode normalisé
    needs_contact_info: bool = False
    partial_failure: bool = False
    steps: List[StepResult] = []


# --- Registres du backend ---

class TallyRecord(BaseModel):
    """Ligne compteur (mode compteur) : une par élève et par type."""
    run: str
    nombre: str = ""
    curso: str = ""
    fecha: Optional[date] = None
    hora: Optional[str] = None
    total_registros: int = 1


class LogEntry(BaseModel):
    """Entrée immuable de l'historial (append-only)."""
    run: str
    nombre: str = ""
    curso: str = ""
    fecha: date
    hora: str
    tipo: str
    comentario: Optional[str] = None


class RecordKey(BaseModel):
    """Clé composite (run, fecha, hora, tipo) reliant un registre à sa justification."""
    run: str
    fecha: date
    hora: str
    tipo: str

    @field_validator("run")
    @classmethod
    def run_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le RUN ne peut pas être vide.")
        return v.strip().lower()

    @field_validator("hora")
    @classmethod
    def valid_hora(cls, v: str) -> str:
        return _check_hora(v)

    @field_validator("tipo")
    @classmethod
    def valid_tipo(cls, v: str) -> str:
        return _check_event_type(v)

    def normalized(self) -> Tuple[str, str, str, str]:
        return composite_key(self.run, self.fecha, self.hora, self.tipo)


def composite_key(run, fecha, hora, tipo) -> Tuple[str, str, str, str]:
    """Clé de jointure normalisée : chaque champ converti en texte, trim, minuscules."""
    return tuple(str(v if v is not None else "").strip().lower() for v in (run, fecha, hora, tipo))


class JustificationRecord(BaseModel):
    """Justification telle que lue depuis le backend."""
    run: str = ""
    fecha: Optional[date] = None
    hora: Optional[str] = None
    tipo: Optional[str] = None
    apoderado: str = ""
    fecha_justificacion: Optional[date] = None
    registro_id: Optional[uuid.UUID] = None


class HistoryEntry(BaseModel):
    """Registre d'historial décoré de son statut de justification."""
    registro_id: Optional[uuid.UUID] = None
    run: str
    nombre: str = ""
    curso: str = ""
    fecha: date
    hora: str
    tipo: str
    comentario: Optional[str] = None
    justificado: bool = False
    apoderado: Optional[str] = None
    fecha_justificacion: Optional[date] = None

    model_config = {"from_attributes": True}

    def key(self) -> Tuple[str, str, str, str]:
        return composite_key(self.run, self.fecha, self.hora, self.tipo)


class ScanHistoryResponse(BaseModel):
    """Historial d'un élève identifié par un scan."""
    identity: StudentIdentity
    entries: List[HistoryEntry]


class TallySummary(BaseModel):
    """Total et dernier événement d'un type pour un élève."""
    tipo: str
    total: int
    ultima_fecha: Optional[date] = None
    ultima_hora: Optional[str] = None


# --- Justifications ---

class JustificationCreate(BaseModel):
    """
    Demande de justification.
    Cible : registro_id (mode normalisé) ou la clé composite run/fecha/hora/tipo (mode compteur).
    """
    registro_id: Optional[uuid.UUID] = None
    run: Optional[str] = None
    fecha: Optional[date] = None
    hora: Optional[str] = None
    tipo: Optional[str] = None
    apoderado: str = ""

    @field_validator("hora")
    @classmethod
    def valid_hora(cls, v: Optional[str]) -> Optional[str]:
        return _check_hora(v) if v is not None else v

    @field_validator("tipo")
    @classmethod
    def valid_tipo(cls, v: Optional[str]) -> Optional[str]:
        return _check_event_type(v) if v is not None else v

    @model_validator(mode="after")
    def target_present(self) -> "JustificationCreate":
        if self.registro_id is None and not all((self.run, self.fecha, self.hora, self.tipo)):
            raise ValueError("Indiquer registro_id ou la clé complète run, fecha, hora, tipo.")
        return self

    def target(self):
        if self.registro_id is not None:
            return self.registro_id
        return RecordKey(run=self.run, fecha=self.fecha, hora=self.hora, tipo=self.tipo)


class JustificationResult(BaseModel):
    """Justification créée."""
    registro_id: Optional[uuid.UUID] = None
    run: str
    fecha: date
    hora: str
    tipo: str
    apoderado: str
    fecha_justificacion: date
