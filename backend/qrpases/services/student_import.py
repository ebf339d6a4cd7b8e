"""
Service d'import CSV pour les élèves (export de la fiche scolaire).
Gère le parsing, la validation, la détection de doublons et l'upsert par RUN.

Colonnes reconnues (insensibles à la casse) :
- Run, DV : le RUN complet est "Run-DV" (ou "Run" seul si DV est vide)
- Nombres, Apellido Paterno, Apellido Materno, Desc Grado, Letra Curso
- contacts : plusieurs intitulés acceptés par champ (voir CONTACT_ALIASES)
"""

import csv
import io
import logging
import re
import uuid
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from qrpases.exceptions import NetworkFailure
from qrpases.models.student import Student
from qrpases.schemas.student import ImportRowError, StudentImportReport
from qrpases.services.phone import is_valid_phone, normalize_phone
from qrpases.services.qr_parser import normalize_run

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"run", "nombres"}

IDENTITY_COLUMNS = {
    "apellido_paterno": "apellido paterno",
    "apellido_materno": "apellido materno",
    "grado": "desc grado",
    "letra": "letra curso",
}

CONTACT_ALIASES = {
    "telefono_apoderado": ("telefono apoderado", "tel apoderado", "contacto", "celular apoderado"),
    "nombre_apoderado": ("nombre apoderado", "apoderado"),
    "telefono_apoderado_suplente": ("telefono suplente", "tel suplente", "telefono apoderado suplente"),
    "nombre_apoderado_suplente": ("nombre suplente", "apoderado suplente"),
}

_SPACES = re.compile(r"[\s_]+")


def _normalize_header(raw: str) -> str:
    """Normalise un nom de colonne : minuscules, espaces et '_' réduits à un espace."""
    return _SPACES.sub(" ", (raw or "").strip().lower())


def _detect_separator(sample: str) -> str:
    """Détecte le séparateur CSV (virgule ou point-virgule)."""
    if sample.count(";") >= sample.count(","):
        return ";"
    return ","


def _empty_report(content: str, reason: str) -> StudentImportReport:
    return StudentImportReport(
        total_rows=0, inserted=0, updated=0, rejected=0, duplicates_in_file=0,
        errors=[ImportRowError(row=0, content=content, reason=reason)],
    )


def _row_value(row: dict, field_map: Dict[str, str], *aliases: str) -> str:
    """Première valeur non vide parmi les intitulés acceptés."""
    for alias in aliases:
        column = field_map.get(alias)
        if column is not None:
            value = (row.get(column) or "").strip()
            if value:
                return value
    return ""


def _build_run(body: str, dv: str) -> str:
    return normalize_run(f"{body}-{dv}" if dv else body)


def _check_phone(name: str, phone: str, label: str) -> Optional[str]:
    """Motif de rejet de la ligne, ou None si le contact est acceptable."""
    if phone and not is_valid_phone(phone):
        return f"Téléphone {label} invalide : {phone}"
    if phone and not name:
        return f"Nom de l'apoderado {label} manquant pour le téléphone {phone}"
    return None


def import_students_csv(content: bytes, db: Session) -> StudentImportReport:
    """
    Parse le CSV, valide chaque ligne puis crée ou met à jour les élèves par RUN.

    Règles :
    - Colonnes requises : Run, Nombres
    - Ligne entièrement vide : ignorée. RUN ou Nombres vide : rejetée
    - Téléphone fourni : doit être valide et accompagné d'un nom d'apoderado
    - Doublon intra-fichier : même RUN, seule la première ligne est gardée
    - Élève existant : les champs non vides du fichier remplacent les valeurs en base
    """
    text = content.decode("utf-8-sig")  # utf-8-sig gère le BOM Excel
    lines = text.splitlines()
    separator = _detect_separator(lines[0] if lines else "")

    reader = csv.DictReader(io.StringIO(text), delimiter=separator)

    if reader.fieldnames is None:
        return _empty_report("", "Fichier CSV vide ou illisible")

    field_map = {_normalize_header(f): f for f in reader.fieldnames}
    missing = REQUIRED_COLUMNS - set(field_map)
    if missing:
        return _empty_report(
            str(reader.fieldnames), f"Colonnes manquantes : {', '.join(sorted(missing))}"
        )

    valid_rows: List[dict] = []
    errors: List[ImportRowError] = []
    seen_in_file: set = set()
    duplicates_in_file = 0
    total_rows = 0

    for row_num, row in enumerate(reader, start=2):  # ligne 1 = header
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        total_rows += 1

        run = _build_run(_row_value(row, field_map, "run"), _row_value(row, field_map, "dv"))
        nombres = _row_value(row, field_map, "nombres")
        raw = separator.join((v or "") for v in row.values() if isinstance(v, str))

        if not run:
            errors.append(ImportRowError(row=row_num, content=raw, reason="RUN manquant"))
            continue
        if not nombres:
            errors.append(ImportRowError(row=row_num, content=raw, reason="Nombres manquant"))
            continue

        values = {"run": run, "nombres": nombres}
        for field, column in IDENTITY_COLUMNS.items():
            values[field] = _row_value(row, field_map, column)
        for field, aliases in CONTACT_ALIASES.items():
            values[field] = _row_value(row, field_map, *aliases)

        reason = (
            _check_phone(values["nombre_apoderado"], values["telefono_apoderado"], "titular")
            or _check_phone(values["nombre_apoderado_suplente"], values["telefono_apoderado_suplente"], "suplente")
        )
        if reason:
            errors.append(ImportRowError(row=row_num, content=raw, reason=reason))
            continue

        if run in seen_in_file:
            duplicates_in_file += 1
            errors.append(ImportRowError(row=row_num, content=raw, reason="Doublon dans le fichier CSV"))
            continue
        seen_in_file.add(run)

        for field in ("telefono_apoderado", "telefono_apoderado_suplente"):
            if values[field]:
                values[field] = normalize_phone(values[field])
        valid_rows.append(values)

    if not valid_rows:
        return StudentImportReport(
            total_rows=total_rows, inserted=0, updated=0, rejected=len(errors),
            duplicates_in_file=duplicates_in_file, errors=errors,
        )

    existing = {
        s.run: s
        for s in db.execute(
            select(Student).where(Student.run.in_([v["run"] for v in valid_rows]))
        ).scalars().all()
    }

    inserted = updated = 0
    for values in valid_rows:
        student = existing.get(values["run"])
        if student is None:
            db.add(Student(id=uuid.uuid4(), **{k: v or None for k, v in values.items()}))
            inserted += 1
        else:
            for field, value in values.items():
                if value:
                    setattr(student, field, value)
            updated += 1

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Échec de l'import CSV des élèves : %s", exc, exc_info=True)
        raise NetworkFailure("Échec de l'enregistrement des élèves importés.") from exc

    logger.info(
        "Import CSV : %d créés, %d mis à jour, %d rejetés", inserted, updated, len(errors)
    )
    return StudentImportReport(
        total_rows=total_rows, inserted=inserted, updated=updated, rejected=len(errors),
        duplicates_in_file=duplicates_in_file, errors=errors,
    )
