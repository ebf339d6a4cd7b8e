"""
Service métier pour les élèves et les contacts de leurs apoderados.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from qrpases.exceptions import InvalidPhone, MissingGuardianName, RecordNotFound
from qrpases.models.student import Student
from qrpases.schemas.student import GuardianContact, GuardianContactUpdate
from qrpases.services.phone import is_valid_phone, normalize_phone
from qrpases.services.qr_parser import normalize_run
from qrpases.stores.sql_store import SqlRecordStore

logger = logging.getLogger(__name__)


def list_students(
    db: Session,
    search: Optional[str] = None,
    without_contact: bool = False,
) -> List[Student]:
    """
    Liste les élèves triés par apellidos puis nombres.

    - search : sous-chaîne du nom complet ou du RUN (insensible à la casse)
    - without_contact : uniquement les élèves sans téléphone d'apoderado titulaire
    """
    stmt = select(Student)

    if search and search.strip():
        term = f"%{search.strip()}%"
        full_name = func.concat_ws(" ", Student.nombres, Student.apellido_paterno, Student.apellido_materno)
        stmt = stmt.where(or_(full_name.ilike(term), Student.run.ilike(term)))

    if without_contact:
        stmt = stmt.where(or_(Student.telefono_apoderado.is_(None), Student.telefono_apoderado == ""))

    stmt = stmt.order_by(Student.apellido_paterno, Student.apellido_materno, Student.nombres)
    return db.execute(stmt).scalars().all()


def get_student(db: Session, run: str) -> Student:
    """Retourne l'élève par RUN. Lève RecordNotFound s'il n'existe pas."""
    student = SqlRecordStore(db).get_student(normalize_run(run))
    if student is None:
        raise RecordNotFound(f"Élève {run} introuvable.")
    return student


def _check_contact(name: str, phone: str, label: str) -> None:
    if phone and not is_valid_phone(phone):
        raise InvalidPhone(
            f"Téléphone {label} invalide. Format attendu : +56 9 XXXX XXXX (mobile) ou +56 4 XXXX XXXX (fixe)."
        )
    if phone and not name:
        raise MissingGuardianName(f"Indiquer le nom de l'apoderado {label} pour ce téléphone.")


def update_guardian_contact(db: Session, run: str, data: GuardianContactUpdate) -> GuardianContact:
    """
    Met à jour les contacts titulaire et suppléant d'un élève.

    Règles :
    - téléphone fourni → doit être valide (InvalidPhone) et accompagné d'un nom (MissingGuardianName)
    - téléphones persistés au format +56XXXXXXXXX
    - les quatre champs vides suppriment les contacts existants
    """
    run = normalize_run(run)
    store = SqlRecordStore(db)
    if store.get_student(run) is None:
        raise RecordNotFound(f"Élève {run} introuvable.")

    _check_contact(data.nombre_apoderado, data.telefono_apoderado, "titular")
    _check_contact(data.nombre_apoderado_suplente, data.telefono_apoderado_suplente, "suplente")

    contact = GuardianContact(
        run=run,
        nombre_apoderado=data.nombre_apoderado or None,
        telefono_apoderado=normalize_phone(data.telefono_apoderado) if data.telefono_apoderado else None,
        nombre_apoderado_suplente=data.nombre_apoderado_suplente or None,
        telefono_apoderado_suplente=(
            normalize_phone(data.telefono_apoderado_suplente) if data.telefono_apoderado_suplente else None
        ),
    )
    updated = store.update_guardian_contact(run, contact)

    if data.is_empty():
        logger.info("Contacts supprimés pour l'élève %s", run)
    else:
        logger.info("Contacts mis à jour pour l'élève %s", run)
    return updated
