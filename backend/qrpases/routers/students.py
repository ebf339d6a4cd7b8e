"""
Router pour les élèves.
  GET  /api/v1/students                     : liste (recherche, sans contact)
  POST /api/v1/students/import              : import CSV (upsert par RUN)
  GET  /api/v1/students/{run}               : détail
  PUT  /api/v1/students/{run}/contact       : contacts des apoderados
  GET  /api/v1/students/{run}/history       : historial avec justifications
  GET  /api/v1/students/{run}/pending       : registres à justifier
  GET  /api/v1/students/{run}/summary       : totaux par type
  GET  /api/v1/students/{run}/credential.png : QR de la credencial
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from qrpases.database import get_db
from qrpases.schemas.attendance import HistoryEntry, TallySummary
from qrpases.schemas.student import (
    GuardianContact,
    GuardianContactUpdate,
    StudentImportReport,
    StudentResponse,
)
from qrpases.services import attendance_service, student_service
from qrpases.services.credential_service import generate_credential_png
from qrpases.services.student_import import import_students_csv
from qrpases.stores.base import RecordStore
from qrpases.stores.provider import get_record_store

router = APIRouter(prefix="/api/v1/students", tags=["Élèves"])

ALLOWED_CONTENT_TYPES = {"text/csv", "text/plain", "application/vnd.ms-excel"}
MAX_FILE_SIZE_MB = 5


@router.get("", response_model=List[StudentResponse], summary="Lister les élèves")
def list_students(
    search: Optional[str] = None,
    without_contact: bool = False,
    db: Session = Depends(get_db),
):
    """Élèves triés par apellidos. `without_contact=true` : élèves sans téléphone d'apoderado."""
    return student_service.list_students(db, search=search, without_contact=without_contact)


@router.post("/import", response_model=StudentImportReport, summary="Importer des élèves via CSV")
async def import_students(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    """
    Crée ou met à jour des élèves depuis l'export CSV de la fiche scolaire.

    Format attendu du CSV :
    - Colonnes obligatoires : `Run`, `Nombres`
    - Colonnes optionnelles : `DV`, `Apellido Paterno`, `Apellido Materno`, `Desc Grado`,
      `Letra Curso`, contacts titulaire et suppléant
    - Séparateur : virgule (`,`) ou point-virgule (`;`)
    - Encodage : UTF-8 (avec ou sans BOM)

    Retourne un rapport détaillant les créations, mises à jour et rejets.
    """
    if file.content_type not in ALLOWED_CONTENT_TYPES and not (file.filename or "").endswith(".csv"):
        raise HTTPException(
            status_code=400,
            detail="Format invalide. Seuls les fichiers CSV sont acceptés."
        )

    content = await file.read()

    if len(content) > MAX_FILE_SIZE_MB * 1024 * 1024:
        raise HTTPException(
            status_code=400,
            detail=f"Fichier trop volumineux. Taille maximale : {MAX_FILE_SIZE_MB} Mo."
        )

    if not content:
        raise HTTPException(status_code=400, detail="Le fichier CSV est vide.")

    try:
        return import_students_csv(content, db)
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Encodage invalide. Le fichier doit être en UTF-8.")


@router.get("/{run}", response_model=StudentResponse, summary="Détail d'un élève")
def get_student(run: str, db: Session = Depends(get_db)):
    return student_service.get_student(db, run)


@router.put("/{run}/contact", response_model=GuardianContact, summary="Modifier les contacts d'apoderados")
def update_contact(run: str, data: GuardianContactUpdate, db: Session = Depends(get_db)):
    """
    Enregistre les contacts titulaire et suppléant (téléphones normalisés +56XXXXXXXXX).
    Les quatre champs vides suppriment les contacts.
    """
    return student_service.update_guardian_contact(db, run, data)


@router.get("/{run}/history", response_model=List[HistoryEntry], summary="Historial d'un élève")
def get_history(run: str, store: RecordStore = Depends(get_record_store)):
    return attendance_service.fetch_history(store, run)


@router.get("/{run}/pending", response_model=List[HistoryEntry], summary="Registres à justifier")
def get_pending(run: str, store: RecordStore = Depends(get_record_store)):
    return attendance_service.fetch_pending(store, run)


@router.get("/{run}/summary", response_model=List[TallySummary], summary="Totaux par type")
def get_summary(run: str, store: RecordStore = Depends(get_record_store)):
    """Total et dernier événement par type. Liste vide : l'élève n'a aucun registro."""
    return attendance_service.fetch_summary(store, run)


@router.get("/{run}/credential.png", summary="QR code de la credencial")
def get_credential(run: str, db: Session = Depends(get_db)):
    student = student_service.get_student(db, run)
    return Response(content=generate_credential_png(student), media_type="image/png")
