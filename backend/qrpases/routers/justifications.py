"""
Router pour les justifications (POST /api/v1/justifications).
"""

from fastapi import APIRouter, Depends

from qrpases.schemas.attendance import JustificationCreate, JustificationResult
from qrpases.services import attendance_service
from qrpases.stores.base import RecordStore
from qrpases.stores.provider import get_record_store

router = APIRouter(prefix="/api/v1/justifications", tags=["Justifications"])


@router.post("", response_model=JustificationResult, status_code=201, summary="Justifier un registro")
def create_justification(data: JustificationCreate, store: RecordStore = Depends(get_record_store)):
    """
    Justifie un atraso ou une inasistencia au nom d'un apoderado.

    Cible : registro_id (mode normalisé) ou run + fecha + hora + tipo (mode compteur).
    - 400 si le nom de l'apoderado est vide
    - 404 si le registro est introuvable
    - 409 si le registro est déjà justifié
    """
    return attendance_service.justify_record(store, data.target(), data.apoderado)
