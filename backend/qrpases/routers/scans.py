"""
Router pour les scans de l'application mobile.
  POST /api/v1/scans           : enregistrer un atraso / une inasistencia
  POST /api/v1/scans/history   : historial de l'élève scanné
  POST /api/v1/scans/pending   : registres à justifier de l'élève scanné

Un seul scan est traité à la fois par appareil (device_id) ; un scan reçu
pendant le traitement ou le délai de repos renvoie 409.
"""

from fastapi import APIRouter, Depends

from qrpases.config import settings
from qrpases.schemas.attendance import (
    LookupRequest,
    RegistrationResult,
    ScanHistoryResponse,
    ScanRequest,
)
from qrpases.services import attendance_service
from qrpases.services.qr_parser import parse_payload
from qrpases.services.scan_session import scan_sessions
from qrpases.stores.base import RecordStore
from qrpases.stores.provider import get_record_store

router = APIRouter(prefix="/api/v1/scans", tags=["Scans"])


@router.post(
    "",
    response_model=RegistrationResult,
    status_code=201,
    summary="Enregistrer un scan (atraso ou inasistencia)",
)
def register_scan(data: ScanRequest, store: RecordStore = Depends(get_record_store)):
    """
    Décode le QR puis enregistre l'événement.

    - 400 si le QR ne contient pas de RUN
    - 409 si un scan est déjà en cours sur l'appareil
    - 502 si l'écriture principale échoue
    - 201 avec partial_failure=true si seul l'historial n'a pas pu être écrit
    - needs_contact_info=true : proposer la saisie du contact de l'apoderado
    """
    with scan_sessions.scan(data.device_id, settings.SCAN_COOLDOWN_SECONDS) as session:
        identity = parse_payload(data.payload)
        session.start_processing()
        return attendance_service.register_event(
            store, identity, data.tipo, comment=data.comentario, now=data.scanned_at,
        )


@router.post(
    "/history",
    response_model=ScanHistoryResponse,
    summary="Historial de l'élève scanné",
)
def scan_history(data: LookupRequest, store: RecordStore = Depends(get_record_store)):
    """Historial complet, chaque registre avec son statut de justification."""
    with scan_sessions.scan(data.device_id, settings.LOOKUP_COOLDOWN_SECONDS) as session:
        identity = parse_payload(data.payload)
        session.start_processing()
        entries = attendance_service.fetch_history(store, identity.run)
    return ScanHistoryResponse(identity=identity, entries=entries)


@router.post(
    "/pending",
    response_model=ScanHistoryResponse,
    summary="Registres à justifier de l'élève scanné",
)
def scan_pending(data: LookupRequest, store: RecordStore = Depends(get_record_store)):
    """Registres non justifiés. Liste vide : rien à justifier (ou aucun historique)."""
    with scan_sessions.scan(data.device_id, settings.LOOKUP_COOLDOWN_SECONDS) as session:
        identity = parse_payload(data.payload)
        session.start_processing()
        entries = attendance_service.fetch_pending(store, identity.run)
    return ScanHistoryResponse(identity=identity, entries=entries)
