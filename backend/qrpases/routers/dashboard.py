"""
Router du tableau de bord web.
  GET /api/v1/dashboard/records : registres filtrés (tipo, justificado)
  GET /api/v1/dashboard/stats   : totaux inasistencias / atrasos / justifiés / en attente
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from qrpases.database import get_db
from qrpases.schemas.attendance import HistoryEntry
from qrpases.schemas.dashboard import DashboardStats
from qrpases.services import dashboard_service

router = APIRouter(prefix="/api/v1/dashboard", tags=["Tableau de bord"])


@router.get("/records", response_model=List[HistoryEntry], summary="Registres du tableau de bord")
def list_records(
    tipo: Optional[str] = None,
    justificado: Optional[bool] = None,
    db: Session = Depends(get_db),
):
    return dashboard_service.list_records(db, tipo=tipo, justificado=justificado)


@router.get("/stats", response_model=DashboardStats, summary="Statistiques globales")
def get_stats(
    tipo: Optional[str] = None,
    justificado: Optional[bool] = None,
    db: Session = Depends(get_db),
):
    """Statistiques calculées sur les registres filtrés."""
    records = dashboard_service.list_records(db, tipo=tipo, justificado=justificado)
    return dashboard_service.compute_stats(records)
