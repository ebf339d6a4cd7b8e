"""
Service du tableau de bord : liste filtrée des registres et statistiques globales.
Lit l'historial complet joint côté base (mode normalisé).
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from qrpases.schemas.attendance import ABSENCE, TARDY, HistoryEntry, canonical_event_type
from qrpases.schemas.dashboard import DashboardStats
from qrpases.stores.sql_store import SqlRecordStore


def list_records(
    db: Session,
    tipo: Optional[str] = None,
    justificado: Optional[bool] = None,
) -> List[HistoryEntry]:
    """Tous les registres (fecha puis hora décroissantes), filtrés par type et statut."""
    records = SqlRecordStore(db).query_history()

    if tipo:
        wanted = canonical_event_type(tipo)
        records = [r for r in records if r.tipo == wanted]
    if justificado is not None:
        records = [r for r in records if r.justificado == justificado]
    return records


def compute_stats(records: List[HistoryEntry]) -> DashboardStats:
    justificados = sum(1 for r in records if r.justificado)
    return DashboardStats(
        total=len(records),
        inasistencias=sum(1 for r in records if r.tipo == ABSENCE),
        atrasos=sum(1 for r in records if r.tipo == TARDY),
        justificados=justificados,
        pendientes=len(records) - justificados,
    )
