"""
Schémas Pydantic pour le tableau de bord (statistiques globales).
"""

from pydantic import BaseModel


class DashboardStats(BaseModel):
    total: int
    inasistencias: int
    atrasos: int
    justificados: int
    pendientes: int
