"""
Planificateur APScheduler : purge périodique des sessions de scan inactives.

Chaque appareil qui scanne crée une session en mémoire ; le job supprime
celles restées inactives plus de SCAN_SESSION_TTL_MINUTES.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from qrpases.config import settings
from qrpases.services.scan_session import scan_sessions

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def _purge_scan_sessions() -> None:
    """Tâche planifiée : purge des sessions de scan inactives."""
    try:
        purged = scan_sessions.purge(settings.SCAN_SESSION_TTL_MINUTES * 60)
        if purged:
            logger.info("Purge des sessions de scan : %d supprimée(s), %d active(s)", purged, len(scan_sessions))
    except Exception as exc:
        logger.error("Erreur lors de la purge des sessions de scan : %s", exc)


def start_scheduler() -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage de l'API)."""
    scheduler.add_job(
        _purge_scan_sessions,
        trigger="interval",
        minutes=5,
        id="scan_sessions_purge",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler démarré : purge des sessions de scan toutes les 5 minutes.")


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
