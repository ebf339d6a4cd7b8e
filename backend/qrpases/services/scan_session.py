"""
Sessions de scan par appareil : un seul scan traité à la fois.

Machine à états :
    IDLE ──scan──▶ SCANNING ──payload valide──▶ PROCESSING ──fin──▶ COOLDOWN ──délai──▶ IDLE
                       └──────── payload invalide ───────▶ IDLE

Un scan reçu hors IDLE est refusé (ScanInProgress). Le retour à IDLE après le
délai de repos est évalué paresseusement à la lecture de l'état. Aucune
annulation : une opération engagée va jusqu'au bout (succès ou erreur).
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict

from qrpases.exceptions import ScanInProgress

logger = logging.getLogger(__name__)

IDLE = "IDLE"
SCANNING = "SCANNING"
PROCESSING = "PROCESSING"
COOLDOWN = "COOLDOWN"


class ScanSession:
    """État de scan d'un appareil."""

    def __init__(self, device_id: str, clock: Callable[[], float] = time.monotonic):
        self.device_id = device_id
        self._clock = clock
        self._state = IDLE
        self._cooldown_until = 0.0
        self.last_activity = clock()

    @property
    def state(self) -> str:
        if self._state == COOLDOWN and self._clock() >= self._cooldown_until:
            self._state = IDLE
        return self._state

    def begin_scan(self) -> None:
        current = self.state
        if current != IDLE:
            raise ScanInProgress(f"Scan refusé : appareil {self.device_id} en état {current}.")
        self._state = SCANNING
        self.last_activity = self._clock()

    def start_processing(self) -> None:
        if self._state != SCANNING:
            raise RuntimeError(f"Transition invalide {self._state} → {PROCESSING}")
        self._state = PROCESSING

    def finish(self, cooldown_seconds: float) -> None:
        """Fin du traitement : délai de repos avant de réaccepter un scan."""
        self._state = COOLDOWN
        self._cooldown_until = self._clock() + cooldown_seconds
        self.last_activity = self._clock()

    def abort(self) -> None:
        """Payload rejeté avant tout appel au backend : retour immédiat à IDLE."""
        self._state = IDLE
        self.last_activity = self._clock()


class ScanSessionRegistry:
    """Sessions de scan indexées par device_id (thread-safe)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._sessions: Dict[str, ScanSession] = {}
        self._lock = threading.Lock()

    def get(self, device_id: str) -> ScanSession:
        with self._lock:
            return self._get(device_id)

    def _get(self, device_id: str) -> ScanSession:
        session = self._sessions.get(device_id)
        if session is None:
            session = ScanSession(device_id, clock=self._clock)
            self._sessions[device_id] = session
        return session

    @contextmanager
    def scan(self, device_id: str, cooldown_seconds: float):
        """
        Encadre le traitement d'un scan.

        Sortie sans passage en PROCESSING (payload invalide) → IDLE immédiat ;
        sinon COOLDOWN, que le traitement ait réussi ou échoué.
        """
        with self._lock:
            session = self._get(device_id)
            session.begin_scan()
        try:
            yield session
        finally:
            with self._lock:
                if session.state == SCANNING:
                    session.abort()
                else:
                    session.finish(cooldown_seconds)

    def purge(self, max_idle_seconds: float) -> int:
        """Supprime les sessions IDLE inactives depuis plus de max_idle_seconds."""
        limit = self._clock() - max_idle_seconds
        with self._lock:
            stale = [
                device_id for device_id, session in self._sessions.items()
                if session.state == IDLE and session.last_activity < limit
            ]
            for device_id in stale:
                del self._sessions[device_id]
        if stale:
            logger.debug("%d session(s) de scan purgée(s)", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._sessions)


scan_sessions = ScanSessionRegistry()
