"""
Backend compteur : tableur exposé par un proxy REST (API de type sheet.best).

Onglets :
- Atrasos / Inasistencias : une ligne par élève (run, nombre, fecha, hora, total_registros)
- Historial : journal append-only (run, nombre, curso, fecha, hora, tipo, comentario)
- Justificaciones : le nom de l'apoderado est stocké dans la colonne `comentario`

Routes du proxy :
  GET  {base}/tabs/{onglet}?run=...        filtre par colonne
  POST {base}/tabs/{onglet}                ajout d'une ligne
  PUT  {base}/tabs/{onglet}/run/{run}      mise à jour des lignes de ce run

Le proxy ne sait ni trier ni joindre : l'ordre renvoyé est conservé et la
jointure des justifications est faite côté client (voir attendance_service).
"""

import logging
from datetime import date
from typing import List, Optional

import httpx

from qrpases.config import settings
from qrpases.exceptions import NetworkFailure
from qrpases.schemas.attendance import (
    HistoryEntry,
    JustificationRecord,
    LogEntry,
    RecordKey,
    TallyRecord,
    canonical_event_type,
    composite_key,
)
from qrpases.services.qr_parser import normalize_run
from qrpases.stores.base import RecordRef, TallyRecordStore

logger = logging.getLogger(__name__)

HISTORIAL_TAB = "Historial"
JUSTIFICACIONES_TAB = "Justificaciones"


def _parse_date(value) -> Optional[date]:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value or "").strip())
    except ValueError:
        return None


def _parse_int(value, default: int = 1) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


class SheetRecordStore(TallyRecordStore):

    def __init__(self, client: httpx.Client):
        self.client = client

    @classmethod
    def from_settings(cls) -> "SheetRecordStore":
        client = httpx.Client(
            base_url=settings.SHEET_BASE_URL,
            timeout=settings.SHEET_TIMEOUT_SECONDS,
        )
        return cls(client)

    def close(self) -> None:
        self.client.close()

    # --- Appels HTTP ---

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Échec appel tableur %s %s : %s", method, path, exc, exc_info=True)
            raise NetworkFailure(f"Le tableur n'a pas répondu ({method} {path}).") from exc
        return response

    def _get_rows(self, tab: str, run: Optional[str] = None) -> List[dict]:
        params = {"run": run} if run is not None else None
        response = self._request("GET", f"/tabs/{tab}", params=params)
        try:
            rows = response.json()
        except ValueError as exc:
            raise NetworkFailure(f"Réponse illisible du tableur (onglet {tab}).") from exc
        if not isinstance(rows, list):
            return []
        if run is None:
            return rows
        # Le filtre du proxy est sensible à la casse selon les versions : on refiltre
        return [row for row in rows if normalize_run(row.get("run")) == run]

    # --- Compteurs ---

    def get_by_run_and_type(self, run: str, tipo: str) -> Optional[TallyRecord]:
        rows = self._get_rows(tipo, run)
        if not rows:
            return None
        row = rows[0]
        return TallyRecord(
            run=str(row.get("run") or run),
            nombre=str(row.get("nombre") or ""),
            curso=str(row.get("curso") or ""),
            fecha=_parse_date(row.get("fecha")),
            hora=row.get("hora") or None,
            total_registros=_parse_int(row.get("total_registros")),
        )

    def _tally_body(self, record: TallyRecord) -> dict:
        return {
            "run": record.run,
            "nombre": record.nombre,
            "curso": record.curso,
            "fecha": record.fecha.isoformat() if record.fecha else "",
            "hora": record.hora or "",
            "total_registros": record.total_registros,
            "adicional": "",
        }

    def create_tally(self, tipo: str, record: TallyRecord) -> None:
        self._request("POST", f"/tabs/{tipo}", json=self._tally_body(record))

    def update_tally(self, tipo: str, record: TallyRecord) -> None:
        self._request("PUT", f"/tabs/{tipo}/run/{record.run}", json=self._tally_body(record))

    def append_log(self, entry: LogEntry) -> None:
        self._request("POST", f"/tabs/{HISTORIAL_TAB}", json={
            "run": entry.run,
            "nombre": entry.nombre,
            "curso": entry.curso,
            "fecha": entry.fecha.isoformat(),
            "hora": entry.hora,
            "tipo": entry.tipo,
            "comentario": entry.comentario or "",
        })

    # --- Historial et justifications ---

    def query_history(self, run: Optional[str] = None) -> List[HistoryEntry]:
        entries: List[HistoryEntry] = []
        for row in self._get_rows(HISTORIAL_TAB, run):
            fecha = _parse_date(row.get("fecha"))
            hora = str(row.get("hora") or "").strip()
            if fecha is None or not hora:
                logger.warning("Ligne d'historial ignorée (fecha/hora illisible) : %s", row)
                continue
            entries.append(HistoryEntry(
                run=normalize_run(row.get("run")),
                nombre=str(row.get("nombre") or ""),
                curso=str(row.get("curso") or ""),
                fecha=fecha,
                hora=hora,
                tipo=canonical_event_type(str(row.get("tipo") or "")) or str(row.get("tipo") or ""),
                comentario=row.get("comentario") or None,
            ))
        return entries

    def query_justifications(self, run: str) -> List[JustificationRecord]:
        return [
            JustificationRecord(
                run=normalize_run(row.get("run")),
                fecha=_parse_date(row.get("fecha")),
                hora=str(row.get("hora") or "").strip() or None,
                tipo=str(row.get("tipo") or "") or None,
                apoderado=str(row.get("comentario") or ""),
                fecha_justificacion=_parse_date(row.get("fecha_justificacion")),
            )
            for row in self._get_rows(JUSTIFICACIONES_TAB, run)
        ]

    def find_record(self, ref: RecordRef) -> Optional[HistoryEntry]:
        if not isinstance(ref, RecordKey):
            # Le tableur n'a pas d'identifiant de registro
            return None
        target = ref.normalized()
        for entry in self.query_history(ref.run):
            if entry.key() == target:
                return entry
        return None

    def find_justification(self, record: HistoryEntry) -> Optional[JustificationRecord]:
        target = record.key()
        for just in self.query_justifications(record.run):
            key = composite_key(just.run, just.fecha, just.hora, just.tipo)
            if just.apoderado.strip() and key == target:
                return just
        return None

    def insert_justification(
        self, record: HistoryEntry, guardian_name: str, fecha: date
    ) -> JustificationRecord:
        self._request("POST", f"/tabs/{JUSTIFICACIONES_TAB}", json={
            "run": record.run,
            "nombre": record.nombre,
            "curso": record.curso,
            "fecha": record.fecha.isoformat(),
            "hora": record.hora,
            "tipo": record.tipo,
            "justificado": "Sí",
            "comentario": guardian_name,
            "fecha_justificacion": fecha.isoformat(),
        })
        return JustificationRecord(
            run=record.run,
            fecha=record.fecha,
            hora=record.hora,
            tipo=record.tipo,
            apoderado=guardian_name,
            fecha_justificacion=fecha,
        )
