"""
Interface abstraite des backends de stockage des registres.

Deux disciplines coexistent :
- mode compteur (TallyRecordStore) : une ligne mutable par élève et par type
  (total_registros) + un historial append-only ; jointure des justifications
  côté client.
- mode normalisé (NormalizedRecordStore) : un élève upserté par RUN et une ligne
  immuable par événement ; la jointure des justifications est faite par le
  backend (vue / outer join).
"""

import uuid
from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional, Union

from qrpases.schemas.attendance import (
    MODE_NORMALIZED,
    MODE_TALLY,
    HistoryEntry,
    JustificationRecord,
    LogEntry,
    RecordKey,
    TallyRecord,
)
from qrpases.schemas.student import GuardianContact, StudentRef

RecordRef = Union[uuid.UUID, RecordKey]


class RecordStore(ABC):
    mode: str = ""
    joins_server_side: bool = False
    supports_ordering: bool = False

    @abstractmethod
    def query_history(self, run: Optional[str] = None) -> List[HistoryEntry]:
        """Registres d'un élève (ou de tous si run est None)."""

    @abstractmethod
    def query_justifications(self, run: str) -> List[JustificationRecord]:
        """Justifications d'un élève, non jointes."""

    @abstractmethod
    def find_record(self, ref: RecordRef) -> Optional[HistoryEntry]:
        """Recherche ponctuelle du registre ciblé par une justification."""

    @abstractmethod
    def find_justification(self, record: HistoryEntry) -> Optional[JustificationRecord]:
        ...

    @abstractmethod
    def insert_justification(
        self, record: HistoryEntry, guardian_name: str, fecha: date
    ) -> JustificationRecord:
        ...

    def close(self) -> None:
        pass


class TallyRecordStore(RecordStore):
    mode = MODE_TALLY

    @abstractmethod
    def get_by_run_and_type(self, run: str, tipo: str) -> Optional[TallyRecord]:
        ...

    @abstractmethod
    def create_tally(self, tipo: str, record: TallyRecord) -> None:
        ...

    @abstractmethod
    def update_tally(self, tipo: str, record: TallyRecord) -> None:
        ...

    @abstractmethod
    def append_log(self, entry: LogEntry) -> None:
        ...

    def create_or_increment(self, run: str, tipo: str, fields: dict) -> TallyRecord:
        """
        Lit la ligne compteur puis l'incrémente (date/heure écrasées) ou la crée à 1.
        Lecture puis écriture sans verrou : deux scans simultanés peuvent lire le même total.
        """
        existing = self.get_by_run_and_type(run, tipo)
        if existing is not None:
            record = existing.model_copy(
                update={**fields, "total_registros": existing.total_registros + 1}
            )
            self.update_tally(tipo, record)
        else:
            record = TallyRecord(run=run, total_registros=1, **fields)
            self.create_tally(tipo, record)
        return record


class NormalizedRecordStore(RecordStore):
    mode = MODE_NORMALIZED
    joins_server_side = True
    supports_ordering = True

    @abstractmethod
    def upsert_student(self, run: str, fields: dict) -> StudentRef:
        ...

    @abstractmethod
    def insert_attendance(self, student: StudentRef, fields: dict) -> HistoryEntry:
        ...

    @abstractmethod
    def get_guardian_contact(self, run: str) -> Optional[GuardianContact]:
        ...

    @abstractmethod
    def update_guardian_contact(self, run: str, contact: GuardianContact) -> GuardianContact:
        ...
