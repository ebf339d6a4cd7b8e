"""
Configuration partagée pour tous les tests.
Override les dépendances get_db et get_record_store pour éviter toute connexion
réelle à PostgreSQL ou au tableur.
"""

import uuid
from datetime import date
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from qrpases.database import get_db
from qrpases.exceptions import NetworkFailure
from qrpases.main import app
from qrpases.schemas.attendance import (
    HistoryEntry,
    JustificationRecord,
    LogEntry,
    RecordKey,
    TallyRecord,
    composite_key,
)
from qrpases.schemas.student import GuardianContact, StudentRef
from qrpases.services.scan_session import scan_sessions
from qrpases.stores.base import NormalizedRecordStore, TallyRecordStore
from qrpases.stores.provider import get_record_store


# ============================================================
# Backends en mémoire
# ============================================================

class InMemoryTallyStore(TallyRecordStore):
    """Tableur simulé : compteurs par (type, run), historial append-only, justifications."""

    def __init__(self):
        self.tallies: Dict[tuple, TallyRecord] = {}
        self.log: List[LogEntry] = []
        self.justifications: List[JustificationRecord] = []
        self.calls: List[str] = []
        self.fail_log = False
        self.fail_tally = False

    def get_by_run_and_type(self, run, tipo):
        self.calls.append("get_by_run_and_type")
        return self.tallies.get((tipo, run))

    def create_tally(self, tipo, record):
        self.calls.append("create_tally")
        if self.fail_tally:
            raise NetworkFailure("Le tableur n'a pas répondu.")
        self.tallies[(tipo, record.run)] = record

    def update_tally(self, tipo, record):
        self.calls.append("update_tally")
        if self.fail_tally:
            raise NetworkFailure("Le tableur n'a pas répondu.")
        self.tallies[(tipo, record.run)] = record

    def append_log(self, entry):
        self.calls.append("append_log")
        if self.fail_log:
            raise NetworkFailure("Le tableur n'a pas répondu.")
        self.log.append(entry)

    def query_history(self, run=None):
        return [
            HistoryEntry(
                run=e.run, nombre=e.nombre, curso=e.curso, fecha=e.fecha,
                hora=e.hora, tipo=e.tipo, comentario=e.comentario,
            )
            for e in self.log
            if run is None or e.run == run
        ]

    def query_justifications(self, run):
        return [j for j in self.justifications if j.run == run]

    def find_record(self, ref):
        if not isinstance(ref, RecordKey):
            return None
        for entry in self.query_history(ref.run):
            if entry.key() == ref.normalized():
                return entry
        return None

    def find_justification(self, record):
        for just in self.justifications:
            if just.apoderado.strip() and composite_key(just.run, just.fecha, just.hora, just.tipo) == record.key():
                return just
        return None

    def insert_justification(self, record, guardian_name, fecha):
        just = JustificationRecord(
            run=record.run, fecha=record.fecha, hora=record.hora, tipo=record.tipo,
            apoderado=guardian_name, fecha_justificacion=fecha,
        )
        self.justifications.append(just)
        return just


class InMemoryNormalizedStore(NormalizedRecordStore):
    """Base relationnelle simulée : élèves par RUN, registros immuables, justifications par registro."""

    def __init__(self):
        self.students: Dict[str, dict] = {}
        self.records: List[HistoryEntry] = []
        self.justifications: Dict[uuid.UUID, JustificationRecord] = {}

    def _ref(self, run: str) -> StudentRef:
        s = self.students[run]
        parts = (s.get("nombres"), s.get("apellido_paterno"), s.get("apellido_materno"))
        return StudentRef(
            id=s["id"],
            run=run,
            nombre_completo=" ".join(p for p in parts if p),
            curso=" ".join(p for p in (s.get("grado"), s.get("letra")) if p),
            has_contact=bool(s.get("telefono_apoderado") or s.get("telefono_apoderado_suplente")),
        )

    def _joined(self, entry: HistoryEntry) -> HistoryEntry:
        just = self.justifications.get(entry.registro_id)
        if just is None:
            return entry
        return entry.model_copy(update={
            "justificado": True,
            "apoderado": just.apoderado,
            "fecha_justificacion": just.fecha_justificacion,
        })

    def upsert_student(self, run, fields):
        if run not in self.students:
            self.students[run] = {"id": uuid.uuid4(), **fields}
        else:
            self.students[run].update({k: v for k, v in fields.items() if v})
        return self._ref(run)

    def insert_attendance(self, student, fields):
        entry = HistoryEntry(
            registro_id=uuid.uuid4(), run=student.run, nombre=student.nombre_completo,
            curso=student.curso, **fields,
        )
        self.records.append(entry)
        return entry

    def query_history(self, run=None):
        rows = [self._joined(e) for e in self.records if run is None or e.run == run]
        return sorted(rows, key=lambda e: (e.fecha, e.hora), reverse=True)

    def query_justifications(self, run):
        return [j for j in self.justifications.values() if j.run == run]

    def find_record(self, ref):
        for entry in self.records:
            if isinstance(ref, RecordKey):
                if entry.key() == ref.normalized():
                    return self._joined(entry)
            elif entry.registro_id == ref:
                return self._joined(entry)
        return None

    def find_justification(self, record):
        return self.justifications.get(record.registro_id)

    def insert_justification(self, record, guardian_name, fecha):
        just = JustificationRecord(
            run=record.run, fecha=record.fecha, hora=record.hora, tipo=record.tipo,
            apoderado=guardian_name, fecha_justificacion=fecha, registro_id=record.registro_id,
        )
        self.justifications[record.registro_id] = just
        return just

    def get_guardian_contact(self, run) -> Optional[GuardianContact]:
        if run not in self.students:
            return None
        return GuardianContact(run=run, **{
            k: v for k, v in self.students[run].items() if k.startswith(("nombre_apoderado", "telefono_apoderado"))
        })

    def update_guardian_contact(self, run, contact):
        self.students[run].update(contact.model_dump(exclude={"run"}))
        return contact


def add_history(store: InMemoryNormalizedStore, run: str, fecha: date, hora: str, tipo: str) -> HistoryEntry:
    """Insère directement un registro (élève créé au besoin)."""
    student = store.upsert_student(run, {"nombres": "Ana", "apellido_paterno": "Rojas"})
    return store.insert_attendance(student, {"fecha": fecha, "hora": hora, "tipo": tipo})


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture(autouse=True)
def reset_scan_sessions():
    """Chaque test démarre avec des appareils au repos."""
    scan_sessions._sessions.clear()
    yield
    scan_sessions._sessions.clear()


@pytest.fixture
def tally_store():
    return InMemoryTallyStore()


@pytest.fixture
def normalized_store():
    return InMemoryNormalizedStore()


@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def client(mock_db):
    """Client HTTP de test avec la BDD mockée."""
    app.dependency_overrides[get_db] = lambda: mock_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def store_client(normalized_store, mock_db):
    """Client HTTP de test branché sur un backend normalisé en mémoire."""
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_record_store] = lambda: normalized_store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def tally_client(tally_store, mock_db):
    """Client HTTP de test branché sur un tableur en mémoire (mode compteur)."""
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_record_store] = lambda: tally_store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
