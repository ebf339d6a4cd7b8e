"""
Tests d'intégration API pour les justifications (POST /api/v1/justifications).
"""

import uuid
from datetime import date, datetime

from qrpases.schemas.attendance import TARDY, JustificationCreate
from qrpases.services.attendance_service import register_event
from qrpases.services.qr_parser import parse_payload


# --- Helpers ---

PAYLOAD = "RUN: 12345678-K\nNombre: Ana Rojas\nGrado: 1° Medio\nCurso: A"


def register(store):
    return register_event(store, parse_payload(PAYLOAD), TARDY, now=datetime(2024, 3, 1, 8, 5))


# ============================================================
# Mode normalisé : cible registro_id
# ============================================================

class TestJustifyNormalized:
    def test_justification_creee(self, store_client, normalized_store):
        registered = register(normalized_store)
        resp = store_client.post("/api/v1/justifications", json={
            "registro_id": str(registered.registro_id), "apoderado": "Jane Doe",
        })

        assert resp.status_code == 201
        data = resp.json()
        assert data["apoderado"] == "Jane Doe"
        assert data["tipo"] == TARDY
        assert data["fecha"] == "2024-03-01"
        assert len(normalized_store.justifications) == 1

    def test_registro_justifie_dans_historial(self, store_client, normalized_store):
        registered = register(normalized_store)
        store_client.post("/api/v1/justifications", json={
            "registro_id": str(registered.registro_id), "apoderado": "Jane Doe",
        })

        history = store_client.get("/api/v1/students/12345678-k/history").json()
        assert history[0]["justificado"] is True
        assert store_client.get("/api/v1/students/12345678-k/pending").json() == []

    def test_apoderado_vide_400(self, store_client, normalized_store):
        registered = register(normalized_store)
        resp = store_client.post("/api/v1/justifications", json={
            "registro_id": str(registered.registro_id), "apoderado": "   ",
        })
        assert resp.status_code == 400
        assert normalized_store.justifications == {}

    def test_registro_introuvable_404(self, store_client):
        resp = store_client.post("/api/v1/justifications", json={
            "registro_id": str(uuid.uuid4()), "apoderado": "Jane Doe",
        })
        assert resp.status_code == 404

    def test_double_justification_409(self, store_client, normalized_store):
        registered = register(normalized_store)
        body = {"registro_id": str(registered.registro_id), "apoderado": "Jane Doe"}
        assert store_client.post("/api/v1/justifications", json=body).status_code == 201
        resp = store_client.post("/api/v1/justifications", json=body)
        assert resp.status_code == 409


# ============================================================
# Mode compteur : cible clé composite
# ============================================================

class TestJustifyTally:
    def test_par_cle_composite(self, tally_client, tally_store):
        register(tally_store)
        resp = tally_client.post("/api/v1/justifications", json={
            "run": "12345678-K", "fecha": "2024-03-01", "hora": "08:05", "tipo": "atrasos",
            "apoderado": "Jane Doe",
        })
        assert resp.status_code == 201
        assert tally_store.justifications[0].apoderado == "Jane Doe"

    def test_cle_inconnue_404(self, tally_client, tally_store):
        register(tally_store)
        resp = tally_client.post("/api/v1/justifications", json={
            "run": "12345678-k", "fecha": "2024-03-02", "hora": "08:05", "tipo": TARDY,
            "apoderado": "Jane Doe",
        })
        assert resp.status_code == 404


# ============================================================
# Validation du corps
# ============================================================

def test_cible_absente_422(store_client):
    resp = store_client.post("/api/v1/justifications", json={"apoderado": "Jane Doe"})
    assert resp.status_code == 422


def test_cle_incomplete_422(store_client):
    resp = store_client.post("/api/v1/justifications", json={
        "run": "12345678-k", "fecha": str(date(2024, 3, 1)), "apoderado": "Jane Doe",
    })
    assert resp.status_code == 422


def test_heure_mal_formee_422(store_client):
    resp = store_client.post("/api/v1/justifications", json={
        "run": "12345678-k", "fecha": "2024-03-01", "hora": "8h05", "tipo": TARDY, "apoderado": "Jane Doe",
    })
    assert resp.status_code == 422


# ============================================================
# Indépendance vis-à-vis des sessions de scan
# ============================================================

def test_schema_sans_device_id():
    assert "device_id" not in JustificationCreate.model_fields


def test_justification_pendant_cooldown_du_meme_appareil(store_client, normalized_store):
    """Justifier juste après un scan sur le même appareil n'est pas bloqué par le délai de repos."""
    scan = store_client.post("/api/v1/scans", json={"payload": PAYLOAD, "tipo": TARDY, "device_id": "tel-1"})
    assert scan.status_code == 201

    resp = store_client.post("/api/v1/justifications", json={
        "registro_id": scan.json()["registro_id"], "apoderado": "Jane Doe", "device_id": "tel-1",
    })
    assert resp.status_code == 201
