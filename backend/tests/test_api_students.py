"""
Tests d'intégration API pour les élèves (GET /api/v1/students, contacts, historial, credencial).
"""

import uuid
from datetime import datetime

from qrpases.models.student import Student
from qrpases.schemas.attendance import ABSENCE, TARDY
from qrpases.services.attendance_service import register_event
from qrpases.services.qr_parser import parse_payload


# --- Helpers ---

def make_student(**kwargs) -> Student:
    defaults = dict(
        id=uuid.uuid4(), run="12345678-k", nombres="Ana María",
        apellido_paterno="Rojas", apellido_materno="Soto", grado="1° Medio", letra="A",
    )
    defaults.update(kwargs)
    return Student(**defaults)


PAYLOAD = "RUN: 12345678-K\nNombre: Ana Rojas\nGrado: 1° Medio\nCurso: A"


# ============================================================
# GET /api/v1/students
# ============================================================

class TestListStudents:
    def test_liste_vide(self, client, mock_db):
        mock_db.execute.return_value.scalars.return_value.all.return_value = []
        resp = client.get("/api/v1/students")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_liste_avec_eleves(self, client, mock_db):
        s1 = make_student(telefono_apoderado="+56912345678", nombre_apoderado="Jane Doe")
        s2 = make_student(run="22222222-2", nombres="Luis", apellido_paterno="Soto", apellido_materno=None)
        mock_db.execute.return_value.scalars.return_value.all.return_value = [s1, s2]

        resp = client.get("/api/v1/students", params={"search": "a"})

        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 2
        assert data[0]["nombre_completo"] == "Ana María Rojas Soto"
        assert data[0]["curso"] == "1° Medio A"
        assert data[0]["telefono_apoderado"] == "+56912345678"
        assert data[1]["nombre_completo"] == "Luis Soto"


# ============================================================
# POST /api/v1/students/import
# ============================================================

class TestImportStudents:
    def test_import_csv(self, client, mock_db):
        mock_db.execute.return_value.scalars.return_value.all.return_value = []
        content = "Run;DV;Nombres;Tel Apoderado;Apoderado\n12345678;K;Ana;9 1234 5678;Jane Doe\n".encode()

        resp = client.post("/api/v1/students/import", files={"file": ("alumnos.csv", content, "text/csv")})

        assert resp.status_code == 200
        data = resp.json()
        assert data["inserted"] == 1
        assert data["rejected"] == 0
        assert data["errors"] == []
        mock_db.commit.assert_called_once()

    def test_rapport_lignes_rejetees(self, client, mock_db):
        mock_db.execute.return_value.scalars.return_value.all.return_value = []
        content = b"Run,Nombres\n,Ana\n"

        resp = client.post("/api/v1/students/import", files={"file": ("alumnos.csv", content, "text/csv")})

        assert resp.status_code == 200
        assert resp.json()["errors"] == [{"row": 2, "content": ",Ana", "reason": "RUN manquant"}]

    def test_format_invalide_400(self, client):
        resp = client.post("/api/v1/students/import", files={"file": ("alumnos.pdf", b"%PDF", "application/pdf")})
        assert resp.status_code == 400

    def test_fichier_vide_400(self, client):
        resp = client.post("/api/v1/students/import", files={"file": ("alumnos.csv", b"", "text/csv")})
        assert resp.status_code == 400

    def test_encodage_invalide_400(self, client):
        resp = client.post("/api/v1/students/import", files={"file": ("alumnos.csv", b"Run,Nombres\n1,\xe9\xff\n", "text/csv")})
        assert resp.status_code == 400


# ============================================================
# GET /api/v1/students/{run}
# ============================================================

def test_detail_eleve(client, mock_db):
    mock_db.execute.return_value.scalar_one_or_none.return_value = make_student()
    resp = client.get("/api/v1/students/12345678-K")
    assert resp.status_code == 200
    assert resp.json()["run"] == "12345678-k"


def test_detail_eleve_introuvable(client, mock_db):
    mock_db.execute.return_value.scalar_one_or_none.return_value = None
    resp = client.get("/api/v1/students/99999999-9")
    assert resp.status_code == 404


# ============================================================
# PUT /api/v1/students/{run}/contact
# ============================================================

class TestUpdateContact:
    def test_contact_enregistre(self, client, mock_db):
        student = make_student()
        mock_db.execute.return_value.scalar_one_or_none.return_value = student

        resp = client.put("/api/v1/students/12345678-k/contact", json={
            "nombre_apoderado": "Jane Doe", "telefono_apoderado": "9 1234 5678",
        })

        assert resp.status_code == 200
        assert resp.json()["telefono_apoderado"] == "+56912345678"
        assert student.nombre_apoderado == "Jane Doe"

    def test_telephone_invalide_400(self, client, mock_db):
        mock_db.execute.return_value.scalar_one_or_none.return_value = make_student()
        resp = client.put("/api/v1/students/12345678-k/contact", json={
            "nombre_apoderado": "Jane Doe", "telefono_apoderado": "123",
        })
        assert resp.status_code == 400
        mock_db.commit.assert_not_called()

    def test_telephone_sans_nom_400(self, client, mock_db):
        mock_db.execute.return_value.scalar_one_or_none.return_value = make_student()
        resp = client.put("/api/v1/students/12345678-k/contact", json={"telefono_apoderado": "912345678"})
        assert resp.status_code == 400

    def test_eleve_introuvable_404(self, client, mock_db):
        mock_db.execute.return_value.scalar_one_or_none.return_value = None
        resp = client.put("/api/v1/students/12345678-k/contact", json={})
        assert resp.status_code == 404


# ============================================================
# Historial, en attente, résumé
# ============================================================

class TestStudentHistory:
    def test_historial_trie(self, store_client, normalized_store):
        identity = parse_payload(PAYLOAD)
        register_event(normalized_store, identity, TARDY, now=datetime(2024, 3, 1, 8, 5))
        register_event(normalized_store, identity, ABSENCE, now=datetime(2024, 3, 4, 8, 0))

        resp = store_client.get("/api/v1/students/12345678-k/history")
        assert resp.status_code == 200
        assert [e["fecha"] for e in resp.json()] == ["2024-03-04", "2024-03-01"]

    def test_historial_vide(self, store_client):
        resp = store_client.get("/api/v1/students/12345678-k/history")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_resume(self, store_client, normalized_store):
        identity = parse_payload(PAYLOAD)
        register_event(normalized_store, identity, TARDY, now=datetime(2024, 3, 1, 8, 5))
        register_event(normalized_store, identity, TARDY, now=datetime(2024, 3, 4, 8, 12))

        resp = store_client.get("/api/v1/students/12345678-k/summary")
        assert resp.status_code == 200
        assert resp.json() == [
            {"tipo": TARDY, "total": 2, "ultima_fecha": "2024-03-04", "ultima_hora": "08:12"},
        ]


# ============================================================
# GET /api/v1/students/{run}/credential.png
# ============================================================

def test_credencial_png(client, mock_db):
    mock_db.execute.return_value.scalar_one_or_none.return_value = make_student()
    resp = client.get("/api/v1/students/12345678-k/credential.png")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content[:4] == b"\x89PNG"


def test_credencial_eleve_introuvable(client, mock_db):
    mock_db.execute.return_value.scalar_one_or_none.return_value = None
    resp = client.get("/api/v1/students/12345678-k/credential.png")
    assert resp.status_code == 404
