"""
Document upload / review / delete tests.

The checklist item follows the document: an upload delivers the item through
the engine's document signal, a review mirrors onto the item, and deleting
the document never moves the item backwards.
"""

import io

import pytest

from app.core.exceptions import ValidationError
from app.models import db
from app.models.checklist import DocumentChecklistItem
from app.models.document import Document
from app.models.notification import Notification
from app.models.project import Project
from app.services import document_service
from app.services.storage_service import get_storage

PDF = b"%PDF-1.4 minimal test document"


def _upload(client, project, headers, document_type="TEAM_LIST", file_name="team.pdf",
            mime_type="application/pdf", content=PDF, **extra):
    data = {
        "file": (io.BytesIO(content), file_name, mime_type),
        "project_id": str(project.id),
        "document_type": document_type,
        **extra,
    }
    return client.post("/api/v1/documents", data=data, content_type="multipart/form-data",
                       headers=headers)


def _item(project, document_type):
    db.session.expire_all()
    return DocumentChecklistItem.query.filter_by(
        project_id=project.id, document_type=document_type,
    ).one()


def _progress(project):
    db.session.expire_all()
    return db.session.get(Project, project.id).progress


# ═══════════════════════════════════════════════════════════════
# Upload
# ═══════════════════════════════════════════════════════════════

class TestUpload:

    def test_upload_delivers_checklist_item(self, client, client_user, consultant, project, auth_headers):
        res = _upload(client, project, auth_headers(client_user), name="Staff list 2026")
        assert res.status_code == 201
        data = res.get_json()
        assert data["name"] == "Staff list 2026"
        assert data["status"] == "UPLOADED"
        assert data["file_size"] == len(PDF)
        assert data["uploaded_by_id"] == client_user.id

        item = _item(project, "TEAM_LIST")
        assert data["checklist_item_id"] == item.id
        assert item.status == "UPLOADED"
        assert item.history[-1].source == "document"
        assert _progress(project) == 13

        notif = Notification.query.filter_by(user_id=consultant.id, type="DOCUMENT_UPLOADED").one()
        assert notif.metadata_["document_id"] == data["id"]

    def test_file_is_stored(self, client, client_user, project, auth_headers):
        res = _upload(client, project, auth_headers(client_user))
        doc = db.session.get(Document, res.get_json()["id"])
        assert doc.storage_path.startswith(f"tenants/{project.tenant_id}/projects/{project.id}/")
        assert get_storage().read(doc.storage_path) == PDF

    def test_explicit_checklist_item(self, client, client_user, project, auth_headers):
        item = _item(project, "ORGANIZATIONAL_CHART")
        res = _upload(client, project, auth_headers(client_user), document_type="ORGANIZATIONAL_CHART",
                      file_name="chart.png", mime_type="image/png", checklist_item_id=str(item.id))
        assert res.status_code == 201
        assert res.get_json()["checklist_item_id"] == item.id

    def test_item_type_mismatch(self, client, client_user, project, auth_headers):
        item = _item(project, "ORGANIZATIONAL_CHART")
        res = _upload(client, project, auth_headers(client_user), checklist_item_id=str(item.id))
        assert res.status_code == 422
        assert Document.query.count() == 0

    def test_other_type_has_no_item(self, client, client_user, project, auth_headers):
        res = _upload(client, project, auth_headers(client_user), document_type="OTHER")
        assert res.status_code == 201
        assert res.get_json()["checklist_item_id"] is None
        assert _progress(project) == 0

    def test_unsupported_mime_type(self, client, client_user, project, auth_headers):
        res = _upload(client, project, auth_headers(client_user), file_name="run.exe",
                      mime_type="application/x-msdownload")
        assert res.status_code == 422
        assert "mime_type" in res.get_json()["error"]["details"]

    def test_unknown_document_type(self, client, client_user, project, auth_headers):
        res = _upload(client, project, auth_headers(client_user), document_type="SELFIE")
        assert res.status_code == 422

    def test_file_required(self, client, client_user, project, auth_headers):
        res = client.post("/api/v1/documents", data={"project_id": str(project.id)},
                          content_type="multipart/form-data", headers=auth_headers(client_user))
        assert res.status_code == 422
        assert res.get_json()["error"]["details"] == {"file": "required"}

    def test_project_id_must_be_integer(self, client, client_user, project, auth_headers):
        res = client.post("/api/v1/documents", data={
            "file": (io.BytesIO(PDF), "a.pdf", "application/pdf"), "project_id": "abc",
        }, content_type="multipart/form-data", headers=auth_headers(client_user))
        assert res.status_code == 422

    def test_multipart_refused_elsewhere(self, client, consultant, project, auth_headers):
        res = client.put(f"/api/v1/projects/{project.id}", data={"name": "x"},
                         content_type="multipart/form-data", headers=auth_headers(consultant))
        assert res.status_code == 415

    def test_client_cannot_upload_to_foreign_project(self, client, tenant, consultant, client_user,
                                                     organization_factory, project_factory, auth_headers):
        other = project_factory(tenant, organization_factory(tenant, name="Initech"), consultant=consultant)
        res = _upload(client, other, auth_headers(client_user))
        assert res.status_code == 404


# ═══════════════════════════════════════════════════════════════
# Review
# ═══════════════════════════════════════════════════════════════

class TestReview:

    def test_approve_validates_item(self, client, client_user, consultant, project, auth_headers):
        doc_id = _upload(client, project, auth_headers(client_user)).get_json()["id"]
        res = client.put(f"/api/v1/documents/{doc_id}/validate",
                         json={"status": "APPROVED", "notes": "Complete"},
                         headers=auth_headers(consultant))
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "VALIDATED"
        assert data["validated_by_id"] == consultant.id
        assert data["validated_at"] is not None

        item = _item(project, "TEAM_LIST")
        assert item.status == "VALIDATED"
        assert item.validation_notes == "Complete"
        assert _progress(project) == 13

    def test_reject_rejects_item(self, client, client_user, consultant, project, auth_headers):
        doc_id = _upload(client, project, auth_headers(client_user)).get_json()["id"]
        res = client.put(f"/api/v1/documents/{doc_id}/validate", json={"status": "REJECTED"},
                         headers=auth_headers(consultant))
        assert res.get_json()["status"] == "REJECTED"
        assert _item(project, "TEAM_LIST").status == "REJECTED"
        assert _progress(project) == 0

    def test_invalid_decision(self, client, client_user, consultant, project, auth_headers):
        doc_id = _upload(client, project, auth_headers(client_user)).get_json()["id"]
        res = client.put(f"/api/v1/documents/{doc_id}/validate", json={"status": "MAYBE"},
                         headers=auth_headers(consultant))
        assert res.status_code == 422

    def test_client_cannot_review(self, client, client_user, project, auth_headers):
        doc_id = _upload(client, project, auth_headers(client_user)).get_json()["id"]
        res = client.put(f"/api/v1/documents/{doc_id}/validate", json={"status": "APPROVED"},
                         headers=auth_headers(client_user))
        assert res.status_code == 403

    def test_review_decision_is_case_insensitive(self, client_user, consultant, project):
        doc = document_service.upload_document(
            project, content=PDF, file_name="chart.pdf", mime_type="application/pdf",
            document_type="ORGANIZATIONAL_CHART", uploaded_by=client_user.id,
        )
        document_service.review_document(doc, "approved", user_id=consultant.id)
        assert doc.status == "VALIDATED"

    def test_review_rejects_unknown_decision(self, client_user, consultant, project):
        doc = document_service.upload_document(
            project, content=PDF, file_name="chart.pdf", mime_type="application/pdf",
            document_type="ORGANIZATIONAL_CHART", uploaded_by=client_user.id,
        )
        with pytest.raises(ValidationError):
            document_service.review_document(doc, None, user_id=consultant.id)


# ═══════════════════════════════════════════════════════════════
# Read / delete
# ═══════════════════════════════════════════════════════════════

class TestReadDelete:

    def test_list_and_url(self, client, client_user, project, auth_headers):
        headers = auth_headers(client_user)
        doc_id = _upload(client, project, headers).get_json()["id"]

        res = client.get(f"/api/v1/documents/project/{project.id}", headers=headers)
        assert [d["id"] for d in res.get_json()] == [doc_id]

        res = client.get(f"/api/v1/documents/{doc_id}/url", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["url"].startswith("/files/tenants/")
        assert res.get_json()["expires_in"] == 3600

    def test_delete_keeps_item_delivered(self, client, client_user, project, auth_headers):
        headers = auth_headers(client_user)
        doc_id = _upload(client, project, headers).get_json()["id"]
        storage_path = db.session.get(Document, doc_id).storage_path

        res = client.delete(f"/api/v1/documents/{doc_id}", headers=headers)
        assert res.status_code == 200
        db.session.expire_all()
        assert db.session.get(Document, doc_id) is None
        assert _item(project, "TEAM_LIST").status == "UPLOADED"
        assert _progress(project) == 13
        assert not get_storage().delete(storage_path)

    def test_missing_document_404(self, client, consultant, auth_headers):
        res = client.get("/api/v1/documents/999", headers=auth_headers(consultant))
        assert res.status_code == 404


# ═══════════════════════════════════════════════════════════════
# Onboarding + uploads together
# ═══════════════════════════════════════════════════════════════

class TestMixedSignals:

    def test_uploads_complete_checklist_after_onboarding(self, client, client_user, project, auth_headers):
        headers = auth_headers(client_user)
        res = client.put(
            f"/api/v1/projects/{project.id}",
            json={"settings": {"onboarding": {"mission-vision": "SKIPPED", "team": "COMPLETED_VIA_UPLOAD"}}},
            headers=headers,
        )
        assert res.status_code == 200
        assert _progress(project) == 25

        for document_type in ("CULTURE_FACTORS", "ORGANIZATIONAL_CHART", "GOALS_OBJECTIVES",
                              "PRODUCTS_SERVICES", "POLICY_MANUAL", "FINANCIAL_DATA"):
            assert _upload(client, project, headers, document_type=document_type).status_code == 201

        assert _progress(project) == 100
        assert db.session.get(Project, project.id).stage == "DOCUMENT_COLLECTION"
