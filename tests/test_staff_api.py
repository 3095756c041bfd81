import os

from models import SystemAuditLog
from routes import staff as staff_routes
from utils.errors import ConcurrentModificationError

from conftest import login, make_client, png_bytes


def _submit(app, remote_addr, description="Leaking roof", category="facilities"):
    client = make_client(app, remote_addr)
    response = client.post("/complaints", json={"category": category, "description": description})
    assert response.status_code == 201, response.get_json()
    return response.get_json()["reference_number"]


def _staff(app, email):
    client = app.test_client()
    login(client, email)
    return client


def test_admin_sees_everything_with_filters(app, accounts):
    roof = _submit(app, "203.0.113.1", "Leaking roof")
    _submit(app, "203.0.113.2", "Wrong tuition assessment", "finance")
    admin = _staff(app, accounts.admin.email)

    listing = admin.get("/staff/complaints").get_json()
    assert listing["total"] == 2
    assert listing["counts"]["submitted"] == 2
    assert "facilities" in listing["departments"]

    searched = admin.get("/staff/complaints?q=roof").get_json()
    assert [c["reference_number"] for c in searched["items"]] == [roof]
    assert admin.get("/staff/complaints?q=" + roof.lower()).get_json()["total"] == 1
    assert admin.get("/staff/complaints?status=verified").get_json()["total"] == 0

    bad = admin.get("/staff/complaints?status=lost")
    assert bad.status_code == 400


def test_department_only_sees_assigned_non_submitted(app, accounts):
    roof = _submit(app, "203.0.113.1")
    pending = _submit(app, "203.0.113.2", "Flickering lights")
    admin = _staff(app, accounts.admin.email)
    admin.post(f"/staff/complaints/{roof}/transitions", json={"action": "verify", "department": "facilities"})

    facilities = _staff(app, accounts.facilities.email)
    listing = facilities.get("/staff/complaints").get_json()
    assert [c["reference_number"] for c in listing["items"]] == [roof]
    assert facilities.get(f"/staff/complaints/{pending}").status_code == 404

    detail = facilities.get(f"/staff/complaints/{roof}").get_json()
    assert detail["available_actions"] == ["start"]

    finance = _staff(app, accounts.finance.email)
    assert finance.get("/staff/complaints").get_json()["total"] == 0
    assert finance.get(f"/staff/complaints/{roof}").status_code == 404


def test_invalid_and_unknown_transitions(app, accounts):
    reference = _submit(app, "203.0.113.1")
    admin = _staff(app, accounts.admin.email)

    response = admin.post(f"/staff/complaints/{reference}/transitions", json={"action": "resolve"})
    assert response.status_code == 403

    response = admin.post(f"/staff/complaints/{reference}/transitions", json={"action": "fly"})
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "VALIDATION_ERROR"

    response = admin.post(f"/staff/complaints/{reference}/transitions", json={"action": "reject"})
    assert response.status_code == 400

    response = admin.post(
        f"/staff/complaints/{reference}/transitions", json={"action": "reject", "remarks": "Not a campus issue"}
    )
    assert response.get_json()["complaint"]["status"] == "rejected"

    response = admin.post(
        f"/staff/complaints/{reference}/transitions", json={"action": "verify", "department": "facilities"}
    )
    assert response.status_code == 409
    assert response.get_json()["error"]["code"] == "INVALID_TRANSITION"


def test_resolve_without_proof_image_is_rejected(app, accounts):
    reference = _submit(app, "203.0.113.1")
    admin = _staff(app, accounts.admin.email)
    admin.post(f"/staff/complaints/{reference}/transitions", json={"action": "verify", "department": "facilities"})
    facilities = _staff(app, accounts.facilities.email)
    facilities.post(f"/staff/complaints/{reference}/transitions", json={"action": "start"})

    response = facilities.post(
        f"/staff/complaints/{reference}/transitions",
        json={"action": "resolve", "resolution_details": "Patched the roof"},
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["details"]["field"] == "resolution_image"

    response = facilities.post(
        f"/staff/complaints/{reference}/transitions",
        json={
            "action": "resolve",
            "resolution_details": "Patched the roof",
            "resolution_image_url": "not-an-image.exe",
        },
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["details"]["field"] == "resolution_image"
    assert facilities.get(f"/staff/complaints/{reference}").get_json()["complaint"]["status"] == "in_progress"


def test_student_is_forbidden_and_logged(app, accounts):
    student = _staff(app, accounts.student.email)
    response = student.get("/staff/complaints")
    assert response.status_code == 403
    assert response.get_json()["error"]["code"] == "AUTHORIZATION_ERROR"
    with app.app_context():
        entry = SystemAuditLog.query.filter_by(action="UNAUTHORIZED_ACCESS").one()
        assert entry.actor_id == accounts.student.id


def test_anonymous_staff_access_is_unauthenticated(client):
    response = client.get("/staff/complaints")
    assert response.status_code == 401


def _in_progress(app, accounts, remote_addr="203.0.113.1"):
    reference = _submit(app, remote_addr)
    admin = _staff(app, accounts.admin.email)
    admin.post(f"/staff/complaints/{reference}/transitions", json={"action": "verify", "department": "facilities"})
    facilities = _staff(app, accounts.facilities.email)
    facilities.post(f"/staff/complaints/{reference}/transitions", json={"action": "start"})
    return reference, facilities


def _stored_files(app):
    return sorted(os.listdir(app.config["ATTACHMENT_UPLOAD_FOLDER"]))


def test_refused_resolve_leaves_no_stored_proof(app, accounts):
    reference, facilities = _in_progress(app, accounts)

    response = facilities.post(
        f"/staff/complaints/{reference}/transitions",
        data={"action": "resolve", "resolution_image": (png_bytes(), "proof.png")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["details"]["field"] == "resolution_details"
    assert _stored_files(app) == []

    finance = _staff(app, accounts.finance.email)
    response = finance.post(
        f"/staff/complaints/{reference}/transitions",
        data={"action": "resolve", "resolution_details": "Done", "resolution_image": (png_bytes(), "proof.png")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 404
    assert _stored_files(app) == []


def test_failed_resolve_write_discards_stored_proof(app, accounts, monkeypatch):
    reference, facilities = _in_progress(app, accounts)

    def lost_race(*args, **kwargs):
        raise ConcurrentModificationError()

    monkeypatch.setattr(staff_routes, "apply_transition", lost_race)
    response = facilities.post(
        f"/staff/complaints/{reference}/transitions",
        data={"action": "resolve", "resolution_details": "Done", "resolution_image": (png_bytes(), "proof.png")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 409
    assert _stored_files(app) == []


def test_resolve_with_uploaded_proof_stores_one_file(app, accounts):
    reference, facilities = _in_progress(app, accounts)
    response = facilities.post(
        f"/staff/complaints/{reference}/transitions",
        data={"action": "resolve", "resolution_details": "Done", "resolution_image": (png_bytes(), "proof.png")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 200, response.get_json()
    stored = _stored_files(app)
    assert len(stored) == 1
    assert response.get_json()["complaint"]["resolution_image_url"].endswith(stored[0])
