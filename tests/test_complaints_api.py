import re

from models import Complaint, SubmissionFingerprint

from conftest import login, make_client, png_bytes

REFERENCE_PATTERN = re.compile(r"^LDCU-[0-9A-Z]+-[0-9A-Z]{4}$")


def _submit(client, remote_addr="203.0.113.9", **fields):
    data = {"category": "facilities", "description": "broken chair", "name": "Pedro", "email": "pedro@liceo.edu.ph"}
    data.update(fields)
    return client.post("/complaints", json=data, environ_base={"REMOTE_ADDR": remote_addr})


def test_end_to_end_lifecycle(app, accounts):
    public = app.test_client()
    response = public.post(
        "/complaints",
        data={
            "category": "facilities",
            "description": "broken chair",
            "name": "Pedro",
            "attachment": (png_bytes(), "chair.png"),
        },
        content_type="multipart/form-data",
        environ_base={"REMOTE_ADDR": "203.0.113.9"},
    )
    assert response.status_code == 201, response.get_json()
    reference = response.get_json()["reference_number"]
    assert REFERENCE_PATTERN.match(reference)

    tracked = public.get(f"/complaints/track/{reference.lower()}").get_json()
    assert tracked["complaint"]["status"] == "submitted"
    assert tracked["available_actions"] == []
    attachment_url = tracked["complaint"]["attachment_url"]
    assert attachment_url.startswith("/complaints/attachments/")
    assert public.get(attachment_url).status_code == 200

    admin = app.test_client()
    login(admin, accounts.admin.email)
    verified = admin.post(
        f"/staff/complaints/{reference}/transitions", json={"action": "verify", "department": "facilities"}
    )
    assert verified.status_code == 200, verified.get_json()
    body = verified.get_json()
    assert body["complaint"]["status"] == "verified"
    assert body["complaint"]["assigned_department"] == "facilities"
    assert [e["action"] for e in body["timeline"]] == ["Complaint Verified"]
    assert body["timeline"][0]["performed_by"] == accounts.admin.id

    department = app.test_client()
    login(department, accounts.facilities.email)
    started = department.post(f"/staff/complaints/{reference}/transitions", json={"action": "start"})
    assert started.get_json()["complaint"]["status"] == "in_progress"
    assert started.get_json()["timeline"][-1]["action"] == "Started Processing"

    resolved = department.post(
        f"/staff/complaints/{reference}/transitions",
        data={
            "action": "resolve",
            "resolution_details": "Chair replaced.",
            "resolution_image": (png_bytes(color=(0, 128, 0)), "proof.png"),
        },
        content_type="multipart/form-data",
    )
    assert resolved.status_code == 200, resolved.get_json()
    resolved_body = resolved.get_json()["complaint"]
    assert resolved_body["status"] == "resolved"
    assert resolved_body["resolved_at"] is not None
    assert resolved_body["resolution_image_url"].startswith("/complaints/attachments/")

    tracked = public.get(f"/complaints/track/{reference}").get_json()
    assert tracked["available_actions"] == ["confirm", "dispute"]
    assert tracked["window_days_remaining"] == 7
    assert [e["action"] for e in tracked["timeline"]] == ["Complaint Verified", "Started Processing", "Complaint Resolved"]
    assert all("performed_by" not in e for e in tracked["timeline"])

    confirmed = public.post(f"/complaints/track/{reference}/confirm")
    assert confirmed.status_code == 200
    final = confirmed.get_json()
    assert final["complaint"]["status"] == "closed"
    assert final["complaint"]["user_verified"] is True
    assert final["timeline"][-1]["action"] == "Resolution Confirmed by User"
    assert final["available_actions"] == []


def test_rate_limited_second_submission(client):
    assert _submit(client).status_code == 201
    response = _submit(client, description="another issue")
    assert response.status_code == 429
    assert response.get_json()["error"]["code"] == "RATE_LIMITED"
    assert _submit(client, remote_addr="198.51.100.1").status_code == 201


def test_submission_validation_errors(client):
    response = _submit(client, category="cafeteria")
    assert response.status_code == 400
    assert "category" in response.get_json()["error"]["details"]["fields"]

    response = _submit(client, description="")
    assert response.status_code == 400


def test_non_image_attachment_is_rejected(app, client):
    response = client.post(
        "/complaints",
        data={"category": "academic", "description": "x", "attachment": (png_bytes(), "notes.txt")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400

    import io

    response = client.post(
        "/complaints",
        data={"category": "academic", "description": "x", "attachment": (io.BytesIO(b"not an image"), "fake.png")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["message"] == "Invalid image data"
    with app.app_context():
        assert Complaint.query.count() == 0
        assert SubmissionFingerprint.query.count() == 0


def test_track_unknown_reference(client):
    response = client.get("/complaints/track/LDCU-NOPE-0000")
    assert response.status_code == 404
    assert response.get_json()["error"]["code"] == "NOT_FOUND"


def test_confirm_before_resolution_conflicts(client):
    reference = _submit(client).get_json()["reference_number"]
    response = client.post(f"/complaints/track/{reference}/confirm")
    assert response.status_code == 409
    assert response.get_json()["error"]["code"] == "INVALID_TRANSITION"


def test_dispute_requires_reason(client):
    reference = _submit(client).get_json()["reference_number"]
    response = client.post(f"/complaints/track/{reference}/dispute", json={"reason": ""})
    assert response.status_code == 400


def test_submitter_comments_and_internal_notes(app, client, accounts):
    reference = _submit(client).get_json()["reference_number"]
    posted = client.post(f"/complaints/track/{reference}/comments", json={"content": "Any update?"})
    assert posted.status_code == 201
    assert posted.get_json()["comment"]["author_type"] == "complainant"
    assert posted.get_json()["comment"]["is_internal"] is False

    admin = app.test_client()
    login(admin, accounts.admin.email)
    admin.post(f"/staff/complaints/{reference}/comments", json={"content": "Check CCTV first", "is_internal": True})
    admin.post(f"/staff/complaints/{reference}/comments", json={"content": "We are on it", "is_internal": False})

    comments = client.get(f"/complaints/track/{reference}").get_json()["comments"]
    assert [c["content"] for c in comments] == ["Any update?", "We are on it"]

    staff_comments = admin.get(f"/staff/complaints/{reference}").get_json()["comments"]
    assert len(staff_comments) == 3

    empty = client.post(f"/complaints/track/{reference}/comments", json={"content": "  "})
    assert empty.status_code == 400


def test_my_complaints_lists_only_own(app, accounts):
    juan = make_client(app, "203.0.113.10")
    login(juan, accounts.student.email)
    assert _submit(juan, remote_addr="203.0.113.10", description="Mine").status_code == 201

    maria = make_client(app, "203.0.113.11")
    login(maria, accounts.other_student.email)
    assert _submit(maria, remote_addr="203.0.113.11", description="Hers").status_code == 201

    mine = juan.get("/complaints/mine").get_json()
    assert [c["description"] for c in mine["items"]] == ["Mine"]
    assert mine["counts"]["submitted"] == 1
    assert mine["counts"]["total"] == 1

    with app.app_context():
        owned = Complaint.query.filter_by(description="Mine").one()
        assert owned.user_id == accounts.student.id


def test_my_complaints_requires_login(client):
    response = client.get("/complaints/mine")
    assert response.status_code == 401
    assert response.get_json()["error"]["code"] == "AUTHENTICATION_REQUIRED"
