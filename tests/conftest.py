"""Shared fixtures: a fresh in-memory app per test, seeded accounts and image uploads."""
import io
from types import SimpleNamespace

import pytest
from PIL import Image

from app import create_app
from extensions import db
from models import Complaint, User
from utils.actor import Actor
from utils.complaint_intake import create_complaint

PASSWORD = "Campus-Desk-2024"


@pytest.fixture
def app(tmp_path):
    app = create_app(
        "testing",
        overrides={
            "LOG_DIR": str(tmp_path / "logs"),
            "ATTACHMENT_UPLOAD_FOLDER": str(tmp_path / "attachments"),
            "PUBLIC_TRACK_URL": "https://complaints.liceo.edu.ph/track",
        },
    )
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def _create_user(app, email, role, department=None, full_name=None, is_active=True):
    with app.app_context():
        user = User(email=email, role=role, department=department, full_name=full_name, is_active=is_active)
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
        return SimpleNamespace(
            id=user.id,
            email=email,
            role=role,
            department=department,
            actor=Actor(role=role, id=user.id, department=department, display_name=full_name or email),
        )


@pytest.fixture
def accounts(app):
    return SimpleNamespace(
        admin=_create_user(app, "admin@liceo.edu.ph", "admin", full_name="Office Admin"),
        super_admin=_create_user(app, "root@liceo.edu.ph", "super_admin", full_name="Super Admin"),
        facilities=_create_user(app, "facilities@liceo.edu.ph", "department", "facilities", "Facilities Staff"),
        finance=_create_user(app, "finance@liceo.edu.ph", "department", "finance", "Finance Staff"),
        student=_create_user(app, "juan@liceo.edu.ph", "student", full_name="Juan Dela Cruz"),
        other_student=_create_user(app, "maria@liceo.edu.ph", "student", full_name="Maria Santos"),
    )


@pytest.fixture
def make_complaint(ctx):
    """Create a complaint directly through the intake service (no rate-limit origin)."""

    def _make(**overrides):
        data = {
            "name": "Pedro Penduko",
            "email": "pedro@liceo.edu.ph",
            "student_id": "2021-00123",
            "category": "facilities",
            "description": "Broken aircon in room 301.",
        }
        user = overrides.pop("user", None)
        now = overrides.pop("now", None)
        data.update(overrides)
        return create_complaint(data, user=user, now=now)

    return _make


def reload(complaint_id):
    db.session.expire_all()
    return db.session.get(Complaint, complaint_id)


def login(client, email, password=PASSWORD):
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return response


def png_bytes(size=(8, 8), color=(200, 30, 30), fmt="PNG"):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    buffer.seek(0)
    return buffer


def make_client(app, remote_addr="127.0.0.1"):
    """Test client pinned to one origin; session protection ties logins to it."""
    client = app.test_client()
    client.environ_base["REMOTE_ADDR"] = remote_addr
    return client
