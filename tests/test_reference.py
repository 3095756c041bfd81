import re

import pytest

from extensions import db
from models import Complaint
from utils.complaint_intake import create_complaint
from utils.errors import DependencyError, DuplicateReferenceError
from utils.reference import generate_reference, issue_reference, normalize_reference, to_base36

REFERENCE_PATTERN = re.compile(r"^LDCU-[0-9A-Z]+-[0-9A-Z]{4}$")


def test_base36_encoding():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"
    assert to_base36(1_700_000_000_000) == "LOYW3V28"


def test_generated_reference_shape():
    reference = generate_reference("ldcu", now_ms=1_700_000_000_000, token=lambda: "ab12")
    assert reference == "LDCU-LOYW3V28-AB12"
    assert REFERENCE_PATTERN.match(generate_reference())


def test_normalize_reference_is_case_insensitive():
    assert normalize_reference("  ldcu-abc-12xy ") == "LDCU-ABC-12XY"
    assert normalize_reference(None) == ""


def test_issue_reference_detects_collision(make_complaint):
    existing = make_complaint()
    with pytest.raises(DuplicateReferenceError):
        issue_reference(generator=lambda: existing.reference_number.lower())


def test_intake_retries_after_collision(make_complaint, app):
    existing = make_complaint()
    candidates = iter([existing.reference_number, "LDCU-TEST-0001"])
    complaint = create_complaint(
        {"category": "academic", "description": "Grades not posted."},
        reference_generator=lambda: next(candidates),
    )
    assert complaint.reference_number == "LDCU-TEST-0001"
    assert Complaint.query.count() == 2


def test_intake_gives_up_after_max_attempts(make_complaint, app):
    existing = make_complaint()
    app.config["REFERENCE_MAX_ATTEMPTS"] = 3
    with pytest.raises(DependencyError):
        create_complaint(
            {"category": "academic", "description": "Grades not posted."},
            reference_generator=lambda: existing.reference_number,
        )
    assert Complaint.query.count() == 1
    db.session.rollback()
