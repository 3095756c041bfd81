from datetime import datetime, timedelta

import pytest

from models import Comment
from utils.actor import Actor
from utils.comments import add_comment, visible_comments
from utils.errors import AuthorizationError, ValidationError

T0 = datetime(2024, 3, 4, 9, 0)


def test_submitter_sees_only_public_comments_in_order(make_complaint, accounts):
    complaint = make_complaint()
    submitter = Actor.submitter(complaint.name)
    add_comment(complaint, accounts.admin.actor, "We are checking this.", now=T0)
    add_comment(complaint, accounts.admin.actor, "Looks like a repeat reporter.", is_internal=True, now=T0 + timedelta(minutes=1))
    add_comment(complaint, submitter, "Thank you!", now=T0 + timedelta(minutes=2))

    public = visible_comments(complaint, submitter)
    assert [c.content for c in public] == ["We are checking this.", "Thank you!"]
    assert [c.author_type for c in public] == ["admin", "complainant"]

    staff_view = visible_comments(complaint, accounts.admin.actor)
    assert len(staff_view) == 3
    assert staff_view[1].is_internal is True


def test_submitter_cannot_post_internal_comment(make_complaint):
    complaint = make_complaint()
    comment = add_comment(complaint, Actor.submitter("Pedro"), "Any update?", is_internal=True)
    assert comment.is_internal is False
    assert comment.author_name == "Pedro"


def test_student_account_comment_is_tagged(make_complaint, accounts):
    complaint = make_complaint()
    comment = add_comment(complaint, accounts.student.actor, "Following up", is_internal=True)
    assert comment.author_type == "student"
    assert comment.is_internal is False


@pytest.mark.parametrize("content", ["", "   ", None])
def test_empty_comment_is_rejected(make_complaint, accounts, content):
    complaint = make_complaint()
    with pytest.raises(ValidationError):
        add_comment(complaint, accounts.admin.actor, content)
    assert Comment.query.count() == 0


def test_department_comments_only_on_assigned_complaints(make_complaint, accounts):
    from utils.lifecycle import apply_transition

    complaint = make_complaint()
    apply_transition(complaint, "verify", accounts.admin.actor, {"department": "facilities"})
    with pytest.raises(AuthorizationError):
        add_comment(complaint, accounts.finance.actor, "Not ours")
    note = add_comment(complaint, accounts.facilities.actor, "Parts ordered", is_internal=True)
    assert note.author_type == "department"
    assert note.is_internal is True
