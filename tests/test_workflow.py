# tests/test_workflow.py
import itertools

import pytest

from creativedesk.db.models import ActorKindEnum, TicketStatusEnum as S
from creativedesk.services.roles import capabilities_for
from creativedesk.services.workflow import (
    Denial,
    Effect,
    NO_DONE_PERMISSION_REASON,
    NO_MOVE_PERMISSION_REASON,
    check_payload,
    evaluate_bulk_move,
    evaluate_transition,
    in_progress_limit_reason,
)

CREATIVE = (ActorKindEnum.CREATIVE, capabilities_for("CREATIVE"))
OWNER = (ActorKindEnum.CUSTOMER, capabilities_for("CUSTOMER", "OWNER"))
PM = (ActorKindEnum.CUSTOMER, capabilities_for("CUSTOMER", "PM"))
BILLING = (ActorKindEnum.CUSTOMER, capabilities_for("CUSTOMER", "BILLING"))
MEMBER = (ActorKindEnum.CUSTOMER, capabilities_for("CUSTOMER", "MEMBER"))
PM_NO_DONE = (ActorKindEnum.CUSTOMER, capabilities_for("CUSTOMER", "PM", done_roles=["OWNER"]))

ACTORS = {
    "creative": CREATIVE,
    "owner": OWNER,
    "pm": PM,
    "billing": BILLING,
    "member": MEMBER,
    "pm_no_done": PM_NO_DONE,
}

# (actor, from, to) -> effect; все, чого тут немає (і не X -> X), — відмова
ALLOWED = {
    ("creative", S.TODO, S.IN_PROGRESS): Effect.START,
    ("creative", S.IN_PROGRESS, S.IN_REVIEW): Effect.SUBMIT_FOR_REVIEW,
    ("creative", S.IN_REVIEW, S.IN_PROGRESS): Effect.PULL_BACK,
    ("owner", S.IN_REVIEW, S.IN_PROGRESS): Effect.REQUEST_CHANGES,
    ("owner", S.IN_REVIEW, S.DONE): Effect.APPROVE,
    ("pm", S.IN_REVIEW, S.IN_PROGRESS): Effect.REQUEST_CHANGES,
    ("pm", S.IN_REVIEW, S.DONE): Effect.APPROVE,
    ("pm_no_done", S.IN_REVIEW, S.IN_PROGRESS): Effect.REQUEST_CHANGES,
}

GRID = list(itertools.product(ACTORS, list(S), list(S)))


@pytest.mark.parametrize("actor,current,target", GRID)
def test_transition_table(actor, current, target):
    kind, caps = ACTORS[actor]
    decision = evaluate_transition(current, target, kind, caps)

    if current is target:
        assert decision.allowed
        assert decision.effect is Effect.NOOP
        return

    expected = ALLOWED.get((actor, current, target))
    if expected is None:
        assert not decision.allowed
        assert decision.reason and decision.reason.strip()
        assert decision.denial in (Denial.ILLEGAL, Denial.FORBIDDEN)
    else:
        assert decision.allowed
        assert decision.effect is expected
        assert decision.reason is None


@pytest.mark.parametrize("target", [S.TODO, S.IN_PROGRESS, S.IN_REVIEW])
def test_done_is_terminal_for_everyone(target):
    for kind, caps in ACTORS.values():
        decision = evaluate_transition(S.DONE, target, kind, caps)
        assert not decision.allowed
        assert decision.denial is Denial.ILLEGAL
        assert "completed" in decision.reason


def test_member_dragging_review_to_done_is_a_permission_denial():
    kind, caps = MEMBER
    decision = evaluate_transition(S.IN_REVIEW, S.DONE, kind, caps)
    assert not decision.allowed
    assert decision.denial is Denial.FORBIDDEN
    assert decision.reason == NO_MOVE_PERMISSION_REASON
    assert "role" in decision.reason


def test_pm_without_done_role_gets_done_permission_reason():
    kind, caps = PM_NO_DONE
    decision = evaluate_transition(S.IN_REVIEW, S.DONE, kind, caps)
    assert decision.denial is Denial.FORBIDDEN
    assert decision.reason == NO_DONE_PERMISSION_REASON


def test_creative_cannot_approve_own_work():
    kind, caps = CREATIVE
    decision = evaluate_transition(S.IN_REVIEW, S.DONE, kind, caps)
    assert decision.denial is Denial.ILLEGAL
    assert "customer" in decision.reason


def test_todo_to_review_is_not_a_shortcut():
    for kind, caps in ACTORS.values():
        assert not evaluate_transition(S.TODO, S.IN_REVIEW, kind, caps).allowed


def test_unknown_status_is_validation():
    kind, caps = OWNER
    decision = evaluate_transition("ARCHIVED", S.DONE, kind, caps)
    assert decision.denial is Denial.VALIDATION
    assert decision.reason


def test_missing_actor_kind_is_forbidden():
    decision = evaluate_transition(S.TODO, S.IN_PROGRESS, None, capabilities_for("CREATIVE"))
    assert decision.denial is Denial.FORBIDDEN


@pytest.mark.parametrize("message", [None, "", "   "])
def test_request_changes_requires_feedback(message):
    kind, caps = OWNER
    decision = check_payload(evaluate_transition(S.IN_REVIEW, S.IN_PROGRESS, kind, caps), message)
    assert not decision.allowed
    assert decision.denial is Denial.VALIDATION
    assert decision.reason


def test_request_changes_with_feedback_passes():
    kind, caps = OWNER
    decision = check_payload(evaluate_transition(S.IN_REVIEW, S.IN_PROGRESS, kind, caps), "make it bigger")
    assert decision.allowed
    assert decision.requires_feedback


def test_creative_pull_back_needs_no_feedback():
    kind, caps = CREATIVE
    decision = check_payload(evaluate_transition(S.IN_REVIEW, S.IN_PROGRESS, kind, caps), None)
    assert decision.allowed
    assert decision.effect is Effect.PULL_BACK


def test_check_payload_keeps_denials():
    kind, caps = MEMBER
    denied = evaluate_transition(S.IN_REVIEW, S.IN_PROGRESS, kind, caps)
    assert check_payload(denied, "x") is denied


# ---- bulk ----

def test_bulk_done_ticket_fails():
    kind, caps = CREATIVE
    decision = evaluate_bulk_move(S.DONE, S.TODO, kind, caps)
    assert not decision.allowed
    assert "DONE" in decision.reason


def test_bulk_same_status_is_noop():
    kind, caps = CREATIVE
    assert evaluate_bulk_move(S.TODO, S.TODO, kind, caps).is_noop


@pytest.mark.parametrize("target", [S.IN_REVIEW, S.DONE])
def test_bulk_review_and_done_targets_fail(target):
    kind, caps = CREATIVE
    decision = evaluate_bulk_move(S.IN_PROGRESS, target, kind, caps)
    assert not decision.allowed
    assert decision.reason


def test_bulk_return_to_backlog_only_without_revisions():
    kind, caps = CREATIVE
    assert evaluate_bulk_move(S.IN_PROGRESS, S.TODO, kind, caps, revision_count=0).effect is Effect.RETURN_TO_BACKLOG
    denied = evaluate_bulk_move(S.IN_PROGRESS, S.TODO, kind, caps, revision_count=2)
    assert not denied.allowed
    assert "revisions" in denied.reason


def test_bulk_start_and_pull_back():
    kind, caps = CREATIVE
    assert evaluate_bulk_move(S.TODO, S.IN_PROGRESS, kind, caps).effect is Effect.START
    assert evaluate_bulk_move(S.IN_REVIEW, S.IN_PROGRESS, kind, caps).effect is Effect.PULL_BACK


def test_bulk_is_for_creatives_only():
    kind, caps = OWNER
    decision = evaluate_bulk_move(S.TODO, S.IN_PROGRESS, kind, caps)
    assert decision.denial is Denial.FORBIDDEN


def test_in_progress_limit_reason():
    assert in_progress_limit_reason(5, None) is None
    assert in_progress_limit_reason(2, 3) is None
    assert "limit (3)" in in_progress_limit_reason(3, 3)
