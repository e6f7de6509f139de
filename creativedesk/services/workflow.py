"""
Transition validator (state machine заявок).

Тут живуть правила переходів статусів для креатива та замовника.
Функції чисті: жодних винятків і I/O, лише Decision. Однаково
викликаються клієнтом (миттєвий UX під час drag) і сервером перед
комітом — рішення клієнта ніколи не вважається авторизацією.

    Від -> До                  Креатив            Замовник (can_move_on_board)
    TODO -> IN_PROGRESS        так                ні (керує креатив)
    IN_PROGRESS -> IN_REVIEW   так (здача)        ні
    IN_REVIEW -> IN_PROGRESS   так (відкликати)   так (правки, потрібен фідбек)
    IN_REVIEW -> DONE          ні                 так, якщо can_mark_done
    DONE -> *                  ні                 ні
    X -> X                     no-op              no-op
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional

from creativedesk.db.models import ActorKindEnum, TicketStatusEnum as Status
from creativedesk.services.roles import Capabilities, normalize_actor_kind


class Denial(str, enum.Enum):
    # значення збігаються з AppError.code (creativedesk.core.errors)
    ILLEGAL = "illegal_transition"
    FORBIDDEN = "forbidden"
    VALIDATION = "validation"


class Effect(str, enum.Enum):
    NOOP = "noop"
    START = "start"                          # TODO -> IN_PROGRESS
    SUBMIT_FOR_REVIEW = "submit_for_review"  # IN_PROGRESS -> IN_REVIEW, нова ревізія
    PULL_BACK = "pull_back"                  # IN_REVIEW -> IN_PROGRESS креативом, без фідбеку
    REQUEST_CHANGES = "request_changes"      # IN_REVIEW -> IN_PROGRESS замовником, фідбек на відкриту ревізію
    APPROVE = "approve"                      # IN_REVIEW -> DONE
    RETURN_TO_BACKLOG = "return_to_backlog"  # лише bulk: IN_PROGRESS -> TODO без ревізій


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None
    denial: Optional[Denial] = None
    effect: Optional[Effect] = None

    @property
    def is_noop(self) -> bool:
        return self.effect is Effect.NOOP

    @property
    def requires_feedback(self) -> bool:
        return self.effect is Effect.REQUEST_CHANGES

    @property
    def creates_revision(self) -> bool:
        return self.effect is Effect.SUBMIT_FOR_REVIEW


def _allow(effect: Effect) -> Decision:
    return Decision(allowed=True, effect=effect)


def _deny(reason: str, denial: Denial = Denial.ILLEGAL) -> Decision:
    return Decision(allowed=False, reason=reason, denial=denial)


NOOP = _allow(Effect.NOOP)

COMPLETED_REASON = "This ticket is already completed. Done tickets can't be moved."
NO_MOVE_PERMISSION_REASON = (
    "Your role doesn't allow moving tickets on the board. "
    "Please ask your company owner or project manager."
)
NO_DONE_PERMISSION_REASON = (
    "You don't have permission to mark tickets as done. "
    "Please ask your company owner or project manager."
)
FEEDBACK_REQUIRED_REASON = "Please describe what should change before sending the ticket back to your creative."


def _creative_transition(current: Status, target: Status) -> Decision:
    if current is Status.TODO:
        if target is Status.IN_PROGRESS:
            return _allow(Effect.START)
        return _deny("You can only start a backlog ticket by moving it into In progress.")

    if current is Status.IN_PROGRESS:
        if target is Status.IN_REVIEW:
            return _allow(Effect.SUBMIT_FOR_REVIEW)
        return _deny(
            "From In progress you can either keep working here or move the ticket into In review."
        )

    if current is Status.IN_REVIEW:
        if target is Status.IN_PROGRESS:
            return _allow(Effect.PULL_BACK)
        if target is Status.DONE:
            return _deny("This status is controlled by the customer. Only they can approve work in review.")
        return _deny("From In review you can move the ticket back to In progress if more work is needed.")

    return _deny("This move is not allowed.")


def _customer_transition(current: Status, target: Status, caps: Capabilities) -> Decision:
    if current is Status.IN_REVIEW:
        if target is Status.IN_PROGRESS:
            return _allow(Effect.REQUEST_CHANGES)
        if target is Status.DONE:
            if not caps.can_mark_done:
                return _deny(NO_DONE_PERMISSION_REASON, Denial.FORBIDDEN)
            return _allow(Effect.APPROVE)
        return _deny(
            "From review you can either mark the ticket as done or send it back to your creative."
        )

    if current is Status.TODO:
        return _deny(
            "This status is controlled by your creative. "
            "They need to pick the ticket up into In progress to start work."
        )

    if current is Status.IN_PROGRESS:
        return _deny("This status is controlled by your creative while the ticket is in progress.")

    return _deny("This move is not allowed for your role.")


def evaluate_transition(
    current: Any,
    target: Any,
    actor_kind: Any,
    caps: Capabilities,
) -> Decision:
    """
    Головна функція state machine. Кожна відмова має reason — без
    пояснення відмова вважається дефектом.
    """
    try:
        current = Status(current)
        target = Status(target)
    except ValueError:
        return _deny("Unknown ticket status. Allowed: TODO, IN_PROGRESS, IN_REVIEW, DONE.", Denial.VALIDATION)

    if current is target:
        return NOOP

    if current is Status.DONE:
        return _deny(COMPLETED_REASON)

    kind = normalize_actor_kind(actor_kind)
    if kind is None or not caps.can_move_on_board:
        return _deny(NO_MOVE_PERMISSION_REASON, Denial.FORBIDDEN)

    if kind is ActorKindEnum.CREATIVE:
        return _creative_transition(current, target)
    return _customer_transition(current, target, caps)


def check_payload(decision: Decision, feedback_message: Optional[str] = None) -> Decision:
    """
    Валідація даних переходу поверх рішення state machine.
    Запит правок без тексту фідбеку — validation failure, а не illegal transition.
    """
    if not decision.allowed:
        return decision
    if decision.requires_feedback and not (feedback_message or "").strip():
        return _deny(FEEDBACK_REQUIRED_REASON, Denial.VALIDATION)
    return decision


def evaluate_bulk_move(
    current: Any,
    target: Any,
    actor_kind: Any,
    caps: Capabilities,
    revision_count: int = 0,
) -> Decision:
    """
    Правила для bulk-дій креатива (масовий перенос між TODO / IN_PROGRESS).

    IN_REVIEW потребує здачі роботи (нотатка, файли), DONE — підтвердження
    замовника, тож обидва недоступні масово. Повернення в TODO можливе лише
    для заявки без жодної ревізії (у TODO ledger порожній).
    """
    try:
        current = Status(current)
        target = Status(target)
    except ValueError:
        return _deny("Unknown ticket status. Allowed: TODO, IN_PROGRESS, IN_REVIEW, DONE.", Denial.VALIDATION)

    if current is target:
        return NOOP

    if current is Status.DONE:
        return _deny("Ticket is already DONE and cannot be changed.")

    kind = normalize_actor_kind(actor_kind)
    if kind is not ActorKindEnum.CREATIVE or not caps.can_move_on_board:
        return _deny("Bulk moves are only available to the assigned creative.", Denial.FORBIDDEN)

    if target is Status.IN_REVIEW:
        return _deny("Sending to review requires uploading work. Use the review submission instead.")

    if target is Status.DONE:
        return _deny("This status is controlled by the customer. Creatives cannot mark tickets as DONE.")

    if target is Status.TODO:
        if revision_count > 0:
            return _deny("This ticket already has submitted revisions and can't return to the backlog.")
        return _allow(Effect.RETURN_TO_BACKLOG)

    # target IN_PROGRESS
    if current is Status.TODO:
        return _allow(Effect.START)
    return _allow(Effect.PULL_BACK)


def in_progress_limit_reason(current_in_progress: int, max_in_progress: Optional[int]) -> Optional[str]:
    """Ліміт плану компанії на одночасні IN_PROGRESS. None — ліміту немає."""
    if max_in_progress is None:
        return None
    if current_in_progress >= max_in_progress:
        return f"Company has reached its limit ({max_in_progress}) for active tickets in progress."
    return None
