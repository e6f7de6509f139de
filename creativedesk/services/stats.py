"""
Board stats — похідні лічильники по статусу та пріоритету.

Завжди рахуються повним проходом по колекції (fold), ніколи не
інкрементуються окремо, тож розійтися з набором заявок не можуть.
Працює і з ORM Ticket (сервер), і з TicketOut (клієнтський кеш).
"""

from typing import Any, Iterable

from creativedesk.db.models import PRIORITY_ORDER, STATUS_ORDER, PriorityEnum, TicketStatusEnum
from creativedesk.schemas.tickets import BoardStats


def fold_stats(tickets: Iterable[Any]) -> BoardStats:
    by_status = {s: 0 for s in STATUS_ORDER}
    by_priority = {p: 0 for p in PRIORITY_ORDER}
    total = 0
    for t in tickets:
        by_status[TicketStatusEnum(t.status)] += 1
        by_priority[PriorityEnum(t.priority)] += 1
        total += 1
    return BoardStats(total=total, by_status=by_status, by_priority=by_priority)
