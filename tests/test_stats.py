# tests/test_stats.py
from types import SimpleNamespace

from creativedesk.db.models import PriorityEnum as P, TicketStatusEnum as S
from creativedesk.services.stats import fold_stats
from creativedesk.services.tickets import build_ticket_code


def _t(status, priority=P.MEDIUM):
    return SimpleNamespace(status=status, priority=priority)


def test_empty_board_has_every_bucket():
    stats = fold_stats([])
    assert stats.total == 0
    assert set(stats.by_status) == set(S)
    assert set(stats.by_priority) == set(P)
    assert all(v == 0 for v in stats.by_status.values())


def test_fold_counts_match_collection():
    tickets = [
        _t(S.TODO, P.LOW),
        _t(S.TODO, P.URGENT),
        _t(S.IN_REVIEW, P.URGENT),
        _t(S.DONE, P.HIGH),
        _t("IN_PROGRESS", "MEDIUM"),
    ]
    stats = fold_stats(tickets)
    assert stats.total == 5
    assert stats.by_status[S.TODO] == 2
    assert stats.by_status[S.IN_PROGRESS] == 1
    assert stats.by_priority[P.URGENT] == 2
    assert sum(stats.by_status.values()) == stats.total
    assert sum(stats.by_priority.values()) == stats.total


def test_stats_serialize_with_status_keys():
    data = fold_stats([_t(S.DONE)]).model_dump(mode="json", by_alias=True)
    assert data["byStatus"]["DONE"] == 1
    assert data["byPriority"]["MEDIUM"] == 1


def test_ticket_code_variants():
    assert build_ticket_code("WEB", 101, 5) == "WEB-101"
    assert build_ticket_code(None, 101, 5) == "#101"
    assert build_ticket_code("WEB", None, 5) == "5"
