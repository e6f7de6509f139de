# tests/test_cache.py
from datetime import datetime, timezone

import pytest

from creativedesk.client.cache import LoadTracker, TicketCache
from creativedesk.db.models import PriorityEnum as P, TicketStatusEnum as S
from creativedesk.schemas.revisions import RevisionOut
from creativedesk.schemas.tickets import TicketOut


def _ticket(tid, status=S.TODO, priority=P.MEDIUM, **kw):
    kw.setdefault("title", f"Ticket {tid}")
    return TicketOut(
        id=tid,
        code=f"#{tid}",
        status=status,
        priority=priority,
        company_id=1,
        created_by_id=1,
        creative_id=2,
        **kw,
    )


def _rev(version):
    return RevisionOut(id=version, version=version, submitted_at=datetime.now(timezone.utc))


@pytest.fixture
def cache():
    return TicketCache([_ticket(1), _ticket(2, S.IN_PROGRESS, P.HIGH), _ticket(3, S.DONE)])


def test_stats_follow_speculative_overlay(cache):
    assert cache.stats.by_status[S.TODO] == 1
    patch = cache.apply_speculative(1, status=S.IN_PROGRESS)
    assert cache.get(1).status is S.IN_PROGRESS
    assert cache.confirmed(1).status is S.TODO
    assert cache.stats.by_status[S.IN_PROGRESS] == 2
    assert cache.stats.total == 3

    cache.discard(patch)
    assert cache.get(1).status is S.TODO
    assert cache.stats.by_status[S.TODO] == 1


def test_commit_replaces_whole_record(cache):
    patch = cache.apply_speculative(2, status=S.IN_REVIEW)
    confirmed = _ticket(2, S.IN_REVIEW, P.HIGH, revision_count=1, title="Renamed on server")
    assert cache.commit(patch, confirmed) is True
    assert cache.get(2) == confirmed
    assert not cache.has_pending(2)


def test_stale_commit_is_ignored(cache):
    older = cache.apply_speculative(1, status=S.IN_PROGRESS)
    newer = cache.apply_speculative(1, status=S.IN_PROGRESS)

    assert cache.commit(older, _ticket(1, S.IN_PROGRESS, title="old")) is False
    # оверлей новішої мутації лишається
    assert cache.has_pending(1)

    assert cache.commit(newer, _ticket(1, S.IN_PROGRESS, title="new")) is True
    assert cache.get(1).title == "new"


def test_discard_of_superseded_patch_keeps_newer_overlay(cache):
    older = cache.apply_speculative(1, status=S.IN_PROGRESS)
    cache.apply_speculative(1, status=S.IN_PROGRESS)
    cache.discard(older)
    assert cache.has_pending(1)


def test_replace_all_drops_overlay(cache):
    cache.apply_speculative(1, status=S.IN_PROGRESS)
    cache.replace_all([_ticket(1), _ticket(4, S.IN_REVIEW)])
    assert not cache.has_pending()
    assert [t.id for t in cache.tickets] == [1, 4]
    assert cache.stats.total == 2


def test_apply_statuses_only_touches_known_tickets(cache):
    applied = cache.apply_statuses([1, 2, 99], S.TODO)
    assert applied == [1, 2]
    assert cache.stats.by_status[S.TODO] == 2
    assert cache.get(3).status is S.DONE


def test_apply_statuses_skips_tickets_mutated_since_sent(cache):
    sent = {1: cache.generation(1), 2: cache.generation(2)}
    newer = cache.apply_speculative(2, status=S.IN_REVIEW)

    assert cache.apply_statuses([1, 2], S.TODO, sent) == [1]
    assert cache.get(1).status is S.TODO
    assert cache.get(2).status is S.IN_REVIEW
    assert cache.is_current(newer)


def test_speculative_on_unknown_ticket(cache):
    with pytest.raises(KeyError):
        cache.apply_speculative(42, status=S.TODO)


def test_revisions_stored_only_for_current_token(cache):
    stale = cache.begin_revisions_load(1)
    current = cache.begin_revisions_load(1)

    assert cache.store_revisions(stale, [_rev(1)]) is False
    assert cache.revisions(1) is None

    assert cache.store_revisions(current, [_rev(2), _rev(1)]) is True
    assert [r.version for r in cache.revisions(1)] == [1, 2]
    assert cache.current_revision(1).version == 2


def test_cancelled_load_is_discarded(cache):
    token = cache.begin_revisions_load(2)
    cache.cancel_revisions_load(2)
    assert token.cancelled
    assert cache.store_revisions(token, [_rev(1)]) is False


def test_load_tracker_keys_are_independent():
    tracker = LoadTracker()
    a = tracker.begin(("revisions", 1))
    b = tracker.begin(("revisions", 2))
    assert tracker.is_current(a) and tracker.is_current(b)
    tracker.cancel_all()
    assert not tracker.is_current(a)
    assert not tracker.is_current(b)
