# tests/test_bulk_api.py
from creativedesk.db.models import TicketStatusEnum as S


def _bulk(client, world, who, ids, status):
    return client.patch(
        "/api/tickets/bulk-status",
        json={"ticketIds": ids, "status": status},
        headers=world.headers(who),
    )


def _status(client, world, tid):
    return client.get(f"/api/tickets/{tid}", headers=world.headers("owner")).json()["status"]


def test_bulk_to_todo_with_done_tickets(client, world):
    movable = [world.add_ticket(S.IN_PROGRESS) for _ in range(3)]
    done = [world.add_ticket(S.DONE, revisions=1) for _ in range(2)]

    r = _bulk(client, world, "creative", movable + done, "TODO")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["successCount"] == 3
    assert body["failCount"] == 2
    assert body["successCount"] + body["failCount"] == 5

    by_id = {item["ticketId"]: item for item in body["results"]}
    for tid in movable:
        assert by_id[tid]["success"] is True
        assert _status(client, world, tid) == "TODO"
    for tid in done:
        assert by_id[tid]["success"] is False
        assert "DONE" in by_id[tid]["reason"]
        assert _status(client, world, tid) == "DONE"


def test_bulk_is_idempotent(client, world):
    ids = [world.add_ticket(S.TODO) for _ in range(2)] + [world.add_ticket(S.DONE)]
    first = _bulk(client, world, "creative", ids, "IN_PROGRESS").json()
    second = _bulk(client, world, "creative", ids, "IN_PROGRESS").json()

    assert (first["successCount"], first["failCount"]) == (2, 1)
    # вже застосовані — no-op успіх, DONE так само відмова
    assert (second["successCount"], second["failCount"]) == (2, 1)
    assert _status(client, world, ids[2]) == "DONE"


def test_bulk_collapses_duplicate_ids(client, world):
    tid = world.add_ticket(S.TODO)
    body = _bulk(client, world, "creative", [tid, tid, tid], "IN_PROGRESS").json()
    assert body["successCount"] == 1
    assert len(body["results"]) == 1


def test_bulk_rejects_review_and_done_targets(client, world):
    tid = world.add_ticket(S.IN_PROGRESS)
    for target in ("IN_REVIEW", "DONE"):
        body = _bulk(client, world, "creative", [tid], target).json()
        assert body["failCount"] == 1
        assert body["results"][0]["reason"]
    assert _status(client, world, tid) == "IN_PROGRESS"


def test_bulk_cannot_return_reviewed_work_to_backlog(client, world):
    fresh = world.add_ticket(S.IN_PROGRESS)
    reviewed = world.add_ticket(S.IN_PROGRESS, revisions=1, last_has_feedback=True)
    body = _bulk(client, world, "creative", [fresh, reviewed], "TODO").json()
    assert body["successCount"] == 1
    assert _status(client, world, reviewed) == "IN_PROGRESS"


def test_bulk_for_customers_fails_per_ticket(client, world):
    tid = world.add_ticket(S.TODO)
    r = _bulk(client, world, "owner", [tid], "IN_PROGRESS")
    assert r.status_code == 200
    assert r.json()["failCount"] == 1
    assert "creative" in r.json()["results"][0]["reason"]


def test_bulk_unassigned_tickets_fail(client, world):
    mine = world.add_ticket(S.TODO)
    theirs = world.add_ticket(S.TODO, creative="other_creative")
    body = _bulk(client, world, "creative", [mine, theirs], "IN_PROGRESS").json()
    assert (body["successCount"], body["failCount"]) == (1, 1)
    assert _status(client, world, theirs) == "TODO"


def test_bulk_counts_plan_limit_within_batch(client, world):
    world.set_plan_limit(2)
    ids = [world.add_ticket(S.TODO) for _ in range(3)]
    body = _bulk(client, world, "creative", ids, "IN_PROGRESS").json()
    assert (body["successCount"], body["failCount"]) == (2, 1)
    failed = [item for item in body["results"] if not item["success"]]
    assert "limit" in failed[0]["reason"]


def test_bulk_size_cap(client, world):
    r = _bulk(client, world, "creative", list(range(1, 52)), "TODO")
    assert r.status_code == 400
    assert r.json()["code"] == "validation"


def test_bulk_requires_ids(client, world):
    r = _bulk(client, world, "creative", [], "TODO")
    assert r.status_code == 400


def test_bulk_pull_back_counts_plan_limit(client, world):
    world.set_plan_limit(1)
    world.add_ticket(S.IN_PROGRESS)
    in_review = world.add_ticket(S.IN_REVIEW, revisions=1)

    body = _bulk(client, world, "creative", [in_review], "IN_PROGRESS").json()
    assert (body["successCount"], body["failCount"]) == (0, 1)
    assert "limit" in body["results"][0]["reason"]
    assert _status(client, world, in_review) == "IN_REVIEW"

    board = client.get("/api/board", headers=world.headers("owner")).json()
    assert board["stats"]["byStatus"]["IN_PROGRESS"] == 1
