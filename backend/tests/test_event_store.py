from __future__ import annotations

from datetime import datetime, timedelta, timezone

from app.repositories import EventRepository
from conftest import ALICE, BOB, make_claim
from ingestion.service import EventStore, session_scope


def test_load_without_checkpoint_starts_at_deployment_block(store):
    cached = store.load("leaderboard_claims_v3")

    assert cached.has_checkpoint is False
    assert cached.checkpoint_block == 1000
    assert cached.next_block == 1000
    assert cached.events == []


def test_save_is_idempotent(store):
    events = [make_claim(ALICE, 5, block=1100), make_claim(BOB, 7, block=1200, log_index=3)]

    assert store.save("ns", events, 1500, complete=True) == 2
    assert store.save("ns", events, 1500, complete=True) == 0
    assert store.save("ns", list(reversed(events)) + events, 1500, complete=True) == 0

    cached = store.load("ns")
    assert [event.key for event in cached.events] == [event.key for event in events]
    assert cached.checkpoint_block == 1500
    assert cached.next_block == 1501


def test_duplicates_within_one_batch_are_stored_once(store):
    claim = make_claim(ALICE, 5, block=1100)

    assert store.save("ns", [claim, claim], 1100, complete=True) == 1
    assert len(store.load("ns").events) == 1


def test_transaction_hash_case_does_not_create_duplicates(store):
    lower = make_claim(ALICE, 5, block=1100, tx="0x" + "ab" * 32)
    upper = make_claim(ALICE, 5, block=1100, tx="0x" + "AB" * 32)

    store.save("ns", [lower], 1100, complete=True)
    assert store.save("ns", [upper], 1100, complete=True) == 0


def test_checkpoint_never_moves_backwards(store):
    store.save("ns", [], 2000, complete=True)
    store.save("ns", [make_claim(ALICE, 1, block=1500)], 1800, complete=True)

    cached = store.load("ns")
    assert cached.checkpoint_block == 2000
    assert len(cached.events) == 1


def test_incomplete_pass_keeps_events_but_holds_checkpoint(store):
    store.save("ns", [], 1499, complete=True)
    store.save("ns", [make_claim(BOB, 2, block=2200)], 2499, complete=False)

    cached = store.load("ns")
    assert cached.checkpoint_block == 1499
    assert [event.block_number for event in cached.events] == [2200]


def test_namespaces_are_isolated(store):
    store.save("leaderboard_claims_v3", [make_claim(ALICE, 1, block=1100)], 1200, complete=True)

    other = store.load(f"votes_{ALICE}_v3")
    assert other.events == []
    assert other.has_checkpoint is False


def test_snapshot_respects_ttl(session_factory):
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    clock = {"now": now}
    store = EventStore(session_factory, deployment_block=0, clock=lambda: clock["now"])

    assert store.get_snapshot("leaderboard_v3", ttl_seconds=300) is None
    store.put_snapshot("leaderboard_v3", {"token_symbol": "USDC"})

    clock["now"] = now + timedelta(seconds=299)
    assert store.get_snapshot("leaderboard_v3", ttl_seconds=300) == {"token_symbol": "USDC"}

    clock["now"] = now + timedelta(seconds=301)
    assert store.get_snapshot("leaderboard_v3", ttl_seconds=300) is None
    assert store.get_snapshot("leaderboard_v3", ttl_seconds=300, allow_stale=True) == {
        "token_symbol": "USDC"
    }


def test_snapshot_overwrite_refreshes_timestamp(session_factory):
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    clock = {"now": now}
    store = EventStore(session_factory, deployment_block=0, clock=lambda: clock["now"])

    store.put_snapshot("leaderboard_v3", {"version": 1})
    clock["now"] = now + timedelta(seconds=400)
    store.put_snapshot("leaderboard_v3", {"version": 2})

    assert store.get_snapshot("leaderboard_v3", ttl_seconds=300) == {"version": 2}


def test_checkpoint_read_skips_events(store):
    store.save("ns", [make_claim(ALICE, 1, block=1100)], 1500, complete=True)

    state = store.checkpoint("ns")
    assert (state.checkpoint_block, state.has_checkpoint, state.events) == (1500, True, [])
    assert store.checkpoint("other").next_block == 1000


def test_stale_session_cannot_regress_checkpoint(session_factory):
    with session_scope(session_factory) as session:
        EventRepository(session).advance_checkpoint("ns", 2499)

    stale = session_factory()
    try:
        stale_repo = EventRepository(stale)
        assert stale_repo.get_checkpoint("ns") == 2499

        with session_scope(session_factory) as other:
            assert EventRepository(other).advance_checkpoint("ns", 3000) is True

        assert stale_repo.advance_checkpoint("ns", 2800) is False
        stale.commit()
    finally:
        stale.close()

    with session_scope(session_factory) as session:
        assert EventRepository(session).get_checkpoint("ns") == 3000


def test_first_checkpoints_from_two_sessions_merge(session_factory):
    first = session_factory()
    second = session_factory()
    try:
        assert EventRepository(first).get_checkpoint("ns") is None
        assert EventRepository(second).get_checkpoint("ns") is None

        assert EventRepository(first).advance_checkpoint("ns", 1500) is True
        first.commit()
        assert EventRepository(second).advance_checkpoint("ns", 1800) is True
        second.commit()
    finally:
        first.close()
        second.close()

    with session_scope(session_factory) as session:
        assert EventRepository(session).get_checkpoint("ns") == 1800


def test_events_committed_by_another_session_are_skipped(session_factory):
    shared = make_claim(ALICE, 5, block=1100)
    extra = make_claim(BOB, 7, block=1200)

    with session_scope(session_factory) as session:
        assert EventRepository(session).add_events("ns", [shared]) == 1
    with session_scope(session_factory) as session:
        assert EventRepository(session).add_events("ns", [shared, extra]) == 1
        assert [event.key for event in EventRepository(session).list_events("ns")] == [
            shared.key,
            extra.key,
        ]
