import asyncio

from arena.data_models.match import MatchEventType
from arena.database.models import MatchStatus, QueueStatus

EVENT_TIMEOUT = 2.0


async def next_event(listener):
    return await asyncio.wait_for(listener.__anext__(), timeout=EVENT_TIMEOUT)


async def test_both_players_see_the_same_match(match_ops, paired):
    alice = match_ops.watch_match("alice")
    bob = match_ops.watch_match("bob")

    match_id, _, _ = await paired("alice", "bob")

    alice_event = await next_event(alice)
    bob_event = await next_event(bob)
    assert alice_event.kind == MatchEventType.FOUND
    assert bob_event.kind == MatchEventType.FOUND
    assert alice_event.match_id == bob_event.match_id == match_id
    assert alice.tracked_match_id == match_id

    alice.close()
    bob.close()


async def test_updates_follow_revisions(match_ops, paired):
    listener = match_ops.watch_match("alice")
    match_id, _, _ = await paired("alice", "bob")
    assert (await next_event(listener)).kind == MatchEventType.FOUND

    await match_ops.start_match(match_id)
    event = await next_event(listener)
    assert event.kind == MatchEventType.UPDATED
    assert event.match.status == MatchStatus.IN_PROGRESS
    assert event.match.revision == 1

    await match_ops.complete_match(match_id, "bob")
    event = await next_event(listener)
    assert event.kind == MatchEventType.UPDATED
    assert event.match.status == MatchStatus.COMPLETED
    assert event.match.winner_id == "bob"
    assert listener.tracked_match_id is None

    listener.close()


async def test_listener_finds_next_match_after_cancel(match_ops, paired):
    listener = match_ops.watch_match("alice")
    first_match, _, _ = await paired("alice", "bob")
    assert (await next_event(listener)).match_id == first_match

    await match_ops.cancel_match(first_match, "opponent left")
    assert (await next_event(listener)).match.status == MatchStatus.CANCELLED

    second_match, _, _ = await paired("alice", "carol")
    event = await next_event(listener)
    assert event.kind == MatchEventType.FOUND
    assert event.match_id == second_match

    listener.close()


async def test_finished_matches_from_before_listening_are_ignored(match_ops, paired):
    match_id, _, _ = await paired("alice", "bob")
    await match_ops.cancel_match(match_id)
    found = []

    unsubscribe = match_ops.listen_for_match("alice", found.append)
    await asyncio.sleep(0.1)

    assert found == []
    unsubscribe()


async def test_closed_listener_stops_iteration(match_ops):
    events = []

    async with match_ops.watch_match("alice") as listener:
        consumer = asyncio.ensure_future(_collect(listener, events))
        await asyncio.sleep(0.05)

    await asyncio.wait_for(consumer, timeout=EVENT_TIMEOUT)
    assert events == []
    assert listener.closed
    listener.close()


async def _collect(listener, events):
    async for event in listener:
        events.append(event)


async def test_listen_for_match_callbacks(match_ops, paired):
    found, updates = [], []
    got_found, got_update = asyncio.Event(), asyncio.Event()

    def on_found(match):
        found.append(match)
        got_found.set()

    async def on_update(match):
        updates.append(match)
        got_update.set()

    unsubscribe = match_ops.listen_for_match("bob", on_found, on_update)
    match_id, _, _ = await paired("alice", "bob")
    await asyncio.wait_for(got_found.wait(), timeout=EVENT_TIMEOUT)

    await match_ops.start_match(match_id)
    await asyncio.wait_for(got_update.wait(), timeout=EVENT_TIMEOUT)

    assert [m.id for m in found] == [match_id]
    assert updates[0].status == MatchStatus.IN_PROGRESS

    unsubscribe()
    unsubscribe()


async def test_callback_errors_do_not_stop_listening(match_ops, paired):
    updates = []
    got_update = asyncio.Event()

    def on_found(match):
        raise RuntimeError("display failed")

    def on_update(match):
        updates.append(match)
        got_update.set()

    unsubscribe = match_ops.listen_for_match("alice", on_found, on_update)
    match_id, _, _ = await paired("alice", "bob")
    await asyncio.sleep(0.05)
    await match_ops.start_match(match_id)

    await asyncio.wait_for(got_update.wait(), timeout=EVENT_TIMEOUT)
    assert updates[0].id == match_id
    unsubscribe()


async def test_close_listeners_ends_all_subscriptions(match_ops):
    unsubscribe = match_ops.listen_for_match("alice", lambda match: None)
    listener = match_ops.watch_match("bob")

    await asyncio.wait_for(match_ops.close_listeners(), timeout=EVENT_TIMEOUT)

    assert listener.closed
    unsubscribe()


async def test_closed_listeners_are_released(match_ops):
    for _ in range(50):
        async with match_ops.watch_match("alice"):
            pass
    listener = match_ops.watch_match("bob")
    assert match_ops.open_listener_count == 1

    listener.close()
    listener.close()

    assert match_ops.open_listener_count == 0


async def test_unsubscribe_releases_listener(match_ops):
    unsubscribe = match_ops.listen_for_match("alice", lambda match: None)
    assert match_ops.open_listener_count == 1

    unsubscribe()

    assert match_ops.open_listener_count == 0


async def test_listener_tracks_queue_status(match_ops):
    assert await match_ops.join("alice") == "waiting"
    listener = match_ops.watch_match("alice")
    pending = asyncio.ensure_future(next_event(listener))
    await asyncio.sleep(0.05)

    assert listener.queue_status == QueueStatus.WAITING

    match_id = await match_ops.join("bob")
    event = await pending
    assert event.match_id == match_id
    assert listener.queue_status is None

    listener.close()
