import asyncio
import json
from collections import defaultdict

import pytest

from brandpulse.api.base import APIClient
from brandpulse.core.config import EngineConfig
from brandpulse.core.engine import BatchEngine
from brandpulse.core.errors import DecodeError, InvalidInputError, TransportError
from brandpulse.core.image_encoder import RawImage
from brandpulse.core.models import ItemStatus

from conftest import FakeProvider, make_image_bytes, make_raw, make_result

ALLOWED_TRANSITIONS = {
    (ItemStatus.PENDING, ItemStatus.PROCESSING),
    (ItemStatus.ERROR, ItemStatus.PROCESSING),
    (ItemStatus.PROCESSING, ItemStatus.COMPLETED),
    (ItemStatus.PROCESSING, ItemStatus.ERROR),
}


def run(coro):
    return asyncio.run(coro)


async def _wait_for(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


def _statuses(engine):
    return {item.id: item.status for item in engine.snapshot()}


def test_submit_creates_pending_items_and_rejects_non_images(provider):
    engine = BatchEngine(provider)
    rejected = []
    engine.on_rejected = lambda image, err: rejected.append((image.name, err))

    images = [
        make_raw("one.png"),
        RawImage(b"hello", "text/plain", "notes.txt"),
        make_raw("two.png"),
    ]
    ids = run(engine.submit(images))

    assert len(ids) == 2
    items = engine.snapshot()
    assert [item.id for item in items] == ids
    assert [item.name for item in items] == ["one.png", "two.png"]
    assert all(item.status is ItemStatus.PENDING for item in items)
    assert len(rejected) == 1
    assert rejected[0][0] == "notes.txt"
    assert isinstance(rejected[0][1], InvalidInputError)


def test_undecodable_image_is_rejected_without_item(provider):
    engine = BatchEngine(provider)
    rejected = []
    engine.on_rejected = lambda image, err: rejected.append(err)
    ids = run(engine.submit([RawImage(b"garbage", "image/png", "bad.png")]))
    assert ids == []
    assert engine.snapshot() == ()
    assert isinstance(rejected[0], DecodeError)


def test_later_submissions_are_prepended(provider):
    engine = BatchEngine(provider)
    first = run(engine.submit([make_raw("a.png"), make_raw("b.png")]))
    second = run(engine.submit([make_raw("c.png")]))
    assert [item.id for item in engine.snapshot()] == second + first


def test_item_ids_are_unique(provider):
    engine = BatchEngine(provider)
    ids = run(engine.submit([make_raw(f"{i}.png", 4, 4) for i in range(50)]))
    assert len(set(ids)) == 50


def test_submit_capture_adds_one_pending_item(provider):
    engine = BatchEngine(provider)
    run(engine.submit([make_raw("a.png")]))
    capture_id = run(engine.submit_capture(make_image_bytes(1280, 720, fmt="JPEG")))
    first = engine.snapshot()[0]
    assert first.id == capture_id
    assert first.status is ItemStatus.PENDING
    assert engine.store.payload(capture_id)


def test_process_all_completes_every_item(provider):
    engine = BatchEngine(provider)
    run(engine.submit([make_raw(f"{i}.png") for i in range(7)]))

    assert run(engine.process_all()) is True
    assert set(_statuses(engine).values()) == {ItemStatus.COMPLETED}
    assert provider.calls == 7
    assert not engine.processing_all


def test_process_all_never_exceeds_concurrency_limit():
    provider = FakeProvider(delay=0.005)
    engine = BatchEngine(provider)
    run(engine.submit([make_raw(f"{i}.png", 4, 4) for i in range(100)]))

    run(engine.process_all())
    assert provider.calls == 100
    assert provider.max_active == 5


def test_process_all_uses_fewer_workers_for_small_batches():
    provider = FakeProvider(delay=0.005)
    engine = BatchEngine(provider, EngineConfig(concurrency_limit=5))
    run(engine.submit([make_raw(f"{i}.png") for i in range(3)]))
    run(engine.process_all())
    assert provider.max_active <= 3


def test_partial_failures_do_not_abort_the_batch():
    def handler(payload):
        handler.count += 1
        if handler.count % 2 == 0:
            raise TransportError("timeout")
        return make_result()
    handler.count = 0

    engine = BatchEngine(FakeProvider(handler))
    run(engine.submit([make_raw(f"{i}.png") for i in range(6)]))
    run(engine.process_all())

    items = engine.snapshot()
    assert sum(item.status is ItemStatus.COMPLETED for item in items) == 3
    failed = [item for item in items if item.status is ItemStatus.ERROR]
    assert len(failed) == 3
    assert all(item.error == "timeout" and item.result is None for item in failed)


def test_unexpected_provider_exceptions_are_recorded():
    def handler(payload):
        raise KeyError("candidates")

    engine = BatchEngine(FakeProvider(handler))
    (item_id,) = run(engine.submit([make_raw()]))
    run(engine.analyze_one(item_id))
    assert engine.store.get(item_id).status is ItemStatus.ERROR
    assert "candidates" in engine.store.get(item_id).error


def test_status_transitions_follow_the_state_machine():
    def handler(payload):
        handler.count += 1
        if handler.count <= 2:
            raise TransportError("flaky")
        return make_result()
    handler.count = 0

    engine = BatchEngine(FakeProvider(handler))
    history = defaultdict(list)
    engine.on_item_changed = lambda item: history[item.id].append(item.status)
    ids = run(engine.submit([make_raw(f"{i}.png") for i in range(4)]))

    run(engine.process_all())
    run(engine.process_all())

    for item_id in ids:
        previous = ItemStatus.PENDING
        for status in history[item_id]:
            assert (previous, status) in ALLOWED_TRANSITIONS
            previous = status
        assert previous is ItemStatus.COMPLETED


def test_completed_items_are_not_reanalyzed(provider):
    engine = BatchEngine(provider)
    (item_id,) = run(engine.submit([make_raw()]))
    run(engine.analyze_one(item_id))
    result = engine.store.get(item_id).result

    run(engine.analyze_one(item_id))
    assert provider.calls == 1
    assert engine.store.get(item_id).result is result


def test_single_flight_per_item(provider):
    engine = BatchEngine(provider)
    terminal_writes = []
    engine.on_item_changed = lambda item: (
        terminal_writes.append(item.id) if item.status is not ItemStatus.PROCESSING else None
    )
    (item_id,) = run(engine.submit([make_raw()]))

    async def scenario():
        provider.pause()
        first = asyncio.create_task(engine.analyze_one(item_id))
        await provider.started.wait()

        await engine.analyze_one(item_id)
        assert await engine.process_all() is False
        assert provider.calls == 1
        assert engine.store.get(item_id).status is ItemStatus.PROCESSING

        provider.gate.set()
        await first

    run(scenario())
    assert provider.calls == 1
    assert terminal_writes == [item_id]
    assert engine.store.get(item_id).status is ItemStatus.COMPLETED


def test_second_process_all_is_ignored_while_running(provider):
    engine = BatchEngine(provider)
    run(engine.submit([make_raw(f"{i}.png") for i in range(3)]))

    async def scenario():
        provider.pause()
        batch = asyncio.create_task(engine.process_all())
        await _wait_for(lambda: provider.calls == 3)
        assert engine.processing_all
        assert await engine.process_all() is False
        provider.gate.set()
        assert await batch is True

    run(scenario())
    assert provider.calls == 3
    assert not engine.processing_all


def test_process_all_uses_a_snapshot_of_eligible_items(provider):
    engine = BatchEngine(provider)
    run(engine.submit([make_raw("a.png")]))

    async def scenario():
        provider.pause()
        batch = asyncio.create_task(engine.process_all())
        await provider.started.wait()
        # added after the run started: not part of this run
        await engine.submit([make_raw("late.png")])
        provider.gate.set()
        await batch

    run(scenario())
    assert provider.calls == 1
    late = engine.snapshot()[0]
    assert late.name == "late.png" and late.status is ItemStatus.PENDING


def test_removed_item_does_not_reappear(provider):
    engine = BatchEngine(provider)
    ids = run(engine.submit([make_raw("a.png"), make_raw("b.png")]))
    victim = ids[0]
    preview = engine.store.get(victim).preview

    async def scenario():
        provider.pause()
        batch = asyncio.create_task(engine.process_all())
        await _wait_for(lambda: provider.calls == 2)
        engine.remove(victim)
        provider.gate.set()
        await batch

    run(scenario())
    assert [item.id for item in engine.snapshot()] == [ids[1]]
    assert engine.store.get(ids[1]).status is ItemStatus.COMPLETED
    assert preview.released


def test_remove_purges_keyword_selection(provider):
    engine = BatchEngine(provider)
    ids = run(engine.submit([make_raw("a.png"), make_raw("b.png")]))
    run(engine.process_all())
    engine.toggle_keyword(ids[0], "sunset")
    engine.toggle_keyword(ids[1], "ocean")

    engine.remove(ids[0])
    assert ids[0] not in engine.selection
    assert engine.selected_keywords(ids[1]) == {"ocean"}


def test_payload_lost_marks_item_error(provider):
    engine = BatchEngine(provider)
    (item_id,) = run(engine.submit([make_raw()]))
    engine.store._payloads.pop(item_id)

    run(engine.analyze_one(item_id))
    item = engine.store.get(item_id)
    assert item.status is ItemStatus.ERROR
    assert item.error == "Image data lost"
    assert provider.calls == 0


class _SwitchableClient(APIClient):
    def __init__(self):
        self.reply = ""
        super().__init__(api_key="test")

    def _validate_api_key(self):
        pass

    def _get_model_name(self):
        return "switchable"

    def _call_api(self, image_b64):
        return self.reply


def test_empty_body_then_successful_retry():
    client = _SwitchableClient()
    engine = BatchEngine(client)
    (item_id,) = run(engine.submit([make_raw()]))

    run(engine.analyze_one(item_id))
    item = engine.store.get(item_id)
    assert item.status is ItemStatus.ERROR
    assert item.error == "Empty response from AI"

    client.reply = json.dumps({
        "taglines": ["Bold by default"],
        "keywords": [{"word": "bold", "relevance": 88, "platforms": ["Freepik"]}],
        "description": "Punchy and bright",
        "platforms": ["TikTok"],
    })
    run(engine.analyze_one(item_id))
    item = engine.store.get(item_id)
    assert item.status is ItemStatus.COMPLETED
    assert item.error is None
    assert item.result.keyword_words == ("bold",)


def test_noop_process_all_leaves_snapshot_unchanged(provider):
    engine = BatchEngine(provider)
    assert run(engine.process_all()) is False
    assert engine.snapshot() == ()

    run(engine.submit([make_raw("a.png"), make_raw("b.png")]))
    run(engine.process_all())
    before = engine.snapshot()
    assert run(engine.process_all()) is False
    assert engine.snapshot() == before
    assert provider.calls == 2


def test_keyword_selection_through_engine(provider):
    engine = BatchEngine(provider)
    (item_id,) = run(engine.submit([make_raw()]))
    run(engine.analyze_one(item_id))

    engine.toggle_keyword(item_id, "sunset")
    engine.toggle_keyword(item_id, "beach")
    engine.toggle_keyword(item_id, "beach")
    assert engine.selected_keywords(item_id) == {"sunset"}

    engine.toggle_keyword(item_id, "not-a-keyword")
    engine.toggle_keyword("missing-id", "sunset")
    assert engine.selected_keywords(item_id) == {"sunset"}
    assert engine.selected_keywords("missing-id") == frozenset()


def test_select_all_uses_the_filtered_view(provider):
    from brandpulse.core.keywords import filter_keywords

    engine = BatchEngine(provider)
    (item_id,) = run(engine.submit([make_raw()]))
    run(engine.analyze_one(item_id))
    result = engine.store.get(item_id).result

    view = filter_keywords(result.keywords, "Freepik")
    engine.select_all(item_id, [kw.word for kw in view])
    assert engine.selected_keywords(item_id) == {"beach", "ocean"}
    assert engine.copy_text(item_id) == "beach, ocean"


def test_copy_text_falls_back_to_all_keywords(provider):
    engine = BatchEngine(provider)
    (item_id,) = run(engine.submit([make_raw()]))
    assert engine.copy_text(item_id) == ""
    run(engine.analyze_one(item_id))
    assert engine.copy_text(item_id) == "sunset, beach, Beach, ocean"


def test_clear_all_purges_items_payloads_and_selection(provider):
    engine = BatchEngine(provider)
    ids = run(engine.submit([make_raw("a.png"), make_raw("b.png")]))
    run(engine.process_all())
    engine.toggle_keyword(ids[0], "sunset")
    previews = [item.preview for item in engine.snapshot()]

    engine.clear_all()
    assert engine.snapshot() == ()
    assert all(p.released for p in previews)
    assert ids[0] not in engine.selection
    assert engine.store.payload(ids[0]) is None


def test_stats_and_combined_keywords():
    def handler(payload):
        handler.count += 1
        if handler.count == 1:
            raise TransportError("down")
        return make_result()
    handler.count = 0

    engine = BatchEngine(FakeProvider(handler))
    run(engine.submit([make_raw(f"{i}.png") for i in range(4)]))
    run(engine.process_all())

    stats = engine.stats()
    assert stats["total"] == 4
    assert stats["completed"] == 3
    assert stats["error"] == 1
    assert stats["pending"] == 0 and stats["processing"] == 0
    assert stats["progress"] == pytest.approx(75.0)
    assert engine.combined_keywords() == ["sunset", "beach", "Beach", "ocean"]


def test_empty_batch_stats(provider):
    stats = BatchEngine(provider).stats()
    assert stats["total"] == 0
    assert stats["progress"] == 0.0


def test_cancelled_run_leaves_items_rerunnable(provider):
    engine = BatchEngine(provider)
    (item_id,) = run(engine.submit([make_raw()]))

    async def scenario():
        provider.pause()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(engine.process_all(), 0.05)
        item = engine.store.get(item_id)
        assert item.status is ItemStatus.ERROR
        assert item.error == "Analysis cancelled"
        assert not engine.processing_all

        provider.gate.set()
        assert await engine.process_all() is True

    run(scenario())
    assert provider.calls == 2
    assert engine.store.get(item_id).status is ItemStatus.COMPLETED


def test_run_counts_only_items_actually_analyzed(provider):
    engine = BatchEngine(provider, EngineConfig(concurrency_limit=1))
    first, queued = run(engine.submit([make_raw("a.png"), make_raw("b.png")]))

    async def scenario():
        provider.pause()
        batch = asyncio.create_task(engine.process_all())
        await provider.started.wait()
        engine.remove(queued)
        provider.gate.set()
        assert await batch is True

    run(scenario())
    assert provider.calls == 1
    assert (engine.pool.completed_count, engine.pool.total_count) == (1, 2)
