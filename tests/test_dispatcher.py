import threading
from datetime import datetime, timedelta, timezone

import pytest

from tests.fakes import RecordingDisplay, RecordingNotifier, StubResolver
from tubebreak.actions import BREAK_TITLE, WORK_TITLE, DispatchError
from tubebreak.dispatcher import ActionDispatcher, TickContext
from tubebreak.pool import ItemPool
from tubebreak.schedule import SchedulePhase
from tubebreak.state import ConfigStore


def _at(minute, hour=9):
    return datetime(2024, 5, 6, hour, minute, tzinfo=timezone.utc)


def _build(tmp_path, *, enabled=True, items=None, resolver=None, display=None, notifier=None):
    store = ConfigStore(tmp_path / "extension.json")

    def seed(config):
        config.set_enabled(enabled)
        if items is not None:
            config.add_playlist("PL1")
            config.store_items("PL1", items)

    store.update(seed)
    display = display or RecordingDisplay()
    notifier = notifier or RecordingNotifier()
    dispatcher = ActionDispatcher(
        store=store,
        pool=ItemPool(resolver or StubResolver(), store),
        display=display,
        notifier=notifier,
        rng=lambda: 0.0,
    )
    return dispatcher, store, display, notifier


def test_break_opens_video_and_notifies(tmp_path):
    dispatcher, store, display, notifier = _build(tmp_path, items=["vid1", "vid2"])
    context = TickContext()

    outcome = dispatcher.on_tick(_at(25), context)

    assert outcome.phase is SchedulePhase.BREAK_TIME
    assert outcome.status == "shown"
    assert display.shown == ["vid1"]
    assert [title for title, _ in notifier.sent] == [BREAK_TITLE]
    assert context.cooldown.last_action == _at(25)
    assert store.load().last_status == BREAK_TITLE


def test_work_boundary_only_notifies(tmp_path):
    dispatcher, store, display, notifier = _build(tmp_path, items=["vid1"])

    outcome = dispatcher.on_tick(_at(30), TickContext())

    assert outcome.phase is SchedulePhase.WORK_TIME
    assert display.shown == []
    assert [title for title, _ in notifier.sent] == [WORK_TITLE]
    assert store.load().last_status == WORK_TITLE


def test_work_notification_repeats_every_tick(tmp_path):
    dispatcher, _, _, notifier = _build(tmp_path)
    context = TickContext()

    dispatcher.on_tick(_at(0), context)
    dispatcher.on_tick(_at(0) + timedelta(seconds=20), context)

    assert len(notifier.sent) == 2


def test_non_boundary_minute_does_nothing(tmp_path):
    dispatcher, _, display, notifier = _build(tmp_path, items=["vid1"])

    outcome = dispatcher.on_tick(_at(12), TickContext())

    assert outcome.status == "idle"
    assert display.shown == [] and notifier.sent == []


@pytest.mark.parametrize("minute", range(60))
def test_disabled_extension_never_acts(tmp_path, minute):
    dispatcher, _, display, notifier = _build(tmp_path, enabled=False, items=["vid1"])

    outcome = dispatcher.on_tick(_at(minute), TickContext())

    assert outcome.status == "disabled"
    assert display.shown == []
    assert notifier.sent == []


def test_repeated_break_ticks_are_debounced(tmp_path):
    dispatcher, _, display, _ = _build(tmp_path, items=["vid1"])
    context = TickContext()

    dispatcher.on_tick(_at(25), context)
    second = dispatcher.on_tick(_at(25) + timedelta(seconds=30), context)

    assert second.status == "cooldown"
    assert display.shown == ["vid1"]


def test_break_after_cooldown_acts_again(tmp_path):
    dispatcher, _, display, _ = _build(tmp_path, items=["vid1"])
    context = TickContext()

    dispatcher.on_tick(_at(25), context)
    dispatcher.on_tick(_at(55), context)

    assert display.shown == ["vid1", "vid1"]


def test_empty_pool_still_consumes_cooldown(tmp_path):
    dispatcher, _, display, notifier = _build(tmp_path)
    context = TickContext()

    outcome = dispatcher.on_tick(_at(25), context)

    assert outcome.status == "no_items"
    assert display.shown == []
    assert notifier.sent == []
    assert context.cooldown.last_action == _at(25)
    assert dispatcher.on_tick(_at(25) + timedelta(seconds=10), context).status == "cooldown"


def test_break_resolves_unresolved_playlist(tmp_path):
    resolver = StubResolver(results={"PL9": ["fresh"]})
    dispatcher, store, display, _ = _build(tmp_path, resolver=resolver)
    store.update(lambda config: config.add_playlist("PL9"))

    dispatcher.on_tick(_at(55), TickContext())

    assert display.shown == ["fresh"]
    assert store.load().get("PL9").items == ["fresh"]


def test_display_failure_is_swallowed(tmp_path):
    display = RecordingDisplay(error=DispatchError("no browser"))
    dispatcher, _, _, notifier = _build(tmp_path, items=["vid1"], display=display)

    outcome = dispatcher.on_tick(_at(25), TickContext())

    assert outcome.status == "display_failed"
    assert outcome.error == "no browser"
    assert [title for title, _ in notifier.sent] == [BREAK_TITLE]


def test_notification_failure_is_swallowed(tmp_path):
    notifier = RecordingNotifier(error=DispatchError("no notifier"))
    dispatcher, _, display, _ = _build(tmp_path, items=["vid1"], notifier=notifier)

    outcome = dispatcher.on_tick(_at(25), TickContext())

    assert outcome.status == "shown"
    assert display.shown == ["vid1"]
    assert outcome.error == "no notifier"


def test_unexpected_error_never_escapes(tmp_path):
    class ExplodingResolver:
        def resolve_items(self, source):
            raise RuntimeError("boom")

    dispatcher, store, _, _ = _build(tmp_path, resolver=ExplodingResolver())
    store.update(lambda config: config.add_playlist("PL1"))

    outcome = dispatcher.on_tick(_at(25), TickContext())

    assert outcome.status == "error"
    assert "boom" in outcome.error


def test_open_random_ignores_schedule_and_cooldown(tmp_path):
    dispatcher, _, display, _ = _build(tmp_path, enabled=False, items=["vid1"])

    url = dispatcher.open_random()

    assert url == "https://www.youtube.com/embed/vid1?autoplay=1"
    assert display.shown == ["vid1"]


def test_open_random_with_empty_pool_returns_none(tmp_path):
    dispatcher, _, display, _ = _build(tmp_path)

    assert dispatcher.open_random() is None
    assert display.shown == []


def test_overlapping_tick_is_dropped(tmp_path):
    class BlockingResolver(StubResolver):
        def __init__(self):
            super().__init__(results={"PL1": ["vid1"]})
            self.entered = threading.Event()
            self.release = threading.Event()

        def resolve_items(self, source):
            self.entered.set()
            self.release.wait(timeout=5)
            return super().resolve_items(source)

    resolver = BlockingResolver()
    dispatcher, store, display, notifier = _build(tmp_path, resolver=resolver)
    store.update(lambda config: config.add_playlist("PL1"))
    outcomes = []

    worker = threading.Thread(target=lambda: outcomes.append(dispatcher.on_tick(_at(25), TickContext())))
    worker.start()
    assert resolver.entered.wait(timeout=5)

    try:
        overlapping = dispatcher.on_tick(_at(30), TickContext())
        assert overlapping.status == "skipped"
        assert resolver.calls == ["PL1"]
        assert display.shown == []
        assert notifier.sent == []
    finally:
        resolver.release.set()
        worker.join(timeout=5)

    assert outcomes[0].status == "shown"
    assert display.shown == ["vid1"]


def test_tick_after_overlap_runs_normally(tmp_path):
    dispatcher, _, display, _ = _build(tmp_path, items=["vid1"])

    with dispatcher._tick_lock:
        assert dispatcher.on_tick(_at(25), TickContext()).status == "skipped"

    assert dispatcher.on_tick(_at(25), TickContext()).status == "shown"
    assert display.shown == ["vid1"]


def test_status_persist_failure_still_shows_video(tmp_path):
    class UnwritableStore(ConfigStore):
        def update(self, mutator, attempts=3):
            raise ValueError("Expecting value: line 1 column 1 (char 0)")

    seeded = ConfigStore(tmp_path / "extension.json")

    def seed(config):
        config.add_playlist("PL1")
        config.store_items("PL1", ["vid1"])

    seeded.update(seed)
    store = UnwritableStore(tmp_path / "extension.json")
    display = RecordingDisplay()
    dispatcher = ActionDispatcher(
        store=store,
        pool=ItemPool(StubResolver(), store),
        display=display,
        notifier=RecordingNotifier(),
        rng=lambda: 0.0,
    )

    outcome = dispatcher.on_tick(_at(25), TickContext())

    assert outcome.status == "shown"
    assert display.shown == ["vid1"]
