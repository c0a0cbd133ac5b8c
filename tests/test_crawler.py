import asyncio
from datetime import datetime, timedelta, timezone
import json

import httpx
import pytest

from harvester.config import Settings
from harvester.providers.base import FetchError, FetchResult, PriceHistoryProvider, PriceSample
from harvester.providers.steam_provider import SteamPriceHistoryProvider
from harvester.services.crawler import CrawlScheduler, EmptyCatalogError, StopReason
from harvester.services.storage import CheckpointStore, ResultStoreError, history_key


class RecordingCheckpointStore(CheckpointStore):
    def __init__(self, path, initial=None):
        super().__init__(path)
        self.saved = []
        if initial is not None:
            super().save(initial)

    def save(self, cursor):
        self.saved.append(cursor)
        super().save(cursor)


class FakeProvider(PriceHistoryProvider):
    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.calls = []

    async def fetch_history(self, name):
        self.calls.append(name)
        outcome = self.outcomes.get(name, "ok")
        if outcome == "error":
            raise FetchError(f"{name} broke")
        if outcome == "throttle":
            return FetchResult(throttled=True)
        if outcome == "empty":
            return FetchResult()
        if isinstance(outcome, FetchResult):
            return outcome
        recent = datetime.now(timezone.utc) - timedelta(hours=1)
        return FetchResult.from_series([PriceSample(recent, 2.0, 1)])


class FakeClock:
    def __init__(self, ticks_per_call=0.0):
        self.now = 0.0
        self.ticks_per_call = ticks_per_call

    def __call__(self):
        value = self.now
        self.now += self.ticks_per_call
        return value


def _scheduler(provider, checkpoints, results, sleeps=None, **kwargs):
    sleeps = [] if sleeps is None else sleeps

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    kwargs.setdefault("clock", FakeClock())
    return CrawlScheduler(provider, checkpoints, results, sleep=fake_sleep, **kwargs)


def test_cursor_wraps_around_catalog_length(tmp_path, results):
    checkpoints = RecordingCheckpointStore(tmp_path / "state.json", initial=7)
    provider = FakeProvider()
    items = ["a", "b", "c", "d", "e"]

    state = asyncio.run(_scheduler(provider, checkpoints, results).run(items))

    assert provider.calls == ["c", "d", "e"]
    assert checkpoints.saved == [3, 4, 5]
    assert state.stop_reason is StopReason.EXHAUSTED


def test_checkpoints_advance_after_every_batch_despite_failures(tmp_path, results):
    checkpoints = RecordingCheckpointStore(tmp_path / "state.json")
    provider = FakeProvider({"b": "error", "e": "error"})
    items = ["a", "b", "c", "d", "e", "f"]
    sleeps = []

    state = asyncio.run(_scheduler(provider, checkpoints, results, sleeps, batch_size=2).run(items))

    assert checkpoints.saved == [2, 4, 6]
    assert checkpoints.load() == 6
    assert sorted(state.results) == ["a", "c", "d", "f"]
    assert sleeps == [2.0, 2.0]


def test_throttling_stops_after_the_batch_joins(tmp_path, results):
    checkpoints = RecordingCheckpointStore(tmp_path / "state.json")
    provider = FakeProvider({"d": "throttle"})
    items = ["a", "b", "c", "d", "e", "f"]

    state = asyncio.run(_scheduler(provider, checkpoints, results, batch_size=2).run(items))

    assert state.stop_reason is StopReason.THROTTLED
    assert state.throttled
    assert provider.calls == ["a", "b", "c", "d"]
    assert checkpoints.saved == [2, 4]
    assert sorted(state.results) == ["a", "b", "c"]
    saved = json.loads(results.prices_path.read_text())
    assert list(saved) == ["a", "b", "c"]


def test_budget_exhaustion_saves_cursor_before_next_batch(tmp_path, results):
    checkpoints = RecordingCheckpointStore(tmp_path / "state.json", initial=1)
    provider = FakeProvider()
    clock = FakeClock(ticks_per_call=10.0)
    items = ["a", "b", "c", "d", "e", "f"]

    scheduler = _scheduler(provider, checkpoints, results, batch_size=2, clock=clock, max_duration_seconds=15.0)
    state = asyncio.run(scheduler.run(items, started_at=0.0))

    # budget checks read 0 and 10, then 20 which is past the limit
    assert provider.calls == ["b", "c", "d", "e"]
    assert checkpoints.saved == [3, 5, 5]
    assert state.stop_reason is StopReason.BUDGET
    assert sorted(state.results) == ["b", "c", "d", "e"]


def test_budget_already_spent_fetches_nothing(tmp_path, results):
    checkpoints = RecordingCheckpointStore(tmp_path / "state.json", initial=4)
    provider = FakeProvider()
    clock = FakeClock()
    clock.now = 100.0

    scheduler = _scheduler(provider, checkpoints, results, clock=clock, max_duration_seconds=50.0)
    state = asyncio.run(scheduler.run(["a", "b", "c", "d", "e", "f"], started_at=0.0))

    assert provider.calls == []
    assert checkpoints.saved == [4]
    assert state.stop_reason is StopReason.BUDGET
    assert results.load() == {}


def test_end_to_end_summary_and_history(tmp_path, results):
    checkpoints = RecordingCheckpointStore(tmp_path / "state.json")
    t0 = datetime.now(timezone.utc) - timedelta(hours=3)
    provider = FakeProvider({
        "X": FetchResult.from_series([PriceSample(t0, 10.0, 2), PriceSample(t0, 20.0, 2)]),
        "Y": "empty",
    })
    sleeps = []

    asyncio.run(_scheduler(provider, checkpoints, results, sleeps, requests_per_minute=60).run(["X", "Y"]))

    saved = json.loads(results.prices_path.read_text())
    assert saved == {
        "X": {"steam": {"last_24h": 15.0, "last_7d": 15.0, "last_30d": 15.0, "last_90d": 15.0, "last_ever": 20.0}}
    }
    assert (results.history_dir / f"{history_key('X')}.json").exists()
    assert not (results.history_dir / f"{history_key('Y')}.json").exists()
    assert checkpoints.saved == [1, 2]
    assert sleeps == [1.0]


def test_previous_results_survive_a_new_run(tmp_path, results):
    results.save({"old": {"steam": {"last_ever": 1.0}}, "a": {"steam": {"last_ever": 0.5}}})
    checkpoints = RecordingCheckpointStore(tmp_path / "state.json")

    asyncio.run(_scheduler(FakeProvider(), checkpoints, results).run(["a"]))

    saved = json.loads(results.prices_path.read_text())
    assert list(saved) == ["a", "old"]
    assert saved["old"] == {"steam": {"last_ever": 1.0}}
    assert saved["a"]["steam"]["last_ever"] == 2.0


def test_results_are_persisted_when_the_run_crashes(tmp_path, results):
    class ExplodingCheckpoints(RecordingCheckpointStore):
        def save(self, cursor):
            super().save(cursor)
            if cursor == 1:
                raise RuntimeError("disk gone")

    checkpoints = ExplodingCheckpoints(tmp_path / "state.json")

    with pytest.raises(RuntimeError):
        asyncio.run(_scheduler(FakeProvider(), checkpoints, results).run(["a", "b"]))

    assert list(json.loads(results.prices_path.read_text())) == ["a"]


def test_empty_catalog_is_rejected(checkpoints, results):
    with pytest.raises(EmptyCatalogError):
        asyncio.run(_scheduler(FakeProvider(), checkpoints, results).run([]))


def test_invalid_batch_size_is_rejected(checkpoints, results):
    with pytest.raises(ValueError):
        CrawlScheduler(FakeProvider(), checkpoints, results, batch_size=0)


def test_batch_items_are_fetched_concurrently(checkpoints, results):
    started = []
    release = asyncio.Event()

    class GatedProvider(PriceHistoryProvider):
        async def fetch_history(self, name):
            started.append(name)
            if len(started) == 3:
                release.set()
            await release.wait()
            return FetchResult()

    asyncio.run(_scheduler(GatedProvider(), checkpoints, results, batch_size=3).run(["a", "b", "c"]))

    assert started == ["a", "b", "c"]
    assert checkpoints.load() == 3


@pytest.mark.parametrize(
    "body",
    [
        b'{"prices": 5}',
        b'{"prices": true}',
        b'{"prices": [["Jul 02 2014 01: +0", 1.0, Infinity]]}',
        b'\xff\xfe not utf-8',
    ],
)
def test_malformed_steam_payload_only_skips_the_item(tmp_path, results, body):
    def handler(request):
        if "market_hash_name=a" in str(request.url):
            return httpx.Response(200, content=body)
        return httpx.Response(200, json={"prices": [["Jul 02 2014 01: +0", 4.0, "2"]]})

    checkpoints = RecordingCheckpointStore(tmp_path / "state.json")
    config = Settings(provider_name="steam", market_base_url="https://market.test/market")

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = SteamPriceHistoryProvider(client, config)
            return await _scheduler(provider, checkpoints, results).run(["a", "b"])

    state = asyncio.run(go())

    assert checkpoints.load() == 2
    assert checkpoints.saved == [1, 2]
    assert list(state.results) == ["b"]
    assert state.stop_reason is StopReason.EXHAUSTED


def test_unreadable_summary_document_keeps_run_results(tmp_path, results):
    results.prices_path.parent.mkdir(parents=True)
    results.prices_path.write_text("[1, 2]")
    checkpoints = RecordingCheckpointStore(tmp_path / "state.json")

    with pytest.raises(ResultStoreError):
        asyncio.run(_scheduler(FakeProvider(), checkpoints, results).run(["a", "b"]))

    assert results.prices_path.read_text() == "[1, 2]"
    assert list(json.loads(results.recovery_path.read_text())) == ["a", "b"]
    assert checkpoints.load() == 2
