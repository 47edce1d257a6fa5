import asyncio

import pytest

from civic_locator import config
from civic_locator.dispatcher import DispatcherState, QueryDispatcher, gather_with_timeout
from civic_locator.errors import GeocodeError, SearchTimeoutError
from civic_locator.models import Candidate, SourceKind


def geocoded(name, lat=12.97, lng=77.59):
    return Candidate(name, lat, lng, SourceKind.GEOCODED)


class FakeGeocoder:
    """Ignores the token on purpose: stale results must be dropped by the dispatcher."""

    def __init__(self, delays=None, errors=None):
        self.delays = delays or {}
        self.errors = errors or {}
        self.calls = []

    async def search(self, text, token):
        self.calls.append(text)
        await asyncio.sleep(self.delays.get(text, 0))
        if text in self.errors:
            raise self.errors[text]
        return [geocoded(f"{text} Junction")]


class FakeNearby:
    def __init__(self, loaded=None):
        self.loaded = loaded or []

    def match_loaded(self, query):
        return [c for c in self.loaded if query.lower() in c.name.lower()]


class RecordingListener:
    def __init__(self):
        self.results = []
        self.errors = []
        self.clears = 0

    def on_results(self, query, payload):
        self.results.append((query, payload))

    def on_error(self, query, notice):
        self.errors.append((query, notice))

    def on_clear(self):
        self.clears += 1


def make_dispatcher(geocoder=None, nearby=None, debounce=0.02, timeout=1.0):
    listener = RecordingListener()
    dispatcher = QueryDispatcher(
        geocoder or FakeGeocoder(),
        nearby or FakeNearby(),
        listener,
        debounce_seconds=debounce,
        timeout_seconds=timeout,
    )
    return dispatcher, listener


def test_short_input_never_dispatches_and_clears_panel():
    geocoder = FakeGeocoder()
    dispatcher, listener = make_dispatcher(geocoder)

    async def scenario():
        dispatcher.on_input("Ko")
        dispatcher.on_input("  Ko ")
        await asyncio.sleep(0.08)

    asyncio.run(scenario())
    assert geocoder.calls == []
    assert listener.clears == 2
    assert dispatcher.state is DispatcherState.IDLE


def test_burst_within_debounce_window_dispatches_once():
    geocoder = FakeGeocoder()
    dispatcher, listener = make_dispatcher(geocoder, debounce=0.05)

    async def scenario():
        for text in ["Kor", "Kora", "Koram", "Koraman", "Koramangala"]:
            dispatcher.on_input(text)
            assert dispatcher.state is DispatcherState.DEBOUNCING
            await asyncio.sleep(0.005)
        await dispatcher.drain()

    asyncio.run(scenario())
    assert geocoder.calls == ["Koramangala"]
    assert dispatcher.dispatched == 1
    assert [q for q, _ in listener.results] == ["Koramangala"]
    assert dispatcher.state is DispatcherState.IDLE


def test_superseded_query_result_never_renders():
    geocoder = FakeGeocoder(delays={"Kor": 0.2})
    dispatcher, listener = make_dispatcher(geocoder, debounce=0.01)

    async def scenario():
        dispatcher.on_input("Kor")
        await asyncio.sleep(0.05)
        dispatcher.on_input("Koramangala")
        await dispatcher.drain()

    asyncio.run(scenario())
    assert geocoder.calls == ["Kor", "Koramangala"]
    assert [q for q, _ in listener.results] == ["Koramangala"]
    names = [c.name for c in listener.results[0][1].selectable()]
    assert names == ["Koramangala Junction"]


def test_superseded_query_error_is_silent():
    geocoder = FakeGeocoder(
        delays={"Kor": 0.15},
        errors={"Kor": GeocodeError("upstream down", status=503)},
    )
    dispatcher, listener = make_dispatcher(geocoder, debounce=0.01)

    async def scenario():
        dispatcher.on_input("Kor")
        await asyncio.sleep(0.05)
        dispatcher.on_input("Koramangala")
        await dispatcher.drain()

    asyncio.run(scenario())
    assert listener.errors == []
    assert [q for q, _ in listener.results] == ["Koramangala"]


def test_timeout_surfaces_timeout_notice():
    geocoder = FakeGeocoder(delays={"Whitefield": 1.0})
    dispatcher, listener = make_dispatcher(geocoder, debounce=0.0, timeout=0.05)

    async def scenario():
        return await dispatcher.search_now("Whitefield")

    assert asyncio.run(scenario()) is None
    assert listener.results == []
    query, notice = listener.errors[0]
    assert query == "Whitefield"
    assert notice.kind == "timeout"
    assert notice.message == config.TIMEOUT_MESSAGE
    assert dispatcher.state is DispatcherState.IDLE


def test_upstream_failure_surfaces_network_notice():
    geocoder = FakeGeocoder(errors={"Jayanagar": GeocodeError("HTTP 500", status=500)})
    dispatcher, listener = make_dispatcher(geocoder)

    asyncio.run(dispatcher.search_now("Jayanagar"))

    _, notice = listener.errors[0]
    assert notice.kind == "network"
    assert notice.message == config.NETWORK_ERROR_MESSAGE


def test_results_merge_loaded_nearby_matches_first():
    cafe = Candidate("Cafe Koramangala", 12.93, 77.62, SourceKind.NEARBY_FEATURE, "1", "cafe")
    dispatcher, listener = make_dispatcher(nearby=FakeNearby([cafe]))

    payload = asyncio.run(dispatcher.search_now("Koramangala"))

    assert [s.title for s in payload.sections] == ["Nearby Features", "Bengaluru Locations"]
    assert payload.selectable()[0] == cafe
    assert listener.results[0][1] == payload


def test_abort_cancels_pending_debounce():
    geocoder = FakeGeocoder()
    dispatcher, listener = make_dispatcher(geocoder, debounce=0.03)

    async def scenario():
        dispatcher.on_input("Indiranagar")
        dispatcher.abort()
        await asyncio.sleep(0.08)

    asyncio.run(scenario())
    assert geocoder.calls == []
    assert not dispatcher.pending


def test_clearing_input_drops_in_flight_results():
    geocoder = FakeGeocoder(delays={"Hebbal": 0.1})
    dispatcher, listener = make_dispatcher(geocoder, debounce=0.0)

    async def scenario():
        dispatcher.on_input("Hebbal")
        await asyncio.sleep(0.03)
        dispatcher.on_input("")
        await dispatcher.drain()

    asyncio.run(scenario())
    assert geocoder.calls == ["Hebbal"]
    assert listener.results == []
    assert listener.clears == 1


def test_gather_with_timeout_returns_in_input_order():
    async def value(v, delay):
        await asyncio.sleep(delay)
        return v

    result = asyncio.run(gather_with_timeout([value("a", 0.02), value("b", 0.0)], 1.0))
    assert result == ["a", "b"]


def test_gather_with_timeout_raises_when_timer_wins():
    async def slow():
        await asyncio.sleep(1.0)
        return "late"

    with pytest.raises(SearchTimeoutError):
        asyncio.run(gather_with_timeout([slow()], 0.01))
