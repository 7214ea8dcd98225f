"""Tests for client.controller: reconnection, fallback and change detection."""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any

import pytest

from app.core.errors import StreamTransportError
from app.core.sse import Frame
from client.controller import (
    ConnectionState,
    ReconnectController,
    backoff_delay,
    clamp_polling_interval,
    fingerprint,
    latest_member,
)

HOLD = object()


def _data(members: list[dict[str, Any]]) -> Frame:
    return Frame("data", json.dumps({"members": members}))


def _member(name: str, activity: str = "", state: str = "", ts: str = "2026-10-19T08:00:00Z"):
    return {"name": name, "activity": activity, "state": state, "timestamp": ts}


class FakeTransport:
    """Scripted transport: each stream open consumes one script entry.

    A script entry is either an exception (raised on open) or a list of
    frames; a frame may be an exception (raised mid-stream) or HOLD (the
    stream stays open until cancelled). Opens past the script are refused.
    """

    def __init__(self, sessions=(), snapshots=(), supports_streaming: bool = True):
        self.supports_streaming = supports_streaming
        self._sessions = list(sessions)
        self._snapshots = list(snapshots)
        self.opens = 0
        self.fetches = 0

    @asynccontextmanager
    async def open_stream(self):
        self.opens += 1
        script = self._sessions.pop(0) if self._sessions else StreamTransportError("refused")
        if isinstance(script, BaseException):
            raise script
        yield self._frames(script)

    @staticmethod
    async def _frames(script):
        for item in script:
            if item is HOLD:
                await asyncio.Future()
            if isinstance(item, BaseException):
                raise item
            yield item
            await asyncio.sleep(0)

    async def fetch_snapshot(self):
        self.fetches += 1
        item = self._snapshots.pop(0) if self._snapshots else []
        if isinstance(item, BaseException):
            raise item
        return item


async def _until(predicate, timeout: float = 2.0) -> None:
    async def spin() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(spin(), timeout)


def _controller(transport: FakeTransport, **kwargs) -> ReconnectController:
    kwargs.setdefault("base_delay", 0.001)
    kwargs.setdefault("max_delay", 0.005)
    return ReconnectController(transport, **kwargs)


class TestHelpers:
    def test_backoff_schedule(self) -> None:
        assert [backoff_delay(n) for n in range(1, 11)] == [
            3.0, 6.0, 9.0, 12.0, 15.0, 18.0, 21.0, 24.0, 27.0, 30.0
        ]
        assert backoff_delay(50) == 30.0

    @pytest.mark.parametrize("raw, expected", [(0, 1.0), (5, 5), (900, 300.0)])
    def test_polling_interval_clamped(self, raw, expected) -> None:
        assert clamp_polling_interval(raw) == expected

    def test_fingerprint_ignores_timestamps_and_order(self) -> None:
        a = [_member("A", "home", ts="2026-01-01T00:00:00Z"), _member("B", "work")]
        b = [_member("B", "work", ts="2030-01-01T00:00:00Z"), _member("A", "home")]
        assert fingerprint(a) == fingerprint(b)
        assert fingerprint(a) != fingerprint([_member("A", "home"), _member("B", "gym")])

    def test_fingerprint_treats_missing_fields_as_empty(self) -> None:
        assert fingerprint([{"name": "A"}]) == fingerprint([_member("A")])

    def test_latest_member(self) -> None:
        members = [
            _member("A", ts="2026-10-19T08:00:00Z"),
            _member("B", ts="2026-10-19T09:00:00.123Z"),
            _member("C", ts="not a time"),
        ]
        assert latest_member(members)["name"] == "B"
        assert latest_member([]) is None


class TestStreaming:
    async def test_change_reported_once_with_latest_member(self) -> None:
        changes: list[dict] = []
        snapshots: list[list] = []
        first = [_member("A", "home", ts="2026-10-19T08:00:00Z")]
        second = [
            _member("B", "school", ts="2026-10-19T09:00:00Z"),
            _member("A", "home", ts="2026-10-19T08:00:00Z"),
        ]
        restamped = [
            _member("A", "home", ts="2026-10-19T10:00:00Z"),
            _member("B", "school", ts="2026-10-19T10:00:00Z"),
        ]
        transport = FakeTransport([[_data(first), _data(second), _data(restamped), HOLD]])
        controller = _controller(
            transport, on_change=changes.append, on_snapshot=snapshots.append
        )

        controller.start()
        await _until(lambda: len(snapshots) == 3)

        assert [m["name"] for m in changes] == ["B"]
        assert controller.state is ConnectionState.CONNECTED
        await controller.aclose()

    async def test_heartbeats_are_not_dispatched(self) -> None:
        snapshots: list[list] = []
        transport = FakeTransport(
            [[Frame("comment", "heartbeat"), _data([]), Frame("comment", "heartbeat"), HOLD]]
        )
        controller = _controller(transport, on_snapshot=snapshots.append)

        controller.start()
        await _until(lambda: controller.stats["heartbeats"] == 2)

        assert snapshots == [[]]
        await controller.aclose()

    async def test_malformed_frames_dropped_stream_survives(self) -> None:
        snapshots: list[list] = []
        transport = FakeTransport(
            [[
                Frame("data", "{not json"),
                Frame("data", json.dumps({"people": []})),
                Frame("data", json.dumps({"members": "A"})),
                _data([_member("A")]),
                HOLD,
            ]]
        )
        controller = _controller(transport, on_snapshot=snapshots.append)

        controller.start()
        await _until(lambda: len(snapshots) == 1)

        assert controller.stats["dropped_frames"] == 3
        assert controller.stats["errors"] == 0
        assert controller.state is ConnectionState.CONNECTED
        assert transport.opens == 1
        await controller.aclose()

    async def test_non_object_members_dropped_stream_survives(self) -> None:
        snapshots: list[list] = []
        transport = FakeTransport(
            [[
                Frame("data", '{"members": [1]}'),
                Frame("data", '{"members": [{"name": "A"}, "B"]}'),
                Frame("data", "[1, 2]"),
                _data([_member("A")]),
                HOLD,
            ]]
        )
        controller = _controller(transport, on_snapshot=snapshots.append)

        controller.start()
        await _until(lambda: len(snapshots) == 1)

        assert snapshots == [[_member("A")]]
        assert controller.stats["dropped_frames"] == 3
        assert controller.state is ConnectionState.CONNECTED
        assert not controller._stream_task.done()
        await controller.aclose()

    async def test_successful_open_resets_attempts(self) -> None:
        transport = FakeTransport(
            [StreamTransportError("a"), OSError("b"), [_data([]), HOLD]]
        )
        controller = _controller(transport)

        controller.start()
        await _until(lambda: controller.state is ConnectionState.CONNECTED)

        assert controller.attempts == 0
        assert controller.stats["errors"] == 2
        assert controller.stats["connects"] == 1
        assert transport.opens == 3
        await controller.aclose()

    async def test_server_close_counts_as_error(self) -> None:
        transport = FakeTransport([[_data([])], [_data([]), HOLD]])
        controller = _controller(transport)

        controller.start()
        await _until(lambda: controller.stats["connects"] == 2)

        assert controller.stats["errors"] == 1
        assert controller.state is ConnectionState.CONNECTED
        await controller.aclose()

    async def test_single_retry_timer(self) -> None:
        transport = FakeTransport([StreamTransportError("down")])
        controller = _controller(transport, base_delay=10.0, max_delay=10.0)

        controller.start()
        await _until(lambda: controller.retry_pending)
        timer = controller._retry_timer

        controller._on_error(StreamTransportError("again"))

        assert controller.state is ConnectionState.RECONNECTING
        assert controller._retry_timer is timer
        assert not timer.cancelled()
        await controller.aclose()
        assert timer.cancelled()


class TestFallback:
    async def test_falls_back_after_max_attempts(self) -> None:
        degraded: list[bool] = []
        snapshots: list[list] = []
        transport = FakeTransport(snapshots=[[_member("A", "home")]])
        controller = _controller(
            transport,
            on_degraded=lambda: degraded.append(True),
            on_snapshot=snapshots.append,
            max_attempts=10,
            polling_interval=60,
        )

        controller.start()
        await _until(lambda: transport.fetches == 1)

        assert controller.state is ConnectionState.FALLEN_BACK
        assert transport.opens == 10
        assert controller.stats["errors"] == 10
        assert degraded == [True]
        assert snapshots == [[_member("A", "home")]]
        assert not controller.retry_pending

        await asyncio.sleep(0.05)
        assert transport.opens == 10
        assert transport.fetches == 1
        await controller.aclose()

    async def test_non_streaming_transport_polls_immediately(self) -> None:
        degraded: list[bool] = []
        transport = FakeTransport(supports_streaming=False)
        controller = _controller(transport, on_degraded=lambda: degraded.append(True))

        controller.start()
        await _until(lambda: transport.fetches == 1)

        assert controller.state is ConnectionState.FALLEN_BACK
        assert transport.opens == 0
        assert degraded == [True]
        await controller.aclose()

    async def test_pull_failures_are_counted(self) -> None:
        transport = FakeTransport(
            snapshots=[StreamTransportError("503"), [_member("A")]],
            supports_streaming=False,
        )
        controller = _controller(transport)

        await controller.pull()
        await controller.pull()

        assert controller.stats["pulls"] == 2
        assert controller.stats["pull_errors"] == 1

    async def test_non_object_members_do_not_stop_polling(self, monkeypatch) -> None:
        monkeypatch.setattr("client.controller.POLLING_MIN_SEC", 0.001)
        snapshots: list[list] = []
        transport = FakeTransport(
            snapshots=[[1], [_member("A")]], supports_streaming=False
        )
        controller = _controller(
            transport, on_snapshot=snapshots.append, polling_interval=0.01
        )

        controller.start()
        await _until(lambda: transport.fetches >= 2)

        assert snapshots[0] == [_member("A")]
        assert controller.stats["pull_errors"] == 1
        assert not controller._poll_task.done()
        await controller.aclose()

    async def test_polled_changes_use_same_detection(self) -> None:
        changes: list[dict] = []
        transport = FakeTransport(
            snapshots=[[_member("A", "home")], [_member("A", "home")], [_member("A", "work")]],
            supports_streaming=False,
        )
        controller = _controller(transport, on_change=changes.append)

        for _ in range(3):
            await controller.pull()

        assert [(m["name"], m["activity"]) for m in changes] == [("A", "work")]


class TestClose:
    async def test_aclose_cancels_stream_and_timer(self) -> None:
        transport = FakeTransport([[_data([]), HOLD]])
        controller = _controller(transport)
        controller.start()
        await _until(lambda: controller.state is ConnectionState.CONNECTED)

        await controller.aclose()

        assert controller.state is ConnectionState.CLOSED
        assert controller._stream_task is None
        assert not controller.retry_pending

    async def test_aclose_during_backoff(self) -> None:
        transport = FakeTransport()
        controller = _controller(transport, base_delay=10.0, max_delay=10.0)
        controller.start()
        await _until(lambda: controller.retry_pending)

        await controller.aclose()
        await asyncio.sleep(0.01)

        assert not controller.retry_pending
        assert transport.opens == 1

    async def test_aclose_stops_polling(self) -> None:
        transport = FakeTransport(supports_streaming=False)
        controller = _controller(transport)
        controller.start()
        await _until(lambda: transport.fetches == 1)

        await controller.aclose()

        assert controller._poll_task is None
        assert controller.state is ConnectionState.CLOSED
