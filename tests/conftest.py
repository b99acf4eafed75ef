"""Shared fakes for hub and negotiation tests."""

import pytest
from typing import Any, Dict, List

from broadcast_hub.errors import TransportError
from broadcast_hub.services.hub import Connection, SignalingHub
from broadcast_hub.services.negotiation.base import PeerTransport


class FakeConnection(Connection):
    """Records every event the hub sends."""

    def __init__(self, connection_id: str, on_send=None):
        super().__init__(connection_id)
        self.sent: List[tuple[str, Any]] = []
        self.on_send = on_send

    async def send(self, event: str, data: Any = None) -> None:
        self.sent.append((event, data))
        if self.on_send is not None:
            await self.on_send(event, data)

    def events(self) -> List[str]:
        return [event for event, _ in self.sent]

    def payloads(self, event: str) -> List[Any]:
        return [data for e, data in self.sent if e == event]

    def clear(self) -> None:
        self.sent.clear()


class FakeTransport(PeerTransport):
    """In-memory PeerTransport; connectivity is driven by the test."""

    def __init__(self, label: str = "fake"):
        super().__init__()
        self.label = label
        self.tracks: List[Any] = []
        self.local_description: Dict[str, str] | None = None
        self.remote_description: Dict[str, str] | None = None
        self.candidates: List[Dict[str, Any]] = []
        self.closed = False
        self.offers = 0
        self.fail_remote_description = False
        self.fail_candidates = False
        self._signaling_state = "stable"
        self._connection_state = "new"

    @property
    def signaling_state(self) -> str:
        return self._signaling_state

    @property
    def connection_state(self) -> str:
        return self._connection_state

    def add_track(self, track: Any) -> None:
        self.tracks.append(track)

    async def create_offer(self) -> Dict[str, str]:
        self.offers += 1
        self.local_description = {"type": "offer", "sdp": f"{self.label}-offer-{self.offers}"}
        self._signaling_state = "have-local-offer"
        return self.local_description

    async def create_answer(self) -> Dict[str, str]:
        self.local_description = {"type": "answer", "sdp": f"{self.label}-answer"}
        self._signaling_state = "stable"
        return self.local_description

    async def set_remote_description(self, description: Dict[str, str]) -> None:
        if self.fail_remote_description:
            raise TransportError("bad description")
        self.remote_description = description
        self._signaling_state = "have-remote-offer" if description["type"] == "offer" else "stable"

    async def add_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        if self.fail_candidates:
            raise TransportError("bad candidate")
        self.candidates.append(candidate)

    async def close(self) -> None:
        self.closed = True
        self._connection_state = "closed"

    async def set_connection_state(self, state: str) -> None:
        self._connection_state = state
        await self.emit("connectionstatechange", state)


class TransportRecorder:
    """Transport factory that keeps every transport it creates."""

    def __init__(self, label: str = "fake"):
        self.label = label
        self.created: List[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(f"{self.label}{len(self.created)}")
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class FakeTrack:
    def __init__(self, kind: str = "video"):
        self.kind = kind


def candidate(n: int = 1) -> Dict[str, Any]:
    return {"candidate": f"candidate:{n} 1 udp 2122260223 10.0.0.{n} 5000{n} typ host", "sdpMid": "0", "sdpMLineIndex": 0}


@pytest.fixture
def hub():
    return SignalingHub()


@pytest.fixture
def make_connection(hub):
    def _make(connection_id: str) -> FakeConnection:
        connection = FakeConnection(connection_id)
        hub.connect(connection)
        return connection
    return _make


@pytest.fixture
def transports():
    return TransportRecorder()
