import asyncio
import logging
import random
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from broadcast_hub.errors import TransportError
from .events import EventEmitter

logger = logging.getLogger(__name__)

# Connection states after which a peer session is considered gone
CLOSED_STATES = ("disconnected", "failed", "closed")


def generate_id() -> str:
    return "-".join(format(random.randrange(100_000_000), "x") for _ in range(4))


class PeerTransport(EventEmitter, ABC):
    """Opaque peer connection capability used by both negotiation roles.

    Implementations emit:
      "icecandidate"           (candidate: dict) a locally gathered candidate
      "connectionstatechange"  (state: str) new connectivity state
      "negotiationneeded"      () local changes require a fresh offer
      "track"                  (track) a remote media track arrived

    Descriptions are plain dicts {"type", "sdp"}; candidates are dicts
    {"candidate", "sdpMid", "sdpMLineIndex"}. Failures raise TransportError.
    """

    @property
    @abstractmethod
    def signaling_state(self) -> str:
        raise NotImplementedError

    @property
    @abstractmethod
    def connection_state(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def add_track(self, track: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    async def create_offer(self) -> Dict[str, str]:
        """Create an offer, set it as the local description and return it."""
        raise NotImplementedError

    @abstractmethod
    async def create_answer(self) -> Dict[str, str]:
        """Create an answer, set it as the local description and return it."""
        raise NotImplementedError

    @abstractmethod
    async def set_remote_description(self, description: Dict[str, str]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def add_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError


TransportFactory = Callable[[], PeerTransport]


class MediaStream:
    """A broadcastable bundle of media tracks."""

    def __init__(self, tracks: Iterable[Any] = (), stream_id: Optional[str] = None):
        self.id = stream_id or generate_id()
        self._tracks: List[Any] = [t for t in tracks if t is not None]

    @classmethod
    def from_player(cls, player: Any) -> "MediaStream":
        # aiortc MediaPlayer exposes .audio / .video (either may be None)
        return cls([getattr(player, "audio", None), getattr(player, "video", None)])

    def add_track(self, track: Any) -> None:
        if track is not None and track not in self._tracks:
            self._tracks.append(track)

    def get_tracks(self) -> List[Any]:
        return list(self._tracks)

    def __repr__(self) -> str:
        return f"MediaStream(id={self.id!r}, tracks={len(self._tracks)})"


class PeerSession:
    """Negotiation state held for one remote peer."""

    def __init__(self, remote_id: str, transport: PeerTransport, state: Enum):
        self.remote_id = remote_id
        self.transport = transport
        self.state = state
        self.remote_description_set = False
        self.pending_candidates: List[Dict[str, Any]] = []
        # At most one offer/answer task in flight
        self.lock = asyncio.Lock()

    async def apply_remote_description(self, description: Dict[str, str]) -> bool:
        try:
            await self.transport.set_remote_description(description)
        except TransportError as e:
            logger.error("Failed to apply remote description from %s: %s", self.remote_id, e)
            return False
        self.remote_description_set = True
        await self.flush_candidates()
        return True

    async def add_candidate(self, candidate: Optional[Dict[str, Any]]) -> None:
        if not candidate:
            return
        if not self.remote_description_set:
            self.pending_candidates.append(candidate)
            logger.debug("Queued early candidate from %s (%d pending)", self.remote_id, len(self.pending_candidates))
            return
        await self._apply_candidate(candidate)

    async def flush_candidates(self) -> None:
        pending, self.pending_candidates = self.pending_candidates, []
        for candidate in pending:
            await self._apply_candidate(candidate)

    async def close(self) -> None:
        self.pending_candidates = []
        try:
            await self.transport.close()
        except TransportError as e:
            logger.warning("Error closing transport for %s: %s", self.remote_id, e)

    async def _apply_candidate(self, candidate: Dict[str, Any]) -> None:
        try:
            await self.transport.add_ice_candidate(candidate)
        except TransportError as e:
            logger.error("Failed to add candidate from %s: %s", self.remote_id, e)

    def __repr__(self) -> str:
        return f"PeerSession(remote_id={self.remote_id!r}, state={self.state.value})"
