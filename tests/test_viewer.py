"""Tests for the viewer negotiation state machine."""

import pytest

from broadcast_hub.errors import AlreadyWatching
from broadcast_hub.services.negotiation.viewer import Viewer, ViewerState

from conftest import FakeTrack, candidate


def record(emitter, *events):
    seen = []
    for event in events:
        emitter.on(event, lambda *args, _e=event: seen.append((_e,) + args))
    return seen


OFFER = {"type": "offer", "sdp": "b1-offer"}


@pytest.fixture
def viewer(transports):
    return Viewer(transports, id="v1")


async def offer_from(viewer, broadcaster_id="b1", sdp=OFFER):
    await viewer.receive_offer({"name": broadcaster_id, "target": viewer.id, "sdp": sdp})


class TestWatch:

    @pytest.mark.asyncio
    async def test_watch_emits_request(self, viewer):
        seen = record(viewer, "sendRequest")
        await viewer.watch("b1")

        assert viewer.state is ViewerState.REQUESTING
        assert viewer.watching == "b1"
        assert seen == [("sendRequest", {"name": "v1", "target": "b1"})]

    @pytest.mark.asyncio
    async def test_second_watch_fails(self, viewer):
        await viewer.watch("b1")
        with pytest.raises(AlreadyWatching):
            await viewer.watch("b1")
        assert viewer.watching == "b1"

    @pytest.mark.asyncio
    async def test_watch_allowed_again_after_disconnect(self, viewer, transports):
        await viewer.watch("b1")
        await offer_from(viewer)
        await transports.last.set_connection_state("connected")
        await transports.last.set_connection_state("disconnected")

        assert viewer.state is ViewerState.DISCONNECTED
        assert viewer.watching is None
        await viewer.watch("b1")
        assert viewer.state is ViewerState.REQUESTING

    @pytest.mark.asyncio
    async def test_leave_resets_to_idle(self, viewer, transports):
        await viewer.watch("b1")
        await offer_from(viewer)
        await viewer.leave()

        assert viewer.state is ViewerState.IDLE
        assert viewer.watching is None
        assert transports.last.closed


class TestOffer:

    @pytest.mark.asyncio
    async def test_offer_is_answered(self, viewer, transports):
        seen = record(viewer, "sendAccept")
        await viewer.watch("b1")
        await offer_from(viewer)

        transport = transports.last
        assert transport.remote_description == OFFER
        assert viewer.state is ViewerState.NEGOTIATING
        assert seen == [("sendAccept", {"name": "v1", "target": "b1", "sdp": transport.local_description})]

    @pytest.mark.asyncio
    async def test_offer_for_someone_else_is_ignored(self, viewer, transports):
        seen = record(viewer, "sendAccept")
        await viewer.watch("b1")
        await viewer.receive_offer({"name": "b1", "target": "v2", "sdp": OFFER})

        assert transports.created == []
        assert viewer.state is ViewerState.REQUESTING
        assert seen == []

    @pytest.mark.asyncio
    async def test_bad_offer_sends_no_answer(self, transports):
        def failing():
            transport = transports()
            transport.fail_remote_description = True
            return transport

        viewer = Viewer(failing, id="v1")
        seen = record(viewer, "sendAccept")
        await viewer.watch("b1")
        await offer_from(viewer)

        assert seen == []
        assert viewer.state is ViewerState.REQUESTING

    @pytest.mark.asyncio
    async def test_renegotiation_reuses_session(self, viewer, transports):
        seen = record(viewer, "sendAccept")
        await viewer.watch("b1")
        await offer_from(viewer)
        await transports.last.set_connection_state("connected")
        await offer_from(viewer, sdp={"type": "offer", "sdp": "b1-offer-2"})

        assert len(transports.created) == 1
        assert transports.last.remote_description["sdp"] == "b1-offer-2"
        assert viewer.state is ViewerState.CONNECTED
        assert len(seen) == 2


class TestCandidates:

    @pytest.mark.asyncio
    async def test_candidate_without_session_is_ignored(self, viewer, transports):
        await viewer.watch("b1")
        await viewer.add_ice_candidate({"name": "b1", "target": "v1", "candidate": candidate()})
        assert transports.created == []

    @pytest.mark.asyncio
    async def test_candidates_applied_after_offer(self, viewer, transports):
        await viewer.watch("b1")
        await offer_from(viewer)
        await viewer.add_ice_candidate({"name": "b1", "target": "v1", "candidate": candidate(1)})
        await viewer.add_ice_candidate({"name": "b9", "target": "v1", "candidate": candidate(2)})
        await viewer.add_ice_candidate({"name": "b1", "target": "v2", "candidate": candidate(3)})

        assert transports.last.candidates == [candidate(1)]

    @pytest.mark.asyncio
    async def test_local_candidates_are_emitted(self, viewer, transports):
        seen = record(viewer, "iceCandidate")
        await viewer.watch("b1")
        await offer_from(viewer)
        await transports.last.emit("icecandidate", candidate(5))

        assert seen == [("iceCandidate", {"name": "v1", "target": "b1", "candidate": candidate(5)})]


class TestConnectivity:

    @pytest.mark.asyncio
    async def test_connected_then_disconnected(self, viewer, transports):
        seen = record(viewer, "connected", "disconnected")
        await viewer.watch("b1")
        await offer_from(viewer)
        transport = transports.last

        await transport.set_connection_state("connected")
        assert viewer.state is ViewerState.CONNECTED

        await transport.set_connection_state("failed")
        assert viewer.state is ViewerState.DISCONNECTED
        assert transport.closed
        assert seen == [("connected", "b1"), ("disconnected", "b1")]

    @pytest.mark.asyncio
    async def test_tracks_collected_into_one_stream(self, viewer, transports):
        seen = record(viewer, "receivingMediaStream")
        await viewer.watch("b1")
        await offer_from(viewer)
        audio, video = FakeTrack("audio"), FakeTrack("video")

        await transports.last.emit("track", audio)
        await transports.last.emit("track", video)

        assert viewer.stream.get_tracks() == [audio, video]
        assert seen == [("receivingMediaStream", viewer.stream)]

    @pytest.mark.asyncio
    async def test_new_session_starts_a_new_stream(self, viewer, transports):
        await viewer.watch("b1")
        await offer_from(viewer)
        await transports.last.emit("track", FakeTrack("video"))
        first = viewer.stream

        await offer_from(viewer, broadcaster_id="b2")
        replacement = FakeTrack("video")
        await transports.last.emit("track", replacement)

        assert viewer.stream is not first
        assert viewer.stream.get_tracks() == [replacement]
