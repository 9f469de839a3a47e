import asyncio
import contextlib
from typing import List, Optional

from aiortc import RTCIceCandidate, RTCSessionDescription
from pyee.asyncio import AsyncIOEventEmitter
from websockets.exceptions import ConnectionClosed

from webrtc_signaling.net import protocol
from webrtc_signaling.net.signaling_client import SignalingCallbacks
from webrtc_signaling.server.app import ServerOptions, SignalingServer


class RecordingHandle:
    """Connection handle that keeps what it was sent."""

    def __init__(self, closed: bool = False):
        self.closed = closed
        self.stalled = False
        self.sent: List[str] = []

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosed(None, None)
        if self.stalled:
            # a peer that stopped reading: the write never drains
            await asyncio.get_running_loop().create_future()
        self.sent.append(message)

    @property
    def envelopes(self) -> List[protocol.Envelope]:
        return [protocol.decode(raw) for raw in self.sent]


class FakeChannel:
    def __init__(self, label: str):
        self.label = label
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakePeerConnection(AsyncIOEventEmitter):
    """Stand-in for aiortc.RTCPeerConnection."""

    def __init__(self):
        super().__init__()
        self.iceConnectionState = "new"
        self.signalingState = "stable"
        self.connectionState = "new"
        self.localDescription: Optional[RTCSessionDescription] = None
        self.remote_descriptions: List[RTCSessionDescription] = []
        self.candidates: List[RTCIceCandidate] = []
        self.channels: List[FakeChannel] = []
        self.tracks: list = []
        self.closed = False
        self.reject_candidates = False

    @property
    def remoteDescription(self) -> Optional[RTCSessionDescription]:
        return self.remote_descriptions[-1] if self.remote_descriptions else None

    async def createOffer(self) -> RTCSessionDescription:
        return RTCSessionDescription(sdp="v=0\r\no=- 1 1 IN IP4 0.0.0.0\r\n", type="offer")

    async def createAnswer(self) -> RTCSessionDescription:
        return RTCSessionDescription(sdp="v=0\r\no=- 2 2 IN IP4 0.0.0.0\r\n", type="answer")

    async def setLocalDescription(self, desc: RTCSessionDescription) -> None:
        self.localDescription = desc

    async def setRemoteDescription(self, desc: RTCSessionDescription) -> None:
        self.remote_descriptions.append(desc)

    async def addIceCandidate(self, candidate: RTCIceCandidate) -> None:
        if self.reject_candidates:
            raise ValueError("candidate rejected")
        self.candidates.append(candidate)

    def createDataChannel(self, label: str) -> FakeChannel:
        channel = FakeChannel(label)
        self.channels.append(channel)
        return channel

    def addTrack(self, track) -> None:
        self.tracks.append(track)

    async def close(self) -> None:
        self.closed = True

    def change_state(self, attr: str, value: str) -> None:
        setattr(self, attr, value)
        self.emit(attr.lower() + "change")


class FakeSignaling:
    """Stand-in for SignalingClient; envelopes are pushed with deliver()."""

    def __init__(self):
        self.callbacks = SignalingCallbacks()
        self.sent: List[protocol.Envelope] = []
        self.connected = False
        self.disconnected = False
        self.fail_sends = False

    async def connect(self) -> None:
        self.connected = True

    def detach(self) -> None:
        self.callbacks = SignalingCallbacks()

    async def disconnect(self) -> None:
        self.disconnected = True

    async def send(self, envelope: protocol.Envelope) -> None:
        if self.fail_sends:
            raise protocol.ProtocolError("signaling not connected")
        self.sent.append(envelope)

    async def deliver(self, envelope: protocol.Envelope) -> None:
        if self.callbacks.on_envelope:
            await self.callbacks.on_envelope(envelope)


def make_candidate(ip: str = "192.168.1.2", port: int = 5000) -> RTCIceCandidate:
    return RTCIceCandidate(
        component=1,
        foundation="1",
        ip=ip,
        port=port,
        priority=2122260223,
        protocol="udp",
        type="host",
        sdpMid="0",
        sdpMLineIndex=0,
    )


class CandidateEvent:
    def __init__(self, candidate: Optional[RTCIceCandidate]):
        self.candidate = candidate


async def eventually(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@contextlib.asynccontextmanager
async def running_server(**kwargs):
    server = SignalingServer(ServerOptions(port=0, **kwargs))
    async with server:
        yield server
