"""Signaling endpoint: one relay connection plus one peer connection.

The relay assigns this client an identifier (`register`). After that the
client can offer to any other identifier, and answers every offer it gets.
Negotiation progress is tracked per remote peer; `status` and `connected`
are the aggregate view.

Callbacks are single-slot: registering a new one replaces the previous one.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from aiortc.rtcconfiguration import RTCConfiguration
from websockets.exceptions import ConnectionClosed

from ..net import protocol
from ..net.config import DEFAULT_HOST, DEFAULT_PATH, DEFAULT_PORT, build_url, env_int
from ..net.signaling_client import SignalingCallbacks, SignalingClient
from . import negotiation
from .negotiation import NegotiationState
from .transport import (
    candidate_from_json,
    candidate_to_json,
    create_peer_connection,
    description_from_json,
    description_to_json,
)


logger = logging.getLogger(__name__)


Callback = Callable[..., Any]  # sync or async


@dataclass
class ClientOptions:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    path: str = DEFAULT_PATH
    protocols: Sequence[str] = ()
    # handed to RTCPeerConnection unchanged
    rtc_configuration: Optional[RTCConfiguration] = None

    @property
    def url(self) -> str:
        return build_url(self.host, self.port, self.path)

    @classmethod
    def from_env(cls) -> "ClientOptions":
        return cls(
            host=os.environ.get("WEBRTC_SIGNALING_HOST", cls.host),
            port=env_int("WEBRTC_SIGNALING_PORT", cls.port),
            path=os.environ.get("WEBRTC_SIGNALING_PATH", cls.path),
        )


@dataclass
class ClientCallbacks:
    on_ready: Optional[Callback] = None  # ()
    on_connection: Optional[Callback] = None  # (channel: RTCDataChannel)
    on_connection_stream: Optional[Callback] = None  # (track: MediaStreamTrack)


class WebRTCClient:
    def __init__(
        self,
        options: Optional[ClientOptions] = None,
        transport: Any = None,
        signaling: Optional[SignalingClient] = None,
    ):
        self.options = options or ClientOptions()
        self.peer = transport if transport is not None else create_peer_connection(self.options.rtc_configuration)
        self.signaling = signaling or SignalingClient(self.options.url, subprotocols=self.options.protocols)
        self.signaling.callbacks = SignalingCallbacks(
            on_envelope=self._on_envelope,
            on_closed=self._on_signaling_closed,
        )

        self._id: Optional[str] = None
        self._state = NegotiationState()
        self._callbacks = ClientCallbacks()
        self._ready_evt = asyncio.Event()
        self._closed = False

        self._ice_connection_state = self.peer.iceConnectionState
        self._signaling_state = self.peer.signalingState
        self._connection_state = self.peer.connectionState

        self._subscriptions: List[Tuple[str, Callable[..., Any]]] = []
        self._subscribe("icecandidate", self._on_icecandidate)
        self._subscribe("iceconnectionstatechange", self._on_ice_connection_state_change)
        self._subscribe("signalingstatechange", self._on_signaling_state_change)
        self._subscribe("connectionstatechange", self._on_connection_state_change)
        self._subscribe("datachannel", self._on_datachannel)
        self._subscribe("track", self._on_track)

    # ----------------------
    # Observable state
    # ----------------------
    @property
    def id(self) -> Optional[str]:
        return self._id

    @property
    def connected(self) -> List[str]:
        return self._state.connected

    @property
    def status(self) -> str:
        return self._state.status

    @property
    def sessions(self) -> Dict[str, str]:
        return {peer_id: s.phase for peer_id, s in self._state.sessions.items()}

    @property
    def ice_connection_state(self) -> str:
        return self._ice_connection_state

    @property
    def signaling_state(self) -> str:
        return self._signaling_state

    @property
    def connection_state(self) -> str:
        return self._connection_state

    # ----------------------
    # Lifecycle
    # ----------------------
    async def open(self) -> None:
        if self._closed:
            raise protocol.ProtocolError("client destroyed")
        await self.signaling.connect()

    async def wait_ready(self, timeout: Optional[float] = None) -> str:
        await asyncio.wait_for(self._ready_evt.wait(), timeout)
        if self._closed or self._id is None:
            raise protocol.ProtocolError("client closed before registration")
        return self._id

    async def destroy(self) -> None:
        if self._closed:
            return
        self._closed = True

        # Revoke every subscription before touching the underlying resources.
        for event, handler in self._subscriptions:
            self.peer.remove_listener(event, handler)
        self._subscriptions.clear()
        self.signaling.detach()
        self._callbacks = ClientCallbacks()
        self._state.close()
        self._ready_evt.set()
        logger.info("rtc destroy id=%s", self._id)

        try:
            await self.signaling.disconnect()
        finally:
            await self.peer.close()

    async def __aenter__(self) -> "WebRTCClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.destroy()

    # ----------------------
    # Operations
    # ----------------------
    async def connect(self, target_id: str, label: str = "label") -> Any:
        """Open a data channel and offer it to `target_id`."""

        self._require_registered()
        channel = self.peer.createDataChannel(label)
        try:
            await self._send_offer(target_id)
        except Exception:
            channel.close()
            raise
        return channel

    async def connect_stream(self, target_id: str, stream: Any) -> Any:
        """Add every track of `stream` and offer them to `target_id`.

        `stream` is either an iterable of tracks or anything with getTracks().
        """

        self._require_registered()
        tracks: Iterable[Any] = stream.getTracks() if hasattr(stream, "getTracks") else stream
        for track in tracks:
            self.peer.addTrack(track)
        await self._send_offer(target_id)
        return self.peer

    def on_ready(self, fn: Callback) -> None:
        self._callbacks.on_ready = fn

    def on_connection(self, fn: Callback) -> None:
        self._callbacks.on_connection = fn

    def on_connection_stream(self, fn: Callback) -> None:
        self._callbacks.on_connection_stream = fn

    # ----------------------
    # Envelope handling
    # ----------------------
    async def _on_envelope(self, envelope: protocol.Envelope) -> None:
        if self._closed:
            return
        kind = envelope.kind
        key = envelope.payload.key
        desc = envelope.payload.desc

        if kind == protocol.REGISTER:
            if not key:
                logger.debug("rtc register without key dropped")
                return
            self._id = key
            self._state.mark_ready()
            self._ready_evt.set()
            logger.info("rtc registered id=%s", key)
            await self._invoke(self._callbacks.on_ready)
            return

        if kind == protocol.OFFER:
            if not key or desc is None:
                logger.debug("rtc incomplete offer dropped")
                return
            await self._handle_offer(key, desc)
            return

        if kind == protocol.ANSWER:
            if not key or desc is None:
                logger.debug("rtc incomplete answer dropped")
                return
            await self._handle_answer(key, desc)
            return

        if kind == protocol.ANSWER_OK:
            if not key:
                logger.debug("rtc incomplete answer-ok dropped")
                return
            self._state.complete(key)
            return

        if kind == protocol.ICE_CANDIDATE:
            if envelope.payload.candidate is None:
                logger.debug("rtc ice-candidate without candidate dropped")
                return
            await self._handle_ice(key, envelope.payload.candidate)
            return

        logger.debug("rtc ignoring unknown type=%s", kind)

    async def _handle_offer(self, peer_id: str, desc: Dict[str, Any]) -> None:
        logger.info("rtc offer received from=%s", peer_id)
        await self.peer.setRemoteDescription(description_from_json(desc))
        answer = await self.peer.createAnswer()
        await self.peer.setLocalDescription(answer)
        local = self.peer.localDescription or answer
        await self.signaling.send(protocol.make_answer(peer_id, description_to_json(local)))
        self._state.session(peer_id).answer_sent()

    async def _handle_answer(self, peer_id: str, desc: Dict[str, Any]) -> None:
        logger.info("rtc answer received from=%s", peer_id)
        await self.peer.setRemoteDescription(description_from_json(desc))
        await self.signaling.send(protocol.make_answer_ok(peer_id))
        self._state.complete(peer_id)

    async def _handle_ice(self, peer_id: Optional[str], obj: Dict[str, Any]) -> None:
        try:
            await self.peer.addIceCandidate(candidate_from_json(obj))
        except Exception:
            # a stale or invalid candidate must not abort negotiation
            logger.warning("rtc ice candidate rejected from=%s", peer_id, exc_info=True)
            return
        logger.debug("rtc ice candidate added from=%s", peer_id)
        session = self._state.get(peer_id)
        if session is not None:
            session.remote_candidates += 1

    async def _send_offer(self, target_id: str) -> None:
        logger.info("rtc creating offer to=%s", target_id)
        offer = await self.peer.createOffer()
        await self.peer.setLocalDescription(offer)
        local = self.peer.localDescription or offer
        await self.signaling.send(protocol.make_offer(target_id, description_to_json(local)))
        self._state.session(target_id).offer_sent()

    def _require_registered(self) -> None:
        if self._state.status not in (negotiation.READY, negotiation.CONNECTED):
            raise protocol.ProtocolError(f"cannot offer while {self._state.status}")

    async def _on_signaling_closed(self) -> None:
        if not self._closed:
            logger.warning("rtc signaling connection lost id=%s", self._id)

    # ----------------------
    # Transport events
    # ----------------------
    def _subscribe(self, event: str, handler: Callable[..., Any]) -> None:
        self.peer.on(event, handler)
        self._subscriptions.append((event, handler))

    async def _on_icecandidate(self, event: Any) -> None:
        if self._closed or event is None or event.candidate is None:
            return
        try:
            await self.signaling.send(protocol.make_ice(candidate_to_json(event.candidate)))
        except (protocol.ProtocolError, ConnectionClosed):
            logger.warning("rtc local ice candidate not sent id=%s", self._id)

    def _on_ice_connection_state_change(self) -> None:
        self._ice_connection_state = self.peer.iceConnectionState
        logger.debug("rtc iceConnectionState=%s", self._ice_connection_state)

    def _on_signaling_state_change(self) -> None:
        self._signaling_state = self.peer.signalingState
        logger.debug("rtc signalingState=%s", self._signaling_state)

    def _on_connection_state_change(self) -> None:
        self._connection_state = self.peer.connectionState
        logger.debug("rtc connectionState=%s", self._connection_state)

    async def _on_datachannel(self, channel: Any) -> None:
        logger.info("rtc remote datachannel label=%s", getattr(channel, "label", None))
        await self._invoke(self._callbacks.on_connection, channel)

    async def _on_track(self, track: Any) -> None:
        logger.info("rtc remote track kind=%s", getattr(track, "kind", None))
        await self._invoke(self._callbacks.on_connection_stream, track)

    async def _invoke(self, fn: Optional[Callback], *args: Any) -> None:
        if fn is None or self._closed:
            return
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("rtc callback failed fn=%r", fn)
