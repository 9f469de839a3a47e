"""WebSocket signaling client.

This is intentionally unaware of aiortc. It only moves envelopes between the
relay server and whoever registered `on_envelope`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

import websockets
from websockets.exceptions import ConnectionClosed

from . import protocol


logger = logging.getLogger(__name__)


AsyncCallback = Callable[..., Awaitable[None]]


@dataclass
class SignalingCallbacks:
	on_envelope: Optional[AsyncCallback] = None  # (envelope: protocol.Envelope)
	on_closed: Optional[AsyncCallback] = None  # ()


class SignalingClient:
	def __init__(
		self,
		url: str,
		callbacks: Optional[SignalingCallbacks] = None,
		subprotocols: Optional[Sequence[str]] = None,
	):
		self.url = url
		self.callbacks = callbacks or SignalingCallbacks()
		self.subprotocols = list(subprotocols or [])

		self._ws: Optional[Any] = None
		self._recv_task: Optional[asyncio.Task[None]] = None
		self._send_lock = asyncio.Lock()

	async def connect(self) -> None:
		if self._recv_task and not self._recv_task.done():
			return

		logger.info("signaling connect url=%s", self.url)
		try:
			self._ws = await websockets.connect(self.url, subprotocols=self.subprotocols or None)
		except Exception:
			logger.exception("signaling connect failed url=%s", self.url)
			raise
		self._recv_task = asyncio.create_task(self._recv_loop(), name="signaling-recv")

	def detach(self) -> None:
		"""Stop delivering anything to the registered callbacks."""

		self.callbacks = SignalingCallbacks()

	async def disconnect(self) -> None:
		logger.info("signaling disconnect")
		ws, self._ws = self._ws, None
		task, self._recv_task = self._recv_task, None
		if task and task is not asyncio.current_task():
			task.cancel()
			try:
				await task
			except asyncio.CancelledError:
				pass

		if ws:
			try:
				await ws.close()
			except ConnectionClosed:
				pass

	async def send(self, envelope: protocol.Envelope) -> None:
		ws = self._ws
		if ws is None:
			raise protocol.ProtocolError("signaling not connected")
		if envelope.kind in (protocol.OFFER, protocol.ANSWER):
			logger.info("signaling send type=%s to=%s", envelope.kind, envelope.payload.key)
		else:
			logger.debug("signaling send type=%s to=%s", envelope.kind, envelope.payload.key)
		raw = protocol.encode(envelope)
		async with self._send_lock:
			await ws.send(raw)

	async def _recv_loop(self) -> None:
		assert self._ws is not None
		ws = self._ws
		logger.debug("signaling recv loop started")

		try:
			async for raw in ws:
				try:
					envelope = protocol.decode(raw)
				except protocol.DecodeError as e:
					logger.warning("signaling dropped frame error=%s", e.message)
					continue

				handler = self.callbacks.on_envelope
				if handler is None:
					continue
				try:
					await handler(envelope)
				except Exception:
					logger.exception("signaling handler failed type=%s", envelope.kind)

		except ConnectionClosed as e:
			logger.info("signaling connection closed code=%s", e.rcvd.code if e.rcvd else None)
		finally:
			logger.debug("signaling recv loop stopped")
			if self._ws is ws:
				self._ws = None
			on_closed = self.callbacks.on_closed
			if on_closed:
				await on_closed()
