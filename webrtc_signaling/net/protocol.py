"""Signaling protocol helpers.

Every frame on the relay websocket is one JSON object:

    {"type": "<kind>", "payload": {"key": ..., "desc": ..., "candidate": ...}}

All payload fields are optional on the wire; each kind documents which ones
it needs. Unknown kinds decode fine and are ignored by both ends.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TypedDict, Union


# Message type constants
REGISTER = "register"
OFFER = "offer"
ANSWER = "answer"
ANSWER_OK = "answer-ok"
ICE_CANDIDATE = "ice-candidate"


class SessionDescriptionDict(TypedDict, total=False):
	type: str
	sdp: str


class IceCandidateDict(TypedDict, total=False):
	candidate: str
	sdpMid: Optional[str]
	sdpMLineIndex: Optional[int]


class ProtocolError(Exception):
	"""Base class for signaling protocol errors."""

	def __init__(self, message: str):
		super().__init__(message)
		self.message = message


class DecodeError(ProtocolError):
	"""A frame that is not a valid envelope."""


@dataclass
class Payload:
	key: Optional[str] = None
	desc: Optional[Dict[str, Any]] = None
	candidate: Optional[Dict[str, Any]] = None

	def to_dict(self) -> Dict[str, Any]:
		out: Dict[str, Any] = {}
		if self.key is not None:
			out["key"] = self.key
		if self.desc is not None:
			out["desc"] = self.desc
		if self.candidate is not None:
			out["candidate"] = self.candidate
		return out


@dataclass
class Envelope:
	kind: str
	payload: Payload = field(default_factory=Payload)


def make_register(key: str) -> Envelope:
	return Envelope(REGISTER, Payload(key=key))


def make_offer(key: str, desc: SessionDescriptionDict) -> Envelope:
	return Envelope(OFFER, Payload(key=key, desc=dict(desc)))


def make_answer(key: str, desc: SessionDescriptionDict) -> Envelope:
	return Envelope(ANSWER, Payload(key=key, desc=dict(desc)))


def make_answer_ok(key: str) -> Envelope:
	return Envelope(ANSWER_OK, Payload(key=key))


def make_ice(candidate: IceCandidateDict, key: Optional[str] = None) -> Envelope:
	return Envelope(ICE_CANDIDATE, Payload(key=key, candidate=dict(candidate)))


def encode(envelope: Envelope) -> str:
	msg = {"type": envelope.kind, "payload": envelope.payload.to_dict()}
	return json.dumps(msg, separators=(",", ":"), ensure_ascii=False)


def decode(raw: Union[str, bytes]) -> Envelope:
	"""Parse one frame, raising DecodeError when it is not an envelope."""

	if isinstance(raw, (bytes, bytearray)):
		try:
			raw = bytes(raw).decode("utf-8")
		except UnicodeDecodeError as e:
			raise DecodeError("invalid-utf8") from e

	try:
		msg = json.loads(raw)
	except json.JSONDecodeError as e:
		raise DecodeError("invalid-json") from e

	if not isinstance(msg, dict):
		raise DecodeError("invalid-message")

	kind = msg.get("type")
	if not isinstance(kind, str):
		raise DecodeError("missing-type")

	body = msg.get("payload")
	if body is None:
		body = {}
	if not isinstance(body, dict):
		raise DecodeError("invalid-payload")

	key = body.get("key")
	if key is not None and not isinstance(key, str):
		raise DecodeError("invalid-key")
	desc = body.get("desc")
	if desc is not None and not isinstance(desc, dict):
		raise DecodeError("invalid-desc")
	candidate = body.get("candidate")
	if candidate is not None and not isinstance(candidate, dict):
		raise DecodeError("invalid-candidate")

	return Envelope(kind, Payload(key=key, desc=desc, candidate=candidate))
