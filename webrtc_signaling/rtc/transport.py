"""aiortc glue: the peer connection and its JSON wire shapes."""

from __future__ import annotations

from typing import Any, Dict, Optional

from aiortc import RTCIceCandidate, RTCPeerConnection, RTCSessionDescription
from aiortc.rtcconfiguration import RTCConfiguration
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from ..net.protocol import IceCandidateDict, SessionDescriptionDict


CANDIDATE_PREFIX = "candidate:"


def create_peer_connection(rtc_config: Optional[RTCConfiguration] = None) -> RTCPeerConnection:
    return RTCPeerConnection(configuration=rtc_config)


def candidate_to_json(candidate: RTCIceCandidate) -> IceCandidateDict:
    # browsers expect the "candidate:" prefix, aiortc's sdp helpers omit it
    return {
        "candidate": CANDIDATE_PREFIX + candidate_to_sdp(candidate),
        "sdpMid": getattr(candidate, "sdpMid", None),
        "sdpMLineIndex": getattr(candidate, "sdpMLineIndex", None),
    }


def candidate_from_json(obj: Dict[str, Any]) -> RTCIceCandidate:
    cand_sdp = obj.get("candidate")
    if not isinstance(cand_sdp, str) or not cand_sdp:
        raise ValueError("missing candidate")
    if cand_sdp.startswith(CANDIDATE_PREFIX):
        cand_sdp = cand_sdp[len(CANDIDATE_PREFIX):]
    if len(cand_sdp.split()) < 8:
        raise ValueError(f"malformed candidate: {cand_sdp!r}")
    cand = candidate_from_sdp(cand_sdp)
    cand.sdpMid = obj.get("sdpMid")
    cand.sdpMLineIndex = obj.get("sdpMLineIndex")
    return cand


def description_to_json(desc: RTCSessionDescription) -> SessionDescriptionDict:
    return {"type": desc.type, "sdp": desc.sdp}


def description_from_json(obj: Dict[str, Any]) -> RTCSessionDescription:
    sdp = obj.get("sdp")
    kind = obj.get("type")
    if not isinstance(sdp, str) or not isinstance(kind, str):
        raise ValueError("description needs string 'type' and 'sdp'")
    # RTCSessionDescription validates the type itself
    return RTCSessionDescription(sdp=sdp, type=kind)
