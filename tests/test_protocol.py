import json

import pytest

from webrtc_signaling.net import protocol


OFFER_DESC = {"type": "offer", "sdp": "v=0\r\n"}
CANDIDATE = {"candidate": "candidate:1 1 udp 2122260223 192.168.1.2 5000 typ host", "sdpMid": "0", "sdpMLineIndex": 0}


@pytest.mark.parametrize(
    "envelope",
    [
        protocol.make_register("A1"),
        protocol.make_offer("B1", OFFER_DESC),
        protocol.make_answer("A1", {"type": "answer", "sdp": "v=0\r\n"}),
        protocol.make_answer_ok("B1"),
        protocol.make_ice(CANDIDATE, key="A1"),
    ],
    ids=lambda e: e.kind,
)
def test_decode_inverts_encode(envelope: protocol.Envelope) -> None:
    assert protocol.decode(protocol.encode(envelope)) == envelope


def test_encode_uses_wire_field_names_and_omits_absent_fields() -> None:
    raw = protocol.encode(protocol.make_ice(CANDIDATE))

    assert json.loads(raw) == {"type": "ice-candidate", "payload": {"candidate": CANDIDATE}}


def test_decode_accepts_bytes_and_missing_payload() -> None:
    envelope = protocol.decode(b'{"type":"register"}')

    assert envelope.kind == protocol.REGISTER
    assert envelope.payload == protocol.Payload()


def test_unknown_type_decodes() -> None:
    envelope = protocol.decode('{"type":"bye","payload":{"key":"A1"}}')

    assert envelope.kind == "bye"
    assert envelope.payload.key == "A1"


@pytest.mark.parametrize(
    "raw, error",
    [
        ("not json", "invalid-json"),
        (b"\xff\xfe", "invalid-utf8"),
        ("[1, 2]", "invalid-message"),
        ('{"payload": {}}', "missing-type"),
        ('{"type": 3}', "missing-type"),
        ('{"type": "offer", "payload": "x"}', "invalid-payload"),
        ('{"type": "offer", "payload": {"key": 7}}', "invalid-key"),
        ('{"type": "offer", "payload": {"desc": "sdp"}}', "invalid-desc"),
        ('{"type": "ice-candidate", "payload": {"candidate": []}}', "invalid-candidate"),
    ],
)
def test_decode_rejects_malformed_frames(raw, error: str) -> None:
    with pytest.raises(protocol.DecodeError) as excinfo:
        protocol.decode(raw)

    assert excinfo.value.message == error
    assert isinstance(excinfo.value, protocol.ProtocolError)
