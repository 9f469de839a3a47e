import logging

from webrtc_signaling.logging_config import setup_logging
from webrtc_signaling.main import build_parser


def test_serve_defaults() -> None:
    args = build_parser().parse_args(["serve"])

    assert args.command == "serve"
    assert (args.host, args.port, args.path) == ("127.0.0.1", 6789, "/_web-rtc")
    assert args.debug is False


def test_client_arguments() -> None:
    args = build_parser().parse_args(["--port", "7001", "client", "--connect", "B1", "--label", "chat"])

    assert args.port == 7001
    assert args.connect == "B1"
    assert args.label == "chat"


def test_debug_flag_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("WEBRTC_SIGNALING_DEBUG", "1")

    assert build_parser().parse_args(["serve"]).debug is True


def test_setup_logging_debug_overrides_level() -> None:
    root = logging.getLogger()
    before = root.level
    try:
        setup_logging("warning", debug=True)
        assert root.level == logging.DEBUG
        setup_logging("warning")
        assert root.level == logging.WARNING
    finally:
        root.setLevel(before)
