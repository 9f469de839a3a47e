from conftest import RecordingHandle

from webrtc_signaling.server.registry import SessionRegistry


def test_lookup_returns_registered_handle_until_removed() -> None:
    registry = SessionRegistry()
    handle = RecordingHandle()

    identifier = registry.register(handle)

    assert registry.lookup(identifier) is handle
    assert identifier in registry
    assert len(registry) == 1

    registry.remove(identifier)

    assert registry.lookup(identifier) is None
    assert len(registry) == 0


def test_remove_is_idempotent() -> None:
    registry = SessionRegistry()
    identifier = registry.register(RecordingHandle())

    assert registry.remove(identifier) is True
    assert registry.remove(identifier) is False
    assert registry.remove("never-registered") is False


def test_lookup_of_unknown_or_missing_identifier_is_none() -> None:
    registry = SessionRegistry()
    registry.register(RecordingHandle())

    assert registry.lookup("Z9") is None
    assert registry.lookup(None) is None
    assert registry.lookup("") is None


def test_register_redraws_on_collision_with_live_entry() -> None:
    drawn = iter(["same", "same", "other"])
    registry = SessionRegistry(allocator=lambda seed: next(drawn))

    first = registry.register(RecordingHandle())
    second = registry.register(RecordingHandle())

    assert first == "same"
    assert second == "other"
    assert sorted(registry.identifiers()) == ["other", "same"]


def test_register_passes_seed_to_allocator() -> None:
    seen = []

    def allocator(seed):
        seen.append(seed)
        return "id-1"

    registry = SessionRegistry(allocator=allocator)
    registry.register(RecordingHandle(), seed="abcdefgh")

    assert seen == ["abcdefgh"]
