import pytest

from verifyflow.v1.core.exceptions import HandlerAlreadyRegisteredError
from verifyflow.v1.core.registries import HandlerRegistry, Registry


class MockHandler:
    async def handle(self, job):
        return {"handled": job}


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    assert registry.list() == []

    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.list() == ["test_impl"]
    assert registry.contains("test_impl")
    assert not registry.contains("other")

    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")


def test_registry_freeze():
    """Test that frozen registries reject new registrations."""
    registry = Registry[str]("Test")
    registry.register("first", "value")
    registry.freeze()

    assert registry.is_frozen()
    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.register("second", "value")

    assert registry.get("first") == "value"


def test_handler_registry_keys():
    """Test that handlers are keyed by queue and job type."""
    registry = HandlerRegistry()
    handler = MockHandler()

    registry.register(HandlerRegistry.key("screening", "pep-screening"), handler)

    assert HandlerRegistry.key("screening", "pep-screening") == "screening:pep-screening"
    assert registry.get("screening:pep-screening") is handler
    assert registry.items() == [("screening:pep-screening", handler)]


def test_handler_registry_rejects_duplicates():
    """Test that a second handler for the same queue and job type is rejected."""
    registry = HandlerRegistry()
    registry.register(HandlerRegistry.key("screening", "pep-screening"), MockHandler())

    with pytest.raises(HandlerAlreadyRegisteredError) as exc_info:
        registry.register(HandlerRegistry.key("screening", "pep-screening"), MockHandler())

    assert exc_info.value.status_code == 409
    assert exc_info.value.details == {"queue": "screening", "job_type": "pep-screening"}

    # Same job type on another queue is a different registration
    registry.register(HandlerRegistry.key("periodic-rescreening", "pep-screening"), MockHandler())
    assert len(registry.list()) == 2


def test_registry_annotations_resolve_to_builtins():
    """Test that method return annotations resolve to builtin list, not the list method."""
    import typing

    items_hint = typing.get_type_hints(Registry.items)["return"]
    names_hint = typing.get_type_hints(Registry.list)["return"]

    assert typing.get_origin(items_hint) is list
    assert typing.get_origin(names_hint) is list

    registry = Registry[int]("Test")
    registry.register("one", 1)
    assert registry.items() == [("one", 1)]
    assert registry.list() == ["one"]
