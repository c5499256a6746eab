"""
Unit tests for CorrelationRegistry.
"""

import pytest

from emsx_route.core.correlation import CorrelationRegistry
from emsx_route.core.events import CorrelationId


@pytest.fixture
def registry():
    return CorrelationRegistry()


class TestCorrelationRegistry:
    """Test suite for the outstanding request registry."""

    def test_register_and_lookup(self, registry):
        cid = CorrelationId.new()
        request = object()

        registry.register(cid, request)

        entry = registry.lookup(cid)
        assert entry.request is request
        assert entry.correlation_id == cid
        assert entry.responses == 0
        assert len(registry) == 1

    def test_lookup_unknown_returns_none(self, registry):
        assert registry.lookup(CorrelationId.new()) is None

    def test_register_twice_raises(self, registry):
        cid = CorrelationId.new()
        registry.register(cid, object())

        with pytest.raises(ValueError, match="already registered"):
            registry.register(cid, object())

    def test_register_requires_correlation_id(self, registry):
        with pytest.raises(TypeError, match="correlation_id must be CorrelationId"):
            registry.register(42, object())

    def test_record_response_counts(self, registry):
        cid = CorrelationId.new()
        registry.register(cid, object())

        registry.record_response(cid)
        registry.record_response(cid)

        assert registry.lookup(cid).responses == 2

    def test_complete_moves_entry_out_of_pending(self, registry):
        cid = CorrelationId.new()
        registry.register(cid, object())

        entry = registry.complete(cid)

        assert entry.correlation_id == cid
        assert registry.pending() == []
        assert registry.completed == [entry]

    def test_complete_unknown_is_ignored(self, registry):
        assert registry.complete(CorrelationId.new()) is None
        assert registry.completed == []

    def test_ids_are_independent(self, registry):
        first, second = CorrelationId.new(), CorrelationId.new()
        registry.register(first, "first")
        registry.register(second, "second")

        registry.complete(first)

        assert [entry.request for entry in registry.pending()] == ["second"]
