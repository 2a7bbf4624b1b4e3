"""Unit tests for resources.py - Resource model."""

from datetime import datetime, timezone

from resources import Resource, ResourceConflictError, ResourceNotFoundError


class TestResource:
    """Tests for Resource helpers."""

    def test_defaults(self):
        """Test default field values."""
        r = Resource(name="test")
        assert r.namespace == "default"
        assert r.spec == {}
        assert r.finalizers == []
        assert r.deletion_timestamp is None
        assert r.generation == 1
        assert r.resource_version == 1
        assert r.id is None

    def test_key(self):
        """Test key joins namespace and name."""
        assert Resource(name="app", namespace="prod").key == "prod/app"

    def test_add_finalizer(self):
        """Test adding a finalizer once."""
        r = Resource(name="test")
        assert r.add_finalizer("finalizer") is True
        assert r.add_finalizer("finalizer") is False
        assert r.finalizers == ["finalizer"]

    def test_contains_finalizer(self):
        """Test finalizer lookup."""
        r = Resource(name="test", finalizers=["a"])
        assert r.contains_finalizer("a")
        assert not r.contains_finalizer("b")

    def test_remove_finalizer(self):
        """Test removing keeps the other finalizers in order."""
        r = Resource(name="test", finalizers=["a", "b", "c"])
        assert r.remove_finalizer("b") is True
        assert r.finalizers == ["a", "c"]

    def test_remove_missing_finalizer(self):
        """Test removing an absent finalizer reports False."""
        r = Resource(name="test", finalizers=["a"])
        assert r.remove_finalizer("b") is False
        assert r.finalizers == ["a"]

    def test_is_being_deleted(self):
        """Test deletion state follows the timestamp."""
        r = Resource(name="test")
        assert not r.is_being_deleted
        r.deletion_timestamp = datetime.now(timezone.utc)
        assert r.is_being_deleted

    def test_finalizer_lists_not_shared(self):
        """Test each resource gets its own finalizer list."""
        a, b = Resource(name="a"), Resource(name="b")
        a.add_finalizer("x")
        assert b.finalizers == []


class TestResourceNotFoundError:
    """Tests for ResourceNotFoundError."""

    def test_message_and_fields(self):
        """Test the error names the missing resource."""
        err = ResourceNotFoundError("ns", "name")
        assert str(err) == "Resource ns/name not found"
        assert err.namespace == "ns"
        assert err.name == "name"
        assert isinstance(err, LookupError)


class TestResourceConflictError:
    """Tests for ResourceConflictError."""

    def test_message_and_fields(self):
        """Test the error names the resource that changed."""
        err = ResourceConflictError("ns", "name")
        assert str(err) == "Resource ns/name was modified since it was read"
        assert err.namespace == "ns"
        assert not isinstance(err, LookupError)
