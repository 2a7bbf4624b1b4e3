"""
Resource model and the client interface used to persist it.

Handlers mutate Resource objects in memory and push the changes through a
ResourceClient.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


class ResourceNotFoundError(LookupError):
    """Raised when a resource does not exist in the backing store."""

    def __init__(self, namespace: str, name: str):
        super().__init__(f"Resource {namespace}/{name} not found")
        self.namespace = namespace
        self.name = name


class ResourceConflictError(RuntimeError):
    """Raised when a write is based on an outdated copy of a resource."""

    def __init__(self, namespace: str, name: str):
        super().__init__(
            f"Resource {namespace}/{name} was modified since it was read"
        )
        self.namespace = namespace
        self.name = name


@dataclass
class Resource:
    """A reconciled object, similar to a Kubernetes object's metadata and spec."""

    name: str
    namespace: str = "default"
    spec: Dict[str, Any] = field(default_factory=dict)
    finalizers: List[str] = field(default_factory=list)
    deletion_timestamp: Optional[datetime] = None
    generation: int = 1
    # Bumped on every write; writes carrying an older value are rejected.
    resource_version: int = 1
    id: Optional[int] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def is_being_deleted(self) -> bool:
        return self.deletion_timestamp is not None

    def contains_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        """Add a finalizer. Returns False if it was already present."""
        if finalizer in self.finalizers:
            return False
        self.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        """Remove every occurrence of a finalizer. Returns True if any was removed."""
        remaining = [f for f in self.finalizers if f != finalizer]
        removed = len(remaining) != len(self.finalizers)
        self.finalizers = remaining
        return removed


class ResourceClient(ABC):
    """Interface for reading and mutating persisted resources."""

    @abstractmethod
    async def get(self, namespace: str, name: str) -> Resource:
        """
        Fetch a resource.

        Raises:
            ResourceNotFoundError: If the resource does not exist.
        """
        pass

    @abstractmethod
    async def list(self) -> List[Resource]:
        """Return every stored resource, including ones pending deletion."""
        pass

    @abstractmethod
    async def update(self, resource: Resource) -> Resource:
        """
        Persist the resource's spec and finalizers.

        The write only succeeds if ``resource.resource_version`` matches the
        stored one; on success it is advanced.

        Raises:
            ResourceNotFoundError: If the resource does not exist.
            ResourceConflictError: If the resource changed since it was read.
        """
        pass

    @abstractmethod
    async def delete(self, resource: Resource) -> bool:
        """
        Request deletion of a resource.

        The resource is marked for deletion and only removed once it has no
        finalizers left.

        Returns:
            True if the resource is gone, False if finalizers still hold it.

        Raises:
            ResourceNotFoundError: If the resource does not exist.
            ResourceConflictError: If the resource changed since it was read.
        """
        pass
