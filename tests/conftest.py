"""Pytest configuration and fixtures."""

import copy
from datetime import datetime, timezone
from typing import Dict, List, Tuple

import pytest

import config
from resources import (
    Resource,
    ResourceClient,
    ResourceConflictError,
    ResourceNotFoundError,
)


class FakeResourceClient(ResourceClient):
    """In-memory ResourceClient that records every call."""

    def __init__(self, *resources: Resource):
        self.store: Dict[Tuple[str, str], Resource] = {}
        self.calls: List[Tuple[str, str]] = []
        for resource in resources:
            self.store[(resource.namespace, resource.name)] = copy.deepcopy(resource)

    async def get(self, namespace: str, name: str) -> Resource:
        self.calls.append(("get", f"{namespace}/{name}"))
        try:
            return copy.deepcopy(self.store[(namespace, name)])
        except KeyError:
            raise ResourceNotFoundError(namespace, name)

    async def list(self) -> List[Resource]:
        self.calls.append(("list", ""))
        return [copy.deepcopy(r) for r in self.store.values()]

    def _check_version(self, resource: Resource) -> Resource:
        key = (resource.namespace, resource.name)
        if key not in self.store:
            raise ResourceNotFoundError(resource.namespace, resource.name)
        stored = self.store[key]
        if stored.resource_version != resource.resource_version:
            raise ResourceConflictError(resource.namespace, resource.name)
        resource.resource_version = stored.resource_version + 1
        return stored

    async def update(self, resource: Resource) -> Resource:
        self.calls.append(("update", resource.key))
        key = (resource.namespace, resource.name)
        stored = self._check_version(resource)
        if stored.spec != resource.spec:
            resource.generation = stored.generation + 1
        self.store[key] = copy.deepcopy(resource)
        return copy.deepcopy(resource)

    async def delete(self, resource: Resource) -> bool:
        self.calls.append(("delete", resource.key))
        key = (resource.namespace, resource.name)
        self._check_version(resource)
        if resource.deletion_timestamp is None:
            resource.deletion_timestamp = datetime.now(timezone.utc)
        if not resource.finalizers:
            del self.store[key]
            return True
        self.store[key] = copy.deepcopy(resource)
        return False


@pytest.fixture
def fake_client():
    """Empty in-memory resource client."""
    return FakeResourceClient()


@pytest.fixture
def sample_resource():
    """Sample resource without finalizers."""
    return Resource(name="test", namespace="test", spec={"replicas": 1})


@pytest.fixture(autouse=True)
def clean_config():
    """Make sure no test leaks the global configuration."""
    config.reset_config()
    yield
    config.reset_config()
