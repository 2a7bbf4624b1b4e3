"""
Database Manager - PostgreSQL-backed resource client.

Stores resources with their finalizers and deletion state, and implements
the ResourceClient interface used by pipeline handlers.
"""

import asyncpg
import json
import logging
from typing import Any, List, Optional

from resources import (
    Resource,
    ResourceClient,
    ResourceConflictError,
    ResourceNotFoundError,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS resources (
    id SERIAL PRIMARY KEY,
    namespace VARCHAR(255) NOT NULL DEFAULT 'default',
    name VARCHAR(255) NOT NULL,
    spec JSONB NOT NULL DEFAULT '{}'::jsonb,
    finalizers JSONB NOT NULL DEFAULT '[]'::jsonb,
    generation INTEGER NOT NULL DEFAULT 1,
    resource_version INTEGER NOT NULL DEFAULT 1,
    deleted_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (namespace, name)
);

ALTER TABLE resources
    ADD COLUMN IF NOT EXISTS resource_version INTEGER NOT NULL DEFAULT 1;
"""

RESOURCE_COLUMNS = (
    "id, namespace, name, spec, finalizers, generation, resource_version, deleted_at"
)


class DatabaseManager(ResourceClient):
    """Manages PostgreSQL database operations for resources."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Establish connection pool to PostgreSQL."""
        self.pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
            command_timeout=60,
        )
        logger.info(
            f"Connected to PostgreSQL (pool: {self.min_pool_size}-{self.max_pool_size})"
        )

    async def close(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Closed PostgreSQL connection")

    def _ensure_connected(self) -> None:
        if self.pool is None:
            raise RuntimeError(
                "Database not connected. Call connect() before performing operations."
            )

    async def initialize_schema(self) -> None:
        """Create the resources table if it does not exist."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA)
        logger.info("Database schema initialized")

    def _parse_resource_row(self, row: Any) -> Resource:
        """Convert a database row into a Resource."""
        spec = row.get("spec")
        finalizers = row.get("finalizers")
        return Resource(
            id=row["id"],
            namespace=row["namespace"],
            name=row["name"],
            spec=json.loads(spec) if spec else {},
            finalizers=json.loads(finalizers) if finalizers else [],
            generation=row.get("generation") or 1,
            resource_version=row.get("resource_version") or 1,
            deletion_timestamp=row.get("deleted_at"),
        )

    async def create_resource(self, resource: Resource) -> Resource:
        """
        Insert a new resource.

        Args:
            resource: Resource to store. Its id, generation and
                resource_version are filled from the database.

        Returns:
            The stored resource.
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO resources (namespace, name, spec, finalizers)
                VALUES ($1, $2, $3, $4)
                RETURNING {RESOURCE_COLUMNS}
                """,
                resource.namespace,
                resource.name,
                json.dumps(resource.spec),
                json.dumps(resource.finalizers),
            )

        created = self._parse_resource_row(row)
        logger.info(f"Created resource {created.key} with ID {created.id}")
        return created

    async def get(self, namespace: str, name: str) -> Resource:
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {RESOURCE_COLUMNS} FROM resources "
                "WHERE namespace = $1 AND name = $2",
                namespace,
                name,
            )

        if not row:
            raise ResourceNotFoundError(namespace, name)
        return self._parse_resource_row(row)

    async def list(self) -> List[Resource]:
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {RESOURCE_COLUMNS} FROM resources ORDER BY namespace, name"
            )
        return [self._parse_resource_row(row) for row in rows]

    async def _write_error(self, conn: Any, resource: Resource) -> Exception:
        """Explain why a guarded write matched no row."""
        exists = await conn.fetchval(
            "SELECT 1 FROM resources WHERE namespace = $1 AND name = $2",
            resource.namespace,
            resource.name,
        )
        if exists:
            logger.warning(
                f"Resource {resource.key} changed since version "
                f"{resource.resource_version} was read"
            )
            return ResourceConflictError(resource.namespace, resource.name)
        return ResourceNotFoundError(resource.namespace, resource.name)

    async def update(self, resource: Resource) -> Resource:
        """
        Persist spec and finalizers.

        The generation is bumped only when the spec changes. The write is
        rejected with ResourceConflictError when ``resource.resource_version``
        is older than the stored row.
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE resources
                SET generation = CASE
                        WHEN spec <> $3::jsonb THEN generation + 1
                        ELSE generation
                    END,
                    spec = $3::jsonb,
                    finalizers = $4::jsonb,
                    resource_version = resource_version + 1,
                    updated_at = NOW()
                WHERE namespace = $1 AND name = $2 AND resource_version = $5
                RETURNING {RESOURCE_COLUMNS}
                """,
                resource.namespace,
                resource.name,
                json.dumps(resource.spec),
                json.dumps(resource.finalizers),
                resource.resource_version,
            )
            if not row:
                raise await self._write_error(conn, resource)

        updated = self._parse_resource_row(row)
        resource.generation = updated.generation
        resource.resource_version = updated.resource_version
        resource.id = updated.id
        logger.info(f"Updated resource {resource.key}")
        return updated

    async def delete(self, resource: Resource) -> bool:
        """
        Mark a resource as deleted, removing it when no finalizers remain.

        The finalizers held by ``resource`` are written first so a handler can
        drop its finalizer and delete in one call. Like update(), the write
        is guarded by ``resource.resource_version``.
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    UPDATE resources
                    SET finalizers = $3::jsonb,
                        deleted_at = COALESCE(deleted_at, NOW()),
                        resource_version = resource_version + 1,
                        updated_at = NOW()
                    WHERE namespace = $1 AND name = $2 AND resource_version = $4
                    RETURNING deleted_at, resource_version
                    """,
                    resource.namespace,
                    resource.name,
                    json.dumps(resource.finalizers),
                    resource.resource_version,
                )
                if not row:
                    raise await self._write_error(conn, resource)

                removed = await conn.fetchval(
                    """
                    DELETE FROM resources
                    WHERE namespace = $1 AND name = $2
                      AND finalizers = '[]'::jsonb
                    RETURNING id
                    """,
                    resource.namespace,
                    resource.name,
                )

        resource.resource_version = row["resource_version"]
        if resource.deletion_timestamp is None:
            resource.deletion_timestamp = row["deleted_at"]

        if removed:
            logger.info(f"Deleted resource {resource.key}")
            return True

        logger.info(
            f"Resource {resource.key} marked for deletion, "
            f"waiting on finalizers: {resource.finalizers}"
        )
        return False
