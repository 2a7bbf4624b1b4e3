#!/usr/bin/env python3
"""
Main entry point for the reconciliation controller.

Provides a kubectl-like CLI for running the controller and inspecting the
resources it manages.
"""

import asyncio
import json
import logging
import signal
from typing import Optional

import click
import yaml
from tabulate import tabulate

from config import Config, LoggingConfig, get_config, load_config
from controller import Controller
from db import DatabaseManager
from resources import Resource, ResourceConflictError, ResourceNotFoundError

logger = logging.getLogger(__name__)


class Application:
    """Wires configuration, database and controller together."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.db: Optional[DatabaseManager] = None
        self.controller: Optional[Controller] = None

    async def connect(self) -> DatabaseManager:
        """Open the database connection pool."""
        db_config = self.config.database
        self.db = DatabaseManager(
            host=db_config.host,
            port=db_config.port,
            database=db_config.database,
            user=db_config.user,
            password=db_config.password,
            min_pool_size=db_config.min_pool_size,
            max_pool_size=db_config.max_pool_size,
        )
        await self.db.connect()
        return self.db

    async def initialize(self):
        """Connect to the database and build the controller."""
        await self.connect()
        await self.db.initialize_schema()
        self.controller = Controller(self.db, config=self.config.controller)

    async def run(self, once: bool = False):
        """Run the controller until stopped, or a single pass with ``once``."""
        await self.initialize()
        try:
            if once:
                return await self.controller.reconcile_all()

            loop = asyncio.get_running_loop()

            def signal_handler():
                logger.info("Received shutdown signal")
                asyncio.create_task(self.controller.stop())

            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, signal_handler)

            await self.controller.start()
        finally:
            await self.stop()

    async def stop(self):
        """Release the database connection."""
        if self.db:
            await self.db.close()


def _split_key(key: str):
    namespace, sep, name = key.partition("/")
    if not sep:
        return "default", key
    if not namespace or not name or "/" in name:
        raise click.BadParameter(f"expected NAMESPACE/NAME, got {key!r}")
    return namespace, name


def _resource_dict(resource: Resource) -> dict:
    return {
        "id": resource.id,
        "namespace": resource.namespace,
        "name": resource.name,
        "generation": resource.generation,
        "resourceVersion": resource.resource_version,
        "finalizers": resource.finalizers,
        "deletionTimestamp": (
            resource.deletion_timestamp.isoformat()
            if resource.deletion_timestamp
            else None
        ),
        "spec": resource.spec,
    }


async def _with_db(fn):
    app = Application()
    db = await app.connect()
    try:
        return await fn(db)
    finally:
        await app.stop()


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML configuration file",
)
@click.option("--log-level", help="Override the configured log level")
def cli(config_path, log_level):
    """Reconciliation controller - kubectl-like interface for managed resources"""
    try:
        cfg = load_config(config_path)
        if log_level:
            cfg.logging = LoggingConfig(level=log_level, format=cfg.logging.format)
    except ValueError as e:
        raise click.ClickException(str(e))
    cfg.logging.configure()


@cli.command()
@click.option("--once", is_flag=True, help="Reconcile every resource once and exit")
def run(once):
    """Run the reconciliation controller"""
    results = asyncio.run(Application().run(once=once))
    if once and results is not None:
        rows = [[key, status.value] for key, status in results.items()]
        click.echo(tabulate(rows, headers=["RESOURCE", "RESULT"]))


@cli.command()
@click.argument("filename", type=click.Path(exists=True, dir_okay=False))
def apply(filename):
    """Create or update a resource from a YAML/JSON file"""
    with open(filename, "r") as f:
        if filename.endswith(".yaml") or filename.endswith(".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if not isinstance(data, dict) or not data.get("name"):
        raise click.ClickException("Resource file must be a mapping with a 'name'")

    desired = Resource(
        name=data["name"],
        namespace=data.get("namespace", "default"),
        spec=data.get("spec") or {},
    )

    async def _apply(db):
        try:
            current = await db.get(desired.namespace, desired.name)
        except ResourceNotFoundError:
            return "created", await db.create_resource(desired)
        current.spec = desired.spec
        return "configured", await db.update(current)

    try:
        action, resource = asyncio.run(_with_db(_apply))
    except ResourceConflictError as e:
        raise click.ClickException(f"{e}, apply again")
    click.echo(f"Resource {resource.key} {action} (generation {resource.generation})")


@cli.command(name="list")
def list_resources():
    """List all resources"""
    resources = asyncio.run(_with_db(lambda db: db.list()))
    rows = [
        [
            r.namespace,
            r.name,
            r.generation,
            ",".join(r.finalizers) or "<none>",
            "Terminating" if r.is_being_deleted else "Active",
        ]
        for r in resources
    ]
    click.echo(
        tabulate(
            rows, headers=["NAMESPACE", "NAME", "GENERATION", "FINALIZERS", "STATUS"]
        )
    )


@cli.command()
@click.argument("key")
@click.option("--output", "-o", type=click.Choice(["json", "yaml"]), default="yaml")
def describe(key, output):
    """Describe a specific resource (NAMESPACE/NAME)"""
    namespace, name = _split_key(key)
    try:
        resource = asyncio.run(_with_db(lambda db: db.get(namespace, name)))
    except LookupError as e:
        raise click.ClickException(str(e))

    data = _resource_dict(resource)
    if output == "yaml":
        click.echo(yaml.dump(data, default_flow_style=False))
    else:
        click.echo(json.dumps(data, indent=2))


@cli.command()
@click.argument("key")
def delete(key):
    """Request deletion of a resource (NAMESPACE/NAME)"""
    namespace, name = _split_key(key)

    async def _delete(db):
        return await db.delete(await db.get(namespace, name))

    try:
        removed = asyncio.run(_with_db(_delete))
    except (LookupError, ResourceConflictError) as e:
        raise click.ClickException(str(e))

    if removed:
        click.echo(f"Resource {namespace}/{name} deleted")
    else:
        click.echo(f"Resource {namespace}/{name} marked for deletion")


if __name__ == "__main__":
    cli()
