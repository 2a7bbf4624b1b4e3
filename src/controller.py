"""
Reconciliation Controller - drives the handler pipeline for every resource.

Similar to Kubernetes controllers, each resource is reconciled by a fresh
Runner: finalizer management first, followed by any business-logic handlers
the controller was configured with.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from config import ControllerConfig
from finalizers import deletion_handler, finalizer_handler
from resources import Resource, ResourceClient, ResourceConflictError
from state import (
    Context,
    Handler,
    Runner,
    RunnerStatus,
    with_cancel,
    with_logger,
    with_timeout,
)

logger = logging.getLogger(__name__)

HandlerFactory = Callable[[Resource], Handler]


class ResourceLogAdapter(logging.LoggerAdapter):
    """Prefixes log messages with the key of the resource being reconciled."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return f"[{self.extra['resource']}] {msg}", kwargs


class Controller:
    """
    Main controller that implements the reconciliation loop.

    Lists resources from the client and runs the handler pipeline for each
    one, every ``reconcile_interval`` seconds until stopped.
    """

    def __init__(
        self,
        client: ResourceClient,
        config: Optional[ControllerConfig] = None,
        handler_factories: Optional[List[HandlerFactory]] = None,
    ):
        self.client = client
        self.config = config or ControllerConfig()
        self.handler_factories = list(handler_factories or [])
        self.running = False
        self._ctx: Optional[Context] = None
        self._cancel: Optional[Callable[[], None]] = None

    def build_runner(self, resource: Resource) -> Runner:
        """Create the handler pipeline for a single resource."""
        log = ResourceLogAdapter(logger, {"resource": resource.key})
        runner = Runner(self.client, with_logger(log))
        runner.add_handlers(
            finalizer_handler(resource, self.config.finalizer),
            deletion_handler(resource, self.config.finalizer),
        )
        runner.add_handlers(*(factory(resource) for factory in self.handler_factories))
        return runner

    async def reconcile(
        self, resource: Resource, ctx: Optional[Context] = None
    ) -> RunnerStatus:
        """
        Reconcile a single resource.

        Exceptions raised by handlers propagate to the caller.

        Returns:
            The terminal status of the pipeline run.
        """
        if self.config.reconcile_timeout is not None:
            ctx, cancel = with_timeout(ctx, self.config.reconcile_timeout)
        else:
            ctx, cancel = with_cancel(ctx)

        runner = self.build_runner(resource)
        try:
            await runner.run(ctx)
        finally:
            cancel()

        logger.info(f"Reconciled {resource.key}: {runner.status.value}")
        return runner.status

    async def reconcile_all(
        self, ctx: Optional[Context] = None
    ) -> Dict[str, RunnerStatus]:
        """
        Reconcile every resource known to the client.

        A failure in one resource is logged and does not prevent the others
        from being reconciled.
        """
        resources = await self.client.list()
        if resources:
            logger.info(f"Found {len(resources)} resources to reconcile")

        results: Dict[str, RunnerStatus] = {}
        for resource in resources:
            if ctx is not None and ctx.done():
                break
            try:
                results[resource.key] = await self.reconcile(resource, ctx)
            except ResourceConflictError as e:
                logger.warning(f"{e}, retrying on the next pass")
                results[resource.key] = RunnerStatus.ABORTED
            except Exception as e:
                logger.error(f"Error reconciling {resource.key}: {e}", exc_info=True)
                results[resource.key] = RunnerStatus.ABORTED
        return results

    async def start(self) -> None:
        """Run the reconciliation loop until stop() is called."""
        logger.info("Starting reconciliation controller")
        self.running = True
        self._ctx, self._cancel = with_cancel()

        while self.running:
            try:
                await self.reconcile_all(self._ctx)
            except Exception as e:
                logger.error(f"Error in reconciliation loop: {e}", exc_info=True)

            try:
                await asyncio.wait_for(
                    self._ctx.wait(), timeout=self.config.reconcile_interval
                )
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        """Stop the reconciliation loop; in-flight handlers finish first."""
        logger.info("Stopping reconciliation controller")
        self.running = False
        if self._cancel is not None:
            self._cancel()
