"""
Finalizer handlers.

Two pipeline steps that manage the lifecycle of a deletion finalizer on a
resource. Both stop the pipeline after they change the resource, so the
rest of the chain runs on the next reconciliation against fresh state.
"""

from resources import Resource
from state import Context, HandlerFunc, State


def finalizer_handler(resource: Resource, key: str) -> HandlerFunc:
    """
    Ensure the finalizer ``key`` is set on the resource.

    If it is missing (e.g. the resource has just been created), the finalizer
    is added, the resource updated, and the pipeline stopped. Resources that
    are already being deleted are left alone.
    """

    async def ensure_finalizer(ctx: Context, s: State) -> None:
        if resource.contains_finalizer(key) or resource.is_being_deleted:
            return
        s.log.info("deletion finalizer not found, adding")
        try:
            resource.add_finalizer(key)
            await s.client.update(resource)
        finally:
            s.stop()

    return HandlerFunc(ensure_finalizer)


def deletion_handler(resource: Resource, key: str) -> HandlerFunc:
    """
    Finish deletion of a resource that carries a deletion timestamp.

    Removes the finalizer ``key``, asks the client to delete the resource and
    stops the pipeline. Does nothing for resources not in deletion.
    """

    async def finalize_deletion(ctx: Context, s: State) -> None:
        if not resource.is_being_deleted:
            return
        s.log.info("resource is in deletion, removing finalizer")
        try:
            resource.remove_finalizer(key)
            await s.client.delete(resource)
        finally:
            s.stop()

    return HandlerFunc(finalize_deletion)
