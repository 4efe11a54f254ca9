"""Addon manager wiring the hub API watch to the reconciler.

The manager owns the process wide reference cache. On start it rebuilds the
cache from the envelopes on the API, subscribes to the change events of the
client and queues a reconcile of every addon installation. Events are then
mapped to reconcile requests processed by the work queue.
"""

import asyncio
from functools import partial
import logging
from typing import Any

from .authentication import ensure_root_issuer
from .client import Client, WatchEvent
from .config import AddonConfig
from .exceptions import AddonException, MissingPreconditionError
from .manifest import MANAGED_CLUSTER_ADDON_KIND
from .reference_cache import ReferenceCache, rebuild_reference_cache
from .render import Renderer
from .watcher import AddonReconciler, EventMapper, Request, WorkQueue

__all__ = [
    "AddonManager",
]

_LOGGER = logging.getLogger(__name__)


class AddonManager:
    """Runs the reconcile loop of the addon against a client."""

    def __init__(
        self,
        client: Client,
        config: AddonConfig | None = None,
        renderer: Renderer | None = None,
    ) -> None:
        """Initialize AddonManager."""
        self._client = client
        self._config = config or AddonConfig()
        self.cache = ReferenceCache()
        self._mapper = EventMapper(client, self.cache, self._config.addon_name)
        self._reconciler = AddonReconciler(client, self.cache, self._config, renderer)
        self._queue = WorkQueue(
            self._reconciler.reconcile,
            workers=self._config.workers,
            requeue_delay=self._config.requeue_delay,
        )
        self._tasks: set[asyncio.Task[Any]] = set()
        self._remove_listener: Any = None

    async def start(self) -> None:
        """Rebuild the reference cache, watch the client and start the workers."""
        if self._config.bootstrap_issuer:
            try:
                await ensure_root_issuer(self._client, self._config.cluster_issuer_name)
            except MissingPreconditionError as err:
                _LOGGER.warning("Unable to install the root issuer: %s", err)
        await rebuild_reference_cache(self._client, self.cache, self._config.addon_name)
        self._remove_listener = self._client.add_listener(self._on_event)
        self._queue.start()
        await self.enqueue_all()

    async def enqueue_all(self) -> None:
        """Queue a reconcile of every installation of the addon."""
        for doc in await self._client.list(MANAGED_CLUSTER_ADDON_KIND):
            metadata = doc["metadata"]
            if metadata["name"] == self._config.addon_name:
                self._queue.add(Request(namespace=metadata["namespace"], name=metadata["name"]))

    async def block_till_done(self) -> None:
        """Wait until all pending events and queued requests are processed."""
        while True:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
                continue
            await self._queue.block_till_done()
            if not self._tasks:
                return

    async def stop(self) -> None:
        """Stop watching the client and cancel all in flight work."""
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._queue.stop()

    def _on_event(self, event: WatchEvent) -> None:
        task = asyncio.create_task(self._map_event(event))
        self._tasks.add(task)
        task.add_done_callback(partial(self._task_done, self._tasks))

    async def _map_event(self, event: WatchEvent) -> None:
        try:
            requests = await self._mapper.map(event)
        except AddonException as err:
            _LOGGER.error("Unable to map %s event for %s: %s", event.type.value, event.kind, err)
            return
        for request in requests:
            self._queue.add(request)

    def _task_done(self, task_set: set[asyncio.Task[Any]], task: asyncio.Task[Any]) -> None:
        try:
            task.result()
        except asyncio.CancelledError:
            pass
        except Exception as err:
            _LOGGER.error("Event task failed: %s", err)
        finally:
            task_set.discard(task)
