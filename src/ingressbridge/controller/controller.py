"""Watch-driven controller loop.

Three watch streams feed the work queue:

- Ingress events enqueue that Ingress;
- any Gateway event enqueues every Ingress, since listener changes can
  alter parent selection for all of them;
- HTTPRoute events enqueue the owning Ingress, so manual edits and
  deletions of generated routes are reverted.

The kubernetes watch API is blocking, so each stream runs in a thread and
hands events back to the event loop. A stream ends after
``watch_timeout`` seconds and is reopened; reopening without a resource
version replays every existing object as ADDED, which doubles as a resync.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
from collections.abc import Callable, Iterator
from typing import Any

import structlog

from ingressbridge.controller.queue import WorkQueue
from ingressbridge.core.config import BridgeConfig, get_config
from ingressbridge.core.exceptions import BridgeError, HostnameMismatchError
from ingressbridge.model.resources import INGRESS_KIND
from ingressbridge.reconcile.reconciler import IngressReconciler
from ingressbridge.store.kubernetes import KubernetesStore

logger = structlog.get_logger()

WATCH_RETRY_DELAY = 5.0

WatchFactory = Callable[[], Iterator[tuple[str, dict[str, Any]]]]
EventHandler = Callable[[str, dict[str, Any]], None]


def object_key(obj: dict[str, Any]) -> str | None:
    """``namespace/name`` of a Kubernetes object in JSON form."""
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        return None
    return f"{metadata.get('namespace') or 'default'}/{name}"


def owning_ingress_key(route: dict[str, Any]) -> str | None:
    """Key of the Ingress named in an HTTPRoute's owner references, if any."""
    metadata = route.get("metadata") or {}
    namespace = metadata.get("namespace") or "default"
    for ref in metadata.get("ownerReferences") or []:
        if ref.get("kind") == INGRESS_KIND and ref.get("name"):
            return f"{namespace}/{ref['name']}"
    return None


class Controller:
    """Runs watches and reconcile workers until stopped.

    Args:
        store: Kubernetes-backed store providing the watch streams.
        config: Engine configuration; the process-wide one by default.
        reconciler: Reconciler to run per key; built from ``store`` when omitted.
    """

    def __init__(
        self,
        store: KubernetesStore,
        config: BridgeConfig | None = None,
        reconciler: IngressReconciler | None = None,
    ) -> None:
        self.store = store
        self.config = config or get_config()
        self.reconciler = reconciler or IngressReconciler(store, self.config)
        self.queue = WorkQueue(
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
        )
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event = asyncio.Event()
        self._threads_stopped = threading.Event()
        self._tasks: list[asyncio.Task] = []

    def _in_scope(self, key: str) -> bool:
        namespace = self.config.watch_namespace
        return namespace is None or key.split("/", 1)[0] == namespace

    # Event handlers, called on the event loop.

    def on_ingress_event(self, event_type: str, obj: dict[str, Any]) -> None:
        key = object_key(obj)
        if key is None or not self._in_scope(key):
            return
        logger.debug("Ingress event", event=event_type, ingress=key)
        self.queue.add(key)

    def on_gateway_event(self, event_type: str, obj: dict[str, Any]) -> None:
        logger.debug("Gateway event", event=event_type, gateway=object_key(obj))
        task = asyncio.create_task(self.resync())
        self._tasks.append(task)
        task.add_done_callback(self._forget_task)

    def on_route_event(self, event_type: str, obj: dict[str, Any]) -> None:
        key = owning_ingress_key(obj)
        if key is None or not self._in_scope(key):
            return
        logger.debug("HTTPRoute event", event=event_type, route=object_key(obj), ingress=key)
        self.queue.add(key)

    def _forget_task(self, task: asyncio.Task) -> None:
        if task in self._tasks:
            self._tasks.remove(task)

    async def resync(self) -> int:
        """Enqueue every Ingress in scope. Returns the number enqueued."""
        try:
            ingresses = await self.store.list_ingresses(self.config.watch_namespace)
        except BridgeError as e:
            logger.error("Failed to list ingresses", error=str(e))
            return 0
        for ingress in ingresses:
            self.queue.add(ingress.key)
        logger.debug("Resynced ingresses", count=len(ingresses))
        return len(ingresses)

    async def process(self, key: str) -> bool:
        """Reconcile one key. Returns True on success.

        Failures are retried with backoff, except strict-mode hostname
        mismatches, which only a change to the Ingress can fix.
        """
        namespace, _, name = key.partition("/")
        try:
            report = await self.reconciler.reconcile(namespace, name)
        except HostnameMismatchError as e:
            logger.error("Ingress rejected", ingress=key, error=e.message)
            self.queue.forget(key)
            return False
        except BridgeError as e:
            logger.warning("Reconcile failed", ingress=key, error=e.message, code=e.code)
            self.queue.retry(key)
            return False
        except Exception as e:
            logger.exception("Unexpected reconcile error", ingress=key, error=str(e))
            self.queue.retry(key)
            return False
        self.queue.forget(key)
        if report.missing:
            logger.debug("Ingress not found", ingress=key)
        return True

    async def _worker(self, index: int) -> None:
        while not self._stop_event.is_set():
            key = await self.queue.get()
            try:
                await self.process(key)
            finally:
                self.queue.done(key)

    def _dispatch(self, handler: EventHandler, event_type: str, obj: dict[str, Any]) -> None:
        if self._loop is None or self._threads_stopped.is_set():
            return
        self._loop.call_soon_threadsafe(handler, event_type, obj)

    def _drain(self, kind: str, factory: WatchFactory, handler: EventHandler) -> None:
        """Consume one watch stream in the calling thread."""
        for event_type, obj in factory():
            if self._threads_stopped.is_set():
                return
            if event_type == "ERROR":
                logger.warning("Watch error event", kind=kind, status=obj.get("code"))
                return
            self._dispatch(handler, event_type, obj)

    async def _drain_in_thread(
        self, kind: str, factory: WatchFactory, handler: EventHandler
    ) -> None:
        """Run ``_drain`` in a daemon thread and wait for it.

        A watch blocks until the server sends something, so the thread may
        outlive the controller by up to ``watch_timeout``. Daemon threads
        outside the default executor do not hold up interpreter exit.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()

        def finish(error: BaseException | None) -> None:
            if future.done():
                return
            if error is None:
                future.set_result(None)
            else:
                future.set_exception(error)

        def target() -> None:
            error: BaseException | None = None
            try:
                self._drain(kind, factory, handler)
            except Exception as e:
                error = e
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(finish, error)

        threading.Thread(target=target, name=f"watch-{kind}", daemon=True).start()
        await future

    async def _watch(self, kind: str, factory: WatchFactory, handler: EventHandler) -> None:
        while not self._stop_event.is_set():
            try:
                await self._drain_in_thread(kind, factory, handler)
                logger.debug("Watch stream closed, reopening", kind=kind)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Watch failed", kind=kind, error=str(e))
                await asyncio.sleep(WATCH_RETRY_DELAY)

    async def run(self) -> None:
        """Start watches and workers and block until ``stop()`` is called."""
        self._loop = asyncio.get_running_loop()
        namespace = self.config.watch_namespace
        timeout = self.config.watch_timeout

        logger.info(
            "Starting controller",
            namespace=namespace or "*",
            workers=self.config.workers,
        )
        await self.resync()

        self._tasks.extend(
            asyncio.create_task(self._worker(i)) for i in range(self.config.workers)
        )
        self._tasks.append(asyncio.create_task(self._watch(
            "Ingress",
            lambda: self.store.watch_ingresses(namespace, timeout_seconds=timeout),
            self.on_ingress_event,
        )))
        self._tasks.append(asyncio.create_task(self._watch(
            "Gateway",
            lambda: self.store.watch_gateways(timeout_seconds=timeout),
            self.on_gateway_event,
        )))
        self._tasks.append(asyncio.create_task(self._watch(
            "HTTPRoute",
            lambda: self.store.watch_routes(timeout_seconds=timeout),
            self.on_route_event,
        )))

        try:
            await self._stop_event.wait()
        finally:
            await self._shutdown()

    def stop(self) -> None:
        """Ask ``run()`` to return.

        Open watches are stopped; their threads end on the next event or
        when the stream times out, without delaying shutdown.
        """
        self._stop_event.set()

    async def _shutdown(self) -> None:
        self._threads_stopped.set()
        self.store.stop_watches()
        self.queue.shutdown()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Controller stopped")
