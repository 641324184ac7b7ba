from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from queue import Empty, Queue
from threading import Event, Thread
from typing import Any, Callable, Iterable

import requests
from docker.errors import DockerException

from . import db
from .consul import RegistrationRecord
from .docker_ops import ContainerSnapshot, DockerSource, LifecycleEvent, parse_event
from .endpoints import extract_endpoints
from .errors import EventStreamError
from .identity import resolve_identity
from .registrar import Registrar
from .runtime import RuntimeState

# docker-py leaves transport failures from requests unwrapped.
DOCKER_ERRORS = (DockerException, requests.exceptions.RequestException)

START_ACTIONS = {"start"}
STOP_ACTIONS = {"die", "stop"}


def describe(event: LifecycleEvent) -> str:
    short = event.container_id[:12]
    return f"{event.name} ({short})" if event.name else short


class Reconciler:
    """Keeps Consul in line with the containers running on this node.

    Two phases: a one-off scan of every running container, then an event loop
    that hands each start/die/stop event to a bounded worker pool. Tasks do not
    coordinate; every operation is an idempotent upsert or a no-op delete.
    """

    def __init__(
        self,
        source: DockerSource,
        registrar: Registrar,
        runtime: RuntimeState,
        workers: int = 8,
        settle_delay_s: float = 1.0,
        settle_retries: int = 3,
        settle_retry_interval_s: float = 1.0,
        drain_on_shutdown: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = source
        self.registrar = registrar
        self.runtime = runtime
        self.settle_delay_s = max(0.0, float(settle_delay_s))
        self.settle_retries = max(0, int(settle_retries))
        self.settle_retry_interval_s = max(0.0, float(settle_retry_interval_s))
        self.drain_on_shutdown = drain_on_shutdown
        self._sleep = sleep
        self._pool = ThreadPoolExecutor(max_workers=max(1, int(workers)), thread_name_prefix="registrator-worker")
        self._queue: Queue[tuple[str, Any]] = Queue()
        self._stopping = Event()
        self._reader: Thread | None = None

    # --- bootstrap ---------------------------------------------------------

    def bootstrap(self) -> int:
        """Register every running container. Returns how many records were upserted."""
        self.runtime.set_phase("bootstrap")
        db.log_event("INFO", "Scanning running containers")
        try:
            container_ids = self.source.list_running_ids()
        except DOCKER_ERRORS as e:
            db.log_event("WARN", f"Could not list containers, nothing registered yet: {e}")
            return 0

        total = 0
        for cid in container_ids:
            if self._stopping.is_set():
                break
            total += len(self.register_container(cid))
        db.log_event("INFO", f"Initial scan done: {len(container_ids)} containers, {total} records")
        return total

    def register_container(self, container_id: str, settle: bool = False) -> list[RegistrationRecord]:
        try:
            snapshot = self._settled_snapshot(container_id) if settle else self.source.inspect(container_id)
        except DOCKER_ERRORS as e:
            db.log_event("WARN", f"Inspect failed for {container_id[:12]}: {e}", container_id=container_id[:12])
            return []
        if snapshot is None:
            # Gone between the event and the inspection.
            return []
        return self.registrar.register(snapshot)

    def _settled_snapshot(self, container_id: str) -> ContainerSnapshot | None:
        """Inspect a freshly started container once its ports are published.

        After the fixed delay, re-inspect a bounded number of times while the
        container is running but shows no bindings yet.
        """
        if self.settle_delay_s:
            self._sleep(self.settle_delay_s)
        snapshot = self.source.inspect(container_id)
        attempts = 0
        while (
            snapshot is not None
            and snapshot.running
            and attempts < self.settle_retries
            and not resolve_identity(snapshot, self.registrar.prefix).ignored
            and not extract_endpoints(snapshot.ports)
        ):
            attempts += 1
            self._sleep(self.settle_retry_interval_s)
            snapshot = self.source.inspect(container_id)
        return snapshot

    # --- events ------------------------------------------------------------

    def handle_event(self, event: LifecycleEvent) -> Future | None:
        """Dispatch one lifecycle event to the worker pool. Unknown actions are ignored."""
        if event.action in START_ACTIONS:
            task: Callable[[LifecycleEvent], Any] = self._on_start
        elif event.action in STOP_ACTIONS:
            task = self._on_stop
        else:
            return None

        self.runtime.count("events")
        self.runtime.task_started()
        try:
            future = self._pool.submit(self._run_task, task, event)
        except RuntimeError:
            # Pool already shut down.
            self.runtime.task_finished()
            return None
        future.add_done_callback(self._on_task_done)
        return future

    def _on_task_done(self, future: Future) -> None:
        # Cancelled at shutdown, so _run_task never ran to release the slot.
        if future.cancelled():
            self.runtime.task_finished()

    def _on_start(self, event: LifecycleEvent) -> list[RegistrationRecord]:
        return self.register_container(event.container_id, settle=True)

    def _on_stop(self, event: LifecycleEvent) -> list[str]:
        return self.registrar.deregister(event.container_id)

    def _run_task(self, task: Callable[[LifecycleEvent], Any], event: LifecycleEvent) -> Any:
        try:
            return task(event)
        except Exception as e:
            db.log_event(
                "ERROR",
                f"{event.action} handling failed for {describe(event)}: {type(e).__name__}: {e}",
                container_id=event.container_id[:12],
            )
            return None
        finally:
            self.runtime.task_finished()

    # --- loop --------------------------------------------------------------

    def _read_events(self, stream: Iterable[dict[str, Any]]) -> None:
        try:
            for raw in stream:
                if self._stopping.is_set():
                    break
                self._queue.put(("event", raw))
        except Exception as e:
            if not self._stopping.is_set():
                self._queue.put(("error", e))
            return
        self._queue.put(("eof", None))

    def run(self) -> None:
        """Consume Docker events until stop() is called.

        Raises EventStreamError if the subscription fails or ends on its own.
        """
        if self._stopping.is_set():
            self.shutdown()
            return
        try:
            stream = self.source.events()
        except DOCKER_ERRORS as e:
            self.shutdown()
            raise EventStreamError(f"Could not subscribe to Docker events: {e}") from e
        self._reader = Thread(target=self._read_events, args=(stream,), name="registrator-events", daemon=True)
        self._reader.start()
        self.runtime.set_phase("watching")
        db.log_event("INFO", "Listening for Docker events")

        try:
            while not self._stopping.is_set():
                try:
                    kind, item = self._queue.get(timeout=0.5)
                except Empty:
                    continue
                if kind == "event":
                    event = parse_event(item)
                    if event is not None:
                        self.handle_event(event)
                elif kind == "error":
                    db.log_event("ERROR", f"Docker event stream failed: {type(item).__name__}: {item}")
                    raise EventStreamError(f"Docker event stream failed: {item}") from item
                elif kind == "eof":
                    if self._stopping.is_set():
                        break
                    db.log_event("ERROR", "Docker event stream ended unexpectedly")
                    raise EventStreamError("Docker event stream ended unexpectedly")
                elif kind == "stop":
                    break
        finally:
            self.shutdown()

    def stop(self) -> None:
        """Ask the loop to exit. Safe to call from a signal handler."""
        if self._stopping.is_set():
            return
        self._stopping.set()
        self._queue.put(("stop", None))

    def shutdown(self) -> None:
        self._stopping.set()
        self.runtime.set_phase("stopping")
        self.source.close_events()
        # Without draining, queued tasks are cancelled; running ones finish on their own.
        self._pool.shutdown(wait=self.drain_on_shutdown, cancel_futures=not self.drain_on_shutdown)
        self.runtime.set_phase("stopped")
        db.log_event("INFO", f"Stopped ({self.runtime.snapshot()['in_flight']} tasks still in flight)")
