"""
=============================================================================
CONNECTION WORKER POOL
=============================================================================

Each Listener owns one pool. The accept loop hands every accepted
connection to the pool, and the pool's workers run the keep-alive loop
for it. One listener's pool never serves another listener's traffic.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ThreadPool                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept loop ──submit()──► [ task queue (bounded) ]                 │
    │                                   │                                  │
    │                    ┌──────────────┼──────────────┐                   │
    │                    ▼              ▼              ▼                   │
    │               Worker-8080-0  Worker-8080-1  Worker-8080-2 ...        │
    │                                                                      │
    │   in_flight = queued + running tasks                                 │
    │   drain(timeout) waits for in_flight == 0                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SHUTDOWN
=============================================================================

Graceful listener shutdown is two steps:

    1. drain(timeout)   wait until every submitted connection has
                        finished (or the timeout passes)
    2. shutdown()       poison-pill the workers and join them

A full queue makes submit() return False instead of blocking the accept
loop; the listener answers that client with 503.
=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: run func(*args, **kwargs) on a worker."""

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)


class Worker(threading.Thread):
    """
    Pulls tasks off the shared queue until it receives the poison pill
    (None). A task that raises is logged and the worker keeps going.
    """

    def __init__(
        self,
        pool: "ThreadPool",
        name: str,
        idle_timeout: float = 60.0
    ):
        # daemon: a stuck connection must not keep the process alive
        super().__init__(name=name, daemon=True)
        self.pool = pool
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"{self.name} started")

        while not self._shutdown.is_set():
            try:
                task = self.pool._task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            if task is None:
                break

            try:
                self._execute_task(task)
            finally:
                self.pool._task_finished()

        self.state = WorkerState.STOPPED
        logger.debug(f"{self.name} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.monotonic()

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            elapsed = time.monotonic() - start_time
            logger.exception(f"{self.name} task failed after {elapsed:.3f}s: {e}")
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Bounded worker pool with in-flight accounting.

    Usage:
        pool = ThreadPool(min_workers=2, max_workers=16, name="8080")
        pool.start()
        if not pool.submit(handle, args=(conn,)):
            reject(conn)                      # queue full
        ...
        drained = pool.drain(timeout=2.0)     # False → stragglers remain
        pool.shutdown(timeout=1.0)
    """

    def __init__(
        self,
        min_workers: int = 2,
        max_workers: int = 16,
        queue_size: int = 64,
        idle_timeout: float = 60.0,
        name: str = "pool"
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout
        self.name = name

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

        # ─────────────────────────────────────────────────────────────────
        # IN-FLIGHT ACCOUNTING
        # ─────────────────────────────────────────────────────────────────
        # Incremented before a task is queued, decremented after it ran.
        # drain() waits on the condition for the count to reach zero.
        self._in_flight = 0
        self._idle = threading.Condition()

    def start(self):
        if self._started:
            return

        logger.debug(f"Starting pool {self.name} with {self.min_workers} workers")
        for _ in range(self.min_workers):
            self._add_worker()

        self._started = True

    def _add_worker(self) -> Worker:
        with self._lock:
            if len(self._workers) >= self.max_workers:
                raise RuntimeError("Maximum workers reached")

            worker = Worker(
                pool=self,
                name=f"worker-{self.name}-{self._next_worker_id}",
                idle_timeout=self.idle_timeout
            )
            self._next_worker_id += 1
            self._workers.append(worker)
            worker.start()
            return worker

    @property
    def in_flight(self) -> int:
        """Tasks submitted and not yet finished (queued or running)."""
        with self._idle:
            return self._in_flight

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
    ) -> bool:
        """
        Queue a task without blocking.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        with self._idle:
            self._in_flight += 1

        try:
            self._task_queue.put(task, block=False)
        except queue.Full:
            self._task_finished()
            return False

        self._maybe_scale_up()
        return True

    def _task_finished(self):
        with self._idle:
            self._in_flight -= 1
            if self._in_flight <= 0:
                self._in_flight = 0
                self._idle.notify_all()

    def _maybe_scale_up(self):
        """Add a worker when every worker is busy and work is waiting."""
        with self._lock:
            busy_count = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            can_grow = len(self._workers) < self.max_workers

        if busy_count >= len(self._workers) and can_grow and self._task_queue.qsize() > 0:
            logger.debug(
                f"Pool {self.name} scaling up to {len(self._workers) + 1} workers"
            )
            try:
                self._add_worker()
            except RuntimeError:
                pass  # raced another submit to the limit

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until no task is queued or running.

        Returns:
            True if the pool went idle, False if the timeout passed first.
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the workers.

        Args:
            wait: Join the workers after sending the poison pills.
            timeout: Upper bound on the whole join.
        """
        if not self._started or self._shutdown:
            return

        self._shutdown = True

        with self._lock:
            workers = list(self._workers)

        for worker in workers:
            worker.shutdown()

        # Pills may not fit while the queue is full of abandoned tasks.
        # Workers still exit through the shutdown flag once they wake up.
        for _ in workers:
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                break

        if wait:
            deadline = None if timeout is None else time.monotonic() + timeout
            for worker in workers:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                worker.join(timeout=remaining)
                if worker.is_alive():
                    logger.debug(f"{worker.name} did not stop in time")

        with self._lock:
            self._workers.clear()

        logger.debug(f"Pool {self.name} shut down")

    @property
    def stats(self) -> dict:
        with self._lock:
            busy = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            total = len(self._workers)
            completed = sum(w.tasks_completed for w in self._workers)
            failed = sum(w.tasks_failed for w in self._workers)

        return {
            "workers": {"total": total, "busy": busy, "idle": total - busy},
            "queue": {"size": self._task_queue.qsize(), "max_size": self.queue_size},
            "in_flight": self.in_flight,
            "tasks": {"completed": completed, "failed": failed},
        }

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False
