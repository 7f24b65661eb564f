"""
=============================================================================
WORKER POOL
=============================================================================

Connections are served by a fixed-size-then-growing pool of worker
threads pulling tasks from a bounded queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept loop ──► submit(serve, args=(conn,)) ──┐                    │
    │                                                  ▼                    │
    │                  ┌──────────────────────────────────────┐            │
    │                  │ Queue (maxsize=queue_size)          │            │
    │                  │ [task] [task] [task] ...            │            │
    │                  └──────┬───────────┬───────────┬──────┘            │
    │                         ▼           ▼           ▼                    │
    │                    Worker-0    Worker-1  ... Worker-N               │
    │                    (min_workers at start, up to max_workers)        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Backpressure happens in two places:

    Queue full         submit() returns False; the caller decides what to
                       do with the work it could not queue.
    Waited too long    a task whose `timeout` elapsed while queued is not
                       run; its `on_expire` callback runs instead, so the
                       server can answer 503 rather than serve a client
                       that has likely given up.

Shutdown drains the queue (optionally bounded by a timeout), then sends
one poison pill (None) per worker.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred function call.

    Attributes:
        func: The function to execute.
        args: Positional arguments for func.
        kwargs: Keyword arguments for func.
        timeout: Maximum time the task may wait in the queue.
        on_expire: Called with the same arguments instead of func when
            the task waited longer than timeout.
        submitted_at: When the task was queued.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    timeout: Optional[float] = None
    on_expire: Optional[Callable[..., Any]] = None
    submitted_at: float = field(default_factory=time.time)

    @property
    def waited(self) -> float:
        return time.time() - self.submitted_at

    @property
    def expired(self) -> bool:
        return self.timeout is not None and self.waited > self.timeout


class Worker(threading.Thread):
    """Worker thread: take a task, run it, repeat until a poison pill."""

    def __init__(self, task_queue: queue.Queue, worker_id: int, idle_timeout: float = 60.0):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            # ─────────────────────────────────────────────────────────────
            # STALE TASK
            # ─────────────────────────────────────────────────────────────
            if task.expired:
                logger.warning(
                    f"Task expired in queue (waited {task.waited:.2f}s, "
                    f"timeout was {task.timeout}s)"
                )
                self.tasks_failed += 1
                if task.on_expire is not None:
                    task.on_expire(*task.args, **task.kwargs)
                return

            task.func(*task.args, **task.kwargs)

            logger.debug(f"Worker {self.worker_id} completed task in {time.time() - start_time:.3f}s")
            self.tasks_completed += 1

        except Exception as e:
            # A failing task must not take the worker down with it.
            logger.exception(f"Worker {self.worker_id} task failed after {time.time() - start_time:.3f}s: {e}")
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Thread pool for connection handling.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=32, queue_size=256)
        pool.start()

        if not pool.submit(serve, args=(conn,), timeout=30.0, on_expire=reject):
            conn.close()   # queue full

        pool.shutdown(wait=True, timeout=10.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 32,
        queue_size: int = 256,
        idle_timeout: float = 60.0,
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()  # Protects _workers

        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        self._shutdown = False

        with self._lock:
            for _ in range(self.min_workers):
                self._spawn_worker()

        self._started = True

    def _spawn_worker(self) -> Worker:
        """Start one more worker. Caller holds self._lock."""
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        timeout: Optional[float] = None,
        on_expire: Optional[Callable[..., Any]] = None,
        block: bool = False,
        queue_timeout: Optional[float] = None,
    ) -> bool:
        """
        Queue a task.

        Args:
            func: Function to run in a worker.
            args, kwargs: Its arguments.
            timeout: Maximum queueing time before the task expires.
            on_expire: Run instead of func for an expired task.
            block: Wait for queue space instead of failing at once.
            queue_timeout: Maximum wait for queue space when blocking.

        Returns:
            True if queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {}, timeout=timeout, on_expire=on_expire)

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add a worker when every worker is busy and tasks are waiting."""
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return

            busy = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            if busy == len(self._workers) and self._task_queue.qsize() > 0:
                logger.debug(f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers")
                self._spawn_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued tasks run first.
            timeout: Upper bound on that wait; after it, pending tasks are
                abandoned.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        if wait:
            if timeout is not None:
                deadline = time.time() + timeout
                while self._task_queue.unfinished_tasks:
                    if time.time() > deadline:
                        logger.warning("Shutdown timeout, abandoning pending tasks")
                        break
                    time.sleep(0.05)
            else:
                self._task_queue.join()

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        # ─────────────────────────────────────────────────────────────────
        # POISON PILLS
        # ─────────────────────────────────────────────────────────────────
        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass  # The worker sees its shutdown flag on its next idle poll

        for worker in workers:
            worker.join(timeout=2.0)

        self._started = False
        logger.info("Thread pool shutdown complete")

    @property
    def stats(self) -> dict:
        with self._lock:
            workers = list(self._workers)

        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in workers),
                "failed": sum(w.tasks_failed for w in workers),
            },
        }
