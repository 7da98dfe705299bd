"""
Category-bounded priority operation queue.

Requests wait in a single priority-ordered list. Each operation category
(COM, non-COM, database, API) has its own concurrency limit; dispatch runs
whenever a request is enqueued or finishes and starts every waiting request
whose category has a free slot. A saturated category never holds back the
others.

Lifecycle transitions are published as frozen snapshots to an optional
listener through a single worker task, so listeners observe each request's
states in order.

Dependencies: asyncio
System role: Serializes Excel COM automation and throttles other work
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from solarcalc.core.exceptions import QueueClosedError
from solarcalc.core.session.models import (
    OperationType,
    QueuedRequest,
    RequestSnapshot,
    RequestStatus,
)

logger = logging.getLogger(__name__)

Executor = Callable[[QueuedRequest], Awaitable[Any]]
AdmitHook = Callable[[QueuedRequest], None]
TransitionListener = Callable[[RequestSnapshot], Awaitable[None]]


class OperationQueue:
    """
    Priority queue with per-category concurrency limits.

    Ordering: a new request is placed before the first waiting request with
    a strictly lower priority, so higher numbers run first and equal
    priorities keep FIFO order.
    """

    def __init__(
        self,
        limits: Mapping[OperationType | str, int],
        executor: Executor,
        admit: AdmitHook | None = None,
        on_transition: TransitionListener | None = None,
    ) -> None:
        """
        Initialize queue.

        Args:
            limits: Max concurrent requests per operation type
            executor: Coroutine function running one request, its return
                value resolves the request future
            admit: Called right before a request starts; raising fails the
                request without consuming a slot
            on_transition: Awaited with a snapshot on every state change
        """
        self._limits = {OperationType(key): value for key, value in limits.items()}
        missing = [t.value for t in OperationType if t not in self._limits]
        if missing:
            raise ValueError(f"Missing concurrency limits for: {', '.join(missing)}")
        if any(value < 1 for value in self._limits.values()):
            raise ValueError("Concurrency limits must be at least 1")

        self._executor = executor
        self._admit = admit
        self._on_transition = on_transition

        self._pending: list[QueuedRequest] = []
        self._active: dict[OperationType, dict[str, QueuedRequest]] = {
            op_type: {} for op_type in OperationType
        }
        self._tasks: set[asyncio.Task] = set()
        self._events: asyncio.Queue[RequestSnapshot] | None = None
        self._notifier: asyncio.Task | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(
        self,
        user_id: str,
        operation: str,
        operation_type: OperationType | str,
        data: dict[str, Any] | None = None,
        priority: int | None = None,
    ) -> QueuedRequest:
        """
        Add a request and dispatch immediately if its category has room.

        Must be called from a running event loop.

        Returns:
            QueuedRequest: The request; await ``request.future`` for the result

        Raises:
            QueueClosedError: Queue has been closed
            ValueError: Unknown operation type
        """
        if self._closed:
            raise QueueClosedError()

        op_type = OperationType(operation_type)
        request = QueuedRequest(
            user_id=user_id,
            operation=operation,
            operation_type=op_type,
            priority=op_type.default_priority if priority is None else priority,
            data=dict(data or {}),
            future=asyncio.get_running_loop().create_future(),
        )
        self._insert(request)
        logger.debug(
            f"Queued {op_type.value}:{operation} as {request.id} "
            f"(priority={request.priority}, queued={len(self._pending)})"
        )
        self._publish(request)
        self._dispatch()
        return request

    async def submit(
        self,
        user_id: str,
        operation: str,
        operation_type: OperationType | str,
        data: dict[str, Any] | None = None,
        priority: int | None = None,
    ) -> Any:
        """Enqueue a request and wait for its result (or exception)."""
        request = self.enqueue(user_id, operation, operation_type, data, priority)
        return await request.future

    def status(self) -> dict[str, Any]:
        """
        Snapshot of queue occupancy.

        Returns:
            dict: total_queued, total_active and per-type queued/active/max
        """
        by_type = {}
        for op_type in OperationType:
            by_type[op_type.value] = {
                "queued": sum(1 for r in self._pending if r.operation_type is op_type),
                "active": len(self._active[op_type]),
                "max_concurrent": self._limits[op_type],
            }
        return {
            "total_queued": len(self._pending),
            "total_active": sum(len(active) for active in self._active.values()),
            "by_type": by_type,
        }

    def pending(self) -> list[QueuedRequest]:
        return list(self._pending)

    def active(self, operation_type: OperationType | str | None = None) -> list[QueuedRequest]:
        if operation_type is not None:
            return list(self._active[OperationType(operation_type)].values())
        return [r for active in self._active.values() for r in active.values()]

    async def flush_transitions(self) -> None:
        """Wait until every published snapshot has been handed to the listener."""
        if self._events is not None:
            await self._events.join()

    async def close(self) -> None:
        """
        Stop accepting work.

        Waiting requests fail with QueueClosedError, running requests are
        awaited, then pending transitions are flushed.
        """
        if self._closed:
            return
        self._closed = True

        pending, self._pending = self._pending, []
        for request in pending:
            self._finish(request, error=QueueClosedError(request.id))

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        await self.flush_transitions()
        if self._notifier is not None:
            self._notifier.cancel()
            try:
                await self._notifier
            except asyncio.CancelledError:
                pass
            self._notifier = None
        logger.info("Operation queue closed")

    def _insert(self, request: QueuedRequest) -> None:
        for index, queued in enumerate(self._pending):
            if queued.priority < request.priority:
                self._pending.insert(index, request)
                return
        self._pending.append(request)

    def _has_capacity(self, op_type: OperationType) -> bool:
        return len(self._active[op_type]) < self._limits[op_type]

    def _dispatch(self) -> None:
        index = 0
        while index < len(self._pending):
            request = self._pending[index]
            if not self._has_capacity(request.operation_type):
                index += 1
                continue

            self._pending.pop(index)
            if self._admit is not None:
                try:
                    self._admit(request)
                except Exception as e:
                    logger.warning(f"Rejected {request.id} at dispatch: {e}")
                    self._finish(request, error=e)
                    continue
            self._start(request)

    def _start(self, request: QueuedRequest) -> None:
        request.status = RequestStatus.PROCESSING
        request.started_at = datetime.now(timezone.utc)
        self._active[request.operation_type][request.id] = request
        self._publish(request)

        task = asyncio.create_task(self._run(request), name=f"operation-{request.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, request: QueuedRequest) -> None:
        try:
            result = await self._executor(request)
        except asyncio.CancelledError:
            self._release(request)
            self._finish(request, error=QueueClosedError(request.id))
            raise
        except Exception as e:
            logger.error(
                f"Operation {request.operation_type.value}:{request.operation} "
                f"({request.id}) failed: {e}"
            )
            self._release(request)
            self._finish(request, error=e)
        else:
            self._release(request)
            self._finish(request, result=result)

        if not self._closed:
            self._dispatch()

    def _release(self, request: QueuedRequest) -> None:
        self._active[request.operation_type].pop(request.id, None)

    def _finish(
        self,
        request: QueuedRequest,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        request.completed_at = datetime.now(timezone.utc)
        future = request.future
        if error is None:
            request.status = RequestStatus.COMPLETED
            if future is not None and not future.done():
                future.set_result(result)
        else:
            request.status = RequestStatus.FAILED
            request.error = str(error)
            if future is not None and not future.done():
                future.set_exception(error)
        self._publish(request)

    def _publish(self, request: QueuedRequest) -> None:
        if self._on_transition is None:
            return
        if self._events is None:
            self._events = asyncio.Queue()
        if self._notifier is None or self._notifier.done():
            self._notifier = asyncio.create_task(
                self._notify_loop(), name="operation-queue-notifier"
            )
        self._events.put_nowait(request.snapshot())

    async def _notify_loop(self) -> None:
        assert self._events is not None
        while True:
            snapshot = await self._events.get()
            try:
                await self._on_transition(snapshot)
            except Exception:
                logger.exception(
                    f"Transition listener failed for {snapshot.id} ({snapshot.status.value})"
                )
            finally:
                self._events.task_done()
