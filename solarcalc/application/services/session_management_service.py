"""
Session management service orchestrator.

Composes the session registry, the per-category operation queue, the COM
process manager and the operation handler table. Every automation request
enters through queue_request/run_batch and runs inside the caller's
session.

Dependencies: asyncio, solarcalc.core.session, solarcalc.boundary.com
System role: Multi-user request isolation and scheduling
"""

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from solarcalc.application.services.operation_handlers import OperationHandler
from solarcalc.application.services.operation_record_service import OperationRecorder
from solarcalc.boundary.com.process_manager import ComProcessInfo, ComProcessManager
from solarcalc.configs.queue import QueueSettings
from solarcalc.core.exceptions import SessionExpiredError, UnknownOperationError
from solarcalc.core.session.models import OperationType, QueuedRequest, UserSession
from solarcalc.core.session.operation_queue import OperationQueue
from solarcalc.core.session.session_registry import SessionRegistry
from solarcalc.observability.log_utils import log_with_context

logger = logging.getLogger(__name__)


def _type_key(operation_type: Any) -> str:
    """Batch report key; unknown types are reported under their raw value."""
    try:
        return OperationType(operation_type).value
    except ValueError:
        return str(operation_type)


class SessionManagementService:
    """
    Per-user sessions plus the shared operation queue.

    COM work is limited to a handful of concurrent Excel instances across
    all users; each user's files live in their own session directory.
    """

    def __init__(
        self,
        settings: QueueSettings,
        process_manager: ComProcessManager,
        recorder: OperationRecorder | None = None,
    ) -> None:
        """
        Initialize service.

        Args:
            settings: Concurrency limits, session timeout, sweep interval
            process_manager: Isolated Office process launcher
            recorder: Optional audit trail listener for queue transitions
        """
        self.settings = settings
        self.process_manager = process_manager
        self.registry = SessionRegistry(settings.base_working_dir, settings.session_timeout_seconds)
        self.queue = OperationQueue(
            settings.concurrency_limits(),
            executor=self._execute,
            admit=self._admit,
            on_transition=recorder.record if recorder is not None else None,
        )
        self._handlers: dict[tuple[OperationType, str], OperationHandler] = {}
        self._cleanup_task: asyncio.Task | None = None

    # Handlers

    def register_handler(
        self,
        operation_type: OperationType | str,
        operation: str,
        handler: OperationHandler,
    ) -> None:
        """Register (or replace) the coroutine run for an operation."""
        self._handlers[(OperationType(operation_type), operation)] = handler

    def register_handlers(
        self,
        handlers: Mapping[tuple[OperationType, str], OperationHandler],
    ) -> None:
        for (operation_type, operation), handler in handlers.items():
            self.register_handler(operation_type, operation, handler)

    def has_handler(self, operation_type: OperationType | str, operation: str) -> bool:
        return (OperationType(operation_type), operation) in self._handlers

    # Sessions

    def create_or_get_session(self, user_id: str) -> UserSession:
        return self.registry.create_or_get(user_id)

    def get_user_session(self, user_id: str) -> UserSession | None:
        """Valid session for the user, or None when missing or expired."""
        return self.registry.get(user_id)

    def get_user_working_directory(self, user_id: str) -> Path | None:
        return self.registry.get_working_directory(user_id)

    def has_active_operations(self, user_id: str) -> bool:
        return self.registry.has_active_operations(user_id)

    async def start_com_process(self, user_id: str, application: str) -> ComProcessInfo:
        """
        Launch an isolated Office process inside the user's session folder.

        Raises:
            SessionExpiredError: No valid session
            ValueError: Unsupported application
            ProcessLaunchError: Process did not report its PID
        """
        session = self.registry.get(user_id)
        if session is None:
            raise SessionExpiredError(user_id)

        info = await self.process_manager.create_process(
            application,
            user_id,
            session.session_id,
            session.working_directory,
        )
        session.com_processes[application] = info.process_id
        session.touch()
        return info

    async def cleanup_user_session(self, user_id: str) -> bool:
        """
        Tear down a user's session: processes, working directory, registry entry.

        Returns:
            bool: False if the user had no session
        """
        session = self.registry.get_any(user_id)
        if session is None:
            return False

        killed = await self.process_manager.kill_user_processes(user_id)
        session.com_processes.clear()
        if not self.registry.remove_directory(session):
            logger.warning(f"Working directory of session {session.session_id} was not removed")
        self.registry.remove(user_id)
        logger.info(f"Cleaned up session {session.session_id} for user {user_id} ({killed} processes killed)")
        return True

    async def cleanup_expired_sessions(self) -> int:
        """
        Remove every expired session that has no operation in flight.

        Returns:
            int: Number of sessions removed
        """
        removed = 0
        for user_id in self.registry.expired_user_ids():
            if self.registry.has_active_operations(user_id):
                logger.debug(f"Keeping expired session of {user_id}: operations still running")
                continue
            if await self.cleanup_user_session(user_id):
                removed += 1
        if removed:
            logger.info(f"Removed {removed} expired sessions")
        return removed

    # Queue

    def _resolve_handler(self, operation_type: OperationType | str, operation: str) -> OperationHandler:
        try:
            op_type = OperationType(operation_type)
        except ValueError:
            raise UnknownOperationError(str(operation_type), operation) from None
        handler = self._handlers.get((op_type, operation))
        if handler is None:
            raise UnknownOperationError(op_type.value, operation)
        return handler

    async def queue_request(
        self,
        user_id: str,
        operation: str,
        operation_type: OperationType | str,
        data: dict[str, Any] | None = None,
        priority: int | None = None,
    ) -> Any:
        """
        Queue an operation for a user and wait for its result.

        Args:
            user_id: Requesting user (must have a valid session)
            operation: Registered operation name
            operation_type: Queue category
            data: Handler payload
            priority: Higher runs first; category default when None

        Returns:
            Any: Handler result

        Raises:
            UnknownOperationError: No handler for (type, operation)
            SessionExpiredError: No valid session at enqueue or start time
        """
        self._resolve_handler(operation_type, operation)
        if self.registry.get(user_id) is None:
            raise SessionExpiredError(user_id)
        log_with_context(
            logger,
            logging.DEBUG,
            f"Queueing {operation} for {user_id}",
            operation_type=getattr(operation_type, "value", operation_type),
            data=data,
        )
        return await self.queue.submit(user_id, operation, operation_type, data, priority)

    async def run_batch(
        self,
        user_id: str,
        operations: Iterable[Mapping[str, Any]],
    ) -> dict[str, Any]:
        """
        Queue several operations at once and wait for all of them.

        A failing operation is reported in its own result entry and does
        not affect the others.

        Args:
            user_id: Requesting user
            operations: Mappings with operation, operation_type, data, priority

        Returns:
            dict: results, total_operations, successful, failed,
                total_time_ms, average_time_ms, by_type
        """
        operations = list(operations)
        started = time.perf_counter()
        outcomes = await asyncio.gather(
            *(
                self.queue_request(
                    user_id,
                    op.get("operation"),
                    op.get("operation_type"),
                    op.get("data"),
                    op.get("priority"),
                )
                for op in operations
            ),
            return_exceptions=True,
        )
        total_time_ms = (time.perf_counter() - started) * 1000

        results = []
        by_type: dict[str, int] = {}
        for op, outcome in zip(operations, outcomes):
            type_key = _type_key(op.get("operation_type"))
            by_type[type_key] = by_type.get(type_key, 0) + 1
            if isinstance(outcome, BaseException):
                results.append({
                    "operation": op.get("operation"),
                    "operation_type": type_key,
                    "success": False,
                    "error": str(outcome),
                })
            else:
                results.append({
                    "operation": op.get("operation"),
                    "operation_type": type_key,
                    "success": True,
                    "result": outcome,
                })

        successful = sum(1 for r in results if r["success"])
        return {
            "results": results,
            "total_operations": len(results),
            "successful": successful,
            "failed": len(results) - successful,
            "total_time_ms": total_time_ms,
            "average_time_ms": total_time_ms / len(results) if results else 0.0,
            "by_type": by_type,
        }

    def _admit(self, request: QueuedRequest) -> None:
        if not self.registry.start_operation(request.user_id, request.id):
            raise SessionExpiredError(request.user_id)

    async def _execute(self, request: QueuedRequest) -> Any:
        handler = self._resolve_handler(request.operation_type, request.operation)
        session = self.registry.get_any(request.user_id)
        try:
            if session is None:
                raise SessionExpiredError(request.user_id)
            return await handler(request.data, session)
        finally:
            self.registry.complete_operation(request.user_id, request.id)

    def get_queue_status(self) -> dict[str, Any]:
        status = self.queue.status()
        status["total_active_sessions"] = self.registry.count()
        return status

    # Lifecycle

    def start(self) -> None:
        """Start the periodic expired-session sweep."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(), name="session-cleanup")
            logger.info(
                f"Session cleanup running every {self.settings.cleanup_interval_seconds}s "
                f"(timeout {self.settings.session_timeout_seconds}s)"
            )

    async def stop(self) -> None:
        """Stop the sweep, drain the queue and kill tracked processes."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        await self.queue.close()
        await self.process_manager.shutdown()
        logger.info("Session management service stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.cleanup_interval_seconds)
            try:
                await self.cleanup_expired_sessions()
            except Exception as e:
                logger.error(f"Expired session sweep failed: {e}", exc_info=True)
