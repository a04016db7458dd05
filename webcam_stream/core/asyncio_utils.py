"""Asyncio helpers for fire-and-forget stream tasks."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Iterable, Optional

from .logging_utils import LoggerLike, ensure_structured_logger


def _task_label(task: asyncio.Task[Any], context: Optional[str]) -> str:
    if context:
        return context
    return task.get_name() or "background task"


def add_task_exception_logger(
    task: asyncio.Task[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
) -> asyncio.Task[Any]:
    """Retrieve and log the exception of ``task`` once it finishes.

    Without this, a failing pump task only surfaces as a
    "Task exception was never retrieved" warning at interpreter shutdown.
    """
    task_logger = ensure_structured_logger(logger, fallback_name="asyncio")

    def _done(done_task: asyncio.Task[Any]) -> None:
        if done_task.cancelled():
            return
        exc = done_task.exception()
        if exc is not None:
            task_logger.error(
                "Unhandled exception in %s",
                _task_label(done_task, context),
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    task.add_done_callback(_done)
    return task


def create_logged_task(
    coro: Awaitable[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
) -> asyncio.Task[Any]:
    """Create a task that won't lose exceptions."""
    loop = asyncio.get_running_loop()
    task = loop.create_task(coro)
    if context:
        task.set_name(context)

    add_task_exception_logger(task, logger=logger, context=context)

    return task


def cancel_tasks(tasks: Iterable[Optional[asyncio.Task[Any]]]) -> None:
    """Request cancellation without waiting for the tasks to unwind."""
    for task in tasks:
        if task is not None and not task.done():
            task.cancel()


__all__ = [
    "add_task_exception_logger",
    "cancel_tasks",
    "create_logged_task",
]
