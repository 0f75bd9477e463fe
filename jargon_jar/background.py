"""Utilities for running Slack calls after a webhook has been acknowledged."""

from contextvars import copy_context
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from structlog.contextvars import bind_contextvars, get_contextvars


_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="jargon-jar")


def run_async(
    func: Callable[..., Any],
    /,
    *args: Any,
    trace_id: str | None = None,
    **kwargs: Any,
) -> Future:
    """Submit *func* to the shared thread pool and return a Future.

    The caller's contextvars (structlog's bound ``trace_id`` in particular)
    are copied into the worker so background log lines stay correlated with
    the webhook that scheduled them.
    """

    context = copy_context()

    if trace_id is not None:
        existing_trace = context.run(lambda: get_contextvars().get("trace_id"))
        if existing_trace != trace_id:
            context.run(lambda: bind_contextvars(trace_id=trace_id))

    def runner() -> Any:
        return context.run(func, *args, **kwargs)

    return _executor.submit(runner)
