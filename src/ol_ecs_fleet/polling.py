"""Blocking sleep-then-poll helpers shared by the fleet operations."""

import logging
from collections.abc import Callable
from typing import TypeVar

from ol_ecs_fleet.context import FleetContext
from ol_ecs_fleet.exceptions import FleetTimeoutError, OperationCancelled

log = logging.getLogger(__name__)

T = TypeVar("T")


def pause(ctx: FleetContext, seconds: float, description: str) -> None:
    """Sleep for ``seconds`` unless the context is cancelled first.

    Raises:
        OperationCancelled: If the context's cancel event is set.
    """
    if ctx.cancel_event.wait(seconds):
        msg = f"Cancelled while {description}"
        raise OperationCancelled(msg)


def wait_until(  # noqa: PLR0913
    ctx: FleetContext,
    probe: Callable[[], T],
    done: Callable[[T], bool],
    *,
    interval: float,
    timeout: float,
    description: str,
    on_poll: Callable[[T], None] | None = None,
) -> T:
    """Sleep ``interval`` seconds, then call ``probe`` until ``done`` accepts it.

    Args:
        ctx: Run context providing the clock and the cancel event.
        probe: Reads the current value from AWS.
        done: Decides whether the value means the wait is over.
        interval: Seconds to sleep before every probe.
        timeout: Seconds after which the wait gives up.
        description: What is being waited for, used in messages.
        on_poll: Called with every probed value, e.g. to report progress.

    Returns:
        The value that satisfied ``done``.

    Raises:
        FleetTimeoutError: If ``timeout`` elapses first.
        OperationCancelled: If the context is cancelled while waiting.
    """
    deadline = ctx.clock() + timeout
    while True:
        pause(ctx, interval, description)
        value = probe()
        if on_poll is not None:
            on_poll(value)
        if done(value):
            return value
        log.debug("Still %s: %s", description, value)
        if ctx.clock() >= deadline:
            msg = f"Timed out after {timeout}s {description} (last value: {value})"
            raise FleetTimeoutError(msg)
