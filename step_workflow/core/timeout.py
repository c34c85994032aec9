"""
Timeout race for step execution.
Builds a future that resolves after a delay unless the session's
cancellation token has already fired.
"""
import asyncio
import logging
from typing import Any, Callable, Optional, Tuple
from .types import CancellationToken
logger = logging.getLogger(__name__)
def create_timeout_future(
    timeout_seconds: float,
    token: CancellationToken,
    on_timeout: Callable[[], Any],
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> Tuple["asyncio.Future[Any]", Callable[[], None]]:
    """
    Create a timeout future to race against an execution.
    The timer checks the token at fire time, so a cancellation that lands
    first prevents on_timeout from running and the future stays pending.
    Args:
        timeout_seconds: Delay before the timeout fires
        token: Session cancellation token
        on_timeout: Builds the value the future resolves to
        loop: Event loop to schedule on (defaults to the running loop)
    Returns:
        (future, cleanup) - cleanup cancels the timer and is idempotent
    """
    loop = loop or asyncio.get_running_loop()
    future: "asyncio.Future[Any]" = loop.create_future()
    cleaned_up = False
    def _fire() -> None:
        if token.is_cancelled or future.done():
            return
        try:
            future.set_result(on_timeout())
        except Exception as e:
            future.set_exception(e)
    handle = loop.call_later(timeout_seconds, _fire)
    def cleanup() -> None:
        nonlocal cleaned_up
        if cleaned_up:
            return
        cleaned_up = True
        handle.cancel()
        if not future.done():
            future.cancel()
    return future, cleanup
