"""Poll loops for waiting on guest and storage state."""
import time
from typing import Callable, Optional

from pvesync.core.logger import get_logger

logger = get_logger(__name__)

Sleeper = Callable[[float], None]


def poll_until(
    condition: Callable[[], bool],
    interval: float,
    max_attempts: Optional[int] = None,
    sleep: Sleeper = time.sleep,
    describe: str = "condition",
) -> bool:
    """Call ``condition`` until it returns True.

    Args:
        condition: Zero-argument callable probed once per attempt
        interval: Seconds to sleep between failed attempts
        max_attempts: Attempt ceiling, or None to wait forever
        sleep: Sleep function (injectable for tests)
        describe: Human readable name used in debug logs

    Returns:
        True once the condition holds, False when the attempt ceiling is hit.
        The caller decides whether exhaustion is fatal.

    Example:
        poll_until(lambda: lifecycle.status(103) is GuestState.STOPPED, interval=3)
    """
    attempt = 0
    while True:
        attempt += 1
        if condition():
            return True

        if max_attempts is not None:
            logger.debug(f"{describe}: not yet (attempt {attempt}/{max_attempts})")
            if attempt >= max_attempts:
                return False
        else:
            logger.debug(f"{describe}: not yet (attempt {attempt})")

        sleep(interval)
