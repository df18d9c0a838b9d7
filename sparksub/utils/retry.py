"""
Retry utilities.

Decorators and helpers for re-running an operation that fails with a
transient error, waiting with exponential backoff between attempts. The
batch runner uses these to retry a gate admission whose namespace cleanup
hit a transient Kubernetes API error.

Key features:
- Configurable attempt count with exponential backoff
- Exception filtering (retry only specific exception types)
- Maximum delay cap
- Decorator and functional retry patterns
- Dataclass-based configuration shared between config file and runner
- Injectable sleep function so callers with a simulated clock stay in control
"""

import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional, Tuple, Type, TypeVar

from sparksub.utils.logging import get_logger

log = get_logger("retry")
T = TypeVar("T")

@dataclass
class RetryConfig:
    """
    Configuration container for retry behavior.
    """

    max_attempts: int = 3
    """Maximum number of execution attempts before giving up."""
    delay: float = 1.0
    """Initial delay in seconds between retry attempts."""
    backoff: float = 2.0
    """Multiplier applied to delay after each failed attempt."""
    max_delay: float = 30.0
    """Maximum delay cap in seconds."""
    exceptions: Tuple[Type[Exception], ...] = (Exception,)
    """Tuple of exception types to catch and retry on."""

def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    max_delay: float = 30.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    config: Optional[RetryConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator that adds automatic retry logic with exponential backoff.

    The decorator can be configured either by passing parameters directly
    or by providing a RetryConfig object. If both are provided, the config
    object takes precedence.

    :param max_attempts: Maximum number of execution attempts. Must be >= 1.
    :param delay: Initial delay between retries in seconds. Must be >= 0.
    :param backoff: Multiplier applied to delay after each failed attempt.
    :param max_delay: Maximum delay cap in seconds.
    :param exceptions: Exception types that trigger a retry; anything else
                      propagates immediately.
    :param config: Optional RetryConfig overriding all other parameters.
    :param sleep: Function used to wait between attempts.
    :return: A decorator wrapping the target function with retry logic.
    """
    if config:
        max_attempts = config.max_attempts
        delay = config.delay
        backoff = config.backoff
        max_delay = config.max_delay
        exceptions = config.exceptions

    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception: Optional[Exception] = None
            current_delay = delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e

                    if attempt < max_attempts:
                        log.warning(
                            f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}. "
                            f"Retrying in {current_delay:.1f}s..."
                        )
                        sleep(current_delay)
                        current_delay = min(current_delay * backoff, max_delay)
                    else:
                        log.error(
                            f"{func.__name__} failed after {max_attempts} attempts: {e}"
                        )

            raise last_exception

        return wrapper
    return decorator

def retry_call(
    func: Callable[..., T],
    args: tuple = (),
    kwargs: dict = None,
    config: Optional[RetryConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Functional interface for retrying a callable with arguments.

    Useful when retry behavior is decided at call time, as in the batch
    runner where the retry policy comes from configuration.

    :param func: The callable to execute with retry logic.
    :param args: Positional arguments to pass to func.
    :param kwargs: Keyword arguments to pass to func.
    :param config: Retry policy; defaults to RetryConfig().
    :param sleep: Function used to wait between attempts.
    :return: The return value from the first successful call.
    """
    kwargs = kwargs or {}

    def _call():
        return func(*args, **kwargs)

    # Keep the wrapped name in retry log lines
    _call.__name__ = getattr(func, "__name__", "call")
    return retry(config=config or RetryConfig(), sleep=sleep)(_call)()
