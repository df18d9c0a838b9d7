"""
Centralized logging configuration.

This module provides a consistent logging setup across all sparksub
components. It configures Python's standard logging with appropriate
formatters, handlers, and log levels, and provides factory functions for
creating namespaced loggers.

Key features:
- Centralized configuration to prevent duplicate setup
- Configurable log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- Optional file logging alongside console output
- Verbose mode with source location information
- The kubernetes client's per-request chatter is held at WARNING unless
  kube_debug is set
- Namespaced loggers with "sparksub." prefix, and per-job adapters that
  prefix messages with "[job N]" like SparkSubError does

The module uses a global flag to ensure logging is only configured once,
even if setup_logging() is called multiple times.
"""

import logging
import sys
from pathlib import Path
from typing import Any, MutableMapping, Optional, Tuple

_CONFIGURED = False

# Loggers the kubernetes client writes every REST round trip to
KUBE_LOGGERS = ("urllib3", "kubernetes", "kubernetes.client.rest")


def setup_logging(level: str = "INFO",
                  log_file: Optional[Path] = None,
                  verbose: bool = False,
                  kube_debug: bool = False,
                  ) -> None:
    """
    Configure the global logging system for sparksub.

    Called once from the CLI callback. Later calls are ignored so handlers
    are never registered twice.

    :param level: Logging level as string, case-insensitive.
    :param log_file: Optional path to also write logs to. The parent
                    directory is created if it doesn't exist.
    :param verbose: If True, include logger name and line number, which
                    helps when following a batch through planner, gate and
                    submitter.
    :param kube_debug: If True, let the kubernetes client's REST logging
                       through at the configured level.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    if verbose:
        fmt = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
    else:
        fmt = "%(asctime)s | %(levelname)-8s | %(message)s"

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )

    for name in KUBE_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if kube_debug else logging.WARNING)

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """
    Create a namespaced logger for sparksub components.

    :param name: Component name (e.g. "gate", "planner", "submit"). The
                "sparksub." prefix is added automatically.
    :return: logging.Logger in the "sparksub." namespace.
    """
    return logging.getLogger(f"sparksub.{name}")


class JobLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the job's input index."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[job {self.extra['index']}] {msg}", kwargs


def job_logger(logger: logging.Logger, index: int) -> JobLogAdapter:
    return JobLogAdapter(logger, {"index": index})
