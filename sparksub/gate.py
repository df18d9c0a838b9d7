"""
Scheduler gate.

The gate sits in front of every submission. Before letting one through it
empties the target namespace and makes sure a minimum interval has passed
since the previous admission, so the cluster scheduler never sees a new
Spark application racing against leftovers of the previous one.

Key features:
- Deletes every pod in the namespace regardless of phase
- Waits until deleted pods are no longer listed, up to a deadline
- Minimum gap between admissions, measured on an injectable clock
- Explicit, injectable GateState (no process-wide singleton)
- Cleanup errors surface as CleanupFailed; nothing is admitted into a
  namespace that could not be emptied
- A lock serializes admissions, and `admitted()` keeps it held until the
  guarded submission has been dispatched

State machine per admission:
    IDLE -> CLEANING -> WAITING (only if the gap is not yet over) -> ADMITTED -> IDLE
"""

import time
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Set, Tuple

from sparksub.cluster import ClusterClient
from sparksub.errors import CleanupFailed
from sparksub.models import AdmissionReceipt, PodRef
from sparksub.utils.logging import get_logger

log = get_logger("gate")

DEFAULT_NAMESPACE = "spark"
DEFAULT_MIN_GAP = 1.0
# Deleted pods stay listed as Terminating until the kubelet confirms removal
DEFAULT_DELETION_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 0.5


class GateStatus(Enum):
    IDLE = "idle"
    CLEANING = "cleaning"
    WAITING = "waiting"
    ADMITTED = "admitted"


class Clock(ABC):
    """Time source and timer used by the gate."""

    @abstractmethod
    def monotonic(self) -> float:
        """Current reading of a monotonic clock, in seconds."""

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Block the caller for `seconds`."""


class SystemClock(Clock):
    """Wall-clock implementation based on the time module."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


@dataclass
class GateState:
    """
    State owned by one gate.

    Only the gate's admission path writes to it.
    """

    namespace: str = DEFAULT_NAMESPACE
    # Clock reading of the last admission; None before the first one
    last_submission_timestamp: Optional[float] = None
    admissions: int = 0


class SchedulerGate:
    """
    Cleans the namespace and enforces the minimum gap before each submission.

    Usage:
        gate = SchedulerGate(KubernetesCluster())
        for index in order:
            with gate.admitted() as receipt:
                submitter.dispatch(index, jobs[index])
    """

    def __init__(
        self,
        cluster: ClusterClient,
        state: Optional[GateState] = None,
        clock: Optional[Clock] = None,
        min_gap: float = DEFAULT_MIN_GAP,
        deletion_timeout: float = DEFAULT_DELETION_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """
        :param cluster: Cluster access used to list and delete pods.
        :param state: Gate state; a fresh one for the "spark" namespace if None.
        :param clock: Time source; the system clock if None.
        :param min_gap: Minimum seconds between two admissions.
        :param deletion_timeout: Seconds to wait for deleted pods to leave the
                                 namespace before cleanup fails.
        :param poll_interval: Seconds between two listings while waiting.
        """
        if min_gap < 0:
            raise ValueError(f"min_gap must be >= 0, got {min_gap}")
        if deletion_timeout < 0:
            raise ValueError(f"deletion_timeout must be >= 0, got {deletion_timeout}")
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {poll_interval}")

        self.cluster = cluster
        self.state = state if state is not None else GateState()
        self.clock = clock or SystemClock()
        self.min_gap = float(min_gap)
        self.deletion_timeout = float(deletion_timeout)
        self.poll_interval = float(poll_interval)

        self._lock = threading.Lock()
        self._status = GateStatus.IDLE

    @property
    def namespace(self) -> str:
        return self.state.namespace

    @property
    def status(self) -> GateStatus:
        return self._status

    def cleanup(self) -> Tuple[PodRef, ...]:
        """
        Delete every pod in the namespace and wait until none is listed.

        :return: Pods deleted by this call (pods already gone are not listed).
        :raises CleanupFailed: If listing fails, any deletion fails, or pods
                              are still listed after `deletion_timeout`.
        """
        with self._lock:
            return self._cleanup()

    def admit(self) -> AdmissionReceipt:
        """
        Clean the namespace and wait out the minimum gap.

        Call once per submission, immediately before it.

        :return: Receipt describing the admission.
        :raises CleanupFailed: If the namespace could not be emptied; no
                              timestamp is recorded in that case.
        """
        with self._lock:
            receipt = self._admit()
            self._status = GateStatus.IDLE
            return receipt

    @contextmanager
    def admitted(self) -> Iterator[AdmissionReceipt]:
        """
        Admit and keep the gate held while the caller dispatches.

        No other admission can start until the block exits, which keeps
        submissions in the same order as their admissions.
        """
        with self._lock:
            receipt = self._admit()
            try:
                yield receipt
            finally:
                self._status = GateStatus.IDLE

    def _list(self, namespace: str) -> Set[PodRef]:
        try:
            return self.cluster.list_pods(namespace)
        except Exception as e:
            raise CleanupFailed(namespace, f"could not list pods: {e}", cause=e) from e

    def _delete_all(self, pods: Set[PodRef], deleted: List[PodRef], requested: Set[PodRef]) -> None:
        failed: List[str] = []
        first_error: Optional[Exception] = None

        # Every pod is attempted even after a failure
        for pod in sorted(pods, key=lambda p: p.name):
            requested.add(pod)
            try:
                if self.cluster.delete_pod(pod):
                    deleted.append(pod)
            except Exception as e:
                log.warning(f"Could not delete pod {pod}: {e}")
                failed.append(pod.name)
                if first_error is None:
                    first_error = e

        if failed:
            raise CleanupFailed(
                self.state.namespace,
                f"could not delete {len(failed)} pod(s): {', '.join(failed)}",
                failed=failed,
                cause=first_error,
            ) from first_error

    def _cleanup(self) -> Tuple[PodRef, ...]:
        namespace = self.state.namespace
        pods = self._list(namespace)
        if not pods:
            return ()

        log.info(f"Deleting {len(pods)} pod(s) in namespace '{namespace}'")
        deleted: List[PodRef] = []
        requested: Set[PodRef] = set()
        self._delete_all(pods, deleted, requested)

        # Terminating pods are still listed until the kubelet has removed them
        deadline = self.clock.monotonic() + self.deletion_timeout
        remaining = self._list(namespace)
        while remaining:
            # Pods that showed up after the first listing
            self._delete_all(remaining - requested, deleted, requested)
            if self.clock.monotonic() >= deadline:
                names = sorted(p.name for p in remaining)
                raise CleanupFailed(
                    namespace,
                    f"{len(names)} pod(s) still present after {self.deletion_timeout:g}s: {', '.join(names)}",
                    failed=names,
                )
            log.debug(f"Waiting for {len(remaining)} terminating pod(s) in '{namespace}'")
            self.clock.sleep(self.poll_interval)
            remaining = self._list(namespace)

        return tuple(deleted)

    def _admit(self) -> AdmissionReceipt:
        self._status = GateStatus.CLEANING
        try:
            deleted = self._cleanup()
        except CleanupFailed:
            self._status = GateStatus.IDLE
            raise

        waited = 0.0
        last = self.state.last_submission_timestamp
        if last is not None:
            remaining = self.min_gap - (self.clock.monotonic() - last)
            if remaining > 0:
                self._status = GateStatus.WAITING
                log.debug(f"Waiting {remaining:.3f}s for the minimum submission gap")
            # Loop in case the timer wakes up early
            while remaining > 0:
                self.clock.sleep(remaining)
                waited += remaining
                remaining = self.min_gap - (self.clock.monotonic() - last)

        now = self.clock.monotonic()
        self.state.last_submission_timestamp = now
        self.state.admissions += 1
        self._status = GateStatus.ADMITTED

        receipt = AdmissionReceipt(
            namespace=self.state.namespace,
            deleted=deleted,
            waited=waited,
            admitted_at=now,
            sequence=self.state.admissions,
        )
        log.info(
            f"Admission #{receipt.sequence} in '{receipt.namespace}': "
            f"{len(deleted)} pod(s) deleted, waited {waited:.2f}s"
        )
        return receipt
