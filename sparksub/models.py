"""
Core data types shared by the planner, the scheduler gate and the runner.

- JobSpec: one submission; immutable, never deduplicated
- Strategy: planning strategy selector
- PodRef: a pod in the cluster, as seen by the gate
- AdmissionReceipt: what the gate did before letting a submission through
- SubmissionResult / BatchReport: outcome of a batch run
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sparksub.errors import InvalidStrategy, SparkSubError


class Strategy(str, Enum):
    """Planning strategy, chosen once per batch."""

    FAIR = "fair"
    WORKLOAD = "workload"

    @classmethod
    def parse(cls, value: Any) -> "Strategy":
        """
        Turn user input into a Strategy.

        :param value: A Strategy member or its string value (case-insensitive).
        :return: The matching Strategy.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidStrategy(value, [s.value for s in cls])


@dataclass(frozen=True)
class JobSpec:
    """
    One unit of submission work.

    Two JobSpecs with identical fields are still two submissions; nothing
    in the pipeline deduplicates them.
    """

    program_uri: str
    arguments: Tuple[str, ...] = ()
    tag: str = "compute"
    # Declared cost for the workload strategy (None = let the policy decide)
    weight: Optional[float] = None

    def __post_init__(self):
        if not isinstance(self.tag, str) or not self.tag.strip():
            raise ValueError("JobSpec.tag must be a non-empty string")
        if not self.program_uri:
            raise ValueError("JobSpec.program_uri must be a non-empty string")
        if self.weight is not None and self.weight < 0:
            raise ValueError(f"JobSpec.weight must be >= 0, got {self.weight}")
        # Accept any sequence of arguments but store it immutably
        object.__setattr__(self, "arguments", tuple(str(a) for a in self.arguments))

    @classmethod
    def from_prog(cls, prog: str, tag: str, weight: Optional[float] = None) -> "JobSpec":
        """
        Build a JobSpec from a "<uri> <arg> <arg>..." string.

        :param prog: Program URI followed by its whitespace separated arguments.
        :param tag: Resource-class tag.
        :param weight: Optional declared weight.
        :return: New JobSpec.
        """
        parts = prog.split()
        if not parts:
            raise ValueError("Empty program string")
        return cls(program_uri=parts[0], arguments=tuple(parts[1:]), tag=tag, weight=weight)


@dataclass(frozen=True)
class PodRef:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class AdmissionReceipt:
    """
    Proof that the gate was satisfied for one submission.
    """

    namespace: str
    # Pods removed by this admission's cleanup
    deleted: Tuple[PodRef, ...]
    # Seconds the caller was blocked to honour the minimum gap
    waited: float
    # Clock reading recorded as the new last submission timestamp
    admitted_at: float
    # 1-based count of admissions granted by this gate
    sequence: int
    satisfied: bool = True


@dataclass
class SubmissionResult:
    """Outcome of one dispatched job."""

    index: int
    job: JobSpec
    returncode: Optional[int]
    command: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "tag": self.job.tag,
            "program_uri": self.job.program_uri,
            "returncode": self.returncode,
            "elapsed": round(self.elapsed, 3),
        }


@dataclass
class BatchReport:
    """
    Result of one batch run.

    `order` is the plan, `results` holds one entry per job that was
    dispatched and waited for, `errors` every failure in the order it
    was observed.
    """

    order: List[int] = field(default_factory=list)
    results: List[SubmissionResult] = field(default_factory=list)
    errors: List[SparkSubError] = field(default_factory=list)
    aborted: bool = False
    elapsed: float = 0.0

    @property
    def succeeded(self) -> List[int]:
        return [r.index for r in self.results if r.ok]

    @property
    def failed(self) -> List[int]:
        return sorted({e.index for e in self.errors if isinstance(e.index, int)})

    @property
    def ok(self) -> bool:
        return not self.errors and not self.aborted

    def errors_for(self, index: int) -> Sequence[SparkSubError]:
        return [e for e in self.errors if e.index == index]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": list(self.order),
            "results": [r.to_dict() for r in self.results],
            "errors": [{"index": e.index, "type": type(e).__name__, "message": e.message}
                       for e in self.errors],
            "aborted": self.aborted,
            "elapsed": round(self.elapsed, 3),
        }
