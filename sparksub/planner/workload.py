"""
Workload planner: order by job weight.

The weight of a job is produced by a pluggable policy, any callable
`(JobSpec) -> float`. Jobs are submitted lightest first; equal weights keep
input order, so with no weights declared the plan is the input order.

Built-in policies:
- declared_weight: the job's own `weight`, 1.0 when unset
- TagWeights: a per-tag table, overridden by a job's own `weight`
"""

from typing import Callable, Dict, List, Mapping, Optional, Sequence

from sparksub.models import JobSpec
from sparksub.planner.base import Planner

WeightFn = Callable[[JobSpec], float]

DEFAULT_WEIGHT = 1.0


def declared_weight(job: JobSpec) -> float:
    """Weight declared on the job itself, or the default weight."""
    return DEFAULT_WEIGHT if job.weight is None else float(job.weight)


class TagWeights:
    """
    Weight policy backed by a per-tag table.

    :param weights: Mapping of tag to weight.
    :param default: Weight for tags missing from the table.
    """

    def __init__(self, weights: Optional[Mapping[str, float]] = None, default: float = DEFAULT_WEIGHT):
        self.weights: Dict[str, float] = {k: float(v) for k, v in (weights or {}).items()}
        self.default = float(default)

    def __call__(self, job: JobSpec) -> float:
        if job.weight is not None:
            return float(job.weight)
        return self.weights.get(job.tag, self.default)

    def __repr__(self) -> str:
        return f"TagWeights({self.weights!r}, default={self.default})"


class WorkloadPlanner(Planner):

    name = "workload"

    def __init__(self, weight_fn: Optional[WeightFn] = None):
        self.weight_fn: WeightFn = weight_fn or declared_weight

    @classmethod
    def from_options(cls, weight_fn: Optional[WeightFn] = None, tag_weights: Optional[Mapping[str, float]] = None,
                     **options) -> "WorkloadPlanner":
        if weight_fn is None and tag_weights:
            weight_fn = TagWeights(tag_weights)
        return cls(weight_fn=weight_fn)

    def order(self, jobs: Sequence[JobSpec]) -> List[int]:
        weights = [self.weight_fn(job) for job in jobs]
        # Index as secondary key keeps the sort stable and deterministic
        return sorted(range(len(jobs)), key=lambda i: (weights[i], i))
