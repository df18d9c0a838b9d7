"""
Submission planners.

A planner turns a flat list of JobSpecs into the order they are handed to
the cluster. It only returns indices into the input list; it never copies,
drops or duplicates a job.
"""

from .base import Planner
from .fair import FairPlanner
from .workload import WorkloadPlanner, TagWeights, declared_weight
from .registry import PLANNERS, get_planner, register, plan

__all__ = [
    "Planner",
    "FairPlanner",
    "WorkloadPlanner",
    "TagWeights",
    "declared_weight",
    "PLANNERS",
    "get_planner",
    "register",
    "plan",
]
