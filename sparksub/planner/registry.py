"""
Planner Registry

PLANNERS: Simple dict mapping strategy name → Planner class.
To add a strategy at runtime, call register() with its name and class.
"""

from typing import Any, Dict, List, Sequence, Type

from sparksub.errors import InvalidStrategy
from sparksub.models import JobSpec, Strategy
from sparksub.planner.base import Planner
from sparksub.planner.fair import FairPlanner
from sparksub.planner.workload import WorkloadPlanner

PLANNERS: Dict[str, Type[Planner]] = {
    Strategy.FAIR.value: FairPlanner,
    Strategy.WORKLOAD.value: WorkloadPlanner,
}


def _key(strategy: Any) -> str:
    try:
        return Strategy.parse(strategy).value
    except InvalidStrategy:
        # Not built in; may still be a name added through register()
        if isinstance(strategy, str) and strategy.strip().lower() in PLANNERS:
            return strategy.strip().lower()
        raise InvalidStrategy(strategy, sorted(PLANNERS))


def get_planner(strategy: Any, **options) -> Planner:
    """
    Get a planner instance for a strategy selector.

    :param strategy: Strategy member or registered strategy name.
    :param options: Planner options (e.g. weight_fn, tag_weights).
    :return: Planner instance.
    """
    return PLANNERS[_key(strategy)].from_options(**options)


def register(name: str, cls: Type[Planner]) -> None:
    """Register a planner class at runtime.

    :param name: strategy name
    :param cls: Planner subclass
    """
    PLANNERS[name.strip().lower()] = cls


def plan(jobs: Sequence[JobSpec], strategy: Any, **options) -> List[int]:
    """
    Order `jobs` for submission.

    The strategy is resolved before the jobs are looked at, so an unknown
    selector fails with InvalidStrategy without any partial work.

    :param jobs: Jobs in user input order.
    :param strategy: Strategy member or registered strategy name.
    :return: Submission order as indices into `jobs`.
    """
    planner = get_planner(strategy, **options)
    return planner.plan(jobs)
