"""
Fair planner: round-robin across tags.

Jobs are grouped by tag in first-seen order, each group keeping its input
order. Each cycle takes one job from every group that still has jobs, so a
tag with few jobs is never pushed behind all jobs of a busier tag.

Example:
    tags   [A, B, A, A]
    order  [0, 1, 2, 3]   (A, B, then the remaining A jobs)
"""

from collections import OrderedDict, deque
from typing import Deque, Dict, List, Sequence

from sparksub.models import JobSpec
from sparksub.planner.base import Planner


class FairPlanner(Planner):

    name = "fair"

    def order(self, jobs: Sequence[JobSpec]) -> List[int]:
        groups: Dict[str, Deque[int]] = OrderedDict()
        for index, job in enumerate(jobs):
            groups.setdefault(job.tag, deque()).append(index)

        order: List[int] = []
        while groups:
            for tag in list(groups):
                queue = groups[tag]
                order.append(queue.popleft())
                if not queue:
                    # Exhausted groups drop out of later cycles
                    del groups[tag]
        return order
