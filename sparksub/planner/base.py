from abc import ABC, abstractmethod
from typing import List, Sequence

from sparksub.models import JobSpec
from sparksub.utils.logging import get_logger

log = get_logger("planner")


class Planner(ABC):
    """
    Base class for submission planners.

    Subclasses implement `order`; callers use `plan`, which also checks
    that the result is a permutation of the input indices.
    """

    name: str = "base"

    @classmethod
    def from_options(cls, **options) -> "Planner":
        """
        Build a planner from CLI/config options.

        Planners ignore options they have no use for, so every strategy can
        be constructed from the same option set.
        """
        return cls()

    @abstractmethod
    def order(self, jobs: Sequence[JobSpec]) -> List[int]:
        """Return the submission order as indices into `jobs`."""

    def plan(self, jobs: Sequence[JobSpec]) -> List[int]:
        """
        Compute the submission order for `jobs`.

        :param jobs: Job list in user input order. May be empty.
        :return: Permutation of range(len(jobs)).
        """
        if not jobs:
            return []

        order = self.order(jobs)
        if sorted(order) != list(range(len(jobs))):
            raise RuntimeError(
                f"Planner '{self.name}' returned {order}, which is not a "
                f"permutation of {len(jobs)} job indices"
            )

        log.debug(f"{self.name} plan for {len(jobs)} job(s): {order}")
        return order
