"""
Per-job resource sizing.

Spark driver/executor sizes are not given by the user. Each job either
gets the default plan, or a fair share of the usable cluster capacity
computed with `fair_share`.

Example (22 usable cores, 4 jobs):
    shares are 5, 5, 6, 6 cores; each job runs a 1-core driver plus
    (share - 1) single-core executors.
"""

from dataclasses import dataclass
from typing import List

from sparksub.cluster import ClusterState
from sparksub.utils.logging import get_logger

log = get_logger("resources")

DRIVER_CORE = 1
DRIVER_MEM_MB = 1024
# Spark tasks per core used for spark.default.parallelism
PARALLELISM_PER_CORE = 5


@dataclass(frozen=True)
class ResourcePlan:
    driver_cpu: int = DRIVER_CORE
    driver_mem_mb: int = DRIVER_MEM_MB
    exec_cpu: int = 2
    exec_mem_mb: int = 2048
    nexec: int = 4

    @property
    def total_core(self) -> int:
        return self.driver_cpu + self.exec_cpu * self.nexec

    @property
    def parallelism(self) -> int:
        return PARALLELISM_PER_CORE * self.total_core

    @property
    def driver_memory(self) -> str:
        return f"{self.driver_mem_mb}m"

    @property
    def exec_memory(self) -> str:
        return f"{self.exec_mem_mb}m"


MINIMAL_PLAN = ResourcePlan(exec_cpu=1, exec_mem_mb=1024, nexec=1)


def fair_share(state: ClusterState, n_jobs: int) -> List[ResourcePlan]:
    """
    Split the usable cluster capacity evenly over `n_jobs` jobs.

    Capacity is handed out one job at a time: each job gets the remaining
    cores and memory divided by the number of jobs still to size, so the
    remainder ends up with the later jobs. `state` is not modified.

    :param state: Cluster capacity snapshot.
    :param n_jobs: Number of jobs to size.
    :return: One ResourcePlan per job, in job order.
    """
    plans: List[ResourcePlan] = []
    total_core = state.total_core
    total_mem = state.total_mem_mb

    for remaining in range(n_jobs, 0, -1):
        core = total_core // remaining
        mem = total_mem // remaining

        if core < 2 or mem <= DRIVER_MEM_MB:
            log.warning(
                f"Share of {core} core(s)/{mem} MiB is too small for a driver and an "
                f"executor, using the minimal plan"
            )
            plan = MINIMAL_PLAN
        else:
            plan = ResourcePlan(
                driver_cpu=DRIVER_CORE,
                driver_mem_mb=DRIVER_MEM_MB,
                exec_cpu=1,
                exec_mem_mb=(mem - DRIVER_MEM_MB) // (core - 1),
                nexec=core - 1,
            )

        plans.append(plan)
        total_core = max(0, total_core - core)
        total_mem = max(0, total_mem - mem)

    return plans
