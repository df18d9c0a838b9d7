"""
Batch runner.

Ties the planner, the scheduler gate and the submitter together:

    plan -> for each job in plan order: admit (gate) -> dispatch
         -> wait for every dispatched job -> final namespace cleanup

Key features:
- Planning errors are reported before anything touches the cluster
- Admission is retried with backoff when the namespace cleanup fails
- A job whose process fails does not stop the rest of the batch
- Dry-run mode plans and builds commands without touching the cluster
- Every failure ends up in the BatchReport with the index of its job
"""

import time
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple, Union

from sparksub.errors import (
    POST_BATCH,
    CleanupFailed,
    SparkSubError,
    SubmissionFailed,
)
from sparksub.gate import SchedulerGate
from sparksub.models import AdmissionReceipt, BatchReport, JobSpec, SubmissionResult
from sparksub.planner import get_planner
from sparksub.resources import ResourcePlan
from sparksub.submit import Dispatched, SparkSubmitter, build_command
from sparksub.utils.logging import get_logger
from sparksub.utils.retry import RetryConfig, retry_call

log = get_logger("runner")

Resources = Union[None, ResourcePlan, Sequence[ResourcePlan]]


class BatchRunner:
    """
    Runs one batch of jobs through the scheduler gate.

    Usage:
        runner = BatchRunner("fair", gate, SparkSubmitter(options))
        report = runner.run(jobs)
        if not report.ok:
            ...
    """

    def __init__(
        self,
        planner_strategy,
        gate: SchedulerGate,
        submitter: SparkSubmitter,
        retry: Optional[RetryConfig] = None,
        abort_on_cleanup_failure: bool = True,
        dry_run: bool = False,
        final_cleanup: bool = True,
        planner_options: Optional[Dict] = None,
    ):
        """
        :param planner_strategy: Strategy name or Strategy member.
        :param gate: Gate guarding every submission.
        :param submitter: Starts the spark-submit processes.
        :param retry: Admission retry policy. Only CleanupFailed is retried.
        :param abort_on_cleanup_failure: Stop the batch when admission keeps
                                        failing; otherwise skip the job.
        :param dry_run: Plan and build commands only.
        :param final_cleanup: Clean the namespace once after the batch.
        :param planner_options: Extra keyword options for the planner.
        """
        self.planner_strategy = planner_strategy
        self.gate = gate
        self.submitter = submitter
        self.retry = replace(retry or RetryConfig(), exceptions=(CleanupFailed,))
        self.abort_on_cleanup_failure = abort_on_cleanup_failure
        self.dry_run = dry_run
        self.final_cleanup = final_cleanup
        self.planner_options = planner_options or {}

    def run(self, jobs: Sequence[JobSpec], resources: Resources = None) -> BatchReport:
        """
        Plan and submit a batch.

        :param jobs: Jobs in user order; indices in the report refer to it.
        :param resources: One plan for every job, or one plan per job (in
                          user order), or None for the default plan.
        :return: BatchReport for the whole batch.
        """
        started = time.monotonic()
        report = BatchReport()

        try:
            planner = get_planner(self.planner_strategy, **self.planner_options)
            report.order = planner.plan(jobs)
        except SparkSubError as e:
            log.error(str(e))
            report.errors.append(e)
            report.elapsed = time.monotonic() - started
            return report

        log.info(f"Planned {len(jobs)} job(s) with '{planner.name}': {report.order}")
        plans = _resource_plans(resources, len(jobs))

        if self.dry_run:
            for i in report.order:
                cmd = build_command(jobs[i], self.submitter.options, plans[i])
                report.results.append(SubmissionResult(index=i, job=jobs[i], returncode=None, command=cmd))
            report.elapsed = time.monotonic() - started
            return report

        dispatched = self._submit_all(jobs, plans, report)
        for handle in dispatched:
            result = self.submitter.wait(handle)
            report.results.append(result)
            if not result.ok:
                report.errors.append(
                    SubmissionFailed(
                        result.index,
                        f"spark-submit exited with code {result.returncode}",
                        returncode=result.returncode,
                    )
                )

        if self.final_cleanup:
            self._cleanup_after(report)

        report.elapsed = time.monotonic() - started
        log.info(
            f"Batch finished in {report.elapsed:.1f}s: "
            f"{len(report.succeeded)} succeeded, {len(report.failed)} failed"
        )
        return report

    def _submit_all(self, jobs: Sequence[JobSpec], plans: List[ResourcePlan],
                    report: BatchReport) -> List[Dispatched]:
        dispatched: List[Dispatched] = []

        for position, i in enumerate(report.order):
            try:
                receipt, handle = retry_call(
                    self._admit_and_dispatch,
                    args=(i, jobs[i], plans[i]),
                    config=self.retry,
                    sleep=self.gate.clock.sleep,
                )
            except CleanupFailed as e:
                e.index = i
                report.errors.append(e)
                if self.abort_on_cleanup_failure:
                    skipped = report.order[position + 1:]
                    log.error(f"Aborting batch, {len(skipped)} job(s) not submitted: {e}")
                    report.aborted = True
                    break
                log.error(f"Skipping job {i}: {e}")
                continue
            except SubmissionFailed as e:
                log.error(str(e))
                report.errors.append(e)
                continue

            log.debug(f"Job {i} admitted as #{receipt.sequence}")
            dispatched.append(handle)

        return dispatched

    def _admit_and_dispatch(self, index: int, job: JobSpec,
                            plan: ResourcePlan) -> Tuple[AdmissionReceipt, Dispatched]:
        # Gate stays held until the process has been started
        with self.gate.admitted() as receipt:
            return receipt, self.submitter.dispatch(index, job, plan)

    def _cleanup_after(self, report: BatchReport) -> None:
        try:
            deleted = self.gate.cleanup()
        except CleanupFailed as e:
            e.index = POST_BATCH
            log.error(str(e))
            report.errors.append(e)
            return
        log.info(f"Final cleanup removed {len(deleted)} pod(s)")


def _resource_plans(resources: Resources, n_jobs: int) -> List[ResourcePlan]:
    if resources is None:
        return [ResourcePlan()] * n_jobs
    if isinstance(resources, ResourcePlan):
        return [resources] * n_jobs
    plans = list(resources)
    if len(plans) != n_jobs:
        raise ValueError(f"Expected {n_jobs} resource plan(s), got {len(plans)}")
    return plans
