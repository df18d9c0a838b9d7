"""
spark-submit command building and process dispatch.

The submitter turns one JobSpec into a spark-submit invocation and starts
it. Dispatching returns as soon as the process is running; waiting for it
is a separate step so the batch runner can release the gate right after
the submission was initiated.

Each job carries two pod labels on its driver and executors:
- spark-uuid: unique per job, lets a custom scheduler co-locate its pods
- spark-workload-type: the job's tag
"""

import time
import uuid
import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sparksub.errors import SubmissionFailed
from sparksub.models import JobSpec, SubmissionResult
from sparksub.resources import ResourcePlan
from sparksub.utils.config import Config
from sparksub.utils.logging import get_logger, job_logger

log = get_logger("submit")

UUID_LABEL = "spark-uuid"
WORKLOAD_LABEL = "spark-workload-type"
APP_NAME = "spark"


@dataclass
class SubmitOptions:
    """
    Cluster parameters passed through to spark-submit unchanged.
    """

    spark_submit_path: str = "spark-submit"
    master: Optional[str] = None
    deploy_mode: str = "cluster"
    namespace: str = "spark"
    service_account: str = "spark"
    image: Optional[str] = None
    scheduler_name: str = ""
    pvc_name: str = "spark-local-dir-1"
    pvc_claim_name: Optional[str] = None
    pvc_mount_path: str = "/mnt"
    show_log: bool = False

    @classmethod
    def from_config(cls, cfg: Config) -> "SubmitOptions":
        s = cfg.submit
        return cls(
            spark_submit_path=s.spark_submit_path,
            master=s.master,
            deploy_mode=s.deploy_mode,
            namespace=cfg.cluster.namespace,
            service_account=s.service_account,
            image=s.image,
            scheduler_name=s.scheduler_name,
            pvc_name=s.pvc_name,
            pvc_claim_name=s.pvc_claim_name,
            pvc_mount_path=s.pvc_mount_path,
            show_log=s.show_log,
        )

    def missing(self) -> List[str]:
        """Names of required options that are not set."""
        return [name for name in ("master", "image") if not getattr(self, name)]


def _pvc_confs(role: str, options: SubmitOptions) -> List[str]:
    prefix = f"spark.kubernetes.{role}.volumes.persistentVolumeClaim.{options.pvc_name}"
    return [
        f"{prefix}.options.claimName={options.pvc_claim_name}",
        f"{prefix}.mount.path={options.pvc_mount_path}",
    ]


def build_command(
    job: JobSpec,
    options: SubmitOptions,
    resources: Optional[ResourcePlan] = None,
    run_id: Optional[str] = None,
) -> List[str]:
    """
    Build the spark-submit argv for one job.

    :param job: The job to submit.
    :param options: Pass-through cluster parameters.
    :param resources: Driver/executor sizing (default plan if None).
    :param run_id: Value of the spark-uuid label (random if None).
    :return: Argument vector, program path first.
    """
    resources = resources or ResourcePlan()
    run_id = run_id or str(uuid.uuid4())

    confs = [
        f"spark.kubernetes.namespace={options.namespace}",
        f"spark.kubernetes.authenticate.driver.serviceAccountName={options.service_account}",
        f"spark.kubernetes.container.image={options.image or ''}",
        f"spark.default.parallelism={resources.parallelism}",
        f"spark.driver.cores={resources.driver_cpu}",
        f"spark.driver.memory={resources.driver_memory}",
        f"spark.executor.instances={resources.nexec}",
        f"spark.executor.cores={resources.exec_cpu}",
        f"spark.executor.memory={resources.exec_memory}",
    ]

    if options.pvc_claim_name:
        confs += _pvc_confs("driver", options)
        confs += _pvc_confs("executor", options)

    for role in ("driver", "executor"):
        confs.append(f"spark.kubernetes.{role}.label.{UUID_LABEL}={run_id}")
        confs.append(f"spark.kubernetes.{role}.label.{WORKLOAD_LABEL}={job.tag}")

    if options.scheduler_name:
        confs.append(f"spark.kubernetes.scheduler.name={options.scheduler_name}")

    cmd = [
        options.spark_submit_path,
        "--master", options.master or "",
        "--deploy-mode", options.deploy_mode,
        "--name", APP_NAME,
    ]
    for conf in confs:
        cmd += ["--conf", conf]

    cmd.append(job.program_uri)
    cmd.extend(job.arguments)
    return cmd


@dataclass
class Dispatched:
    """A started spark-submit process."""

    index: int
    job: JobSpec
    command: List[str]
    process: subprocess.Popen
    started: float = field(default_factory=time.monotonic)


class SparkSubmitter:
    """
    Starts spark-submit processes and collects their exit codes.
    """

    def __init__(self, options: SubmitOptions, popen: Optional[Callable[..., subprocess.Popen]] = None):
        """
        :param options: Pass-through cluster parameters.
        :param popen: Process factory (subprocess.Popen if None).
        """
        self.options = options
        self._popen = popen or subprocess.Popen

    def dispatch(self, index: int, job: JobSpec, resources: Optional[ResourcePlan] = None) -> Dispatched:
        """
        Start the submission of one job without waiting for it.

        :param index: Index of the job in the user's job list.
        :param job: The job to submit.
        :param resources: Driver/executor sizing.
        :return: Handle to pass to wait().
        :raises SubmissionFailed: If the process could not be started.
        """
        cmd = build_command(job, self.options, resources)
        jlog = job_logger(log, index)
        jlog.debug(" ".join(cmd))

        output = None if self.options.show_log else subprocess.DEVNULL
        try:
            process = self._popen(cmd, stdout=output, stderr=output)
        except OSError as e:
            raise SubmissionFailed(index, f"could not start {cmd[0]}: {e}") from e

        jlog.info(f"Dispatched ({job.tag}): {job.program_uri}")
        return Dispatched(index=index, job=job, command=cmd, process=process)

    def wait(self, handle: Dispatched) -> SubmissionResult:
        """
        Wait for a dispatched job's spark-submit process to exit.

        :param handle: Handle returned by dispatch().
        :return: SubmissionResult with the exit code.
        """
        returncode = handle.process.wait()
        elapsed = time.monotonic() - handle.started
        job_logger(log, handle.index).info(f"Exited with code {returncode} after {elapsed * 1000:.0f} ms")
        return SubmissionResult(
            index=handle.index,
            job=handle.job,
            returncode=returncode,
            command=handle.command,
            elapsed=elapsed,
        )
