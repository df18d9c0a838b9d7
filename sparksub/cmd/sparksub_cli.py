import json
import shlex
import typer
from rich import print
from rich.markup import escape
from pathlib import Path
from rich.table import Table
from typing import List, Optional
from rich.progress import Progress, SpinnerColumn, TextColumn

from sparksub.cmd.cli import config_app
from sparksub.cluster import KubernetesCluster
from sparksub.errors import SparkSubError
from sparksub.gate import GateState, SchedulerGate
from sparksub.models import BatchReport
from sparksub.planner import get_planner
from sparksub.resources import fair_share
from sparksub.runner import BatchRunner
from sparksub.submit import SparkSubmitter, SubmitOptions
from sparksub.utils.config import Config, get_config, load_config
from sparksub.utils.logging import setup_logging, get_logger
from sparksub.utils.misc import build_jobs, format_elapsed, parse_weights
from sparksub.utils.retry import RetryConfig

log = get_logger("cli")

app = typer.Typer(no_args_is_help=True)

@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write logs to file"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    config = load_config(config_file)

    # Override with CLI args
    level = "DEBUG" if verbose else config.logging.level
    log_path = log_file or (Path(config.logging.file) if config.logging.file else None)
    setup_logging(
        level=level,
        log_file=log_path,
        verbose=verbose or config.logging.verbose,
        kube_debug=config.logging.kube_debug,
    )

app.add_typer(config_app, name="config", help="Configuration management")


def _cluster(config: Config) -> KubernetesCluster:
    return KubernetesCluster(kubeconfig=config.cluster.kubeconfig, context=config.cluster.context)


def _gate(config: Config, cluster: KubernetesCluster, namespace: str, min_gap: Optional[float] = None) -> SchedulerGate:
    return SchedulerGate(
        cluster,
        state=GateState(namespace=namespace),
        min_gap=config.gate.min_gap if min_gap is None else min_gap,
        deletion_timeout=config.gate.deletion_timeout,
        poll_interval=config.gate.poll_interval,
    )


def _planner_options(config: Config, weights: List[str]) -> dict:
    tag_weights = dict(config.planner.tag_weights or {})
    tag_weights.update(parse_weights(weights))
    return {"tag_weights": tag_weights}


def _print_report(report: BatchReport, dry_run: bool) -> None:
    table = Table(title="Dry run" if dry_run else "Submissions")
    table.add_column("#", justify="right")
    table.add_column("Job", justify="right")
    table.add_column("Tag", style="cyan")
    table.add_column("Program")
    if not dry_run:
        table.add_column("Exit code", justify="right")
        table.add_column("Elapsed", justify="right")

    for position, result in enumerate(report.results):
        row = [str(position), str(result.index), result.job.tag, result.job.program_uri]
        if not dry_run:
            code = "[green]0[/green]" if result.ok else f"[red]{result.returncode}[/red]"
            row += [code, format_elapsed(result.elapsed)]
        table.add_row(*row)

    if report.results:
        print(table)

    for error in report.errors:
        print(f"[red]Error:[/red] {escape(str(error))}")
    if report.aborted:
        print("[red]Batch aborted, remaining jobs were not submitted[/red]")


@app.command("submit")
def submit(
    progs: List[str] = typer.Option(..., "--progs", "-p", help="Program and its arguments, e.g. 'local:///app/wc.py /mnt/in' (repeat per job)"),
    tags: List[str] = typer.Option([], "--tags", "-t", help="Resource-class tag per program, same order as --progs (default: compute)"),
    planner: Optional[str] = typer.Option(None, "--planner", help="Planning strategy: fair or workload"),
    weights: List[str] = typer.Option([], "--weights", "-w", help="Tag weights for the workload planner, e.g. storage=2"),
    job_weights: List[float] = typer.Option([], "--job-weights", help="Weight per program, same order as --progs; overrides tag weights"),
    path: Optional[str] = typer.Option(None, "--path", help="spark-submit executable"),
    master: Optional[str] = typer.Option(None, "--master", help="Spark master URL"),
    deploy_mode: Optional[str] = typer.Option(None, "--deploy-mode", help="Spark deploy mode"),
    namespace: Optional[str] = typer.Option(None, "--ns", "-n", help="Namespace of the Spark pods"),
    service_account: Optional[str] = typer.Option(None, "--service-account", help="Service account of the driver"),
    image: Optional[str] = typer.Option(None, "--image", help="Container image for driver and executors"),
    pvc_name: Optional[str] = typer.Option(None, "--pvc-name", help="Volume name of the PVC in the pod spec"),
    pvc_claim_name: Optional[str] = typer.Option(None, "--pvc-claim-name", help="Pre-created PersistentVolumeClaim"),
    pvc_mount_path: Optional[str] = typer.Option(None, "--pvc-mount-path", help="Mount path of the PVC"),
    scheduler_name: Optional[str] = typer.Option(None, "--scheduler-name", help="Custom kube scheduler for the Spark pods"),
    min_gap: Optional[float] = typer.Option(None, "--min-gap", help="Minimum seconds between two submissions"),
    fit_cluster: bool = typer.Option(False, "--fit-cluster", help="Size jobs from the cluster's allocatable capacity"),
    show_log: bool = typer.Option(False, "--show-log", help="Show spark-submit output"),
    no_run: bool = typer.Option(False, "--no-run", help="Plan and print the commands without submitting"),
    no_exit: bool = typer.Option(False, "--no-exit", help="Leave the namespace as is after the batch"),
    timed: bool = typer.Option(False, "--time", help="Print the total elapsed time"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the batch report to a JSON file"),
):
    """
    Plan and submit a batch of Spark applications.

    Examples:
        # Two compute jobs and one storage job, fair interleaving
        sparksub submit --master k8s://https://10.0.0.1:6443 --image spark:3.5 \\
            --tags compute --progs "local:///app/pi.py 1000" \\
            --tags storage --progs "local:///app/wc.py /mnt/in" \\
            --tags compute --progs "local:///app/pi.py 2000"

        # Show the commands only
        sparksub submit --no-run --progs "local:///app/pi.py 10"
    """
    config = get_config()

    options = SubmitOptions.from_config(config)
    overrides = {
        "spark_submit_path": path,
        "master": master,
        "deploy_mode": deploy_mode,
        "namespace": namespace,
        "service_account": service_account,
        "image": image,
        "pvc_name": pvc_name,
        "pvc_claim_name": pvc_claim_name,
        "pvc_mount_path": pvc_mount_path,
        "scheduler_name": scheduler_name,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(options, key, value)
    options.show_log = show_log or options.show_log

    missing = options.missing()
    if missing and not no_run:
        flags = ", ".join(f"--{m}" for m in missing)
        print(f"[red]Error:[/red] Missing required option(s): {flags} (or set them in the config file)")
        raise typer.Exit(1)

    jobs = build_jobs(tags, progs, job_weights)
    strategy = planner or config.planner.strategy
    cluster = _cluster(config)

    resources = None
    if fit_cluster:
        try:
            state = cluster.cluster_state()
        except Exception as e:
            print(f"[red]Error:[/red] Could not read cluster state: {escape(str(e))}")
            raise typer.Exit(1)
        resources = fair_share(state, len(jobs))

    runner = BatchRunner(
        strategy,
        _gate(config, cluster, options.namespace, min_gap),
        SparkSubmitter(options),
        retry=RetryConfig(
            max_attempts=config.gate.cleanup_attempts,
            delay=config.gate.cleanup_delay,
            backoff=config.gate.cleanup_backoff,
        ),
        abort_on_cleanup_failure=config.gate.abort_on_cleanup_failure,
        dry_run=no_run,
        final_cleanup=config.gate.final_cleanup and not no_exit,
        planner_options=_planner_options(config, weights),
    )

    print(f"\n[bold cyan]Running {len(jobs)} job(s)[/bold cyan]")
    print(f"  Planner: {strategy}")
    print(f"  Namespace: {options.namespace}")
    if fit_cluster:
        print(f"  Sizing: fair share of cluster capacity")
    print()

    if no_run:
        report = runner.run(jobs, resources)
        for result in report.results:
            print(f"[dim]job {result.index}:[/dim] {escape(shlex.join(result.command))}")
    else:
        try:
            with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}")) as progress:
                progress.add_task(f"Submitting {len(jobs)} job(s)...")
                report = runner.run(jobs, resources)
        except SparkSubError as e:
            print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1)

    _print_report(report, dry_run=no_run)

    if timed:
        print(f"elapsed time: {report.elapsed * 1000:.0f} ms")

    if output:
        output = Path(output).expanduser()
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(report.to_dict(), indent=2))
        print(f"[green]✓ Report saved:[/green] {output}")

    if not report.ok:
        raise typer.Exit(1)
    if not no_run:
        print(f"\n[bold green]✓ {len(report.succeeded)} job(s) completed[/bold green]")


@app.command("plan")
def plan_cmd(
    progs: List[str] = typer.Option(..., "--progs", "-p", help="Program and its arguments (repeat per job)"),
    tags: List[str] = typer.Option([], "--tags", "-t", help="Resource-class tag per program"),
    planner: Optional[str] = typer.Option(None, "--planner", help="Planning strategy: fair or workload"),
    weights: List[str] = typer.Option([], "--weights", "-w", help="Tag weights for the workload planner"),
    job_weights: List[float] = typer.Option([], "--job-weights", help="Weight per program, same order as --progs"),
):
    """
    Show the submission order for a batch without submitting it.
    """
    config = get_config()
    jobs = build_jobs(tags, progs, job_weights)
    strategy = planner or config.planner.strategy

    try:
        order = get_planner(strategy, **_planner_options(config, weights)).plan(jobs)
    except SparkSubError as e:
        print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    table = Table(title=f"{strategy} plan")
    table.add_column("#", justify="right")
    table.add_column("Job", justify="right")
    table.add_column("Tag", style="cyan")
    table.add_column("Program")
    for position, i in enumerate(order):
        table.add_row(str(position), str(i), jobs[i].tag, " ".join((jobs[i].program_uri,) + jobs[i].arguments))
    print(table)


@app.command("clean")
def clean(
    namespace: Optional[str] = typer.Option(None, "--ns", "-n", help="Namespace to empty"),
):
    """
    Delete every pod in the Spark namespace.
    """
    config = get_config()
    namespace = namespace or config.cluster.namespace
    gate = _gate(config, _cluster(config), namespace)

    try:
        deleted = gate.cleanup()
    except SparkSubError as e:
        print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    print(f"[green]✓ Deleted {len(deleted)} pod(s) in namespace '{namespace}'[/green]")


@app.command("cluster")
def cluster_cmd(
    jobs: int = typer.Option(0, "--jobs", "-j", help="Also show the fair share sizing for this many jobs"),
):
    """
    Show the allocatable capacity of the cluster.
    """
    config = get_config()
    try:
        state = _cluster(config).cluster_state()
    except Exception as e:
        print(f"[red]Error:[/red] Could not read cluster state: {escape(str(e))}")
        raise typer.Exit(1)

    table = Table(title="Nodes")
    table.add_column("Node")
    table.add_column("CPU", justify="right")
    table.add_column("Memory (MiB)", justify="right")
    for name, node in state.nodes.items():
        table.add_row(name, str(node.cpu), str(node.mem_mb))
    print(table)
    print(f"[cyan]Usable:[/cyan] {state.total_core} cores, {state.total_mem_mb} MiB")

    if jobs > 0:
        sizing = Table(title=f"Fair share for {jobs} job(s)")
        for column in ("Job", "Driver", "Executors", "Executor", "Parallelism"):
            sizing.add_column(column, justify="right")
        for i, plan in enumerate(fair_share(state, jobs)):
            sizing.add_row(
                str(i),
                f"{plan.driver_cpu} / {plan.driver_memory}",
                str(plan.nexec),
                f"{plan.exec_cpu} / {plan.exec_memory}",
                str(plan.parallelism),
            )
        print(sizing)


def main():
    app()

if __name__ == "__main__":
    main()
