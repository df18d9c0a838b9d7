"""
Unit tests for sparksub.cmd.sparksub_cli module.

Tests cover:
- Basic CLI help
- Config subcommands
- plan command
- submit command (dry run and with mocked cluster/processes)
- clean and cluster commands
"""

import json

import pytest
import yaml
from unittest.mock import MagicMock, patch
from typer.testing import CliRunner

from sparksub.cluster import ClusterState, NodeState
from sparksub.models import PodRef


runner = CliRunner()

SUBMIT_ARGS = [
    "submit",
    "--master", "k8s://https://10.0.0.1:6443",
    "--image", "spark:3.5",
    "--min-gap", "0",
    "--tags", "A", "--progs", "local:///app/p1.py 1",
    "--tags", "B", "--progs", "local:///app/p2.py 2",
    "--tags", "A", "--progs", "local:///app/p3.py 3",
]


@pytest.fixture
def app(temp_config_dir):
    from sparksub.cmd.sparksub_cli import app
    return app


@pytest.fixture
def mock_cluster(fake_cluster):
    with patch("sparksub.cmd.sparksub_cli.KubernetesCluster", return_value=fake_cluster) as mock:
        yield mock


class TestCLIBasic:

    @pytest.mark.unit
    def test_help(self, app):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "submit" in result.output
        assert "plan" in result.output

    @pytest.mark.unit
    def test_submit_help(self, app):
        result = runner.invoke(app, ["submit", "--help"])

        assert result.exit_code == 0
        assert "--no-run" in result.output


class TestConfigCommands:

    @pytest.mark.unit
    def test_config_show(self, app):
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "namespace" in result.output
        assert "min_gap" in result.output

    @pytest.mark.unit
    def test_config_path(self, app, temp_config_dir):
        result = runner.invoke(app, ["config", "path"])

        assert result.exit_code == 0
        assert ".sparksub" in result.output

    @pytest.mark.unit
    def test_config_init(self, app, temp_config_dir):
        result = runner.invoke(app, ["config", "init"])

        assert result.exit_code == 0
        assert (temp_config_dir / "config.yaml").exists()

        again = runner.invoke(app, ["config", "init"])
        assert "already exists" in again.output

    @pytest.mark.unit
    def test_config_init_seeds_cluster_parameters(self, app, temp_config_dir):
        result = runner.invoke(app, [
            "config", "init",
            "--master", "k8s://https://10.0.0.1:6443", "--image", "spark:3.5", "--ns", "batch",
        ])

        assert result.exit_code == 0, result.output
        data = yaml.safe_load((temp_config_dir / "config.yaml").read_text())
        assert data["submit"]["master"] == "k8s://https://10.0.0.1:6443"
        assert data["submit"]["image"] == "spark:3.5"
        assert data["cluster"]["namespace"] == "batch"
        assert "still needs" not in result.output

    @pytest.mark.unit
    def test_config_init_reports_missing_submit_parameters(self, app):
        result = runner.invoke(app, ["config", "init", "--image", "spark:3.5"])

        assert result.exit_code == 0
        assert "still needs" in result.output
        assert "--master" in result.output
        assert "--image" not in result.output.split("still needs")[1]

    @pytest.mark.unit
    def test_config_show_section(self, app):
        result = runner.invoke(app, ["config", "show", "--section", "gate"])

        assert result.exit_code == 0
        assert "deletion_timeout" in result.output
        assert "strategy" not in result.output

    @pytest.mark.unit
    def test_config_show_unknown_section(self, app):
        result = runner.invoke(app, ["config", "show", "-s", "daemon"])

        assert result.exit_code == 1
        assert "Unknown section" in result.output

    @pytest.mark.unit
    def test_config_show_lists_env_overrides(self, app, monkeypatch):
        monkeypatch.setenv("SPARKSUB_MIN_GAP", "4")

        result = runner.invoke(app, ["config", "show", "-s", "gate"])

        assert "min_gap: 4.0" in result.output
        assert "SPARKSUB_MIN_GAP" in result.output


class TestPlanCommand:

    @pytest.mark.unit
    def test_fair_plan(self, app):
        result = runner.invoke(app, [
            "plan",
            "--tags", "A", "--progs", "p1.py",
            "--tags", "A", "--progs", "p2.py",
            "--tags", "B", "--progs", "p3.py",
        ])

        assert result.exit_code == 0
        assert result.output.index("p3.py") < result.output.index("p2.py")

    @pytest.mark.unit
    def test_workload_weights(self, app):
        result = runner.invoke(app, [
            "plan", "--planner", "workload", "--weights", "A=5",
            "--tags", "A", "--progs", "p1.py",
            "--tags", "B", "--progs", "p2.py",
        ])

        assert result.exit_code == 0
        assert result.output.index("p2.py") < result.output.index("p1.py")

    @pytest.mark.unit
    def test_job_weights_override_tag_weights(self, app):
        result = runner.invoke(app, [
            "plan", "--planner", "workload", "--weights", "B=5",
            "--tags", "A", "--progs", "p1.py", "--job-weights", "3",
            "--tags", "B", "--progs", "p2.py", "--job-weights", "1",
        ])

        assert result.exit_code == 0, result.output
        assert result.output.index("p2.py") < result.output.index("p1.py")

    @pytest.mark.unit
    def test_job_weights_count_mismatch(self, app):
        result = runner.invoke(app, [
            "plan", "--progs", "p1.py", "--progs", "p2.py", "--job-weights", "1",
        ])

        assert result.exit_code != 0

    @pytest.mark.unit
    def test_unknown_planner(self, app):
        result = runner.invoke(app, ["plan", "--planner", "profile", "--progs", "p1.py"])

        assert result.exit_code == 1
        assert "Unknown planning strategy" in result.output

    @pytest.mark.unit
    def test_tag_count_mismatch(self, app):
        result = runner.invoke(app, ["plan", "--tags", "A", "--tags", "B", "--progs", "p1.py"])

        assert result.exit_code != 0


class TestSubmitCommand:

    @pytest.mark.unit
    def test_dry_run(self, app, mock_cluster, fake_cluster):
        with patch("sparksub.submit.subprocess.Popen") as popen:
            result = runner.invoke(app, SUBMIT_ARGS + ["--no-run"])

        assert result.exit_code == 0, result.output
        assert "spark.kubernetes.container.image=spark:3.5" in result.output
        popen.assert_not_called()
        assert len(fake_cluster.list_pods("spark")) == 2

    @pytest.mark.unit
    def test_dry_run_needs_no_master(self, app, mock_cluster):
        result = runner.invoke(app, ["submit", "--no-run", "--progs", "p.py"])

        assert result.exit_code == 0, result.output

    @pytest.mark.unit
    def test_missing_master(self, app):
        result = runner.invoke(app, ["submit", "--progs", "p.py"])

        assert result.exit_code == 1
        assert "--master" in result.output

    @pytest.mark.unit
    def test_submit(self, app, mock_cluster, fake_cluster):
        with patch("sparksub.submit.subprocess.Popen") as popen:
            popen.return_value.wait.return_value = 0
            result = runner.invoke(app, SUBMIT_ARGS + ["--time"])

        assert result.exit_code == 0, result.output
        programs = [c.args[0][-2] for c in popen.call_args_list]
        assert programs == ["local:///app/p1.py", "local:///app/p2.py", "local:///app/p3.py"]
        assert fake_cluster.list_pods("spark") == set()
        assert "elapsed time" in result.output

    @pytest.mark.unit
    def test_submit_failure_exit_code(self, app, mock_cluster):
        with patch("sparksub.submit.subprocess.Popen") as popen:
            popen.return_value.wait.return_value = 1
            result = runner.invoke(app, SUBMIT_ARGS)

        assert result.exit_code == 1
        assert "exited with code 1" in result.output

    @pytest.mark.unit
    def test_no_exit_keeps_pods(self, app, mock_cluster, fake_cluster):
        def spawn(*args, **kwargs):
            fake_cluster.add("spark", "driver")
            return MagicMock(wait=MagicMock(return_value=0))

        with patch("sparksub.submit.subprocess.Popen", side_effect=spawn):
            result = runner.invoke(app, SUBMIT_ARGS + ["--no-exit"])

        assert result.exit_code == 0, result.output
        assert fake_cluster.list_pods("spark") == {PodRef("spark", "driver")}

    @pytest.mark.unit
    def test_report_output(self, app, mock_cluster, temp_dir):
        report_path = temp_dir / "reports" / "batch.json"

        with patch("sparksub.submit.subprocess.Popen") as popen:
            popen.return_value.wait.return_value = 0
            result = runner.invoke(app, SUBMIT_ARGS + ["--output", str(report_path)])

        assert result.exit_code == 0, result.output
        data = json.loads(report_path.read_text())
        assert data["order"] == [0, 1, 2]
        assert [r["returncode"] for r in data["results"]] == [0, 0, 0]
        assert data["errors"] == []

    @pytest.mark.unit
    def test_fit_cluster(self, app, fake_cluster):
        fake_cluster.cluster_state = MagicMock(return_value=ClusterState(
            nodes={"n1": NodeState(cpu=16, mem_mb=32768)}, total_core=13, total_mem_mb=27648))

        with patch("sparksub.cmd.sparksub_cli.KubernetesCluster", return_value=fake_cluster), \
                patch("sparksub.submit.subprocess.Popen") as popen:
            popen.return_value.wait.return_value = 0
            result = runner.invoke(app, SUBMIT_ARGS + ["--fit-cluster", "--no-run"])

        assert result.exit_code == 0, result.output
        # 13 cores over 3 jobs: 4, 4, 5
        assert "spark.executor.instances=3" in result.output
        assert "spark.executor.instances=4" in result.output


class TestCleanCommand:

    @pytest.mark.unit
    def test_clean(self, app, mock_cluster, fake_cluster):
        result = runner.invoke(app, ["clean"])

        assert result.exit_code == 0
        assert "Deleted 2 pod(s)" in result.output
        assert fake_cluster.list_pods("spark") == set()

    @pytest.mark.unit
    def test_clean_failure(self, app, mock_cluster, fake_cluster):
        fake_cluster.fail_list = True

        result = runner.invoke(app, ["clean", "--ns", "spark"])

        assert result.exit_code == 1
        assert "Cleanup of namespace 'spark' failed" in result.output


class TestClusterCommand:

    @pytest.mark.unit
    def test_cluster_state(self, app, fake_cluster):
        fake_cluster.cluster_state = MagicMock(return_value=ClusterState(
            nodes={"node-a": NodeState(cpu=8, mem_mb=16384)}, total_core=5, total_mem_mb=11264))

        with patch("sparksub.cmd.sparksub_cli.KubernetesCluster", return_value=fake_cluster):
            result = runner.invoke(app, ["cluster", "--jobs", "2"])

        assert result.exit_code == 0, result.output
        assert "node-a" in result.output
        assert "5 cores" in result.output

    @pytest.mark.unit
    def test_cluster_unreachable(self, app):
        cluster = MagicMock()
        cluster.cluster_state.side_effect = RuntimeError("no kubeconfig")

        with patch("sparksub.cmd.sparksub_cli.KubernetesCluster", return_value=cluster):
            result = runner.invoke(app, ["cluster"])

        assert result.exit_code == 1
        assert "no kubeconfig" in result.output
