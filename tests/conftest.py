"""
Pytest configuration and shared fixtures for sparksub tests.

This module provides:
- Custom markers for test categorization
- Shared fixtures for test isolation
- Automatic Kubernetes availability detection
- A fake cluster and a simulated clock for the scheduler gate
"""

import os
import tempfile
import shutil
from pathlib import Path
from typing import Dict, List, Set
from unittest.mock import MagicMock

import pytest

from sparksub.cluster import ClusterClient
from sparksub.gate import Clock
from sparksub.models import JobSpec, PodRef


# =============================================================================
# Pytest Hooks and Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (require a Kubernetes cluster)"
    )


def _kubernetes_available() -> bool:
    try:
        from kubernetes import client, config
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()
        client.VersionApi().get_code(_request_timeout=3)
        return True
    except Exception:
        return False


def pytest_collection_modifyitems(config, items):
    """Skip integration tests if no Kubernetes cluster is reachable."""
    if not any("integration" in item.keywords for item in items):
        return

    if _kubernetes_available():
        return

    skip_integration = pytest.mark.skip(reason="Kubernetes cluster not available")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# =============================================================================
# Directory and Path Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files.

    Yields:
        Path: Path to temporary directory, cleaned up after test.
    """
    tmpdir = tempfile.mkdtemp(prefix="sparksub_test_")
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def temp_config_dir(temp_dir, monkeypatch):
    """Create a temporary config directory and point the config module at it.

    Yields:
        Path: Path to .sparksub config directory
    """
    config_dir = temp_dir / ".sparksub"
    config_dir.mkdir(parents=True)

    monkeypatch.setenv("HOME", str(temp_dir))
    monkeypatch.setattr("sparksub.utils.config.CONFIG_DIR", config_dir)
    monkeypatch.setattr("sparksub.utils.config.CONFIG_FILE", config_dir / "config.yaml")

    # Keep SPARKSUB_* variables from the developer's shell out of the tests
    for key in list(os.environ):
        if key.startswith("SPARKSUB_"):
            monkeypatch.delenv(key)

    yield config_dir


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def default_config():
    """Get a fresh default config instance.

    Returns:
        Config: Default configuration object
    """
    from sparksub.utils.config import Config
    return Config()


@pytest.fixture
def config_file(temp_config_dir):
    """Create a test config file.

    Returns:
        Path: Path to created config file
    """
    config_path = temp_config_dir / "config.yaml"
    config_content = """
logging:
  level: DEBUG
  verbose: true

cluster:
  namespace: spark-test

submit:
  master: k8s://https://10.0.0.1:6443
  image: spark:3.5

gate:
  min_gap: 2.5

planner:
  strategy: workload
  tag_weights:
    storage: 2.0
"""
    config_path.write_text(config_content)
    return config_path


# =============================================================================
# Cluster and Clock Fakes
# =============================================================================

class FakeCluster(ClusterClient):
    """
    In-memory cluster.

    `fail_list` makes list_pods raise; `fail_delete` holds pod names whose
    deletion raises; `vanish` holds pod names that disappear between list
    and delete (delete reports them as already gone). With `linger` set,
    a deleted pod keeps showing up as terminating in that many listings.
    """

    def __init__(self, pods: Dict[str, List[str]] = None):
        self.pods: Dict[str, Set[str]] = {ns: set(names) for ns, names in (pods or {}).items()}
        self.fail_list = False
        self.fail_delete: Set[str] = set()
        self.vanish: Set[str] = set()
        self.deleted: List[PodRef] = []
        self.linger = 0
        self.terminating: Dict[PodRef, int] = {}
        self.list_calls = 0

    def add(self, namespace: str, *names: str) -> None:
        self.pods.setdefault(namespace, set()).update(names)

    def list_pods(self, namespace: str) -> Set[PodRef]:
        if self.fail_list:
            raise RuntimeError("apiserver unavailable")
        self.list_calls += 1

        listed = {PodRef(namespace, name) for name in self.pods.get(namespace, set())}
        for pod in [p for p in self.terminating if p.namespace == namespace]:
            listed.add(pod)
            self.terminating[pod] -= 1
            if self.terminating[pod] <= 0:
                del self.terminating[pod]
        return listed

    def delete_pod(self, pod: PodRef) -> bool:
        if pod.name in self.fail_delete:
            raise RuntimeError(f"forbidden: {pod.name}")
        names = self.pods.get(pod.namespace, set())
        if pod.name in self.vanish or pod.name not in names:
            names.discard(pod.name)
            return False
        names.remove(pod.name)
        self.deleted.append(pod)
        if self.linger:
            self.terminating[pod] = self.linger
        return True


class FakeClock(Clock):
    """Simulated clock: sleep() advances time instantly."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_cluster():
    """Fake cluster with two leftover pods in the spark namespace."""
    return FakeCluster({"spark": ["spark-pi-driver", "spark-pi-exec-1"]})


@pytest.fixture
def fake_clock():
    return FakeClock()


# =============================================================================
# Job and Process Fixtures
# =============================================================================

@pytest.fixture
def sample_jobs():
    """Jobs tagged [A, B, A, A].

    Returns:
        list: Four JobSpecs p1..p4
    """
    return [
        JobSpec("local:///app/p1.py", tag="A"),
        JobSpec("local:///app/p2.py", tag="B"),
        JobSpec("local:///app/p3.py", tag="A"),
        JobSpec("local:///app/p4.py", tag="A"),
    ]


@pytest.fixture
def mock_popen():
    """Popen replacement whose processes exit with code 0.

    Returns:
        MagicMock: Factory; set `.return_value.wait.return_value` to change exit codes
    """
    popen = MagicMock()
    popen.return_value.wait.return_value = 0
    return popen
