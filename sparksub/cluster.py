"""
Kubernetes cluster access.

This module holds the only code that talks to the Kubernetes API. The
scheduler gate sees the cluster through the small ClusterClient interface
(list pods, delete a pod); the CLI additionally reads node capacity to size
jobs.

Key features:
- ClusterClient interface so tests can run the gate against a fake cluster
- KubernetesCluster backed by the official `kubernetes` client
- In-cluster configuration with kubeconfig fallback
- Node capacity snapshot with control-plane reservations subtracted
- Kubernetes quantity parsing for cpu and memory
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from sparksub.models import PodRef
from sparksub.utils.logging import get_logger

log = get_logger("cluster")


class ClusterClient(ABC):
    """
    Minimal cluster interface used by the scheduler gate.
    """

    @abstractmethod
    def list_pods(self, namespace: str) -> Set[PodRef]:
        """Return every pod currently present in `namespace`, whatever its phase."""

    @abstractmethod
    def delete_pod(self, pod: PodRef) -> bool:
        """
        Delete a pod.

        :return: True if the pod was deleted, False if it was already gone.
        Any other failure raises.
        """


@dataclass
class NodeState:
    # Allocatable cpu cores
    cpu: int
    # Allocatable memory in MiB
    mem_mb: int


@dataclass
class ClusterState:
    """
    Snapshot of allocatable cluster capacity.

    Totals already exclude the cores and memory reserved for Kubernetes
    itself and may go down as jobs are sized against them.
    """

    nodes: Dict[str, NodeState] = field(default_factory=dict)
    total_core: int = 0
    total_mem_mb: int = 0


def reserved_core(nr_node: int) -> int:
    """Cores kept free for the control plane and system daemons."""
    if nr_node <= 1:
        return 3
    return 3 + (nr_node - 2)


def reserved_mem(nr_node: int) -> int:
    """MiB kept free per node for system daemons."""
    return 5 * 1024 * nr_node


_QUANTITY = re.compile(r"^([0-9]+(?:\.[0-9]+)?)([a-zA-Z]*)$")

_BINARY = {"Ki": 1024, "Mi": 1024 ** 2, "Gi": 1024 ** 3, "Ti": 1024 ** 4}
_DECIMAL = {"": 1, "k": 1000, "K": 1000, "M": 1000 ** 2, "G": 1000 ** 3, "T": 1000 ** 4}


def parse_cpu(quantity: str) -> int:
    """
    Parse a Kubernetes cpu quantity into whole cores.

    "8" -> 8, "7500m" -> 7 (partial cores are not usable by a Spark executor).
    """
    quantity = str(quantity).strip()
    if quantity.endswith("m"):
        return int(quantity[:-1]) // 1000
    return int(float(quantity))


def parse_memory_mb(quantity: str) -> int:
    """
    Parse a Kubernetes memory quantity into MiB.

    "16314336Ki" -> 15931, "8Gi" -> 8192, "1G" -> 953.
    """
    m = _QUANTITY.match(str(quantity).strip())
    if not m:
        raise ValueError(f"Unrecognised memory quantity: {quantity!r}")
    number, suffix = float(m.group(1)), m.group(2)
    if suffix in _BINARY:
        nbytes = number * _BINARY[suffix]
    elif suffix in _DECIMAL:
        nbytes = number * _DECIMAL[suffix]
    else:
        raise ValueError(f"Unrecognised memory unit in {quantity!r}")
    return int(nbytes // (1024 ** 2))


class KubernetesCluster(ClusterClient):
    """
    ClusterClient backed by the Kubernetes CoreV1 API.

    The API client is created lazily on first use so constructing the
    object (e.g. for `--help` or a dry run) never needs a reachable cluster.
    """

    def __init__(self, kubeconfig: Optional[str] = None, context: Optional[str] = None,
                 api: Optional[client.CoreV1Api] = None):
        """
        :param kubeconfig: Optional kubeconfig path. When set, in-cluster
                          configuration is not attempted.
        :param context: Optional kubeconfig context.
        :param api: Pre-built CoreV1Api (mainly for tests).
        """
        self.kubeconfig = kubeconfig
        self.context = context
        self._api = api

    @property
    def api(self) -> client.CoreV1Api:
        if self._api is None:
            self._load_config()
            self._api = client.CoreV1Api()
        return self._api

    def _load_config(self) -> None:
        if self.kubeconfig or self.context:
            config.load_kube_config(config_file=self.kubeconfig, context=self.context)
            log.debug(f"Loaded kubeconfig {self.kubeconfig or '~/.kube/config'}")
            return
        try:
            config.load_incluster_config()
            log.debug("Using in-cluster Kubernetes configuration")
        except config.ConfigException:
            config.load_kube_config()
            log.debug("Using default kubeconfig")

    def list_pods(self, namespace: str) -> Set[PodRef]:
        pods = self.api.list_namespaced_pod(namespace=namespace)
        return {PodRef(namespace=namespace, name=p.metadata.name) for p in pods.items}

    def delete_pod(self, pod: PodRef) -> bool:
        try:
            self.api.delete_namespaced_pod(
                name=pod.name,
                namespace=pod.namespace,
                grace_period_seconds=0,
            )
        except ApiException as e:
            if e.status == 404:
                log.debug(f"Pod {pod} already gone")
                return False
            raise
        log.debug(f"Deleted pod {pod}")
        return True

    def cluster_state(self) -> ClusterState:
        """
        Read allocatable cpu and memory of every node.

        :return: ClusterState with reserved resources subtracted from the totals.
        """
        state = ClusterState()
        for node in self.api.list_node().items:
            allocatable = (node.status.allocatable or {}) if node.status else {}
            if "cpu" not in allocatable or "memory" not in allocatable:
                log.warning(f"Node {node.metadata.name} reports no allocatable cpu/memory, skipping")
                continue

            ns = NodeState(
                cpu=parse_cpu(allocatable["cpu"]),
                mem_mb=parse_memory_mb(allocatable["memory"]),
            )
            state.nodes[node.metadata.name] = ns
            state.total_core += ns.cpu
            state.total_mem_mb += ns.mem_mb

        n = len(state.nodes)
        if n:
            state.total_core = max(0, state.total_core - reserved_core(n))
            state.total_mem_mb = max(0, state.total_mem_mb - reserved_mem(n))

        log.debug(f"Cluster state: {n} node(s), {state.total_core} cores, {state.total_mem_mb} MiB usable")
        return state
