"""Shared fixtures for fleet bootstrap scenarios."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from k8sinit.bootstrap import (
    ArtifactSet,
    ArtifactStore,
    BootstrapOrchestrator,
    BootstrapResult,
    ClusterEndpoint,
    MembershipView,
    WorkerBootstrap,
)
from k8sinit.shared.paths import cluster_config_paths, pki_paths
from tests.mocks import FakeAutoScalingClient, FakeMetadataClient, FakeS3Client

BUCKET = "cluster-bucket"
ENDPOINT = ClusterEndpoint("k8s.internal.example", 6443)
INIT_CONFIG = b"apiVersion: kubeadm.k8s.io/v1beta3\nkind: ClusterConfiguration\n"
JOIN_CONFIG = b"apiVersion: kubeadm.k8s.io/v1beta3\nkind: JoinConfiguration\n"


class Cluster:
    """What the fleet can observe of the control plane."""

    def __init__(self) -> None:
        self.up = threading.Event()
        self.initialized_by: list[str] = []
        self.joined: list[tuple[str, bool]] = []


class FakeProbe:
    def __init__(self, cluster: Cluster, locally_running: bool = False):
        self.cluster = cluster
        self.locally_running = locally_running

    def is_locally_running(self, port: int) -> bool:
        return self.locally_running

    def wait_for_name_resolution(self, hostname: str) -> list[str]:
        return ["10.240.0.10"]

    def is_cluster_reachable(self, endpoint: ClusterEndpoint) -> bool:
        return self.cluster.up.is_set()


class FakeProvisioner:
    """kubeadm stand-in.

    init keeps PKI files already on disk and generates the missing ones,
    the same way kubeadm does.
    """

    def __init__(self, cluster: Cluster, node_id: str, pki: ArtifactSet):
        self.cluster = cluster
        self.node_id = node_id
        self.pki = pki

    def run_init(self, config_path: Path) -> None:
        assert config_path.read_bytes() == INIT_CONFIG
        for key, path in self.pki.items():
            if not path.exists():
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(f"{self.node_id}:{key}")
        self.cluster.initialized_by.append(self.node_id)
        self.cluster.up.set()

    def export_cluster_info(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"cluster-info from {self.node_id}")

    def run_join(self, host_port: str, config_path: Path, control_plane: bool = True) -> None:
        assert host_port == ENDPOINT.host_port
        assert config_path.read_bytes() == JOIN_CONFIG
        self.cluster.joined.append((self.node_id, control_plane))


class Fleet:
    """Nodes sharing one bucket, one auto scaling group and one cluster."""

    def __init__(self, root: Path, s3: FakeS3Client, autoscaling: FakeAutoScalingClient):
        self.root = root
        self.s3 = s3
        self.autoscaling = autoscaling
        self.cluster = Cluster()

    def node_dir(self, node_id: str) -> Path:
        return self.root / node_id

    def pki(self, node_id: str) -> ArtifactSet:
        return ArtifactSet.from_paths(pki_paths(self.node_dir(node_id) / "kubernetes"))

    def controller(
        self, node_id: str, capacity_timeout: float = 10.0, locally_running: bool = False
    ) -> BootstrapOrchestrator:
        pki = self.pki(node_id)
        return BootstrapOrchestrator(
            endpoint=ENDPOINT,
            membership=MembershipView(FakeMetadataClient(node_id), self.autoscaling, poll_interval=0.01),
            probe=FakeProbe(self.cluster, locally_running),
            store=ArtifactStore(self.s3, BUCKET),
            provisioner=FakeProvisioner(self.cluster, node_id, pki),
            pki=pki,
            cluster_config=ArtifactSet.from_paths(cluster_config_paths(self.node_dir(node_id) / "cfg")),
            capacity_timeout=capacity_timeout,
            probe_interval=0.01,
        )

    def worker(self, node_id: str) -> WorkerBootstrap:
        return WorkerBootstrap(
            endpoint=ENDPOINT,
            probe=FakeProbe(self.cluster),
            store=ArtifactStore(self.s3, BUCKET),
            provisioner=FakeProvisioner(self.cluster, node_id, self.pki(node_id)),
            cluster_config=ArtifactSet.from_paths(cluster_config_paths(self.node_dir(node_id) / "cfg")),
            probe_interval=0.01,
        )

    def run_concurrently(self, nodes: list[BootstrapOrchestrator | WorkerBootstrap]) -> list[BootstrapResult]:
        with ThreadPoolExecutor(max_workers=len(nodes)) as pool:
            futures = [pool.submit(node.run) for node in nodes]
            return [future.result(timeout=30) for future in futures]


@pytest.fixture
def bucket() -> FakeS3Client:
    """Bucket seeded with the operator-provided kubeadm configuration."""
    return FakeS3Client(objects={"kubeadm-cfg-init.yaml": INIT_CONFIG, "kubeadm-cfg-join.yaml": JOIN_CONFIG})


@pytest.fixture
def make_fleet(tmp_path, bucket) -> Callable[..., Fleet]:
    def _make(snapshots: list[list[str]] | None = None, desired_capacity: int = 3) -> Fleet:
        autoscaling = FakeAutoScalingClient(
            snapshots=snapshots or [["i-b", "i-a", "i-c"]],
            desired_capacity=desired_capacity,
        )
        return Fleet(tmp_path, bucket, autoscaling)

    return _make
