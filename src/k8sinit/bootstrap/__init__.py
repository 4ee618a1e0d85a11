"""Bootstrap package for forming an HA Kubernetes control plane.

This package provides the coordination behind `k8sinit controller` and
`k8sinit worker`:
1. Probes the API server endpoint
2. Waits for the auto scaling group to reach desired capacity
3. Selects the initializer from the complete roster
4. Exchanges PKI and kubeadm configuration through S3
5. Runs kubeadm init or kubeadm join
"""

from .artifacts import ArtifactSet, ArtifactStore
from .leader import select_leader
from .membership import (
    CompleteRoster,
    FleetRoster,
    InstanceMetadataClient,
    MembershipView,
    NodeIdentity,
)
from .orchestrator import (
    BootstrapDecision,
    BootstrapOrchestrator,
    BootstrapResult,
    OrchestratorState,
    WorkerBootstrap,
)
from .provision import Provisioner
from .readiness import ClusterEndpoint, ReadinessProbe

__all__ = [
    # Readiness
    "ClusterEndpoint",
    "ReadinessProbe",
    # Artifacts
    "ArtifactSet",
    "ArtifactStore",
    # Membership
    "NodeIdentity",
    "FleetRoster",
    "CompleteRoster",
    "InstanceMetadataClient",
    "MembershipView",
    # Leader selection
    "select_leader",
    # Provisioning
    "Provisioner",
    # Orchestration
    "BootstrapDecision",
    "BootstrapOrchestrator",
    "BootstrapResult",
    "OrchestratorState",
    "WorkerBootstrap",
]
