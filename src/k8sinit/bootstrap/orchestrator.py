"""Bootstrap coordination state machine.

Decides, per node, whether to create the cluster or join it, and drives
kubeadm accordingly:

    START -> PROBE_CLUSTER -> JOIN_PATH -> DONE
                 |    ^
                 v    | (not leader)
            AWAIT_CAPACITY -> INIT_PATH -> DONE

Any BootstrapError ends the run in FATAL. There is no internal retry:
every step is safe to repeat from START, and restarting the node process
is left to the supervisor.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ..errors import BootstrapError
from ..shared.logging import get_logger
from ..shared.paths import CLUSTER_INFO, KUBEADM_INIT_CONFIG, KUBEADM_JOIN_CONFIG
from .artifacts import ArtifactSet, ArtifactStore
from .leader import select_leader
from .membership import CompleteRoster, MembershipView, NodeIdentity
from .provision import Provisioner
from .readiness import ClusterEndpoint, ReadinessProbe

logger = get_logger(__name__)

DEFAULT_CAPACITY_TIMEOUT = 600.0
DEFAULT_PROBE_INTERVAL = 1.0


class BootstrapDecision(Enum):
    """What this node does to the cluster."""

    UNDETERMINED = "undetermined"
    INITIALIZE = "initialize"  # Run kubeadm init
    JOIN = "join"  # Run kubeadm join


class OrchestratorState(Enum):
    """States of the bootstrap state machine."""

    START = "start"
    PROBE_CLUSTER = "probe_cluster"
    AWAIT_CAPACITY = "await_capacity"
    INIT_PATH = "init_path"
    JOIN_PATH = "join_path"
    DONE = "done"
    FATAL = "fatal"


@dataclass
class BootstrapResult:
    """Result of a bootstrap run."""

    success: bool
    state: OrchestratorState
    decision: BootstrapDecision = BootstrapDecision.UNDETERMINED
    leader: str | None = None
    already_running: bool = False
    reused_pki: bool = False
    elapsed_seconds: float = 0.0
    error: BootstrapError | None = None


class _StateMachine(ABC):
    """Run loop shared by the controller and worker bootstraps."""

    def __init__(self) -> None:
        self.state = OrchestratorState.START
        self.decision = BootstrapDecision.UNDETERMINED
        self.leader: str | None = None
        self.already_running = False
        self.reused_pki = False

    @abstractmethod
    def _handlers(self) -> dict[OrchestratorState, Callable[[], OrchestratorState]]:
        """State -> handler returning the next state."""

    def _transition(self, state: OrchestratorState) -> None:
        if state != self.state:
            logger.info("state transition", previous=self.state.value, next=state.value)
        self.state = state

    def _decide(self, decision: BootstrapDecision) -> None:
        if self.decision not in (BootstrapDecision.UNDETERMINED, decision):
            raise RuntimeError(f"Decision already made: {self.decision.value}, refusing {decision.value}")
        if self.decision != decision:
            logger.info("bootstrap decision", decision=decision.value, leader=self.leader)
        self.decision = decision

    def _result(self, start: float, error: BootstrapError | None = None) -> BootstrapResult:
        return BootstrapResult(
            success=error is None,
            state=self.state,
            decision=self.decision,
            leader=self.leader,
            already_running=self.already_running,
            reused_pki=self.reused_pki,
            elapsed_seconds=time.monotonic() - start,
            error=error,
        )

    def run(self) -> BootstrapResult:
        """Drive the state machine to DONE or FATAL.

        Returns:
            BootstrapResult; `error` is set when the run ended in FATAL.
        """
        start = time.monotonic()
        handlers = self._handlers()
        try:
            while self.state != OrchestratorState.DONE:
                self._transition(handlers[self.state]())
        except BootstrapError as e:
            self._transition(OrchestratorState.FATAL)
            logger.error("bootstrap failed", **e.to_dict())
            return self._result(start, e)

        logger.info("bootstrap complete", decision=self.decision.value)
        return self._result(start)


class BootstrapOrchestrator(_StateMachine):
    """Controller mode: initialize the cluster or join it as control plane."""

    def __init__(
        self,
        endpoint: ClusterEndpoint,
        membership: MembershipView,
        probe: ReadinessProbe,
        store: ArtifactStore,
        provisioner: Provisioner,
        pki: ArtifactSet,
        cluster_config: ArtifactSet,
        capacity_timeout: float = DEFAULT_CAPACITY_TIMEOUT,
        probe_interval: float = DEFAULT_PROBE_INTERVAL,
    ):
        """Initialize orchestrator.

        Args:
            endpoint: API server endpoint shared by the control plane.
            membership: Identity and auto scaling group view.
            probe: Reachability checks.
            store: Shared artifact bucket.
            provisioner: kubeadm / kubectl runner.
            pki: Artifacts that must be identical on every control plane node.
            cluster_config: kubeadm init/join configuration and cluster-info.
            capacity_timeout: Seconds to wait for the group to fill up.
            probe_interval: Seconds between cluster / artifact re-checks.
        """
        super().__init__()
        self.endpoint = endpoint
        self.membership = membership
        self.probe = probe
        self.store = store
        self.provisioner = provisioner
        self.pki = pki
        self.cluster_config = cluster_config
        self.capacity_timeout = capacity_timeout
        self.probe_interval = probe_interval
        self.identity: NodeIdentity | None = None
        self.group_name: str | None = None

    def _handlers(self) -> dict[OrchestratorState, Callable[[], OrchestratorState]]:
        return {
            OrchestratorState.START: self._start,
            OrchestratorState.PROBE_CLUSTER: self._probe_cluster,
            OrchestratorState.AWAIT_CAPACITY: self._await_capacity,
            OrchestratorState.INIT_PATH: self._init_path,
            OrchestratorState.JOIN_PATH: self._join_path,
        }

    def _start(self) -> OrchestratorState:
        self.identity = self.membership.resolve_identity()
        self.group_name = self.membership.group_name_for(self.identity.id)
        logger.info("auto scaling group", group_name=self.group_name)

        if self.probe.is_locally_running(self.endpoint.port):
            logger.info("Kubernetes is already running")
            self.already_running = True
            return OrchestratorState.DONE

        logger.info("waiting for name resolution", hostname=self.endpoint.address)
        self.probe.wait_for_name_resolution(self.endpoint.address)
        return OrchestratorState.PROBE_CLUSTER

    def _probe_cluster(self) -> OrchestratorState:
        if self.probe.is_cluster_reachable(self.endpoint):
            logger.info("cluster endpoint reachable", endpoint=self.endpoint.host_port)
            self._decide(BootstrapDecision.JOIN)
            return OrchestratorState.JOIN_PATH
        logger.info("cluster endpoint not reachable", endpoint=self.endpoint.host_port)
        return OrchestratorState.AWAIT_CAPACITY

    def _await_capacity(self) -> OrchestratorState:
        roster: CompleteRoster = self.membership.wait_for_desired_capacity_sync(
            self.group_name, self.capacity_timeout
        )
        self.leader = select_leader(roster)
        if self.leader == self.identity.id:
            self._decide(BootstrapDecision.INITIALIZE)
            return OrchestratorState.INIT_PATH

        logger.info("not the leader, re-checking cluster", leader=self.leader, instance_id=self.identity.id)
        time.sleep(self.probe_interval)
        return OrchestratorState.PROBE_CLUSTER

    def _init_path(self) -> OrchestratorState:
        if self.store.exists(self.pki):
            # Published by an earlier attempt; kubeadm init keeps certs found on disk.
            logger.info("PKI exists in store, downloading it", bucket=self.store.bucket)
            self.store.download_all(self.pki)
            self.reused_pki = True
        else:
            logger.info("PKI not in store, kubeadm will generate it", bucket=self.store.bucket)

        init_config = self.cluster_config.path_for(KUBEADM_INIT_CONFIG)
        self.store.download(KUBEADM_INIT_CONFIG, init_config)
        self.provisioner.run_init(init_config)

        cluster_info = self.cluster_config.path_for(CLUSTER_INFO)
        self.provisioner.export_cluster_info(cluster_info)

        # Best-effort de-duplication only; the store has no conditional put.
        if not self.store.exists(self.pki):
            self.store.upload_all(self.pki)
        else:
            logger.info("PKI already published, skipping upload")
        self.store.upload(CLUSTER_INFO, cluster_info)
        return OrchestratorState.DONE

    def _join_path(self) -> OrchestratorState:
        cluster_info = self.cluster_config.path_for(CLUSTER_INFO)
        join_config = self.cluster_config.path_for(KUBEADM_JOIN_CONFIG)

        # The endpoint can answer before the leader finished publishing;
        # cluster-info is the last object it uploads.
        published = ArtifactSet.from_paths({**dict(self.pki.items()), CLUSTER_INFO: cluster_info})
        while not self.store.exists(published):
            logger.info("waiting for PKI to be published", bucket=self.store.bucket)
            time.sleep(self.probe_interval)

        self.store.download_all(self.pki)
        self.store.download(CLUSTER_INFO, cluster_info)
        self.store.download(KUBEADM_JOIN_CONFIG, join_config)
        self.provisioner.run_join(self.endpoint.host_port, join_config, control_plane=True)
        return OrchestratorState.DONE


class WorkerBootstrap(_StateMachine):
    """Join-only mode: wait for the control plane, then join as a worker."""

    def __init__(
        self,
        endpoint: ClusterEndpoint,
        probe: ReadinessProbe,
        store: ArtifactStore,
        provisioner: Provisioner,
        cluster_config: ArtifactSet,
        probe_interval: float = DEFAULT_PROBE_INTERVAL,
    ):
        super().__init__()
        self.endpoint = endpoint
        self.probe = probe
        self.store = store
        self.provisioner = provisioner
        self.cluster_config = cluster_config
        self.probe_interval = probe_interval

    def _handlers(self) -> dict[OrchestratorState, Callable[[], OrchestratorState]]:
        return {
            OrchestratorState.START: lambda: OrchestratorState.PROBE_CLUSTER,
            OrchestratorState.PROBE_CLUSTER: self._probe_cluster,
            OrchestratorState.JOIN_PATH: self._join_path,
        }

    def _probe_cluster(self) -> OrchestratorState:
        while not self.probe.is_cluster_reachable(self.endpoint):
            logger.info("cluster endpoint not reachable", endpoint=self.endpoint.host_port)
            time.sleep(self.probe_interval)
        self._decide(BootstrapDecision.JOIN)
        return OrchestratorState.JOIN_PATH

    def _join_path(self) -> OrchestratorState:
        cluster_info = self.cluster_config.path_for(CLUSTER_INFO)
        join_config = self.cluster_config.path_for(KUBEADM_JOIN_CONFIG)

        published = ArtifactSet.from_paths({CLUSTER_INFO: cluster_info})
        while not self.store.exists(published):
            logger.info("waiting for cluster-info to be published", bucket=self.store.bucket)
            time.sleep(self.probe_interval)

        self.store.download(CLUSTER_INFO, cluster_info)
        self.store.download(KUBEADM_JOIN_CONFIG, join_config)
        self.provisioner.run_join(self.endpoint.host_port, join_config, control_plane=False)
        return OrchestratorState.DONE
