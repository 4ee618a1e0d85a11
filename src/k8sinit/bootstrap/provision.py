"""kubeadm / kubectl invocation.

Thin wrappers around the external commands that actually create or join
the cluster. A non-zero exit is always fatal for the run.
"""

from __future__ import annotations

import subprocess
import time
from pathlib import Path

from ..errors import ProvisioningError
from ..shared.logging import get_logger
from ..shared.paths import admin_kubeconfig

logger = get_logger(__name__)

DEFAULT_SETTLE_ATTEMPTS = 10
DEFAULT_SETTLE_DELAY = 1.0


class Provisioner:
    """Run kubeadm and kubectl on the local node."""

    def __init__(
        self,
        admin_conf: Path | None = None,
        kubeadm: str = "kubeadm",
        kubectl: str = "kubectl",
        settle_attempts: int = DEFAULT_SETTLE_ATTEMPTS,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
    ):
        """Initialize provisioner.

        Args:
            admin_conf: Admin kubeconfig written by kubeadm init.
            kubeadm: kubeadm executable.
            kubectl: kubectl executable.
            settle_attempts: kubectl attempts while a fresh API server settles.
            settle_delay: Seconds between those attempts.
        """
        self.admin_conf = admin_conf or admin_kubeconfig()
        self.kubeadm = kubeadm
        self.kubectl = kubectl
        self.settle_attempts = settle_attempts
        self.settle_delay = settle_delay

    def _kubectl_cmd(self) -> list[str]:
        """Build base kubectl command."""
        return [self.kubectl, "--kubeconfig", str(self.admin_conf)]

    def _run(self, action: str, cmd: list[str], capture_stdout: bool = False) -> str:
        """Run cmd, streaming stdout unless captured; raise on failure."""
        logger.info(f"---- {action} ----", command=" ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE if capture_stdout else None,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as e:
            raise ProvisioningError(
                message=f"{cmd[0]} not found",
                data={"action": action, "command": cmd},
            ) from e

        if result.returncode != 0:
            raise ProvisioningError(
                message=f"{action} failed (exit {result.returncode}): {(result.stderr or '').strip()}",
                data={
                    "action": action,
                    "command": cmd,
                    "returncode": result.returncode,
                    "stderr": result.stderr,
                },
            )
        return result.stdout or ""

    def run_init(self, config_path: Path) -> None:
        """Create the cluster with kubeadm init."""
        self._run("kubeadm init", [self.kubeadm, "init", "--config", str(config_path)])

    def run_join(self, endpoint_host_port: str, config_path: Path, control_plane: bool = True) -> None:
        """Join an existing cluster as a control plane node or a worker."""
        cmd = [self.kubeadm, "join", endpoint_host_port, "--config", str(config_path)]
        if control_plane:
            cmd.append("--control-plane")
        self._run("kubeadm join", cmd)

    def wait_for_api(self) -> str:
        """Wait until kubectl can talk to the freshly created API server.

        Returns:
            `kubectl version` output.
        """
        last_error: ProvisioningError | None = None
        for attempt in range(1, self.settle_attempts + 1):
            try:
                return self._run("kubectl version", self._kubectl_cmd() + ["version"], capture_stdout=True)
            except ProvisioningError as e:
                last_error = e
                logger.debug("api server not answering yet", attempt=attempt, error=e.message)
            if attempt < self.settle_attempts:
                time.sleep(self.settle_delay)
        raise ProvisioningError(
            message=f"Couldn't get kubernetes version: {last_error}",
            data={"attempts": self.settle_attempts},
        )

    def export_cluster_info(self, path: Path) -> None:
        """Write the public cluster-info kubeconfig to path."""
        self.wait_for_api()
        kubeconfig = self._run(
            "write cluster info",
            self._kubectl_cmd()
            + [
                "get",
                "cm",
                "-n",
                "kube-public",
                "cluster-info",
                "-o",
                "jsonpath={.data.kubeconfig}",
            ],
            capture_stdout=True,
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(kubeconfig)
        except OSError as e:
            raise ProvisioningError(
                message=f"Couldn't write cluster info: {e}",
                data={"path": str(path)},
            ) from e
