"""Path management for k8sinit.

Canonical on-disk locations of the material kubeadm produces and consumes.
The store key of every artifact is its filename.
"""

from pathlib import Path

# kubeadm's default layout
KUBERNETES_DIR = Path("/etc/kubernetes")

# Scratch location for the kubeadm configuration handed between nodes
CLUSTER_CONFIG_DIR = Path("/tmp")

# Default config file for k8sinit itself
CONFIG_FILE = Path("/etc/k8sinit/config.yaml")

CLUSTER_INFO = "cluster-info.yaml"
KUBEADM_INIT_CONFIG = "kubeadm-cfg-init.yaml"
KUBEADM_JOIN_CONFIG = "kubeadm-cfg-join.yaml"


def admin_kubeconfig(kubernetes_dir: Path = KUBERNETES_DIR) -> Path:
    """Path to the cluster admin kubeconfig written by kubeadm init."""
    return kubernetes_dir / "admin.conf"


def pki_paths(kubernetes_dir: Path = KUBERNETES_DIR) -> dict[str, Path]:
    """Store key -> local path for the shared cluster PKI.

    These are the certificate authorities, service account signing keys
    and admin credential every control plane node must share.

    Args:
        kubernetes_dir: Root of the kubeadm layout (default: /etc/kubernetes)

    Returns:
        Mapping of store key to local path
    """
    pki = kubernetes_dir / "pki"
    return {
        "admin.conf": admin_kubeconfig(kubernetes_dir),
        "ca.crt": pki / "ca.crt",
        "ca.key": pki / "ca.key",
        "etcd-ca.crt": pki / "etcd" / "ca.crt",
        "etcd-ca.key": pki / "etcd" / "ca.key",
        "front-proxy-ca.crt": pki / "front-proxy-ca.crt",
        "front-proxy-ca.key": pki / "front-proxy-ca.key",
        "sa.key": pki / "sa.key",
        "sa.pub": pki / "sa.pub",
    }


def cluster_config_paths(config_dir: Path = CLUSTER_CONFIG_DIR) -> dict[str, Path]:
    """Store key -> local path for the kubeadm configuration files.

    Args:
        config_dir: Directory the files are written to (default: /tmp)

    Returns:
        Mapping of store key to local path
    """
    return {
        CLUSTER_INFO: config_dir / "cluster-info.yaml",
        KUBEADM_INIT_CONFIG: config_dir / "cluster-cfg.yaml",
        KUBEADM_JOIN_CONFIG: config_dir / "cluster-join.yaml",
    }
