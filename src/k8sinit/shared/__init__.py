"""Shared modules for k8sinit.

This module provides functionality used by both run modes:
- Controller (initializing-capable control plane node)
- Worker (join-only node)
"""

from .logging import configure_logging, get_logger
from .paths import (
    CLUSTER_CONFIG_DIR,
    CLUSTER_INFO,
    CONFIG_FILE,
    KUBEADM_INIT_CONFIG,
    KUBEADM_JOIN_CONFIG,
    KUBERNETES_DIR,
    admin_kubeconfig,
    cluster_config_paths,
    pki_paths,
)

__all__ = [
    # Paths
    "KUBERNETES_DIR",
    "CLUSTER_CONFIG_DIR",
    "CONFIG_FILE",
    "CLUSTER_INFO",
    "KUBEADM_INIT_CONFIG",
    "KUBEADM_JOIN_CONFIG",
    "admin_kubeconfig",
    "pki_paths",
    "cluster_config_paths",
    # Logging
    "configure_logging",
    "get_logger",
]
