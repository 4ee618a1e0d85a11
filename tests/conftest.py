"""Shared test fixtures for k8sinit tests.

This module provides fixtures built on the in-memory AWS fakes in
tests.mocks, plus small artifact sets rooted in a temp directory.
"""

from pathlib import Path

import pytest

from k8sinit.bootstrap import ArtifactSet
from tests.mocks import FakeAutoScalingClient, FakeMetadataClient, FakeS3Client


@pytest.fixture
def s3_client() -> FakeS3Client:
    """Empty shared bucket."""
    return FakeS3Client()


@pytest.fixture
def autoscaling_client() -> FakeAutoScalingClient:
    """Full three-node controller group."""
    return FakeAutoScalingClient()


@pytest.fixture
def metadata_client() -> FakeMetadataClient:
    return FakeMetadataClient()


@pytest.fixture
def pki(tmp_path: Path) -> ArtifactSet:
    """Small PKI set rooted in a temp kubernetes dir."""
    root = tmp_path / "kubernetes"
    return ArtifactSet.from_paths(
        {
            "admin.conf": root / "admin.conf",
            "ca.crt": root / "pki" / "ca.crt",
            "ca.key": root / "pki" / "ca.key",
        }
    )


@pytest.fixture
def cluster_config(tmp_path: Path) -> ArtifactSet:
    """kubeadm configuration set rooted in a temp dir."""
    root = tmp_path / "cluster"
    return ArtifactSet.from_paths(
        {
            "cluster-info.yaml": root / "cluster-info.yaml",
            "kubeadm-cfg-init.yaml": root / "cluster-cfg.yaml",
            "kubeadm-cfg-join.yaml": root / "cluster-join.yaml",
        }
    )
