"""Artifact exchange through the shared S3 bucket.

The full PKI set being present in the bucket is the only signal nodes use
to decide that a cluster has already been created, so existence is checked
for the set as a whole. A bucket holding only part of a set (a leader that
crashed mid-upload) counts as not initialized.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from ..errors import store_error
from ..shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ArtifactSet:
    """Immutable mapping of store key to local path."""

    entries: tuple[tuple[str, Path], ...]

    @classmethod
    def from_paths(cls, paths: Mapping[str, str | Path]) -> ArtifactSet:
        """Build a set from a key -> path mapping (keys kept sorted)."""
        return cls(tuple(sorted((key, Path(path)) for key, path in paths.items())))

    def keys(self) -> list[str]:
        return [key for key, _ in self.entries]

    def items(self) -> Iterator[tuple[str, Path]]:
        return iter(self.entries)

    def path_for(self, key: str) -> Path:
        for entry_key, path in self.entries:
            if entry_key == key:
                return path
        raise KeyError(key)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __contains__(self, key: object) -> bool:
        return key in self.keys()


class ArtifactStore:
    """Existence check, fetch and publish of artifact sets in one bucket."""

    def __init__(self, client: Any, bucket: str):
        """Initialize artifact store.

        Args:
            client: boto3 S3 client.
            bucket: Bucket shared by every node of the fleet.
        """
        self.client = client
        self.bucket = bucket

    def list_keys(self) -> set[str]:
        """List every key in the bucket.

        Raises:
            StoreAccessError: If the listing fails.
        """
        keys: set[str] = set()
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket):
                for obj in page.get("Contents", []):
                    keys.add(obj["Key"])
        except (BotoCoreError, ClientError) as e:
            raise store_error("list", self.bucket, None, e) from e
        return keys

    def exists(self, artifacts: ArtifactSet) -> bool:
        """Check whether every key of the set is present in the bucket.

        Args:
            artifacts: Set to look for.

        Returns:
            True only if all keys are present.

        Raises:
            StoreAccessError: If the bucket cannot be listed.
        """
        present = self.list_keys()
        missing = [key for key in artifacts.keys() if key not in present]
        if missing:
            logger.debug("artifact set incomplete", bucket=self.bucket, missing=missing)
            return False
        return True

    def download(self, key: str, path: Path) -> None:
        """Fetch one object and write it to path, creating parent dirs."""
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            body = response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise store_error("get", self.bucket, key, e) from e

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError as e:
            raise store_error("write", self.bucket, key, e) from e
        logger.info("downloaded artifact", key=key, path=str(path))

    def upload(self, key: str, path: Path) -> None:
        """Read path and publish it under key."""
        try:
            body = path.read_bytes()
        except OSError as e:
            raise store_error("read", self.bucket, key, e) from e

        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body)
        except (BotoCoreError, ClientError) as e:
            raise store_error("put", self.bucket, key, e) from e
        logger.info("uploaded artifact", key=key, path=str(path))

    def download_all(self, artifacts: ArtifactSet) -> None:
        """Download every artifact of the set.

        Stops at the first failing key. Files already written are left in
        place; the caller treats the failure as fatal for the run.
        """
        for key, path in artifacts.items():
            self.download(key, path)

    def upload_all(self, artifacts: ArtifactSet) -> None:
        """Upload every artifact of the set, stopping at the first failure."""
        for key, path in artifacts.items():
            self.upload(key, path)
