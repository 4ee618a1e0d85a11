"""Readiness probing of the forming cluster.

This module answers two questions before any coordination happens:
is the API server endpoint accepting connections yet, and does its
name resolve at all yet. Neither answer is ever an error.
"""

from __future__ import annotations

import socket
import time
from dataclasses import dataclass

from ..shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_DELAY_SECONDS = 0.1
DEFAULT_CONNECT_TIMEOUT = 1.0
DEFAULT_RESOLVE_INTERVAL = 1.0


@dataclass(frozen=True)
class ClusterEndpoint:
    """Address of the Kubernetes API server (usually a load balancer)."""

    address: str
    port: int = 6443

    @property
    def host_port(self) -> str:
        return f"{self.address}:{self.port}"


class ReadinessProbe:
    """Bounded TCP reachability checks and unbounded name resolution."""

    def __init__(
        self,
        attempts: int = DEFAULT_ATTEMPTS,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        resolve_interval: float = DEFAULT_RESOLVE_INTERVAL,
    ):
        """Initialize readiness probe.

        Args:
            attempts: Connection attempts per reachability check.
            delay_seconds: Seconds between connection attempts.
            connect_timeout: Timeout for each TCP connect.
            resolve_interval: Seconds between name resolution attempts.
        """
        self.attempts = attempts
        self.delay_seconds = delay_seconds
        self.connect_timeout = connect_timeout
        self.resolve_interval = resolve_interval

    def is_cluster_reachable(self, endpoint: ClusterEndpoint) -> bool:
        """Check whether the API server endpoint accepts TCP connections.

        Args:
            endpoint: Endpoint to probe.

        Returns:
            True once a connection succeeds, False after all attempts fail.
        """
        return self._probe(endpoint.address, endpoint.port)

    def is_locally_running(self, port: int) -> bool:
        """Check whether an API server is already listening on this node."""
        return self._probe("127.0.0.1", port)

    def wait_for_name_resolution(self, hostname: str) -> list[str]:
        """Block until hostname resolves to at least one address.

        Used during fleet warm-up, when the load balancer's DNS record may
        not exist yet. There is no attempt ceiling.

        Args:
            hostname: Name to resolve.

        Returns:
            The resolved addresses.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                infos = socket.getaddrinfo(hostname, None)
            except socket.gaierror as e:
                logger.debug("name not resolvable yet", hostname=hostname, attempt=attempt, error=str(e))
            else:
                addresses = sorted({info[4][0] for info in infos})
                if addresses:
                    for address in addresses:
                        logger.info(f"{hostname}. IN A {address}")
                    return addresses
            time.sleep(self.resolve_interval)

    def _probe(self, address: str, port: int) -> bool:
        last_error: str | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                with socket.create_connection((address, port), timeout=self.connect_timeout):
                    return True
            except OSError as e:
                last_error = str(e)

            if attempt < self.attempts:
                time.sleep(self.delay_seconds)

        logger.debug("endpoint unreachable", address=address, port=port, error=last_error)
        return False
