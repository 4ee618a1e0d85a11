"""Error types for k8sinit.

Transient conditions (endpoint unreachable, name not resolvable, artifacts
not yet published) are plain boolean results and never appear here. Every
error below is fatal for the run: it is logged and the process exits
non-zero so the supervisor can restart the node from scratch.
"""

from dataclasses import dataclass, field
from typing import Any

# Error codes
CAPACITY_TIMEOUT = "capacity_timeout"
INCOMPLETE_ROSTER = "incomplete_roster"
IDENTITY_ERROR = "identity_error"
MEMBERSHIP_ERROR = "membership_error"
STORE_ACCESS_ERROR = "store_access_error"
PROVISIONING_ERROR = "provisioning_error"


@dataclass
class BootstrapError(Exception):
    """Base error class for bootstrap failures."""

    code: str
    message: str
    retryable: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to a structured log payload."""
        error = {"code": self.code, "message": self.message}
        if self.data:
            error["data"] = self.data
        return error


@dataclass
class CapacityTimeout(BootstrapError):
    """Auto scaling group did not reach its desired capacity in time."""

    code: str = CAPACITY_TIMEOUT
    message: str = "AutoScalingGroup did not reach capacity"
    retryable: bool = True


@dataclass
class IncompleteRosterError(BootstrapError):
    """Leader selection attempted on a roster below desired capacity."""

    code: str = INCOMPLETE_ROSTER
    message: str = "Roster has not reached its desired size"


@dataclass
class IdentityError(BootstrapError):
    """Instance metadata lookup failed."""

    code: str = IDENTITY_ERROR
    message: str = "Could not resolve instance identity"


@dataclass
class MembershipError(BootstrapError):
    """Auto scaling API lookup failed."""

    code: str = MEMBERSHIP_ERROR
    message: str = "Could not query the auto scaling group"


@dataclass
class StoreAccessError(BootstrapError):
    """Object store access failed (auth, connectivity, missing object)."""

    code: str = STORE_ACCESS_ERROR
    message: str = "Could not access the artifact store"


@dataclass
class ProvisioningError(BootstrapError):
    """kubeadm / kubectl exited non-zero."""

    code: str = PROVISIONING_ERROR
    message: str = "Provisioning action failed"


def store_error(action: str, bucket: str, key: str | None, error: Exception) -> StoreAccessError:
    """Map a boto / filesystem exception to StoreAccessError.

    Args:
        action: Operation being performed (list, get, put)
        bucket: Bucket name
        key: Object key, if the operation targets a single object
        error: Original exception

    Returns:
        StoreAccessError carrying the original error text
    """
    target = f"s3://{bucket}/{key}" if key else f"s3://{bucket}"
    return StoreAccessError(
        message=f"Could not {action} {target}: {error}",
        data={"bucket": bucket, "key": key, "action": action, "original_error": str(error)},
    )
