"""Fleet membership: who am I, and who else is in my auto scaling group.

The roster is re-read from the auto scaling API on every poll and never
cached across wait cycles, since members come and go while the fleet
launches.
"""

from __future__ import annotations

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import CapacityTimeout, IdentityError, IncompleteRosterError, MembershipError
from ..shared.logging import get_logger

logger = get_logger(__name__)

IMDS_URL = "http://169.254.169.254"
IMDS_TOKEN_TTL_SECONDS = 21600
DEFAULT_POLL_INTERVAL = 5.0


@dataclass(frozen=True)
class NodeIdentity:
    """Identity of the local instance, fixed for the process lifetime."""

    id: str
    region: str


@dataclass(frozen=True)
class FleetRoster:
    """One snapshot of the auto scaling group."""

    group_name: str
    member_ids: tuple[str, ...]
    desired_size: int

    @property
    def is_complete(self) -> bool:
        return len(self.member_ids) == self.desired_size


@dataclass(frozen=True)
class CompleteRoster:
    """A roster known to have reached its desired size.

    Only construct through `from_roster`; leader selection accepts nothing
    else, so every node compares the same full membership list.
    """

    roster: FleetRoster

    @classmethod
    def from_roster(cls, roster: FleetRoster) -> CompleteRoster:
        if not roster.is_complete:
            raise IncompleteRosterError(
                message=(
                    f"Roster of {roster.group_name} has {len(roster.member_ids)} "
                    f"of {roster.desired_size} members"
                ),
                data={
                    "group_name": roster.group_name,
                    "members": len(roster.member_ids),
                    "desired_size": roster.desired_size,
                },
            )
        return cls(roster)

    @property
    def group_name(self) -> str:
        return self.roster.group_name

    @property
    def member_ids(self) -> tuple[str, ...]:
        return self.roster.member_ids


class InstanceMetadataClient:
    """Minimal EC2 instance metadata (IMDSv2) client."""

    def __init__(
        self,
        base_url: str = IMDS_URL,
        timeout_seconds: float = 2.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self._document: dict[str, Any] | None = None

    def _token_headers(self, client: httpx.Client) -> dict[str, str]:
        # A hop limit of 1 drops the PUT reply on IMDSv1-only setups.
        try:
            response = client.put(
                "/latest/api/token",
                headers={"X-aws-ec2-metadata-token-ttl-seconds": str(IMDS_TOKEN_TTL_SECONDS)},
            )
        except httpx.HTTPError as e:
            logger.debug("IMDSv2 token request failed, using IMDSv1", error=str(e))
            return {}
        if response.status_code != 200:
            return {}
        return {"X-aws-ec2-metadata-token": response.text}

    def identity_document(self) -> dict[str, Any]:
        """Fetch the instance identity document (cached after first call).

        Falls back to IMDSv1 when no session token can be obtained.

        Raises:
            IdentityError: If the document cannot be fetched.
        """
        if self._document is not None:
            return self._document
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self.transport,
            ) as client:
                headers = self._token_headers(client)
                response = client.get("/latest/dynamic/instance-identity/document", headers=headers)
                response.raise_for_status()
                self._document = response.json()
                return self._document
        except httpx.HTTPError as e:
            raise IdentityError(
                message=f"Getting instance metadata failed: {e}",
                data={"url": self.base_url, "original_error": str(e)},
            ) from e
        except ValueError as e:
            raise IdentityError(
                message="Instance identity document is not valid JSON",
                data={"url": self.base_url, "original_error": str(e)},
            ) from e


class MembershipView:
    """Resolve local identity and observe the auto scaling group."""

    def __init__(
        self,
        metadata: InstanceMetadataClient,
        autoscaling: Any,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """Initialize membership view.

        Args:
            metadata: Instance metadata client.
            autoscaling: boto3 autoscaling client.
            poll_interval: Seconds between roster polls while waiting.
        """
        self.metadata = metadata
        self.autoscaling = autoscaling
        self.poll_interval = poll_interval
        self._identity: NodeIdentity | None = None

    def resolve_identity(self) -> NodeIdentity:
        """Resolve the local instance id and region (cached after first call)."""
        if self._identity is None:
            doc = self.metadata.identity_document()
            try:
                self._identity = NodeIdentity(id=doc["instanceId"], region=doc["region"])
            except KeyError as e:
                raise IdentityError(
                    message=f"Instance identity document lacks {e}",
                    data={"document_keys": sorted(doc)},
                ) from e
            logger.info("resolved identity", instance_id=self._identity.id, region=self._identity.region)
        return self._identity

    def group_name_for(self, instance_id: str) -> str:
        """Name of the auto scaling group the instance belongs to."""
        try:
            response = self.autoscaling.describe_auto_scaling_instances(InstanceIds=[instance_id])
        except (BotoCoreError, ClientError) as e:
            raise MembershipError(
                message=f"Getting auto scaling group of {instance_id} failed: {e}",
                data={"instance_id": instance_id, "original_error": str(e)},
            ) from e

        instances = response.get("AutoScalingInstances", [])
        if not instances:
            raise MembershipError(
                message=f"Instance {instance_id} is not part of an auto scaling group",
                data={"instance_id": instance_id},
            )
        return instances[0]["AutoScalingGroupName"]

    def fetch_roster(self, group_name: str) -> FleetRoster:
        """Read the current member list and desired capacity of the group."""
        try:
            response = self.autoscaling.describe_auto_scaling_groups(AutoScalingGroupNames=[group_name])
        except (BotoCoreError, ClientError) as e:
            raise MembershipError(
                message=f"Getting auto scaling group {group_name} failed: {e}",
                data={"group_name": group_name, "original_error": str(e)},
            ) from e

        groups = response.get("AutoScalingGroups", [])
        if not groups:
            raise MembershipError(
                message=f"Auto scaling group {group_name} not found",
                data={"group_name": group_name},
            )
        group = groups[0]
        return FleetRoster(
            group_name=group_name,
            member_ids=tuple(instance["InstanceId"] for instance in group.get("Instances", [])),
            desired_size=int(group["DesiredCapacity"]),
        )

    async def wait_for_desired_capacity(self, group_name: str, timeout: float) -> CompleteRoster:
        """Poll the group until it reaches its desired capacity.

        The poll loop and the deadline progress independently: each roster
        fetch runs in a worker thread, so a fetch still in flight when the
        deadline passes does not hold the timeout back.

        Args:
            group_name: Auto scaling group to watch.
            timeout: Seconds to wait before giving up.

        Returns:
            The first complete roster observed.

        Raises:
            CapacityTimeout: If the deadline passes first.
            MembershipError: If the auto scaling API fails.
        """
        start = time.monotonic()
        last_seen: list[FleetRoster] = []
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="roster-poll")

        async def _poll() -> CompleteRoster:
            loop = asyncio.get_running_loop()
            while True:
                roster = await loop.run_in_executor(executor, self.fetch_roster, group_name)
                last_seen[:] = [roster]
                if roster.is_complete:
                    return CompleteRoster.from_roster(roster)
                logger.info(
                    "waiting for desired capacity",
                    group_name=group_name,
                    members=len(roster.member_ids),
                    desired_size=roster.desired_size,
                )
                await asyncio.sleep(self.poll_interval)

        try:
            complete = await asyncio.wait_for(_poll(), timeout=timeout)
        except asyncio.TimeoutError:
            data: dict[str, Any] = {
                "group_name": group_name,
                "timeout_seconds": timeout,
                "elapsed_seconds": time.monotonic() - start,
            }
            if last_seen:
                data["members"] = len(last_seen[0].member_ids)
                data["desired_size"] = last_seen[0].desired_size
            raise CapacityTimeout(
                message=f"AutoScalingGroup {group_name} did not reach capacity within {timeout:g}s",
                data=data,
            ) from None
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            "desired capacity reached",
            group_name=group_name,
            members=len(complete.member_ids),
            elapsed_seconds=round(time.monotonic() - start, 1),
        )
        return complete

    def wait_for_desired_capacity_sync(self, group_name: str, timeout: float) -> CompleteRoster:
        """Synchronous wrapper for wait_for_desired_capacity."""
        return asyncio.run(self.wait_for_desired_capacity(group_name, timeout))
