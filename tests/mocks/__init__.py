"""Test mocks for k8sinit.

Provides in-memory AWS collaborators for testing:
- FakeS3Client: Simulates the shared artifact bucket
- FakeAutoScalingClient: Simulates the controller auto scaling group
- FakeMetadataClient: Simulates the instance metadata service
"""

from .aws import FakeAutoScalingClient, FakeMetadataClient, FakeS3Client, client_error

__all__ = ["FakeAutoScalingClient", "FakeMetadataClient", "FakeS3Client", "client_error"]
