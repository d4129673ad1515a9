"""The AWS operations the fleet core depends on.

The core only relies on the semantics described here. ``AwsClusterApi`` in
``ol_ecs_fleet.aws`` is the boto3 implementation; tests provide an in-memory one.
"""

from collections.abc import Sequence
from typing import Protocol

from ol_ecs_fleet.models import (
    InstanceCapacity,
    Node,
    ResourceProfile,
    ScalingGroup,
    Service,
)


class ClusterApi(Protocol):
    def describe_cluster_nodes(self, cluster: str) -> list[Node]:
        """Return every container instance registered to the cluster."""

    def list_cluster_services(self, cluster: str) -> list[str]:
        """Return the ARNs of all services, following every page."""

    def describe_services(self, cluster: str, arns: Sequence[str]) -> list[Service]:
        """Describe the given services, preserving their order."""

    def describe_task_resource_profile(
        self, task_definition: str
    ) -> list[ResourceProfile]:
        """Return one profile per container of the task definition."""

    def describe_node_tags(self, instance_id: str) -> dict[str, str]:
        """Return the tags of an EC2 instance."""

    def describe_private_addresses(self, instance_ids: Sequence[str]) -> list[str]:
        """Return the private IPv4 addresses of the given instances."""

    def describe_scaling_groups(self, name: str) -> list[ScalingGroup]:
        """Return every Auto Scaling group matching the name."""

    def set_scaling_group_counts(
        self, name: str, desired: int, minimum: int, maximum: int
    ) -> None:
        """Update desired, minimum and maximum size of a group."""

    def detach_scaling_group_members(
        self, name: str, instance_ids: Sequence[str]
    ) -> None:
        """Detach instances without decrementing the group's desired capacity."""

    def terminate_instance(self, instance_id: str) -> None:
        """Request termination of an EC2 instance."""

    def describe_instance_state(self, instance_id: str) -> str:
        """Return the EC2 state name, e.g. ``running`` or ``terminated``."""

    def describe_instance_capacity(self, instance_type: str) -> InstanceCapacity:
        """Return memory and CPU of an EC2 instance type."""
