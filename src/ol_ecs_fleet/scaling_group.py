"""Operations on the Auto Scaling group that backs an ECS cluster."""

import logging
from collections.abc import Callable, Sequence

from ol_ecs_fleet.context import FleetContext
from ol_ecs_fleet.exceptions import InvariantViolation, ResolutionError
from ol_ecs_fleet.inspector import ClusterInspector
from ol_ecs_fleet.models import InstanceCapacity, ScalingGroup
from ol_ecs_fleet.polling import wait_until

log = logging.getLogger(__name__)

ASG_NAME_TAG = "aws:autoscaling:groupName"


class ScalingGroupController:
    def __init__(self, ctx: FleetContext, inspector: ClusterInspector | None = None):
        self.ctx = ctx
        self.api = ctx.api
        self.inspector = inspector or ClusterInspector(ctx)

    def group_name_for_cluster(self, cluster: str) -> str:
        """Find the group through the tag AWS sets on the cluster's first instance.

        Raises:
            ResolutionError: If the cluster has no instances or the tag is absent.
        """
        nodes = self.inspector.list_nodes(cluster)
        if not nodes:
            msg = f"ECS cluster {cluster} has no container instances"
            raise ResolutionError(msg)
        tags = self.api.describe_node_tags(nodes[0].instance_id)
        group_name = tags.get(ASG_NAME_TAG)
        if not group_name:
            msg = (
                f"Unable to find ASG name for ECS cluster {cluster}: instance "
                f"{nodes[0].instance_id} has no {ASG_NAME_TAG} tag"
            )
            raise ResolutionError(msg)
        return group_name

    def describe(self, group: str) -> ScalingGroup:
        groups = self.api.describe_scaling_groups(group)
        if not groups:
            msg = f"ASG not found: {group}"
            raise ResolutionError(msg)
        if len(groups) != 1:
            msg = (
                "DescribeAutoScalingGroups did not return expected number of "
                f"results. Expected: 1, Actual: {len(groups)}"
            )
            raise InvariantViolation(msg)
        return groups[0]

    def current_counts(self, group: str) -> tuple[int, int, int]:
        """Return ``(desired, minimum, maximum)`` of the group."""
        state = self.describe(group)
        return state.desired, state.minimum, state.maximum

    def member_instance_ids(self, group: str) -> list[str]:
        return list(self.describe(group).instance_ids)

    def set_counts(self, group: str, count: int) -> None:
        """Set desired and minimum size to ``count``.

        The maximum is raised when it would be below ``count`` and otherwise left
        untouched.
        """
        _, _, maximum = self.current_counts(group)
        new_maximum = max(maximum, count)
        log.info(
            "Setting ASG %s desired=%d min=%d max=%d", group, count, count, new_maximum
        )
        self.api.set_scaling_group_counts(group, count, count, new_maximum)

    def instance_capacity(self, group: str) -> InstanceCapacity:
        state = self.describe(group)
        if not state.instance_type:
            msg = f"Unable to determine the instance type used by ASG {group}"
            raise ResolutionError(msg)
        return self.api.describe_instance_capacity(state.instance_type)

    def detach_without_shrinking(self, group: str, instance_ids: Sequence[str]) -> None:
        """Detach members while keeping desired capacity so the group replaces them."""
        if not instance_ids:
            return
        log.info("Detaching %d instances from ASG %s", len(instance_ids), group)
        self.api.detach_scaling_group_members(group, instance_ids)

    def wait_for_members(
        self,
        group: str,
        expected_count: int,
        on_progress: Callable[[int], None] | None = None,
    ) -> list[str]:
        """Block until the group reports ``expected_count`` members.

        Raises:
            FleetTimeoutError: If the group has not refilled within
                ``replacement_timeout_seconds``.
        """
        settings = self.ctx.settings

        def report(members: list[str]) -> None:
            if on_progress is not None:
                on_progress(len(members))

        return wait_until(
            self.ctx,
            lambda: self.member_instance_ids(group),
            lambda members: len(members) == expected_count,
            interval=settings.replacement_poll_seconds,
            timeout=settings.replacement_timeout_seconds,
            description=f"waiting for ASG {group} to reach {expected_count} members",
            on_poll=report,
        )
