"""Converge an ECS cluster's Auto Scaling group to the size its services need."""

import logging
from dataclasses import dataclass, replace
from enum import Enum, unique

from ol_ecs_fleet.capacity import largest_desired_count, plan_capacity
from ol_ecs_fleet.context import FleetContext
from ol_ecs_fleet.inspector import ClusterInspector
from ol_ecs_fleet.models import CapacityTarget
from ol_ecs_fleet.scaling_group import ScalingGroupController

log = logging.getLogger(__name__)


@unique
class ScalingAction(str, Enum):
    scale_up = "scale-up"
    scale_down = "scale-down"
    noop = "noop"


@dataclass(frozen=True)
class RightSizeResult:
    group: str
    instance_type: str
    target: int
    previous_minimum: int
    action: ScalingAction
    capacity: CapacityTarget
    applied: bool = False


class RightSizer:
    def __init__(self, ctx: FleetContext):
        self.ctx = ctx
        self.inspector = ClusterInspector(ctx)
        self.scaling_group = ScalingGroupController(ctx, self.inspector)

    def plan(self, cluster: str, *, enforce_floor: bool = False) -> RightSizeResult:
        """Work out the target size without changing the group.

        Args:
            cluster: ECS cluster name.
            enforce_floor: Never go below the largest single service desired
                count, even if the resource totals would fit on fewer nodes.
        """
        group = self.scaling_group.group_name_for_cluster(cluster)
        log.info("ASG found: %s", group)
        capacity = self.scaling_group.instance_capacity(group)
        log.info("ASG uses instance type: %s", capacity.instance_type)

        services = self.inspector.list_services(cluster)
        capacity_target = plan_capacity(
            services, self.inspector.resource_profile, capacity
        )
        log.info(
            "Memory needed for all services with desired count > 0: %d, CPU needed: %d",
            capacity_target.memory_needed,
            capacity_target.cpu_needed,
        )

        target = capacity_target.node_count
        if enforce_floor:
            target = max(target, largest_desired_count(services))

        _, minimum, _ = self.scaling_group.current_counts(group)
        if minimum < target:
            action = ScalingAction.scale_up
        elif minimum > target:
            action = ScalingAction.scale_down
        else:
            action = ScalingAction.noop

        return RightSizeResult(
            group=group,
            instance_type=capacity.instance_type,
            target=target,
            previous_minimum=minimum,
            action=action,
            capacity=capacity_target,
        )

    def right_size(
        self, cluster: str, *, enforce_floor: bool = False
    ) -> RightSizeResult:
        """Plan the target size and apply it to the group when it differs."""
        result = self.plan(cluster, enforce_floor=enforce_floor)
        if result.action is ScalingAction.noop:
            log.info("ASG %s is already right sized at %d", result.group, result.target)
            return result
        self.scaling_group.set_counts(result.group, result.target)
        return replace(result, applied=True)
