"""Compute how many container instances a cluster's services need.

The totals include headroom for one extra task of the largest service so that
a rolling deployment can start a replacement task before stopping an old one.
Memory and CPU headroom are tracked independently: the task with the most
memory and the task with the most CPU need not belong to the same service.
"""

from collections.abc import Callable, Iterable

from ol_ecs_fleet.exceptions import InvariantViolation
from ol_ecs_fleet.models import (
    CapacityTarget,
    InstanceCapacity,
    ResourceProfile,
    Service,
)

ProfileLookup = Callable[[Service], ResourceProfile]


def compute_needed(
    services: Iterable[Service], profile_for: ProfileLookup
) -> tuple[int, int]:
    """Total memory and CPU needed to run every desired task plus headroom.

    Args:
        services: Services of the cluster. Services with a desired count of 0 are
            skipped and contribute no headroom.
        profile_for: Returns the per-task profile of a service. Only called for
            services with a positive desired count.

    Returns:
        A ``(memory_needed, cpu_needed)`` tuple in task definition units.
    """
    memory_needed = 0
    cpu_needed = 0
    largest_memory = 0
    largest_cpu = 0

    for service in services:
        if not service.is_active:
            continue
        profile = profile_for(service)
        largest_memory = max(largest_memory, profile.memory)
        largest_cpu = max(largest_cpu, profile.cpu)
        memory_needed += profile.memory * service.desired_count
        cpu_needed += profile.cpu * service.desired_count

    return memory_needed + largest_memory, cpu_needed + largest_cpu


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def nodes_needed(
    capacity: InstanceCapacity, memory_needed: int, cpu_needed: int
) -> int:
    """Smallest node count whose combined capacity covers both totals."""
    if capacity.memory <= 0 or capacity.cpu <= 0:
        msg = (
            f"Instance type {capacity.instance_type} reports no usable capacity "
            f"(memory={capacity.memory}, cpu={capacity.cpu})"
        )
        raise InvariantViolation(msg)
    return max(
        _ceil_div(memory_needed, capacity.memory),
        _ceil_div(cpu_needed, capacity.cpu),
    )


def largest_desired_count(services: Iterable[Service]) -> int:
    return max((service.desired_count for service in services), default=0)


def plan_capacity(
    services: Iterable[Service],
    profile_for: ProfileLookup,
    capacity: InstanceCapacity,
) -> CapacityTarget:
    memory_needed, cpu_needed = compute_needed(services, profile_for)
    return CapacityTarget(
        memory_needed=memory_needed,
        cpu_needed=cpu_needed,
        node_count=nodes_needed(capacity, memory_needed, cpu_needed),
    )
