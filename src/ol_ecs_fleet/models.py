"""Snapshots of cluster state read at the start of an operation.

None of these records outlive a single invocation.
"""

from dataclasses import dataclass, field
from typing import Any

# ECS expresses CPU in units of 1/1024 of a vCPU
CPU_UNITS_PER_VCPU = 1024


@dataclass(frozen=True)
class ResourceProfile:
    """Memory (MiB) and CPU units needed by one task of a service."""

    memory: int = 0
    cpu: int = 0

    def __add__(self, other: "ResourceProfile") -> "ResourceProfile":
        return ResourceProfile(
            memory=self.memory + other.memory, cpu=self.cpu + other.cpu
        )

    def __radd__(self, other: Any) -> "ResourceProfile":
        """Support sum() function."""
        if other == 0:
            return self
        return self.__add__(other)


@dataclass(frozen=True)
class Node:
    """An EC2 instance registered to an ECS cluster as a container instance."""

    node_id: str
    instance_id: str
    status: str = "ACTIVE"


@dataclass(frozen=True)
class Service:
    name: str
    desired_count: int
    pending_count: int
    task_definition: str

    @property
    def is_active(self) -> bool:
        return self.desired_count > 0


@dataclass(frozen=True)
class ScalingGroup:
    """Auto Scaling group state as returned by a single describe call."""

    name: str
    desired: int
    minimum: int
    maximum: int
    instance_ids: tuple[str, ...] = field(default_factory=tuple)
    instance_type: str | None = None


@dataclass(frozen=True)
class InstanceCapacity:
    """Capacity of one EC2 instance type in task definition units."""

    instance_type: str
    memory: int
    cpu: int

    @classmethod
    def from_instance_type_info(cls, info: dict[str, Any]) -> "InstanceCapacity":
        """Build from one entry of an EC2 ``DescribeInstanceTypes`` response."""
        return cls(
            instance_type=info["InstanceType"],
            memory=info.get("MemoryInfo", {}).get("SizeInMiB", 0),
            cpu=info.get("VCpuInfo", {}).get("DefaultVCpus", 0) * CPU_UNITS_PER_VCPU,
        )


@dataclass(frozen=True)
class CapacityTarget:
    memory_needed: int
    cpu_needed: int
    node_count: int
