"""Shared pytest fixtures for the ECS fleet tests.

This module provides an in-memory stand-in for the AWS APIs the fleet
operations call, plus settings that never sleep, so that the operations can be
exercised end to end without touching AWS.
"""

from collections import deque
from dataclasses import replace

import pytest
from ol_ecs_fleet.context import FleetContext
from ol_ecs_fleet.exceptions import ResolutionError
from ol_ecs_fleet.models import (
    InstanceCapacity,
    Node,
    ResourceProfile,
    ScalingGroup,
    Service,
)
from ol_ecs_fleet.scaling_group import ASG_NAME_TAG
from ol_ecs_fleet.settings import FleetSettings

CLUSTER = "apps"
GROUP = "apps-asg"


class FakeClusterApi:
    """Keeps cluster, group and instance state in dictionaries.

    Mutating calls and pending task polls are appended to ``events`` so tests can
    assert on ordering. Detached group members are replaced one per describe call,
    the way an Auto Scaling group refills over several polls.
    """

    def __init__(self):
        self.nodes: dict[str, list[Node]] = {}
        self.services: dict[str, list[Service]] = {}
        self.task_definitions: dict[str, list[ResourceProfile]] = {}
        self.tags: dict[str, dict[str, str]] = {}
        self.addresses: dict[str, str] = {}
        self.groups: dict[str, dict] = {}
        self.duplicate_groups: set[str] = set()
        self.instance_states: dict[str, str] = {}
        self.capacities: dict[str, InstanceCapacity] = {}
        self.pending_after_terminate: list[int] = [0]
        self.events: list[tuple] = []
        self.task_definition_reads = 0
        self._pending = deque()
        self._launches: dict[str, int] = {}
        self._launched = 0

    def describe_cluster_nodes(self, cluster):
        if cluster not in self.nodes:
            msg = f"describe_container_instances: cluster {cluster} not found"
            raise ResolutionError(msg)
        return list(self.nodes[cluster])

    def list_cluster_services(self, cluster):
        return [service.name for service in self.services.get(cluster, [])]

    def describe_services(self, cluster, arns):
        services = [s for s in self.services.get(cluster, []) if s.name in arns]
        if self._pending:
            pending = self._pending.popleft()
            self.events.append(("pending", pending))
            services = [
                replace(service, pending_count=pending if index == 0 else 0)
                for index, service in enumerate(services)
            ]
        return services

    def describe_task_resource_profile(self, task_definition):
        self.task_definition_reads += 1
        return list(self.task_definitions[task_definition])

    def describe_node_tags(self, instance_id):
        return dict(self.tags.get(instance_id, {}))

    def describe_private_addresses(self, instance_ids):
        return [self.addresses[i] for i in instance_ids if i in self.addresses]

    def describe_scaling_groups(self, name):
        if name not in self.groups:
            return []
        state = self.groups[name]
        if self._launches.get(name):
            self._launches[name] -= 1
            self._launched += 1
            state["instance_ids"].append(f"i-new{self._launched}")
        group = ScalingGroup(
            name=name,
            desired=state["desired"],
            minimum=state["minimum"],
            maximum=state["maximum"],
            instance_ids=tuple(state["instance_ids"]),
            instance_type=state.get("instance_type"),
        )
        if name in self.duplicate_groups:
            return [group, group]
        return [group]

    def set_scaling_group_counts(self, name, desired, minimum, maximum):
        self.events.append(("set_counts", name, desired, minimum, maximum))
        self.groups[name].update(desired=desired, minimum=minimum, maximum=maximum)

    def detach_scaling_group_members(self, name, instance_ids):
        self.events.append(("detach", name, tuple(instance_ids)))
        state = self.groups[name]
        state["instance_ids"] = [
            i for i in state["instance_ids"] if i not in set(instance_ids)
        ]
        self._launches[name] = state["desired"] - len(state["instance_ids"])

    def terminate_instance(self, instance_id):
        self.events.append(("terminate", instance_id))
        self.instance_states[instance_id] = "shutting-down"
        self._pending.extend(self.pending_after_terminate)

    def describe_instance_state(self, instance_id):
        return self.instance_states.get(instance_id, "running")

    def describe_instance_capacity(self, instance_type):
        if instance_type not in self.capacities:
            msg = f"Unknown EC2 instance type: {instance_type}"
            raise ResolutionError(msg)
        return self.capacities[instance_type]

    def mutations(self):
        return [event for event in self.events if event[0] != "pending"]


@pytest.fixture
def fleet_settings():
    """Settings with zero sleeps so polling loops run instantly."""
    return FleetSettings(
        replacement_poll_seconds=0,
        replacement_timeout_seconds=30,
        drain_warmup_seconds=0,
        drain_poll_seconds=0,
        drain_timeout_seconds=30,
        api_max_attempts=3,
        api_backoff_max_seconds=0,
    )


@pytest.fixture
def fake_api():
    """A cluster of three m5.large instances in one ASG running two services."""
    api = FakeClusterApi()
    instance_ids = ["i-1", "i-2", "i-3"]
    api.nodes[CLUSTER] = [
        Node(
            node_id=f"arn:aws:ecs:us-east-1:123456789012:container-instance/{i}",
            instance_id=i,
        )
        for i in instance_ids
    ]
    for index, instance_id in enumerate(instance_ids, start=1):
        api.tags[instance_id] = {ASG_NAME_TAG: GROUP, "Name": "apps-ecs"}
        api.addresses[instance_id] = f"10.0.0.{index}"
    api.groups[GROUP] = {
        "desired": 3,
        "minimum": 3,
        "maximum": 6,
        "instance_ids": list(instance_ids),
        "instance_type": "m5.large",
    }
    api.capacities["m5.large"] = InstanceCapacity(
        instance_type="m5.large", memory=8192, cpu=2048
    )
    api.services[CLUSTER] = [
        Service(name="web", desired_count=4, pending_count=0, task_definition="web:7"),
        Service(
            name="worker", desired_count=2, pending_count=0, task_definition="worker:3"
        ),
        Service(
            name="legacy", desired_count=0, pending_count=0, task_definition="legacy:1"
        ),
    ]
    api.task_definitions["web:7"] = [
        ResourceProfile(memory=1536, cpu=512),
        ResourceProfile(memory=512, cpu=0),
    ]
    api.task_definitions["worker:3"] = [ResourceProfile(memory=3072, cpu=256)]
    api.task_definitions["legacy:1"] = [ResourceProfile(memory=16384, cpu=4096)]
    return api


@pytest.fixture
def fleet_context(fleet_settings, fake_api):
    return FleetContext(settings=fleet_settings, api=fake_api)


@pytest.fixture
def aws_region():
    """Return default AWS region for tests.

    Returns:
        str: AWS region identifier.
    """
    return "us-east-1"


@pytest.fixture
def aws_credentials(monkeypatch, aws_region):
    """Dummy credentials so botocore clients can be built offline."""
    monkeypatch.setenv("AWS_DEFAULT_REGION", aws_region)
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    # pragma: allowlist secret
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
