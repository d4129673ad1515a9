"""Read-only views of an ECS cluster."""

import logging
from collections.abc import Sequence

from ol_ecs_fleet.context import FleetContext
from ol_ecs_fleet.models import Node, ResourceProfile, Service

log = logging.getLogger(__name__)


class ClusterInspector:
    def __init__(self, ctx: FleetContext):
        self.ctx = ctx
        self.api = ctx.api

    def list_nodes(self, cluster: str) -> list[Node]:
        nodes = self.api.describe_cluster_nodes(cluster)
        log.debug("Cluster %s has %d container instances", cluster, len(nodes))
        return nodes

    def list_services(self, cluster: str) -> list[Service]:
        """Every service of the cluster, after all pages have been read."""
        arns = self.api.list_cluster_services(cluster)
        if not arns:
            return []
        services = self.api.describe_services(cluster, arns)
        log.debug("Cluster %s has %d services", cluster, len(services))
        return services

    def node_private_addresses(self, instance_ids: Sequence[str]) -> list[str]:
        return self.api.describe_private_addresses(instance_ids)

    def cluster_private_addresses(self, cluster: str) -> list[str]:
        instance_ids = [node.instance_id for node in self.list_nodes(cluster)]
        return self.node_private_addresses(instance_ids)

    def pending_task_count(self, cluster: str) -> int:
        """Sum of pending tasks across all services, idle ones included."""
        return sum(service.pending_count for service in self.list_services(cluster))

    def resource_profile(self, service: Service) -> ResourceProfile:
        """Per-task demand of ``service``, read fresh from its task definition."""
        return sum(
            self.api.describe_task_resource_profile(service.task_definition),
            ResourceProfile(),
        )
