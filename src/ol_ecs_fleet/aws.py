"""boto3 implementation of the ``ClusterApi`` contract.

Every AWS call goes through ``AwsClusterApi._call`` which turns botocore errors
into ``APIError``/``ResolutionError`` and retries throttling and server-side
failures with exponential backoff. botocore's own retries are switched off so
that ``api_max_attempts`` is the total number of attempts per call.
"""

import logging
from collections.abc import Callable, Iterator, Sequence
from itertools import batched
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
)
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ol_ecs_fleet.exceptions import APIError, ResolutionError
from ol_ecs_fleet.models import (
    InstanceCapacity,
    Node,
    ResourceProfile,
    ScalingGroup,
    Service,
)
from ol_ecs_fleet.settings import FleetSettings

log = logging.getLogger(__name__)

# Per-request limits documented by the ECS and Auto Scaling APIs
DESCRIBE_CONTAINER_INSTANCES_BATCH = 100
DESCRIBE_SERVICES_BATCH = 10
DETACH_INSTANCES_BATCH = 20

RETRYABLE_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "TooManyRequestsException",
        "ServerException",
        "InternalFailure",
        "InternalError",
        "ServiceUnavailable",
        "ResourceContention",
        "ScalingActivityInProgress",
    }
)
NOT_FOUND_ERROR_CODES = frozenset(
    {
        "ClusterNotFoundException",
        "ServiceNotFoundException",
        "InvalidInstanceID.NotFound",
    }
)
HTTP_SERVER_ERROR = 500
SINGLE_ATTEMPT = Config(retries={"mode": "standard", "total_max_attempts": 1})


def _translate_client_error(operation: str, exc: ClientError) -> Exception:
    error = exc.response.get("Error", {})
    code = error.get("Code", "Unknown")
    message = error.get("Message", str(exc))
    if code in NOT_FOUND_ERROR_CODES:
        return ResolutionError(f"{operation}: {message}")
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
    return APIError(
        operation,
        code,
        message,
        retryable=code in RETRYABLE_ERROR_CODES or status >= HTTP_SERVER_ERROR,
    )


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, APIError) and exc.retryable


def _instances(response: dict[str, Any]) -> Iterator[dict[str, Any]]:
    for reservation in response.get("Reservations", []):
        yield from reservation.get("Instances", [])


class AwsClusterApi:
    """Talks to ECS, EC2 and Auto Scaling on behalf of the fleet operations."""

    def __init__(self, settings: FleetSettings, *, ecs, ec2, autoscaling):
        self.settings = settings
        self.ecs = ecs
        self.ec2 = ec2
        self.autoscaling = autoscaling

    @classmethod
    def from_settings(cls, settings: FleetSettings) -> "AwsClusterApi":
        session = boto3.session.Session(
            region_name=settings.aws_region, profile_name=settings.aws_profile
        )
        return cls(
            settings,
            ecs=session.client("ecs", config=SINGLE_ATTEMPT),
            ec2=session.client("ec2", config=SINGLE_ATTEMPT),
            autoscaling=session.client("autoscaling", config=SINGLE_ATTEMPT),
        )

    def _call(
        self,
        operation: str,
        func: Callable[..., Any],
        *,
        retry: bool = True,
        **kwargs: Any,
    ) -> Any:
        """Call an AWS API method, translating and retrying its errors.

        Args:
            operation: API operation name used in errors and logs.
            func: Bound client method or zero-argument callable.
            retry: Whether retryable errors are attempted again. Turn it off for
                requests that must not be sent twice.
            **kwargs: Request parameters passed to ``func``.
        """
        attempts = self.settings.api_max_attempts if retry else 1
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(
                multiplier=0.5, max=self.settings.api_backoff_max_seconds
            ),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(log, logging.WARNING),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                log.debug("Calling %s with %s", operation, kwargs)
                try:
                    return func(**kwargs)
                except ClientError as exc:
                    raise _translate_client_error(operation, exc) from exc
                except BotoCoreError as exc:
                    raise APIError(
                        operation,
                        type(exc).__name__,
                        str(exc),
                        retryable=isinstance(exc, BotoConnectionError),
                    ) from exc
        return None  # pragma: no cover

    def _paginate(
        self, client, method: str, result_key: str, **kwargs: Any
    ) -> list[Any]:
        def collect():
            paginator = client.get_paginator(method)
            return [
                item
                for page in paginator.paginate(**kwargs)
                for item in page.get(result_key, [])
            ]

        return self._call(method, collect)

    # ECS

    def describe_cluster_nodes(self, cluster: str) -> list[Node]:
        arns = self._paginate(
            self.ecs,
            "list_container_instances",
            "containerInstanceArns",
            cluster=cluster,
        )
        nodes: list[Node] = []
        for batch in batched(arns, DESCRIBE_CONTAINER_INSTANCES_BATCH):
            response = self._call(
                "describe_container_instances",
                self.ecs.describe_container_instances,
                cluster=cluster,
                containerInstances=list(batch),
            )
            self._raise_for_failures("describe_container_instances", response)
            nodes.extend(
                Node(
                    node_id=instance["containerInstanceArn"],
                    instance_id=instance["ec2InstanceId"],
                    status=instance.get("status", "ACTIVE"),
                )
                for instance in response.get("containerInstances", [])
            )
        return nodes

    def list_cluster_services(self, cluster: str) -> list[str]:
        return self._paginate(
            self.ecs, "list_services", "serviceArns", cluster=cluster
        )

    def describe_services(self, cluster: str, arns: Sequence[str]) -> list[Service]:
        services: list[Service] = []
        for batch in batched(arns, DESCRIBE_SERVICES_BATCH):
            response = self._call(
                "describe_services",
                self.ecs.describe_services,
                cluster=cluster,
                services=list(batch),
            )
            self._raise_for_failures("describe_services", response)
            services.extend(
                Service(
                    name=service["serviceName"],
                    desired_count=service.get("desiredCount", 0),
                    pending_count=service.get("pendingCount", 0),
                    task_definition=service["taskDefinition"],
                )
                for service in response.get("services", [])
            )
        return services

    def describe_task_resource_profile(
        self, task_definition: str
    ) -> list[ResourceProfile]:
        response = self._call(
            "describe_task_definition",
            self.ecs.describe_task_definition,
            taskDefinition=task_definition,
        )
        containers = response["taskDefinition"].get("containerDefinitions", [])
        return [
            ResourceProfile(
                memory=container.get("memory")
                or container.get("memoryReservation")
                or 0,
                cpu=container.get("cpu", 0),
            )
            for container in containers
        ]

    @staticmethod
    def _raise_for_failures(operation: str, response: dict[str, Any]) -> None:
        failures = response.get("failures", [])
        if failures:
            details = ", ".join(
                f"{failure.get('arn')} ({failure.get('reason')})"
                for failure in failures
            )
            msg = f"{operation} reported failures: {details}"
            raise ResolutionError(msg)

    # EC2

    def describe_node_tags(self, instance_id: str) -> dict[str, str]:
        response = self._call(
            "describe_instances", self.ec2.describe_instances, InstanceIds=[instance_id]
        )
        for instance in _instances(response):
            return {tag["Key"]: tag["Value"] for tag in instance.get("Tags", [])}
        msg = f"EC2 instance not found: {instance_id}"
        raise ResolutionError(msg)

    def describe_private_addresses(self, instance_ids: Sequence[str]) -> list[str]:
        if not instance_ids:
            return []
        reservations = self._paginate(
            self.ec2,
            "describe_instances",
            "Reservations",
            InstanceIds=list(instance_ids),
        )
        return [
            instance["PrivateIpAddress"]
            for instance in _instances({"Reservations": reservations})
            if instance.get("PrivateIpAddress")
        ]

    def terminate_instance(self, instance_id: str) -> None:
        self._call(
            "terminate_instances",
            self.ec2.terminate_instances,
            InstanceIds=[instance_id],
        )

    def describe_instance_state(self, instance_id: str) -> str:
        """Return the instance state, ``terminated`` once EC2 has purged it."""
        try:
            response = self._call(
                "describe_instances",
                self.ec2.describe_instances,
                InstanceIds=[instance_id],
            )
        except ResolutionError:
            log.info("EC2 instance %s no longer exists", instance_id)
            return "terminated"
        for instance in _instances(response):
            return instance["State"]["Name"]
        return "terminated"

    def describe_instance_capacity(self, instance_type: str) -> InstanceCapacity:
        response = self._call(
            "describe_instance_types",
            self.ec2.describe_instance_types,
            InstanceTypes=[instance_type],
        )
        instance_types = response.get("InstanceTypes", [])
        if not instance_types:
            msg = f"Unknown EC2 instance type: {instance_type}"
            raise ResolutionError(msg)
        return InstanceCapacity.from_instance_type_info(instance_types[0])

    def _launch_template_instance_type(self, template: dict[str, Any]) -> str | None:
        selector = {
            key: template[key]
            for key in ("LaunchTemplateId", "LaunchTemplateName")
            if template.get(key)
        }
        response = self._call(
            "describe_launch_template_versions",
            self.ec2.describe_launch_template_versions,
            Versions=[template.get("Version") or "$Default"],
            **selector,
        )
        for version in response.get("LaunchTemplateVersions", []):
            return version.get("LaunchTemplateData", {}).get("InstanceType")
        return None

    # Auto Scaling

    def describe_scaling_groups(self, name: str) -> list[ScalingGroup]:
        response = self._call(
            "describe_auto_scaling_groups",
            self.autoscaling.describe_auto_scaling_groups,
            AutoScalingGroupNames=[name],
        )
        groups = []
        for group in response.get("AutoScalingGroups", []):
            members = group.get("Instances", [])
            instance_type = next(
                (
                    member["InstanceType"]
                    for member in members
                    if member.get("InstanceType")
                ),
                None,
            )
            if instance_type is None and group.get("LaunchTemplate"):
                instance_type = self._launch_template_instance_type(
                    group["LaunchTemplate"]
                )
            groups.append(
                ScalingGroup(
                    name=group["AutoScalingGroupName"],
                    desired=group["DesiredCapacity"],
                    minimum=group["MinSize"],
                    maximum=group["MaxSize"],
                    instance_ids=tuple(member["InstanceId"] for member in members),
                    instance_type=instance_type,
                )
            )
        return groups

    def set_scaling_group_counts(
        self, name: str, desired: int, minimum: int, maximum: int
    ) -> None:
        self._call(
            "update_auto_scaling_group",
            self.autoscaling.update_auto_scaling_group,
            AutoScalingGroupName=name,
            DesiredCapacity=desired,
            MinSize=minimum,
            MaxSize=maximum,
        )

    def detach_scaling_group_members(
        self, name: str, instance_ids: Sequence[str]
    ) -> None:
        for batch in batched(instance_ids, DETACH_INSTANCES_BATCH):
            # A repeated detach fails once the first request went through
            self._call(
                "detach_instances",
                self.autoscaling.detach_instances,
                retry=False,
                AutoScalingGroupName=name,
                InstanceIds=list(batch),
                ShouldDecrementDesiredCapacity=False,
            )
