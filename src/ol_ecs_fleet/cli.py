# ruff: noqa: T201
"""Command line entry point for ECS fleet maintenance.

Usage:
  ol-ecs-fleet right-size <cluster> [--at-least-service-desired-count]
  ol-ecs-fleet replace-instances <cluster>
  ol-ecs-fleet plan <cluster> [--at-least-service-desired-count] [--json-output]
  ol-ecs-fleet list-ips <cluster>

AWS region and profile come from ``--region``/``--profile``, the
``ECS_FLEET_AWS_REGION``/``ECS_FLEET_AWS_PROFILE`` variables or the usual boto3
configuration, in that order.
"""

import json
import logging
import signal
import sys
from collections.abc import Callable
from dataclasses import asdict
from typing import Any

import cyclopts
from botocore.exceptions import BotoCoreError
from pydantic import ValidationError

from ol_ecs_fleet.context import FleetContext
from ol_ecs_fleet.exceptions import FleetError
from ol_ecs_fleet.inspector import ClusterInspector
from ol_ecs_fleet.replacement import (
    ReplacementOrchestrator,
    ReplacementPhase,
    ReplacementReport,
)
from ol_ecs_fleet.right_size import RightSizer, RightSizeResult, ScalingAction
from ol_ecs_fleet.settings import FleetSettings

log = logging.getLogger(__name__)

app = cyclopts.App(
    name="ol-ecs-fleet",
    help="Right size and replace the EC2 instances behind ECS clusters",
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)


def build_context(region: str | None, profile: str | None) -> FleetContext:
    overrides = {
        key: value
        for key, value in (("aws_region", region), ("aws_profile", profile))
        if value is not None
    }
    settings = FleetSettings(**overrides)
    configure_logging(settings.log_level)
    ctx = FleetContext.from_settings(settings)
    signal.signal(signal.SIGTERM, lambda *_: ctx.cancel())
    return ctx


def run_operation(operation: Callable[[], Any]) -> Any:
    """Run an operation, turning fleet and setup errors into exit status 1.

    Setup errors are invalid settings and AWS profile or region problems raised
    while the context is built.
    """
    try:
        return operation()
    except (FleetError, BotoCoreError, ValidationError) as exc:
        log.debug("Operation failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


def print_right_size_result(result: RightSizeResult) -> None:
    print(f"ASG found: {result.group}")
    print(f"ASG uses instance type: {result.instance_type}")
    print(
        "Memory needed for all services with desired count > 0: "
        f"{result.capacity.memory_needed}, CPU needed: {result.capacity.cpu_needed}"
    )
    print(f"ASG should have {result.target} servers to fit all tasks")
    print(f"ASG minimum size currently set to: {result.previous_minimum}")
    if result.action is ScalingAction.scale_up:
        verb = "was scaled" if result.applied else "needs to be scaled"
        print(f"ASG {verb} up by {result.target - result.previous_minimum} servers")
    elif result.action is ScalingAction.scale_down:
        verb = "was scaled" if result.applied else "can be scaled"
        print(f"ASG {verb} down by {result.previous_minimum - result.target} servers")
    else:
        print("ASG is already right sized")


@app.command(name="right-size")
def right_size(
    cluster: str,
    *,
    at_least_service_desired_count: bool = False,
    region: str | None = None,
    profile: str | None = None,
) -> None:
    """Scale the cluster's ASG to the number of instances its services need.

    Args:
        cluster: ECS cluster name.
        at_least_service_desired_count: Never size below the largest desired
            count of any single service.
        region: AWS region.
        profile: AWS profile.
    """
    result = run_operation(
        lambda: RightSizer(build_context(region, profile)).right_size(
            cluster, enforce_floor=at_least_service_desired_count
        )
    )
    print_right_size_result(result)


@app.command(name="plan")
def plan(
    cluster: str,
    *,
    at_least_service_desired_count: bool = False,
    json_output: bool = False,
    region: str | None = None,
    profile: str | None = None,
) -> None:
    """Show the ASG size the cluster needs without changing anything.

    Args:
        cluster: ECS cluster name.
        at_least_service_desired_count: Never size below the largest desired
            count of any single service.
        json_output: Output the result as JSON.
        region: AWS region.
        profile: AWS profile.
    """
    result = run_operation(
        lambda: RightSizer(build_context(region, profile)).plan(
            cluster, enforce_floor=at_least_service_desired_count
        )
    )
    if json_output:
        print(json.dumps(asdict(result), indent=2))
    else:
        print_right_size_result(result)


@app.command(name="replace-instances")
def replace_instances(
    cluster: str,
    *,
    region: str | None = None,
    profile: str | None = None,
) -> None:
    """Gracefully replace the EC2 instances of an ECS cluster one at a time.

    Args:
        cluster: ECS cluster name.
        region: AWS region.
        profile: AWS profile.
    """

    def show(phase: ReplacementPhase, message: str) -> None:
        print(f"[{phase.value}] {message}", flush=True)

    def replace() -> ReplacementReport:
        ctx = build_context(region, profile)
        return ReplacementOrchestrator(ctx, on_progress=show).replace_instances(
            cluster
        )

    report = run_operation(replace)
    print(
        f"All done. Terminated {len(report.terminated)} instances, "
        f"{len(report.already_terminated)} were already terminated. "
        f"{report.final_node_count} instances now in cluster {report.cluster}."
    )


@app.command(name="list-ips")
def list_ips(
    cluster: str,
    *,
    region: str | None = None,
    profile: str | None = None,
) -> None:
    """Print the private IP address of every container instance in the cluster.

    Args:
        cluster: ECS cluster name.
        region: AWS region.
        profile: AWS profile.
    """
    for address in run_operation(
        lambda: ClusterInspector(
            build_context(region, profile)
        ).cluster_private_addresses(cluster)
    ):
        print(address)


if __name__ == "__main__":
    app()
