"""Replace every EC2 instance of an ECS cluster without losing capacity.

The sequence is strictly forward:

1. Detach all current members from the Auto Scaling group without decrementing
   its desired capacity. The detached instances keep running their tasks while
   the group launches replacements.
2. Wait until the group is back to its full member count.
3. Terminate the detached instances one at a time. After each termination wait
   until ECS has no pending tasks left before touching the next instance.

There is no rollback. When a step fails the operation stops where it is; running
it again starts over from the group's current members.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, unique

from ol_ecs_fleet.context import FleetContext
from ol_ecs_fleet.inspector import ClusterInspector
from ol_ecs_fleet.polling import pause, wait_until
from ol_ecs_fleet.scaling_group import ScalingGroupController

log = logging.getLogger(__name__)

TERMINAL_INSTANCE_STATES = frozenset({"shutting-down", "terminated"})


@unique
class ReplacementPhase(str, Enum):
    start = "start"
    detaching = "detaching"
    awaiting_replacements = "awaiting-replacements"
    terminating = "terminating"
    draining = "draining"
    done = "done"


@dataclass(frozen=True)
class ReplacementReport:
    cluster: str
    group: str
    retired: tuple[str, ...]
    terminated: tuple[str, ...]
    already_terminated: tuple[str, ...]
    final_node_count: int


ProgressListener = Callable[[ReplacementPhase, str], None]


class ReplacementOrchestrator:
    def __init__(self, ctx: FleetContext, on_progress: ProgressListener | None = None):
        self.ctx = ctx
        self.api = ctx.api
        self.inspector = ClusterInspector(ctx)
        self.scaling_group = ScalingGroupController(ctx, self.inspector)
        self.on_progress = on_progress
        self.phase = ReplacementPhase.start

    def _report(self, message: str) -> None:
        if self.on_progress is not None:
            self.on_progress(self.phase, message)

    def _enter(self, phase: ReplacementPhase, message: str) -> None:
        log.info("[%s] %s", phase.value, message)
        self.phase = phase
        self._report(message)

    def replace_instances(self, cluster: str) -> ReplacementReport:
        self._enter(
            ReplacementPhase.start,
            f"Replacing EC2 instances one at a time for ECS cluster: {cluster}",
        )
        group = self.scaling_group.group_name_for_cluster(cluster)
        to_retire = self.scaling_group.member_instance_ids(group)
        self._report(f"ASG: {group}")

        terminated: list[str] = []
        already_terminated: list[str] = []
        if to_retire:
            self._enter(
                ReplacementPhase.detaching,
                f"Detaching {len(to_retire)} instances from ASG {group}",
            )
            self.scaling_group.detach_without_shrinking(group, to_retire)

            self._enter(
                ReplacementPhase.awaiting_replacements,
                f"Waiting for ASG {group} to launch {len(to_retire)} new instances",
            )
            self.scaling_group.wait_for_members(
                group,
                len(to_retire),
                on_progress=lambda count: self._report(
                    f"New instances created: {count}"
                ),
            )
            self._report("Finished creating new instances")

            for instance_id in to_retire:
                self._enter(
                    ReplacementPhase.terminating, f"Terminating instance: {instance_id}"
                )
                if self.terminate(instance_id):
                    terminated.append(instance_id)
                else:
                    already_terminated.append(instance_id)
                self._enter(
                    ReplacementPhase.draining,
                    f"Waiting for pending tasks to reach 0 after {instance_id}",
                )
                self.wait_for_drain(cluster)
            self._report("Finished terminating instances")
        else:
            self._report(f"ASG {group} has no instances; nothing to replace")

        final_node_count = len(self.inspector.list_nodes(cluster))
        self._enter(
            ReplacementPhase.done, f"Final instances in cluster: {final_node_count}"
        )
        return ReplacementReport(
            cluster=cluster,
            group=group,
            retired=tuple(to_retire),
            terminated=tuple(terminated),
            already_terminated=tuple(already_terminated),
            final_node_count=final_node_count,
        )

    def terminate(self, instance_id: str) -> bool:
        """Terminate an instance unless it is already going away.

        Returns:
            True if a termination request was sent, False if the instance was
            already shutting down or terminated.
        """
        state = self.api.describe_instance_state(instance_id)
        if state in TERMINAL_INSTANCE_STATES:
            log.info("Instance %s is already %s", instance_id, state)
            return False
        self.api.terminate_instance(instance_id)
        return True

    def wait_for_drain(self, cluster: str) -> None:
        """Give ECS time to notice the lost instance, then wait for 0 pending tasks."""
        settings = self.ctx.settings
        pause(
            self.ctx,
            settings.drain_warmup_seconds,
            f"waiting for ECS cluster {cluster} to reschedule tasks",
        )
        wait_until(
            self.ctx,
            lambda: self.inspector.pending_task_count(cluster),
            lambda pending: pending == 0,
            interval=settings.drain_poll_seconds,
            timeout=settings.drain_timeout_seconds,
            description=f"waiting for pending tasks in ECS cluster {cluster} to drain",
            on_poll=lambda pending: self._report(f"Pending tasks: {pending}"),
        )
