"""The run context handed to every fleet component.

A context is built once at process start and never mutated afterwards. It
replaces module level clients and settings so that each component receives its
collaborators explicitly.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ol_ecs_fleet.api import ClusterApi
from ol_ecs_fleet.aws import AwsClusterApi
from ol_ecs_fleet.settings import FleetSettings


@dataclass(frozen=True)
class FleetContext:
    settings: FleetSettings
    api: ClusterApi
    cancel_event: threading.Event = field(default_factory=threading.Event)
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def from_settings(cls, settings: FleetSettings) -> "FleetContext":
        return cls(settings=settings, api=AwsClusterApi.from_settings(settings))

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Ask every running wait to stop at its next check."""
        self.cancel_event.set()
