import itertools

import pytest
from ol_ecs_fleet.context import FleetContext
from ol_ecs_fleet.exceptions import FleetTimeoutError, OperationCancelled
from ol_ecs_fleet.polling import pause, wait_until


def test_wait_until_returns_first_accepted_value(fleet_context):
    values = iter([3, 2, 0, 7])
    seen = []

    result = wait_until(
        fleet_context,
        lambda: next(values),
        lambda value: value == 0,
        interval=0,
        timeout=10,
        description="testing",
        on_poll=seen.append,
    )

    assert result == 0
    assert seen == [3, 2, 0]


def test_wait_until_probes_at_least_once_after_deadline(fleet_settings, fake_api):
    ctx = FleetContext(
        settings=fleet_settings, api=fake_api, clock=itertools.count(0, 100).__next__
    )

    assert (
        wait_until(
            ctx, lambda: 0, lambda v: v == 0, interval=0, timeout=1, description="x"
        )
        == 0
    )


def test_wait_until_times_out(fleet_settings, fake_api):
    ctx = FleetContext(
        settings=fleet_settings, api=fake_api, clock=itertools.count(0, 5).__next__
    )
    probes = []

    with pytest.raises(FleetTimeoutError, match="waiting for nothing"):
        wait_until(
            ctx,
            lambda: probes.append(1) or 1,
            lambda v: v == 0,
            interval=0,
            timeout=12,
            description="waiting for nothing",
        )
    # clock reads 0 (start), 5, 10, 15
    assert len(probes) == 3


def test_timeout_error_is_a_builtin_timeout():
    assert issubclass(FleetTimeoutError, TimeoutError)


def test_pause_honours_cancellation(fleet_context):
    fleet_context.cancel()

    with pytest.raises(OperationCancelled, match="sleeping"):
        pause(fleet_context, 60, "sleeping")


def test_wait_until_honours_cancellation(fleet_context):
    fleet_context.cancel()

    with pytest.raises(OperationCancelled):
        wait_until(
            fleet_context,
            lambda: pytest.fail("probed after cancellation"),
            lambda v: True,
            interval=60,
            timeout=600,
            description="waiting",
        )
