"""Tests for the per-cycle straggler/sync planner."""

from datetime import UTC, datetime, timedelta

from cadence.core.timestamps import MAX_INSTANT
from cadence.scheduling import (
    CroniterEvaluator,
    OperationSpec,
    RunMode,
    RuntimeOperationState,
    SchedulePool,
    build_pools,
    plan_cycle,
)

T0 = datetime(2024, 1, 1, tzinfo=UTC)
EVALUATOR = CroniterEvaluator()


async def tick(ctx):
    pass


def _pool(*specs, now=T0):
    (pool,) = build_pools(specs, now, EVALUATOR)
    return pool


def _dispatch(pool, now):
    """Mark every due operation as run at *now*, like a dispatch step."""
    fired = []
    for state in pool:
        if state.should_run:
            state.mark_dispatched(now)
            fired.append(state.name)
    return fired


class TestCyclePlan:
    """Test the basic delay computation."""

    def test_first_cycle_targets_earliest(self):
        pool = _pool(OperationSpec.every(10, tick, name="a"), OperationSpec.every(15, tick, name="b"))

        plan = plan_cycle(pool, T0, EVALUATOR)

        assert plan.delay == timedelta(seconds=10)
        assert plan.earliest_run == T0 + timedelta(seconds=10)
        assert plan.due == (0,)
        assert plan.stragglers == ()
        assert plan.catching_up is False
        assert plan.idle is False

    def test_plan_is_pure_of_time(self):
        """Planning reads only the instant it is given."""
        pool = _pool(OperationSpec.every(10, tick))
        plan = plan_cycle(pool, T0 + timedelta(seconds=4), EVALUATOR)
        assert plan.delay == timedelta(seconds=6)

    def test_idle_pool(self, fake_evaluator):
        """A pool whose only operation is exhausted never marks anything due."""
        (pool,) = build_pools([OperationSpec.cron("never", tick)], T0, fake_evaluator)

        plan = plan_cycle(pool, T0, fake_evaluator)

        assert plan.idle is True
        assert plan.earliest_run == MAX_INSTANT
        assert plan.due == ()

    def test_exhausted_operation_does_not_block_siblings(self, fake_evaluator):
        (pool,) = build_pools(
            [OperationSpec.cron("never", tick, name="gone"), OperationSpec.every(5, tick, name="live")],
            T0,
            fake_evaluator,
        )
        plan = plan_cycle(pool, T0, fake_evaluator)
        assert plan.due == (1,)
        assert plan.delay == timedelta(seconds=5)


class TestSyncConvergence:
    """Operations sharing an interval fire together."""

    def test_two_operations_same_interval_three_cycles(self):
        """A and B, both every 10s: three cycles fire each three times, together."""
        pool = _pool(OperationSpec.every(10, tick, name="a"), OperationSpec.every(10, tick, name="b"))
        now = T0
        fired: list[tuple[datetime, list[str]]] = []

        plan = plan_cycle(pool, now, EVALUATOR)
        for _ in range(3):
            now += plan.delay
            fired.append((now, _dispatch(pool, now)))
            plan = plan_cycle(pool, now, EVALUATOR)

        assert fired == [
            (T0 + timedelta(seconds=10), ["a", "b"]),
            (T0 + timedelta(seconds=20), ["a", "b"]),
            (T0 + timedelta(seconds=30), ["a", "b"]),
        ]

    def test_out_of_phase_members_converge(self):
        """Members registered at different instants are pulled to the earliest."""
        a = RuntimeOperationState(OperationSpec.every(10, tick, name="a"), last_run=T0)
        b = RuntimeOperationState(OperationSpec.every(10, tick, name="b"), last_run=T0 + timedelta(seconds=4))
        pool = SchedulePool(RunMode.SEQUENTIAL, [a, b])

        plan = plan_cycle(pool, T0, EVALUATOR)

        assert a.next_run == b.next_run == T0 + timedelta(seconds=10)
        assert plan.due == (0, 1)

    def test_members_stay_together_when_dispatch_takes_time(self):
        """A slow first member does not push its sibling into another slot."""
        pool = _pool(OperationSpec.every(10, tick, name="a"), OperationSpec.every(10, tick, name="b"))
        a, b = pool.operations
        now = T0
        plan = plan_cycle(pool, now, EVALUATOR)

        for _ in range(20):
            now += plan.delay
            a.mark_dispatched(now)
            b.mark_dispatched(now + timedelta(milliseconds=500))
            now += timedelta(milliseconds=500)
            plan = plan_cycle(pool, now, EVALUATOR)
            assert plan.due == (0, 1)
            assert a.next_run == b.next_run

        assert a.run_count == b.run_count == 20


class TestStragglers:
    """An operation whose slot passed during a sibling's run fires next cycle."""

    def test_straggler_fires_immediately(self):
        pool = _pool(OperationSpec.every(10, tick, name="slow"), OperationSpec.every(12, tick, name="b"))
        slow, b = pool.operations

        plan = plan_cycle(pool, T0, EVALUATOR)
        assert plan.due == (0,)

        # slow runs from T0+10 until T0+18, covering b's slot at T0+12
        slow.mark_dispatched(T0 + timedelta(seconds=10))
        plan = plan_cycle(pool, T0 + timedelta(seconds=18), EVALUATOR)

        assert plan.stragglers == (1,)
        assert plan.due == (1,)
        assert plan.delay == timedelta(0)
        assert plan.catching_up is True

        # the catch-up cycle runs b; the next target is slow's slot at T0+20
        b.mark_dispatched(T0 + timedelta(seconds=18))
        plan = plan_cycle(pool, T0 + timedelta(seconds=18), EVALUATOR)

        assert plan.stragglers == ()
        assert plan.due == (0,)
        assert plan.delay == timedelta(seconds=2)
        assert b.next_run == T0 + timedelta(seconds=30)

    def test_planned_operation_is_not_a_straggler(self):
        """An operation marked last cycle is reset, not re-flagged, in pass one."""
        pool = _pool(OperationSpec.every(10, tick, name="a"))
        (a,) = pool.operations
        plan_cycle(pool, T0, EVALUATOR)
        assert a.should_run is True

        a.mark_dispatched(T0 + timedelta(seconds=10))
        plan = plan_cycle(pool, T0 + timedelta(seconds=10), EVALUATOR)

        assert plan.stragglers == ()
        assert plan.delay == timedelta(seconds=10)

    def test_interval_already_due_again_is_caught_up(self):
        """An interval shorter than its own run time re-fires on the next cycle."""
        pool = _pool(OperationSpec.every(1, tick, name="a"))
        (a,) = pool.operations
        plan_cycle(pool, T0, EVALUATOR)

        a.mark_dispatched(T0 + timedelta(seconds=1))
        plan = plan_cycle(pool, T0 + timedelta(seconds=3), EVALUATOR)

        assert plan.stragglers == (0,)
        assert plan.delay == timedelta(0)


class TestCronCycles:
    """Cron operations fire on the evaluator's occurrences, once each."""

    def test_ten_second_cron_matches_occurrences(self):
        pool = _pool(OperationSpec.cron("*/10 * * * * *", tick, has_seconds=True, name="c"))
        (c,) = pool.operations
        now = T0
        fired = []

        plan = plan_cycle(pool, now, EVALUATOR)
        while now + plan.delay <= T0 + timedelta(minutes=1):
            now += plan.delay
            if c.should_run:
                c.mark_dispatched(now)
                fired.append(now)
            plan = plan_cycle(pool, now, EVALUATOR)

        expected = EVALUATOR.occurrences("*/10 * * * * *", True, "UTC", T0, 6)
        assert fired == expected

    def test_early_wake_does_not_double_fire(self):
        """Dispatching just before the occurrence skips to the following one."""
        pool = _pool(OperationSpec.cron("*/10 * * * * *", tick, has_seconds=True, name="c"))
        (c,) = pool.operations
        plan_cycle(pool, T0, EVALUATOR)

        early = T0 + timedelta(seconds=9, milliseconds=700)
        c.mark_dispatched(early)
        plan = plan_cycle(pool, early, EVALUATOR)

        assert c.next_run == T0 + timedelta(seconds=20)
        assert plan.delay == timedelta(seconds=10, milliseconds=300)
