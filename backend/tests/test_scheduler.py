"""Tests for the layout scheduler state machine."""

import asyncio

import pytest

from layout import LayoutScheduler, LayoutState, LayoutStatus
from shared import NodeKind, WorkNode

from .helpers import FailingSolver, GatedSolver, RecordingSolver, SlowSolver, chain, snapshot, task

DEBOUNCE_MS = 40


def _seeded(solver, positions, **kwargs):
    kwargs.setdefault("debounce_ms", DEBOUNCE_MS)
    return LayoutScheduler.from_metadata(solver, positions, **kwargs)


def _full_seed(*ids):
    return {nid: {"x": 500.0 + i, "y": 500.0 + i} for i, nid in enumerate(ids)}


class TestInitialObservation:
    @pytest.mark.asyncio
    async def test_low_coverage_runs_without_debounce(self):
        solver = RecordingSolver()
        published = []
        scheduler = LayoutScheduler(solver, on_positions_change=published.append, debounce_ms=10_000)

        status = await scheduler.observe(chain("a", "b", "c"))

        assert status == LayoutStatus.IDLE
        assert len(solver.calls) == 1
        assert scheduler.positions == {
            "a": {"x": 0.0, "y": 0.0},
            "b": {"x": 10.0, "y": 10.0},
            "c": {"x": 20.0, "y": 20.0},
        }
        assert published == [scheduler.positions]

    @pytest.mark.asyncio
    async def test_half_coverage_still_runs(self):
        solver = RecordingSolver()
        scheduler = _seeded(solver, _full_seed("a", "b"))
        await scheduler.observe(chain("a", "b", "c", "d"))
        assert len(solver.calls) == 1

    @pytest.mark.asyncio
    async def test_majority_coverage_skips_solver(self):
        solver = RecordingSolver()
        seed = _full_seed("a", "b", "c")
        scheduler = _seeded(solver, seed)

        status = await scheduler.observe(chain("a", "b", "c", "d"))

        assert status == LayoutStatus.IDLE
        assert solver.calls == []
        assert scheduler.positions == seed

    @pytest.mark.asyncio
    async def test_empty_graph_skips_solver(self):
        solver = RecordingSolver()
        scheduler = LayoutScheduler(solver, debounce_ms=DEBOUNCE_MS)
        await scheduler.observe(snapshot())
        assert solver.calls == []
        assert scheduler.status == LayoutStatus.IDLE

    @pytest.mark.asyncio
    async def test_seeded_positions_are_not_manual(self):
        scheduler = _seeded(RecordingSolver(), _full_seed("a", "b"))
        assert scheduler.manual_ids == set()

    def test_invalid_seed_entries_dropped(self):
        scheduler = _seeded(RecordingSolver(), {"a": {"x": 1, "y": 2}, "b": {"x": "nope"}, "c": None})
        assert scheduler.positions == {"a": {"x": 1.0, "y": 2.0}}


class TestStructuralChanges:
    @pytest.mark.asyncio
    async def test_cosmetic_change_does_nothing(self):
        solver = RecordingSolver()
        scheduler = _seeded(solver, _full_seed("a", "b"))
        await scheduler.observe(snapshot(task("a"), task("b", ["a"])))

        status = await scheduler.observe(snapshot(task("a", status="complete"), task("b", ["a"], title="New")))

        assert status == LayoutStatus.IDLE
        assert scheduler.state.timer is None
        await asyncio.sleep(DEBOUNCE_MS * 2 / 1000)
        assert solver.calls == []
        assert scheduler.state.graph.nodes["a"].status == "complete"

    @pytest.mark.asyncio
    async def test_change_waits_for_quiet_period(self):
        solver = RecordingSolver()
        scheduler = _seeded(solver, _full_seed("a", "b"))
        await scheduler.observe(chain("a", "b"))

        status = await scheduler.observe(chain("a", "b", "c"))

        assert status == LayoutStatus.PENDING_DEBOUNCE
        assert solver.calls == []
        await scheduler.wait_idle()
        assert len(solver.calls) == 1
        assert scheduler.status == LayoutStatus.IDLE

    @pytest.mark.asyncio
    async def test_burst_coalesces_into_one_run(self):
        solver = RecordingSolver()
        scheduler = _seeded(solver, _full_seed("n0"))
        await scheduler.observe(chain("n0"))

        ids = ["n0"]
        for i in range(1, 6):
            ids.append(f"n{i}")
            await scheduler.observe(chain(*ids))
            await asyncio.sleep(DEBOUNCE_MS / 4 / 1000)
        await scheduler.wait_idle()

        assert len(solver.calls) == 1
        assert set(solver.calls[0].nodes) == set(ids)
        assert set(scheduler.positions) == set(ids)

    @pytest.mark.asyncio
    async def test_identical_keys_trigger_single_run(self):
        solver = RecordingSolver()
        scheduler = _seeded(solver, _full_seed("a", "b"))
        await scheduler.observe(chain("a", "b"))

        await scheduler.observe(chain("a", "b", "c"))
        await scheduler.observe(chain("a", "b", "c"))
        await scheduler.wait_idle()

        assert len(solver.calls) == 1

    @pytest.mark.asyncio
    async def test_removed_node_pruned_on_next_merge(self):
        solver = RecordingSolver()
        scheduler = _seeded(solver, _full_seed("a", "b", "c"))
        await scheduler.observe(chain("a", "b", "c"))
        await scheduler.mark_manual("c", {"x": 1.0, "y": 1.0})

        await scheduler.observe(chain("a", "b"))
        assert "c" in scheduler.positions
        await scheduler.wait_idle()

        assert "c" not in scheduler.positions
        assert "c" not in scheduler.manual_ids


class TestManualOverrides:
    @pytest.mark.asyncio
    async def test_manual_position_survives_structural_changes(self):
        solver = RecordingSolver(offset=1000.0)
        scheduler = _seeded(solver, _full_seed("a", "b"))
        await scheduler.observe(chain("a", "b"))
        assert await scheduler.mark_manual("a", {"x": 7.0, "y": 8.0})

        for ids in (("a", "b", "c"), ("a", "b", "c", "d"), ("a", "c")):
            await scheduler.observe(chain(*ids))
            await scheduler.wait_idle()
            assert scheduler.get_position("a") == {"x": 7.0, "y": 8.0}

        assert len(solver.calls) == 3
        assert scheduler.get_position("c") == {"x": 1010.0, "y": 1010.0}

    @pytest.mark.asyncio
    async def test_solver_still_receives_manual_nodes(self):
        solver = RecordingSolver()
        scheduler = _seeded(solver, _full_seed("a", "b"))
        await scheduler.observe(chain("a", "b"))
        await scheduler.mark_manual("a", {"x": 7.0, "y": 8.0})

        await scheduler.observe(chain("a", "b", "c"))
        await scheduler.wait_idle()

        assert set(solver.calls[0].nodes) == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_mark_manual_publishes_merged_snapshot(self):
        published = []
        seed = _full_seed("a", "b")
        scheduler = _seeded(RecordingSolver(), seed, on_positions_change=published.append)
        await scheduler.observe(chain("a", "b"))

        await scheduler.mark_manual("b", {"x": 3, "y": 4})

        assert published == [{"a": seed["a"], "b": {"x": 3.0, "y": 4.0}}]
        assert scheduler.manual_ids == {"b"}

    @pytest.mark.asyncio
    async def test_stale_node_is_ignored(self):
        published = []
        scheduler = _seeded(RecordingSolver(), _full_seed("a"), on_positions_change=published.append)
        await scheduler.observe(chain("a"))

        assert await scheduler.mark_manual("gone", {"x": 1, "y": 1}) is False
        assert scheduler.manual_ids == set()
        assert "gone" not in scheduler.positions
        assert published == []

    @pytest.mark.asyncio
    async def test_mark_manual_before_any_observation(self):
        scheduler = LayoutScheduler(RecordingSolver(), debounce_ms=DEBOUNCE_MS)
        assert await scheduler.mark_manual("a", {"x": 1, "y": 1}) is False

    @pytest.mark.asyncio
    async def test_position_override_flag_pins_node(self):
        solver = RecordingSolver(offset=1000.0)
        seed = _full_seed("a", "b")
        scheduler = _seeded(solver, seed)
        pinned = WorkNode(id="a", kind=NodeKind.TASK, position_override=True)
        await scheduler.observe(snapshot(pinned, task("b", ["a"])))

        await scheduler.observe(snapshot(pinned, task("b", ["a"]), task("c", ["b"])))
        await scheduler.wait_idle()

        assert scheduler.get_position("a") == seed["a"]
        assert scheduler.get_position("b") != seed["b"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_solver_failure_keeps_previous_positions(self):
        solver = FailingSolver()
        published = []
        seed = _full_seed("a", "b")
        scheduler = _seeded(solver, seed, on_positions_change=published.append)
        await scheduler.observe(chain("a", "b"))

        await scheduler.observe(chain("a", "b", "c"))
        await scheduler.wait_idle()

        assert solver.calls == 1
        assert scheduler.positions == seed
        assert scheduler.status == LayoutStatus.IDLE
        assert published == []

    @pytest.mark.asyncio
    async def test_initial_failure_does_not_raise(self):
        scheduler = LayoutScheduler(FailingSolver(), debounce_ms=DEBOUNCE_MS)
        status = await scheduler.observe(chain("a", "b"))
        assert status == LayoutStatus.IDLE
        assert scheduler.positions == {}

    @pytest.mark.asyncio
    async def test_next_structural_change_retries(self):
        scheduler = LayoutScheduler(FailingSolver(), debounce_ms=DEBOUNCE_MS)
        await scheduler.observe(chain("a", "b"))
        scheduler.solver = RecordingSolver()

        await scheduler.observe(chain("a", "b", "c"))
        await scheduler.wait_idle()

        assert set(scheduler.positions) == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_solver_timeout_counts_as_failure(self):
        scheduler = LayoutScheduler(SlowSolver(delay=1.0), debounce_ms=DEBOUNCE_MS, solver_timeout=0.05)
        status = await scheduler.observe(chain("a", "b"))
        assert status == LayoutStatus.IDLE
        assert scheduler.positions == {}

    @pytest.mark.asyncio
    async def test_listener_error_does_not_break_scheduler(self):
        def broken(_positions):
            raise RuntimeError("disk full")

        rendered = []
        scheduler = LayoutScheduler(
            RecordingSolver(), on_positions_change=broken, on_render=rendered.append, debounce_ms=DEBOUNCE_MS
        )
        await scheduler.observe(chain("a", "b"))

        assert scheduler.status == LayoutStatus.IDLE
        assert set(scheduler.positions) == {"a", "b"}
        assert len(rendered) == 1

    @pytest.mark.asyncio
    async def test_async_listeners_awaited(self):
        seen = []

        async def persist(positions):
            await asyncio.sleep(0)
            seen.append(positions)

        scheduler = LayoutScheduler(RecordingSolver(), on_positions_change=persist, debounce_ms=DEBOUNCE_MS)
        await scheduler.observe(chain("a"))
        assert seen == [{"a": {"x": 0.0, "y": 0.0}}]


class TestRunningGuard:
    @pytest.mark.asyncio
    async def test_timer_firing_while_running_is_skipped_then_retried(self):
        solver = GatedSolver()
        scheduler = _seeded(solver, _full_seed("a", "b"))
        await scheduler.observe(chain("a", "b"))

        await scheduler.observe(chain("a", "b", "c"))
        await asyncio.wait_for(solver.entered.wait(), timeout=2)
        assert scheduler.status == LayoutStatus.RUNNING

        await scheduler.observe(chain("a", "b", "c", "d"))
        await asyncio.sleep(DEBOUNCE_MS * 3 / 1000)
        assert solver.entries == 1
        assert scheduler.status == LayoutStatus.RUNNING

        solver.release()
        await asyncio.wait_for(scheduler.wait_idle(), timeout=2)

        assert solver.entries == 2
        assert solver.max_active == 1
        assert set(solver.calls[-1].nodes) == {"a", "b", "c", "d"}
        assert set(scheduler.positions) == {"a", "b", "c", "d"}

    @pytest.mark.asyncio
    async def test_reset_refused_while_running(self):
        solver = GatedSolver()
        scheduler = _seeded(solver, _full_seed("a"))
        await scheduler.observe(chain("a"))
        await scheduler.observe(chain("a", "b"))
        await asyncio.wait_for(solver.entered.wait(), timeout=2)

        assert await scheduler.reset_layout() is False

        solver.release()
        await scheduler.wait_idle()
        assert solver.entries == 1

    @pytest.mark.asyncio
    async def test_cancelled_caller_leaves_scheduler_idle(self):
        solver = GatedSolver()
        scheduler = LayoutScheduler(solver, debounce_ms=DEBOUNCE_MS)
        caller = asyncio.ensure_future(scheduler.observe(chain("a", "b")))
        await asyncio.wait_for(solver.entered.wait(), timeout=2)

        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        assert scheduler.status == LayoutStatus.IDLE
        assert scheduler.positions == {}

        solver.release()
        await scheduler.observe(chain("a", "b", "c"))
        await asyncio.wait_for(scheduler.wait_idle(), timeout=2)

        assert set(scheduler.positions) == {"a", "b", "c"}
        assert await scheduler.reset_layout() is True


class TestResetLayout:
    @pytest.mark.asyncio
    async def test_drag_during_reset_is_kept(self):
        solver = GatedSolver()
        scheduler = _seeded(solver, _full_seed("a", "b"))
        await scheduler.observe(chain("a", "b"))
        await scheduler.mark_manual("b", {"x": 3.0, "y": 3.0})

        reset = asyncio.ensure_future(scheduler.reset_layout())
        await asyncio.wait_for(solver.entered.wait(), timeout=2)
        assert await scheduler.mark_manual("a", {"x": 777.0, "y": 777.0}) is True
        solver.release()

        assert await reset is True
        assert scheduler.get_position("a") == {"x": 777.0, "y": 777.0}
        assert scheduler.get_position("b") == {"x": 10.0, "y": 10.0}
        assert scheduler.manual_ids == {"a"}

    @pytest.mark.asyncio
    async def test_reset_overrides_manual_positions_and_clears_pins(self):
        solver = RecordingSolver(offset=1000.0)
        published = []
        scheduler = _seeded(solver, _full_seed("a", "b"), on_positions_change=published.append)
        await scheduler.observe(chain("a", "b"))
        await scheduler.mark_manual("a", {"x": 7.0, "y": 8.0})

        assert await scheduler.reset_layout() is True

        assert scheduler.positions == {"a": {"x": 1000.0, "y": 1000.0}, "b": {"x": 1010.0, "y": 1010.0}}
        assert scheduler.manual_ids == set()
        assert published[-1] == scheduler.positions
        assert scheduler.status == LayoutStatus.IDLE

    @pytest.mark.asyncio
    async def test_formerly_manual_node_moves_on_next_change(self):
        solver = RecordingSolver(offset=1000.0)
        scheduler = _seeded(solver, _full_seed("a", "b"))
        await scheduler.observe(chain("a", "b"))
        await scheduler.mark_manual("b", {"x": 7.0, "y": 8.0})
        await scheduler.reset_layout()
        await scheduler.mark_manual("a", {"x": 1.0, "y": 1.0})

        await scheduler.observe(chain("a", "b", "c"))
        await scheduler.wait_idle()

        assert scheduler.get_position("a") == {"x": 1.0, "y": 1.0}
        assert scheduler.get_position("b") == {"x": 1010.0, "y": 1010.0}

    @pytest.mark.asyncio
    async def test_reset_cancels_pending_debounce(self):
        solver = RecordingSolver()
        scheduler = _seeded(solver, _full_seed("a", "b"))
        await scheduler.observe(chain("a", "b"))
        await scheduler.observe(chain("a", "b", "c"))

        assert await scheduler.reset_layout() is True
        await asyncio.sleep(DEBOUNCE_MS * 2 / 1000)

        assert len(solver.calls) == 1
        assert scheduler.state.timer is None

    @pytest.mark.asyncio
    async def test_reset_without_graph(self):
        solver = RecordingSolver()
        scheduler = LayoutScheduler(solver, debounce_ms=DEBOUNCE_MS)
        assert await scheduler.reset_layout() is False
        await scheduler.observe(snapshot())
        assert await scheduler.reset_layout() is False
        assert solver.calls == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_explicit_state_object(self):
        state = LayoutState(positions=_full_seed("a"))
        scheduler = LayoutScheduler(RecordingSolver(), state=state, debounce_ms=DEBOUNCE_MS)
        await scheduler.observe(chain("a"))
        assert scheduler.state is state
        assert state.structural_key == chain("a").structural_key()
        assert state.status == LayoutStatus.IDLE

    @pytest.mark.asyncio
    async def test_close_cancels_pending_timer(self):
        solver = RecordingSolver()
        scheduler = _seeded(solver, _full_seed("a"))
        await scheduler.observe(chain("a"))
        await scheduler.observe(chain("a", "b"))

        await scheduler.close()
        await asyncio.sleep(DEBOUNCE_MS * 2 / 1000)

        assert solver.calls == []
        assert scheduler.status == LayoutStatus.IDLE
