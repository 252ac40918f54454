"""
Tests for the maneuvers module.
"""

import unittest

from core_ops.context import OperationContext
from core_ops.engine import SteadyStateEngine
from core_ops.errors import ConfigurationError
from core_ops.maneuvers import (
    CoastdownOperation,
    ECPOperation,
    FlexibleOperation,
    StartupConfig,
    create_startup_operation,
)
from core_ops.operations import OperationKind
from core_ops.options import ECPOption, ScenarioItem, SteadyOption
from core_ops.rods import SequenceDirection
from core_ops.solver import LumpedCoreModel, LumpedFluxSolver


def make_context(worths=None):
    worths = worths if worths is not None else {"R5": 1000.0, "R4": 1000.0}
    engine = SteadyStateEngine(LumpedFluxSolver(LumpedCoreModel(rod_worths=dict(worths))))
    engine.initialize("core.geom", "core.xs", "core.ff")
    for rod_id in worths:
        engine.set_control_rod(rod_id)
    rod_ids = list(worths)
    engine.rods.set_sequence(SequenceDirection.IN, rod_ids, [0.0] * len(rod_ids))
    engine.rods.set_sequence(
        SequenceDirection.OUT, rod_ids[::-1], [381.0] * len(rod_ids)
    )
    return OperationContext.from_engine(engine)


def run_all(operation, option):
    results = []
    operation.reset()
    while operation.next():
        results.append(operation.run_step(option))
    return results


class TestPowerSchedule(unittest.TestCase):
    """Test scenario construction and rate-limited power."""

    def setUp(self):
        self.context = make_context()
        self.operation = FlexibleOperation(self.context)

    def test_schedule_legs(self):
        self.operation.set_power_schedule(100.0, 50.0, 0.1, 0.1, 600.0, before=600.0, after=600.0)
        durations = [item.duration for item in self.operation.scenario]
        powers = [item.power_ratio for item in self.operation.scenario]
        self.assertEqual(durations, [600.0, 500.0, 600.0, 500.0, 600.0])
        self.assertEqual(powers, [1.0, 0.5, 0.5, 1.0, 1.0])
        self.assertEqual(self.operation.end_time, 2800.0)
        self.assertEqual(self.operation.initial_power, 1.0)

    def test_zero_length_legs_skipped(self):
        self.operation.set_power_schedule(100.0, 100.0, 0.1, 0.1, 600.0, before=0.0)
        self.assertEqual(len(self.operation.scenario), 2)

    def test_asi_control_flag(self):
        self.operation.set_power_schedule(100.0, 50.0, 0.1, 0.1, 600.0, asi_allowance=0.0)
        self.assertFalse(any(item.control_asi for item in self.operation.scenario))
        self.operation.set_power_schedule(100.0, 50.0, 0.1, 0.1, 600.0, asi_allowance=0.02)
        self.assertTrue(all(item.control_asi for item in self.operation.scenario))
        self.assertEqual(self.operation.scenario[0].asi_allowance, (-0.02, 0.02))

    def test_invalid_target(self):
        with self.assertRaises(ConfigurationError):
            self.operation.set_power_schedule(50.0, 80.0, 0.1, 0.1, 600.0)

    def test_invalid_rates(self):
        with self.assertRaises(ConfigurationError):
            self.operation.set_ramp_rates(0.0, 0.1)

    def test_empty_scenario(self):
        with self.assertRaises(ConfigurationError):
            self.operation.set_power_scenario([])

    def test_active_item(self):
        self.operation.set_power_scenario([ScenarioItem(100.0, 1.0), ScenarioItem(100.0, 0.5)])
        self.assertEqual(self.operation.active_item(0.0).power_ratio, 1.0)
        self.assertEqual(self.operation.active_item(100.0).power_ratio, 0.5)
        self.assertEqual(self.operation.active_item(1e6).power_ratio, 0.5)

    def test_next_power(self):
        self.operation.set_ramp_rates(0.1, 0.2)
        self.assertAlmostEqual(self.operation.next_power(1.0, 0.5, 100.0), 0.9)
        self.assertAlmostEqual(self.operation.next_power(1.0, 0.95, 100.0), 0.95)
        self.assertAlmostEqual(self.operation.next_power(0.5, 1.0, 100.0), 0.7)

    def test_power_follows_ramp_limits(self):
        """Test each step changes power by at most rate * dt and never undershoots."""
        self.operation.set_power_schedule(100.0, 50.0, 0.1, 0.1, 600.0, before=600.0, after=600.0)
        self.operation.set_time_step(300.0)
        results = run_all(self.operation, SteadyOption(ppm=1000.0))

        times = [0.0] + [r.time for r in results]
        powers = [1.0] + [r.power_level for r in results]
        for i in range(1, len(powers)):
            dt = times[i] - times[i - 1]
            self.assertLessEqual(abs(powers[i] - powers[i - 1]), 0.001 * dt + 1e-12)
        self.assertAlmostEqual(min(powers), 0.5)
        self.assertAlmostEqual(powers[-1], 1.0)
        self.assertEqual(times[-1], 2800.0)

    def test_no_scenario(self):
        self.operation.set_time_step(300.0)
        self.operation.end_time = 600.0
        self.operation.reset()
        self.operation.next()
        with self.assertRaises(ConfigurationError):
            self.operation.run_step(SteadyOption())

    def test_depletion_requires_points(self):
        self.operation.set_power_scenario([ScenarioItem(600.0, 1.0)])
        self.operation.set_time_step(300.0)
        self.operation.set_fuel_depletion()
        self.operation.reset()
        self.operation.next()
        with self.assertRaises(ConfigurationError):
            self.operation.run_step(SteadyOption())


class TestPDIL(unittest.TestCase):

    def test_rods_pulled_to_limit(self):
        context = make_context()
        context.engine.set_pdil("R5", [(0.0, 0.0), (100.0, 200.0)])
        context.rods.set_position("R5", 50.0)
        operation = FlexibleOperation(context)
        operation.set_power_scenario([ScenarioItem(600.0, 1.0)])
        operation.set_time_step(300.0)
        results = run_all(operation, SteadyOption(ppm=1000.0))
        for result in results:
            self.assertGreaterEqual(result.rod_positions["R5"], 200.0)
        self.assertEqual(context.rods.position("R5"), 200.0)

    def test_rods_above_limit_untouched(self):
        context = make_context()
        context.engine.set_pdil("R5", [(0.0, 0.0), (100.0, 200.0)])
        context.rods.set_position("R5", 300.0)
        operation = FlexibleOperation(context)
        operation.set_power_scenario([ScenarioItem(300.0, 1.0)])
        operation.set_time_step(300.0)
        run_all(operation, SteadyOption(ppm=1000.0))
        self.assertEqual(context.rods.position("R5"), 300.0)


class TestASIControl(unittest.TestCase):
    """Test axial shape control with the rod sequences."""

    def run_with_control(self, control):
        context = make_context({"R5": 1000.0})
        context.rods.set_position("R5", 240.0)
        operation = FlexibleOperation(context)
        operation.set_power_scenario(
            [ScenarioItem(600.0, 1.0, target_asi=0.0, control_asi=control)]
        )
        operation.set_time_step(600.0)
        results = run_all(operation, SteadyOption(ppm=1000.0))
        return context, results

    def test_control_withdraws_rods(self):
        """Test a bottom-skewed shape is corrected by withdrawing rods."""
        uncontrolled_context, uncontrolled = self.run_with_control(False)
        controlled_context, controlled = self.run_with_control(True)
        self.assertEqual(uncontrolled_context.rods.position("R5"), 240.0)
        self.assertGreater(controlled_context.rods.position("R5"), 240.0)
        self.assertLess(controlled[-1].asi, uncontrolled[-1].asi)

    def test_limits_intersect_engine_band(self):
        context = make_context()
        context.engine.set_asi_band({0.0: (-0.05, 0.05), 100.0: (-0.05, 0.05)})
        operation = FlexibleOperation(context)
        item = ScenarioItem(600.0, 1.0, asi_allowance=(-0.1, 0.1), target_asi=0.0)
        lower, upper = operation.asi_limits(item, 1.0)
        self.assertAlmostEqual(lower, -0.05)
        self.assertAlmostEqual(upper, 0.05)

    def test_disjoint_band_uses_absolute_limit(self):
        context = make_context()
        context.engine.set_asi_band({0.0: (-0.05, 0.05), 100.0: (-0.05, 0.05)})
        operation = FlexibleOperation(context)
        item = ScenarioItem(600.0, 1.0, target_asi=0.3)
        self.assertEqual(operation.asi_limits(item, 1.0), (-0.05, 0.05))

    def test_allowance_table_narrows_item(self):
        context = make_context()
        operation = FlexibleOperation(context)
        item = ScenarioItem(600.0, 1.0, target_asi=0.0)
        self.assertEqual(operation.asi_limits(item, 1.0), (-0.01, 0.01))
        context.engine.set_asi_allowance({0.0: (-0.001, 0.001), 100.0: (-0.001, 0.001)})
        lower, upper = operation.asi_limits(item, 1.0)
        self.assertAlmostEqual(lower, -0.001)
        self.assertAlmostEqual(upper, 0.001)

    def test_allowance_table_by_power(self):
        context = make_context()
        context.engine.set_asi_allowance({0.0: (-0.1, 0.1), 100.0: (-0.02, 0.005)})
        operation = FlexibleOperation(context)
        item = ScenarioItem(600.0, 1.0, asi_allowance=(-0.05, 0.05), target_asi=0.1)
        lower, upper = operation.asi_limits(item, 1.0)
        self.assertAlmostEqual(lower, 0.08)
        self.assertAlmostEqual(upper, 0.105)
        # 50% power: table gives (-0.06, 0.0525), the item is tighter
        lower, upper = operation.asi_limits(item, 0.5)
        self.assertAlmostEqual(lower, 0.05)
        self.assertAlmostEqual(upper, 0.15)

    def test_engine_asi_target(self):
        context = make_context()
        context.engine.asi_target = 0.1
        operation = FlexibleOperation(context)
        lower, upper = operation.asi_limits(ScenarioItem(600.0, 1.0), 1.0)
        self.assertAlmostEqual(lower, 0.09)
        self.assertAlmostEqual(upper, 0.11)

    def test_no_target(self):
        operation = FlexibleOperation(make_context())
        self.assertIsNone(operation.asi_limits(ScenarioItem(600.0, 1.0), 1.0))


class TestStartup(unittest.TestCase):
    """Test the startup variant."""

    def setUp(self):
        self.context = make_context()
        self.operation = create_startup_operation(self.context, shutdown_time=86400.0)
        self.operation.set_power_scenario([ScenarioItem(600.0, 0.1)])
        self.operation.set_time_step(300.0)

    def test_kind(self):
        self.assertEqual(self.operation.kind, OperationKind.STARTUP)
        self.assertEqual(FlexibleOperation(self.context).kind, OperationKind.FLEXIBLE)

    def test_config(self):
        self.assertIsInstance(self.operation.startup, StartupConfig)
        self.assertEqual(self.operation.startup.shutdown_time, 86400.0)
        self.assertEqual(self.operation.startup.prior_power, 1.0)

    def test_rods_start_inserted(self):
        self.operation.reset()
        self.operation.next()
        self.operation.run_step(SteadyOption(ppm=1000.0))
        self.assertEqual(self.context.rods.position("R5"), 0.0)
        self.assertEqual(self.context.rods.position("R4"), 0.0)

    def test_power_rises_from_zero(self):
        results = run_all(self.operation, SteadyOption(ppm=1000.0))
        self.assertAlmostEqual(results[0].power_level, 0.1)
        self.assertAlmostEqual(results[-1].power_level, 0.1)

    def test_initial_rod_positions(self):
        operation = create_startup_operation(
            self.context, 3600.0, initial_rod_positions={"R5": 100.0}
        )
        operation.set_power_scenario([ScenarioItem(300.0, 0.05)])
        operation.set_time_step(300.0)
        run_all(operation, SteadyOption(ppm=1000.0))
        self.assertEqual(self.context.rods.position("R5"), 100.0)
        self.assertEqual(self.context.rods.position("R4"), 381.0)


class TestCoastdown(unittest.TestCase):

    def setUp(self):
        self.context = make_context()
        self.operation = CoastdownOperation(self.context)
        self.operation.set_time(4 * 3600.0, 3600.0)

    def test_linear_power(self):
        self.operation.set_target_power(80.0)
        results = run_all(self.operation, SteadyOption(ppm=1000.0))
        powers = [r.power_level for r in results]
        for actual, expected in zip(powers, [0.95, 0.9, 0.85, 0.8]):
            self.assertAlmostEqual(actual, expected)
        self.assertEqual(len(powers), 4)

    def test_boron_held(self):
        self.operation.set_target_power(80.0)
        results = run_all(self.operation, SteadyOption(ppm=1000.0))
        for result in results:
            self.assertEqual(result.boron_ppm, 1000.0)

    def test_target_above_start(self):
        self.operation.set_target_power(120.0)
        before = self.context.state.copy()
        self.operation.reset()
        self.operation.next()
        with self.assertRaises(ConfigurationError):
            self.operation.run_step(SteadyOption(ppm=1000.0))
        self.assertEqual(self.context.state, before)


class TestECP(unittest.TestCase):
    """Test the estimated critical condition operation."""

    def setUp(self):
        self.context = make_context()
        self.context.state.boron = 900.0
        self.operation = ECPOperation(self.context)
        self.operation.set_time(4 * 3600.0, 7200.0, 3600.0)

    def test_boron_program(self):
        self.operation.set_option(ECPOption.ECP_CBC)
        self.operation.set_target_cbc(1200.0)
        results = run_all(self.operation, SteadyOption(ppm=900.0))
        boron = [r.boron_ppm for r in results]
        self.assertAlmostEqual(boron[0], 1050.0)
        for value in boron[1:]:
            self.assertAlmostEqual(value, 1200.0)
        for result in results:
            self.assertEqual(result.power_level, 0.0)

    def test_rod_program(self):
        self.operation.set_option(ECPOption.ECP_ROD)
        results = run_all(self.operation, SteadyOption(ppm=900.0))
        self.assertAlmostEqual(results[0].rod_positions["R5"], 0.0, places=6)
        self.assertAlmostEqual(results[0].rod_positions["R4"], 381.0, places=6)
        self.assertAlmostEqual(results[1].rod_positions["R4"], 0.0, places=6)
        self.assertAlmostEqual(self.context.rods.position("R5"), 0.0, places=6)

    def test_rod_program_requires_sequence(self):
        engine = SteadyStateEngine(LumpedFluxSolver())
        engine.initialize("core.geom", "core.xs", "core.ff")
        engine.set_control_rod("R5")
        operation = ECPOperation(OperationContext.from_engine(engine))
        operation.set_option(ECPOption.ECP_ROD)
        operation.set_time(3600.0, 3600.0, 3600.0)
        operation.reset()
        operation.next()
        with self.assertRaises(ConfigurationError):
            operation.run_step(SteadyOption())

    def test_invalid_window(self):
        with self.assertRaises(ConfigurationError):
            self.operation.set_time(3600.0, 7200.0, 600.0)

    def test_kind(self):
        self.assertEqual(self.operation.kind, OperationKind.ECP)


if __name__ == "__main__":
    unittest.main()
