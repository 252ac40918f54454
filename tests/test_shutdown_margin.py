"""
Tests for the shutdown margin module.
"""

import unittest

from core_ops.context import OperationContext
from core_ops.engine import SteadyStateEngine
from core_ops.errors import ConfigurationError
from core_ops.options import CriticalOption, SteadyOption
from core_ops.shutdown_margin import ShutdownMarginAnalyzer
from core_ops.solver import LumpedCoreModel, LumpedFluxSolver


def make_analyzer():
    model = LumpedCoreModel(rod_worths={"A": 2200.0, "B": 1800.0, "C": 2000.0})
    engine = SteadyStateEngine(LumpedFluxSolver(model))
    engine.initialize("core.geom", "core.xs", "core.ff")
    for rod_id in ("A", "B", "C"):
        engine.set_control_rod(rod_id)
    engine.state.boron = 1000.0
    engine.state.power = 1.0
    engine.poison.set_equilibrium(1.0)
    return ShutdownMarginAnalyzer(OperationContext.from_engine(engine)), engine


class TestMarginArithmetic(unittest.TestCase):

    def test_components(self):
        margin = ShutdownMarginAnalyzer.margin_from_components(
            bite_worth=5000.0,
            rod_uncertainty=0.1,
            stuck_rod_worth=1500.0,
            power_defect=1800.0,
            xenon_worth=-500.0,
            samarium_worth=-100.0,
            boron_worth=200.0,
            tm_worth=100.0,
            void_uncertainty=100.0,
        )
        # 4500 - 1500 - 1800 + 500 + 100 - 200 - 100 - 100
        self.assertAlmostEqual(margin, 1400.0)

    def test_negative_margin(self):
        margin = ShutdownMarginAnalyzer.margin_from_components(
            1000.0, 0.06, 1200.0, 600.0, 0.0, 0.0, 0.0, 0.0, 100.0
        )
        self.assertAlmostEqual(margin, -960.0)

    def test_insufficient_margin_unclamped(self):
        margin = ShutdownMarginAnalyzer.margin_from_components(
            bite_worth=2000.0,
            rod_uncertainty=0.06,
            stuck_rod_worth=500.0,
            power_defect=800.0,
            xenon_worth=300.0,
            samarium_worth=50.0,
            boron_worth=100.0,
            tm_worth=50.0,
            void_uncertainty=100.0,
        )
        # 1880 - 1900
        self.assertAlmostEqual(margin, -20.0)


class TestAnalyzerSettings(unittest.TestCase):

    def setUp(self):
        self.analyzer, _ = make_analyzer()

    def test_defaults(self):
        self.assertEqual(self.analyzer.rod_uncertainty, 0.06)
        self.assertEqual(self.analyzer.void_uncertainty, 100.0)
        self.assertIsNone(self.analyzer.failed_rod)
        self.assertEqual(self.analyzer.stuck_rods, [])

    def test_void_uncertainty_in_pcm(self):
        self.analyzer.set_void_uncertainty(0.002)
        self.assertAlmostEqual(self.analyzer.void_uncertainty, 200.0)

    def test_invalid_rod_uncertainty(self):
        with self.assertRaises(ConfigurationError):
            self.analyzer.set_rod_uncertainty(1.0)
        with self.assertRaises(ConfigurationError):
            self.analyzer.set_rod_uncertainty(-0.1)

    def test_unknown_stuck_rod(self):
        with self.assertRaises(ConfigurationError):
            self.analyzer.set_stuck_rods(None, ["Z"])
        with self.assertRaises(ConfigurationError):
            self.analyzer.set_stuck_rods("Z", [])

    def test_reset(self):
        self.analyzer.set_rod_uncertainty(0.2)
        self.analyzer.set_stuck_rods("A", ["B"])
        self.analyzer.reset()
        self.assertEqual(self.analyzer.rod_uncertainty, 0.06)
        self.assertIsNone(self.analyzer.failed_rod)

    def test_negative_projection(self):
        with self.assertRaises(ConfigurationError):
            self.analyzer.run(-1.0, SteadyOption())


class TestShutdownMargin(unittest.TestCase):
    """Test the margin breakdown over a lumped core."""

    def setUp(self):
        self.analyzer, self.engine = make_analyzer()

    def test_bite_and_stuck_rod(self):
        """Test failed and stuck banks are left out of the bite worth."""
        self.analyzer.set_stuck_rods("B", ["A", "B"])
        result = self.analyzer.run(0.0, SteadyOption())
        self.assertAlmostEqual(result.bite_worth, 2000.0 * 0.94, places=3)
        self.assertEqual(result.stuck_rod, "A")
        self.assertAlmostEqual(result.stuck_rod_worth, 2200.0, places=3)

    def test_all_banks_in_bite(self):
        result = self.analyzer.run(0.0, SteadyOption())
        self.assertAlmostEqual(result.bite_worth, 6000.0 * 0.94, places=3)
        self.assertEqual(result.stuck_rod, "")
        self.assertEqual(result.stuck_rod_worth, 0.0)

    def test_signs(self):
        """Test power defect and poison worths all reduce the margin."""
        result = self.analyzer.run(0.0, SteadyOption())
        self.assertGreater(result.power_defect, 0.0)
        self.assertGreater(result.xenon_worth, 0.0)
        self.assertGreater(result.samarium_worth, 0.0)

    def test_poison_worth_matches_tracker(self):
        xenon, samarium = self.engine.poison.species_worth()
        result = self.analyzer.run(0.0, SteadyOption())
        self.assertAlmostEqual(result.xenon_worth, -xenon, places=6)
        self.assertAlmostEqual(result.samarium_worth, -samarium, places=6)

    def test_margin_identity(self):
        self.analyzer.set_stuck_rods(None, ["A"])
        self.analyzer.set_shutdown_conditions(boron=1100.0, tin=280.0)
        r = self.analyzer.run(0.0, SteadyOption())
        expected = (
            r.bite_worth
            - r.stuck_rod_worth
            - r.power_defect
            - r.xenon_worth
            - r.samarium_worth
            - r.boron_worth
            - r.tm_worth
            - self.analyzer.void_uncertainty
        )
        self.assertAlmostEqual(r.margin, expected, places=6)

    def test_boron_worth(self):
        self.analyzer.set_shutdown_conditions(boron=1100.0)
        result = self.analyzer.run(0.0, SteadyOption())
        self.assertAlmostEqual(result.boron_worth, -800.0, places=3)
        self.assertEqual(result.tm_worth, 0.0)

    def test_cooldown_worth(self):
        """Test cooling the moderator adds reactivity at this boron level."""
        self.analyzer.set_shutdown_conditions(tin=280.0)
        result = self.analyzer.run(0.0, SteadyOption())
        # (MTC at 1000 ppm + Doppler) * -10 °C
        self.assertAlmostEqual(result.tm_worth, 175.0, places=3)

    def test_negative_margin_reported(self):
        self.analyzer.set_void_uncertainty(0.5)
        result = self.analyzer.run(0.0, SteadyOption())
        self.assertLess(result.margin, 0.0)

    def test_state_restored(self):
        self.engine.rods.set_position("C", 250.0)
        before = self.engine.state.copy()
        self.analyzer.set_stuck_rods(None, ["A"])
        self.analyzer.run(0.0, SteadyOption())
        self.assertEqual(self.engine.state, before)

    def test_projection_restores_state(self):
        before = self.engine.state.copy()
        result = self.analyzer.run(3600.0, SteadyOption(ppm=1000.0, plevel=0.5))
        self.assertEqual(self.engine.state, before)
        self.assertGreater(result.xenon_worth, 0.0)

    def test_rejected_projection_restores_state(self):
        """Test a projection with a bad search rod leaves the state untouched."""
        before = self.engine.state.copy()
        option = SteadyOption(search_option=CriticalOption.ROD, search_rod="missing")
        with self.assertRaises(ConfigurationError):
            self.analyzer.run(36000.0, option)
        self.assertEqual(self.engine.state, before)
        self.assertEqual(self.engine.state.time, 0.0)

    def test_partially_inserted_bank_worth(self):
        """Test a bank counts only its remaining insertion worth."""
        self.engine.rods.set_position("C", 190.5)
        result = self.analyzer.run(0.0, SteadyOption())
        self.assertAlmostEqual(result.bite_worth, (2200.0 + 1800.0 + 1000.0) * 0.94, places=3)


if __name__ == "__main__":
    unittest.main()
