"""
Tests for the rods module.
"""

import unittest

from core_ops.errors import ConfigurationError
from core_ops.rods import RodController, SequenceDirection


class TestRodRegistration(unittest.TestCase):
    """Test rod registration and lookup."""

    def setUp(self):
        self.rods = RodController()

    def test_new_rod_fully_withdrawn(self):
        self.rods.register_rod("R5")
        self.assertEqual(self.rods.position("R5"), 381.0)

    def test_custom_range(self):
        self.rods.register_rod("P", rod_range=(50.0, 300.0))
        self.assertEqual(self.rods.position("P"), 300.0)
        self.assertEqual(self.rods.group("P").travel, 250.0)

    def test_duplicate_rejected(self):
        self.rods.register_rod("R5")
        with self.assertRaises(ConfigurationError):
            self.rods.register_rod("R5")

    def test_inverted_range_rejected(self):
        with self.assertRaises(ConfigurationError):
            self.rods.register_rod("R5", rod_range=(300.0, 100.0))

    def test_self_overlap_rejected(self):
        with self.assertRaises(ConfigurationError):
            self.rods.register_rod("R5", overlap_id="R5")

    def test_unknown_rod(self):
        with self.assertRaises(ConfigurationError):
            self.rods.position("missing")
        with self.assertRaises(ConfigurationError):
            self.rods.set_position("missing", 10.0)

    def test_shared_position_map(self):
        """Test the controller writes into the mapping it was given."""
        positions = {}
        rods = RodController(positions)
        rods.register_rod("A")
        rods.set_position("A", 120.0)
        self.assertEqual(positions["A"], 120.0)

    def test_contains(self):
        self.rods.register_rod("A")
        self.assertIn("A", self.rods)
        self.assertNotIn("B", self.rods)
        self.assertEqual(self.rods.rod_ids, ["A"])


class TestRodPositions(unittest.TestCase):
    """Test rod movement."""

    def setUp(self):
        self.rods = RodController()
        self.rods.register_rod("A")
        self.rods.register_rod("B", overlap_id="A")
        self.rods.register_rod("C", rod_range=(100.0, 381.0))

    def test_clamped_to_range(self):
        """Test positions stay inside the range for any request."""
        for request in (-1000.0, -1.0, 0.0, 190.0, 381.0, 500.0, 1e9):
            assigned = self.rods.set_position("C", request)
            self.assertGreaterEqual(assigned, 100.0)
            self.assertLessEqual(assigned, 381.0)
            self.assertEqual(self.rods.position("C"), assigned)

    def test_overlap_moves_partner(self):
        self.rods.set_position("B", 300.0, overlap=True)
        self.assertEqual(self.rods.position("B"), 300.0)
        self.assertEqual(self.rods.position("A"), 300.0)

    def test_overlap_partner_clamped(self):
        self.rods.set_position("A", 50.0)
        self.rods.set_position("B", 200.0, overlap=True)
        self.assertEqual(self.rods.position("A"), 0.0)

    def test_no_overlap_without_flag(self):
        self.rods.set_position("B", 300.0)
        self.assertEqual(self.rods.position("A"), 381.0)

    def test_inserted_positions(self):
        inserted = self.rods.inserted_positions(["A", "C"])
        self.assertEqual(inserted, {"A": 0.0, "C": 100.0})

    def test_insertion_depth(self):
        self.rods.set_position("A", 281.0)
        self.assertEqual(self.rods.insertion("A"), 100.0)

    def test_positions_is_copy(self):
        positions = self.rods.positions()
        positions["A"] = 0.0
        self.assertEqual(self.rods.position("A"), 381.0)


class TestPDIL(unittest.TestCase):
    """Test power-dependent insertion limits."""

    def setUp(self):
        self.rods = RodController()
        self.rods.register_rod("R5")
        self.rods.set_pdil("R5", [(0.0, 0.0), (50.0, 100.0), (100.0, 200.0)])

    def test_table_points(self):
        self.assertAlmostEqual(self.rods.get_pdil("R5", 0.0), 0.0)
        self.assertAlmostEqual(self.rods.get_pdil("R5", 50.0), 100.0)
        self.assertAlmostEqual(self.rods.get_pdil("R5", 100.0), 200.0)

    def test_interpolation(self):
        self.assertAlmostEqual(self.rods.get_pdil("R5", 25.0), 50.0)
        self.assertAlmostEqual(self.rods.get_pdil("R5", 75.0), 150.0)

    def test_clamped_outside_table(self):
        self.assertAlmostEqual(self.rods.get_pdil("R5", -10.0), 0.0)
        self.assertAlmostEqual(self.rods.get_pdil("R5", 120.0), 200.0)

    def test_unsorted_rejected(self):
        with self.assertRaises(ConfigurationError):
            self.rods.set_pdil("R5", [(50.0, 100.0), (0.0, 0.0)])

    def test_no_table_allows_bottom(self):
        self.rods.register_rod("A", rod_range=(10.0, 381.0))
        self.assertEqual(self.rods.get_pdil("A", 100.0), 10.0)


class TestRodWorth(unittest.TestCase):

    def setUp(self):
        self.rods = RodController()
        self.rods.register_rod("A")

    def test_no_table(self):
        self.assertIsNone(self.rods.integral_worth("A"))

    def test_interpolated_worth(self):
        self.rods.set_worth("A", [(0.0, 1000.0), (381.0, 0.0)])
        self.assertAlmostEqual(self.rods.integral_worth("A", 190.5), 500.0)
        self.assertAlmostEqual(self.rods.integral_worth("A"), 0.0)


class TestRodSequence(unittest.TestCase):
    """Test sequenced rod motion."""

    def setUp(self):
        self.rods = RodController()
        self.rods.register_rod("R5")
        self.rods.register_rod("R4")
        self.rods.set_sequence(SequenceDirection.IN, ["R5", "R4"], [200.0, 0.0])
        self.rods.set_sequence(SequenceDirection.OUT, ["R4", "R5"], [381.0, 381.0])

    def test_spill_to_next_rod(self):
        """Test travel beyond the first limit continues on the next rod."""
        leftover = self.rods.advance(-250.0)
        self.assertEqual(leftover, 0.0)
        self.assertAlmostEqual(self.rods.position("R5"), 200.0)
        self.assertAlmostEqual(self.rods.position("R4"), 312.0)

    def test_leftover_returned(self):
        self.rods.advance(-250.0)
        leftover = self.rods.advance(-1000.0)
        self.assertAlmostEqual(leftover, -688.0)
        self.assertAlmostEqual(self.rods.position("R4"), 0.0)

    def test_withdrawal_uses_out_sequence(self):
        self.rods.advance(-400.0)
        leftover = self.rods.advance(100.0)
        self.assertEqual(leftover, 0.0)
        self.assertAlmostEqual(self.rods.position("R4"), 262.0)
        self.assertAlmostEqual(self.rods.position("R5"), 200.0)

    def test_zero_delta(self):
        self.assertEqual(self.rods.advance(0.0), 0.0)
        self.assertEqual(self.rods.position("R5"), 381.0)

    def test_pdil_stops_insertion(self):
        """Test insertion stops at PDIL without spilling to the next rod."""
        self.rods.set_pdil("R5", [(0.0, 0.0), (100.0, 300.0)])
        leftover = self.rods.advance(-200.0, power=100.0)
        self.assertAlmostEqual(self.rods.position("R5"), 300.0)
        self.assertEqual(self.rods.position("R4"), 381.0)
        self.assertAlmostEqual(leftover, -119.0)

    def test_total_travel(self):
        self.assertAlmostEqual(self.rods.total_travel(SequenceDirection.IN), 181.0 + 381.0)
        self.assertAlmostEqual(self.rods.total_travel(SequenceDirection.OUT), 0.0)

    def test_cursor_reset(self):
        self.rods.advance(-250.0)
        self.assertEqual(self.rods.sequence(SequenceDirection.IN).cursor, 1)
        self.rods.reset_cursors()
        self.assertEqual(self.rods.sequence(SequenceDirection.IN).cursor, 0)

    def test_cursor_restore(self):
        cursors = self.rods.cursor_state()
        self.rods.advance(-250.0)
        self.rods.restore_cursors(cursors)
        self.assertEqual(self.rods.cursor_state(), cursors)

    def test_limit_outside_range_rejected(self):
        with self.assertRaises(ConfigurationError):
            self.rods.set_sequence(SequenceDirection.IN, ["R5"], [-10.0])

    def test_length_mismatch_rejected(self):
        with self.assertRaises(ConfigurationError):
            self.rods.set_sequence(SequenceDirection.IN, ["R5", "R4"], [0.0])

    def test_has_sequence(self):
        rods = RodController()
        self.assertFalse(rods.has_sequence(SequenceDirection.IN))
        self.assertTrue(self.rods.has_sequence("in"))


if __name__ == "__main__":
    unittest.main()
