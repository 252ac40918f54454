"""
Tests for the geometry module.
"""

import unittest
import math
import numpy as np

from core_ops.errors import ConfigurationError
from core_ops.geometry import CoreGeometry


class TestCoreGeometry(unittest.TestCase):
    """Test core geometry."""

    def setUp(self):
        self.geometry = CoreGeometry()

    def test_assembly_count(self):
        """Test the layout holds the requested number of assemblies."""
        self.assertEqual(self.geometry.nxya, 241)
        self.assertEqual(self.geometry.assemblies_layout.shape, (17, 17))

    def test_layout_symmetric(self):
        """Test the layout is symmetric about both axes."""
        layout = self.geometry.assemblies_layout
        self.assertTrue(np.array_equal(layout, layout[::-1, :]))
        self.assertTrue(np.array_equal(layout, layout[:, ::-1]))

    def test_uniform_mesh(self):
        """Test default axial mesh covers the core height."""
        self.assertEqual(len(self.geometry.hz), 20)
        self.assertAlmostEqual(sum(self.geometry.hz), 381.0)
        self.assertEqual(self.geometry.kbc, 0)
        self.assertEqual(self.geometry.kec, 20)

    def test_node_centers(self):
        centers = self.geometry.node_centers
        self.assertAlmostEqual(centers[0], 381.0 / 40.0)
        self.assertAlmostEqual(centers[-1], 381.0 - 381.0 / 40.0)

    def test_equivalent_radius(self):
        """Test R_eq = sqrt(N P² / π)."""
        expected = math.sqrt(241 * 20.78**2 / math.pi)
        self.assertAlmostEqual(self.geometry.equivalent_radius, expected)

    def test_row_ranges(self):
        self.assertEqual(len(self.geometry.row_ranges), 17)
        for start, end in self.geometry.row_ranges:
            self.assertLessEqual(start, end)

    def test_assembly_radii(self):
        radii = self.geometry.assembly_radii
        self.assertEqual(len(radii), 241)
        self.assertAlmostEqual(radii.min(), 0.0)

    def test_invalid_node_count(self):
        with self.assertRaises(ConfigurationError):
            CoreGeometry(nz=0)

    def test_mismatched_mesh(self):
        with self.assertRaises(ConfigurationError):
            CoreGeometry(nz=4, hz=[10.0, 10.0])

    def test_invalid_active_planes(self):
        with self.assertRaises(ConfigurationError):
            CoreGeometry(nz=10, kbc=5, kec=3)

    def test_too_many_assemblies(self):
        with self.assertRaises(ConfigurationError):
            CoreGeometry(nxa=3, nya=3, num_assemblies=10)


class TestAxialShapeIndex(unittest.TestCase):
    """Test axial shape index."""

    def setUp(self):
        self.geometry = CoreGeometry()

    def test_flat_shape(self):
        self.assertAlmostEqual(self.geometry.axial_shape_index(np.ones(20)), 0.0)

    def test_bottom_skewed_positive(self):
        power = np.zeros(20)
        power[:10] = 1.0
        self.assertAlmostEqual(self.geometry.axial_shape_index(power), 1.0)

    def test_top_skewed_negative(self):
        power = np.linspace(0.5, 1.5, 20)
        self.assertLess(self.geometry.axial_shape_index(power), 0.0)

    def test_zero_power(self):
        self.assertEqual(self.geometry.axial_shape_index(np.zeros(20)), 0.0)


if __name__ == "__main__":
    unittest.main()
