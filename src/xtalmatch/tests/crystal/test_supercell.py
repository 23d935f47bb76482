import logging
import unittest
import numpy as np
from xtalmatch.crystal import CrystalStructure, SpaceGroup, UnitCell
from xtalmatch.crystal.supercell import (
    collapse_ordered_supercell,
    collapse_supercell,
    collapse_symmetry_expanded_supercell,
    supercell_dimensions,
)

LOG = logging.getLogger(__name__)


class CollapseSupercellTestCase(unittest.TestCase):
    def setUp(self):
        self.structure = CrystalStructure(
            UnitCell.cubic(10.0),
            elements=["C", "N"],
            positions=[[0.1, 0.2, 0.3], [0.6, 0.7, 0.8]],
        )
        self.supercell = self.structure.supercell(2, 2, 1)

    def test_supercell_dimensions(self):
        dims = supercell_dimensions(self.supercell.unit_cell, self.structure.unit_cell)
        self.assertEqual(dims, (2, 2, 1))

    def test_collapse(self):
        result = collapse_supercell(self.supercell, 2, 2, 1)
        self.assertEqual(result.natoms, 2)
        self.assertEqual(result.elements, ["C", "N"])
        self.assertEqual(result.labels, ["C1_0_0_0", "N2_0_0_0"])
        self.assertAlmostEqual(result.unit_cell.a, 10.0)
        np.testing.assert_allclose(result.positions, self.structure.positions, atol=1e-10)
        self.assertEqual(self.supercell.natoms, 8)

    def test_collapse_noisy(self):
        noisy = self.supercell.copy()
        rng = np.random.default_rng(3)
        noisy.positions = noisy.positions + rng.normal(scale=0.001, size=noisy.positions.shape)
        result = collapse_supercell(noisy, 2, 2, 1)
        self.assertEqual(result.natoms, 2)
        np.testing.assert_allclose(result.positions, self.structure.positions, atol=0.01)

    def test_collapse_missing_atom(self):
        incomplete = self.supercell.copy()
        incomplete._keep_atoms(np.arange(incomplete.natoms) != 7)
        with self.assertLogs("xtalmatch.crystal.supercell", level="WARNING"):
            result = collapse_supercell(incomplete, 2, 2, 1)
        self.assertEqual(result.natoms, 2)

    def test_collapse_with_space_group(self):
        structure = CrystalStructure(
            UnitCell.orthorhombic(20.0, 10.0, 10.0),
            elements=["C"],
            positions=[[0.45, 0.8, 0.7]],
        )
        p1bar = SpaceGroup.from_string_codes(("x,y,z", "-x,-y,-z"), name="P-1")
        result = collapse_supercell(structure, 2, 1, 1, space_group=p1bar)
        np.testing.assert_allclose(result.positions, [[0.1, 0.2, 0.3]], atol=1e-10)
        np.testing.assert_allclose(structure.positions, [[0.45, 0.8, 0.7]])

    def test_collapse_ordered(self):
        result = collapse_ordered_supercell(self.supercell, 2, 2, 1)
        self.assertEqual(result.elements, ["C", "N"])
        np.testing.assert_allclose(result.positions, self.structure.positions, atol=1e-10)
        incomplete = self.supercell.copy()
        incomplete._keep_atoms(np.arange(incomplete.natoms) != 7)
        with self.assertRaises(ValueError):
            collapse_ordered_supercell(incomplete, 2, 2, 1)

    def test_collapse_bad_dimensions(self):
        with self.assertRaises(ValueError):
            collapse_supercell(self.supercell, 0, 2, 1)


class CollapseSymmetryExpandedTestCase(unittest.TestCase):
    def setUp(self):
        structure = CrystalStructure(
            UnitCell.monoclinic(10.0, 11.0, 12.0, 100.0, unit="degrees"),
            SpaceGroup.P21c(),
            ["C"],
            [[0.1, 0.2, 0.3]],
        )
        structure.apply_space_group_symmetry()
        self.supercell = structure.supercell(2, 1, 1)

    def test_collapse(self):
        result = collapse_symmetry_expanded_supercell(
            self.supercell, 2, 1, 1, space_group=SpaceGroup.P21c()
        )
        self.assertEqual(result.structure.natoms, 1)
        self.assertEqual(result.structure.space_group.name, "P21/c")
        self.assertAlmostEqual(result.structure.unit_cell.a, 10.0)
        np.testing.assert_allclose(result.structure.positions, [[0.1, 0.2, 0.3]], atol=1e-10)
        self.assertEqual(result.positions.shape, (1, 8, 3))
        np.testing.assert_allclose(result.esds, np.zeros((1, 3)), atol=1e-10)
        self.assertEqual(result.ndistances_gt_5, 0)
        np.testing.assert_allclose(result.actual_centre, self.supercell.centre_of_mass())

    def test_drift_correction(self):
        centre = self.supercell.centre_of_mass()
        plain = collapse_symmetry_expanded_supercell(
            self.supercell, 2, 1, 1, space_group=SpaceGroup.P21c()
        )
        corrected = collapse_symmetry_expanded_supercell(
            self.supercell,
            2,
            1,
            1,
            space_group=SpaceGroup.P21c(),
            drift_correction=True,
            target_centre=centre,
        )
        np.testing.assert_allclose(corrected.structure.positions, plain.structure.positions, atol=1e-10)

    def test_wrong_multiplicity(self):
        with self.assertRaises(ValueError):
            collapse_symmetry_expanded_supercell(
                self.supercell, 2, 2, 1, space_group=SpaceGroup.P21c()
            )
