import logging
import unittest
import numpy as np
from xtalmatch.crystal import CrystalStructure, SpaceGroup, SymmetryOperation, UnitCell
from xtalmatch.crystal.matching import (
    _nearest_images,
    check_lattice_differences,
    find_match,
    rmscd_with_matching,
    root_mean_square_cartesian_displacement,
)
from xtalmatch.exceptions import AmbiguousMatchError, StructureMismatchError
from xtalmatch.util.num import cartesian_product

LOG = logging.getLogger(__name__)

ELEMENTS = ["C", "N", "O", "H"]
POSITIONS = np.array(
    [[0.1, 0.2, 0.3], [0.3, 0.15, 0.6], [0.7, 0.8, 0.25], [0.2, 0.5, 0.5]]
)


def monoclinic_cell():
    return UnitCell.monoclinic(10.0, 11.0, 12.0, 100.0, unit="degrees")


class FindMatchTestCase(unittest.TestCase):
    def test_half_shift(self):
        cell = UnitCell.orthorhombic(5.0, 6.0, 7.0)
        rhs = CrystalStructure(cell, elements=ELEMENTS, positions=POSITIONS)
        lhs = CrystalStructure(cell, elements=ELEMENTS, positions=POSITIONS + (0.5, 0.0, 0.0))
        result = find_match(lhs, rhs, shift_steps=2)
        np.testing.assert_allclose(result.symmetry_operation.rotation, np.eye(3))
        np.testing.assert_allclose(result.symmetry_operation.translation, (0.5, 0.0, 0.0))
        np.testing.assert_equal(result.integer_shifts, (0, 0, 0))
        np.testing.assert_equal(result.matches, (0, 1, 2, -1))
        np.testing.assert_allclose(result.distances[:3], 0.0, atol=1e-10)
        self.assertTrue(np.isnan(result.distances[3]))
        self.assertEqual(len(result.shifts), 8)
        self.assertEqual(np.sum(result.shift_votes), 3)
        self.assertEqual(result.duplicate_matches, [])
        transformed = result.transform(rhs)
        self.assertAlmostEqual(root_mean_square_cartesian_displacement(lhs, transformed), 0.0)
        np.testing.assert_allclose(rhs.positions, POSITIONS)

    def test_symmetry_operation(self):
        sg = SpaceGroup.P21c()
        rhs = CrystalStructure(monoclinic_cell(), sg, ELEMENTS, POSITIONS)
        op = SymmetryOperation.from_string_code("-x,1/2+y,1/2-z")
        lhs = CrystalStructure(monoclinic_cell(), SpaceGroup.P21c(), ELEMENTS, op(POSITIONS))
        result = find_match(lhs, rhs)
        self.assertTrue(result.symmetry_operation.equal_exact_tolerance(op))
        np.testing.assert_equal(result.integer_shifts, (0, 0, 0))
        self.assertEqual(result.symmetry_operation_votes[2], 3)
        self.assertEqual(np.sum(result.symmetry_operation_votes), 3)
        transformed = result.transform(rhs)
        self.assertAlmostEqual(root_mean_square_cartesian_displacement(lhs, transformed), 0.0)

    def test_integer_shifts(self):
        cell = UnitCell.orthorhombic(5.0, 6.0, 7.0)
        rhs = CrystalStructure(cell, elements=ELEMENTS, positions=POSITIONS)
        lhs = CrystalStructure(cell, elements=ELEMENTS, positions=POSITIONS + (1.0, 0.0, -2.0))
        result = find_match(lhs, rhs)
        np.testing.assert_equal(result.integer_shifts, (1, 0, -2))
        np.testing.assert_allclose(result.full_symmetry_operation.translation, (1.0, 0.0, -2.0))

    def test_inversion(self):
        cell = UnitCell.orthorhombic(5.0, 6.0, 7.0)
        rhs = CrystalStructure(cell, elements=ELEMENTS, positions=POSITIONS)
        lhs = CrystalStructure(cell, elements=ELEMENTS, positions=-POSITIONS)
        result = find_match(lhs, rhs, add_inversion=True)
        np.testing.assert_allclose(result.symmetry_operation.rotation, -np.eye(3))
        np.testing.assert_equal(result.integer_shifts, (0, 0, 0))
        self.assertEqual(len(result.space_group), 2)
        self.assertEqual(len(rhs.space_group), 1)

    def test_floating_axis(self):
        p21 = SpaceGroup.from_string_codes(("x,y,z", "-x,1/2+y,-z"), name="P21")
        rhs = CrystalStructure(monoclinic_cell(), p21, ELEMENTS, POSITIONS)
        lhs = CrystalStructure(
            monoclinic_cell(), p21.copy(), ELEMENTS, POSITIONS + (0.0, 0.13, 0.0)
        )
        result = find_match(lhs, rhs, correct_floating_axes=True)
        np.testing.assert_allclose(result.symmetry_operation.rotation, np.eye(3))
        np.testing.assert_allclose(result.symmetry_operation.translation, (0.0, 0.13, 0.0), atol=1e-10)
        np.testing.assert_allclose(result.distances[:3], 0.0, atol=1e-10)

    def test_ambiguous(self):
        cell = UnitCell.cubic(10.0)
        lhs = CrystalStructure(cell, elements=["C", "N"], positions=[[0.1, 0.1, 0.1], [0.6, 0.3, 0.3]])
        rhs = CrystalStructure(cell, elements=["C", "N"], positions=[[0.1, 0.1, 0.1], [0.1, 0.3, 0.3]])
        with self.assertRaises(AmbiguousMatchError):
            find_match(lhs, rhs, shift_steps=2, strict=True)
        with self.assertLogs("xtalmatch.crystal.matching", level="WARNING"):
            result = find_match(lhs, rhs, shift_steps=2)
        self.assertEqual(np.max(result.shift_votes), 1)

    def test_different_atoms(self):
        cell = UnitCell.cubic(10.0)
        lhs = CrystalStructure(cell, elements=["C", "N"], positions=[[0.1, 0.1, 0.1], [0.6, 0.3, 0.3]])
        rhs = CrystalStructure(cell, elements=["C"], positions=[[0.1, 0.1, 0.1]])
        with self.assertRaises(StructureMismatchError):
            find_match(lhs, rhs)
        rhs = CrystalStructure(cell, elements=["C", "O"], positions=[[0.1, 0.1, 0.1], [0.6, 0.3, 0.3]])
        with self.assertRaises(StructureMismatchError):
            find_match(lhs, rhs)

    def test_different_space_groups(self):
        cell = UnitCell.cubic(10.0)
        lhs = CrystalStructure(cell, elements=["C"], positions=[[0.1, 0.1, 0.1]])
        rhs = CrystalStructure(
            cell,
            SpaceGroup.from_string_codes(("x,y,z", "-x,-y,-z"), name="P-1"),
            elements=["C"],
            positions=[[0.1, 0.1, 0.1]],
        )
        with self.assertLogs("xtalmatch.crystal.matching", level="WARNING"):
            find_match(lhs, rhs)

    def test_no_atoms(self):
        result = find_match(CrystalStructure(), CrystalStructure())
        self.assertTrue(result.symmetry_operation.is_identity())
        np.testing.assert_equal(result.integer_shifts, (0, 0, 0))


class NearestImageTestCase(unittest.TestCase):
    def test_agrees_with_nested_loop(self):
        cell = UnitCell.orthorhombic(9.0, 10.0, 11.0)
        sg = SpaceGroup.from_string_codes(
            ("x,y,z", "-x,-y,z", "-x,y,-z", "x,-y,-z", "-x,-y,-z", "x,y,-z", "x,-y,z", "-x,y,z")
        )
        rng = np.random.default_rng(11)
        rhs = CrystalStructure(
            cell, sg, ["C", "N", "C", "C"], rng.uniform(0.0, 1.0, size=(4, 3))
        )
        steps = np.arange(3) / 3
        shifts = cartesian_product(steps, steps, steps)
        for position in rng.uniform(-0.5, 1.5, size=(5, 3)):
            j, k, m, distance, matched = _nearest_images(cell, position, "C", rhs, sg, shifts)
            expected = (None, None, None, np.inf)
            for jj, el in enumerate(rhs.elements):
                if el != "C":
                    continue
                for kk, s in enumerate(sg.symmetry_operations):
                    for mm, shift in enumerate(shifts):
                        d, _ = cell.shortest_distance(position, s(rhs.positions[jj] + shift))
                        if d < expected[3]:
                            expected = (jj, kk, mm, d)
            self.assertEqual((j, k, m), expected[:3])
            self.assertAlmostEqual(distance, expected[3])
            self.assertAlmostEqual(np.linalg.norm(cell.to_cartesian(matched - position)), distance)


class LatticeDifferencesTestCase(unittest.TestCase):
    def test_similar(self):
        self.assertTrue(check_lattice_differences(UnitCell.cubic(10.0), UnitCell.cubic(10.5)))

    def test_lengths(self):
        with self.assertLogs("xtalmatch.crystal.matching", level="WARNING"):
            similar = check_lattice_differences(
                UnitCell.cubic(10.0), UnitCell.orthorhombic(10.0, 10.0, 12.0)
            )
        self.assertFalse(similar)

    def test_angles(self):
        with self.assertLogs("xtalmatch.crystal.matching", level="WARNING"):
            similar = check_lattice_differences(
                UnitCell.cubic(10.0), UnitCell.monoclinic(10.0, 10.0, 10.0, 105, unit="degrees")
            )
        self.assertFalse(similar)


class DisplacementTestCase(unittest.TestCase):
    def setUp(self):
        self.cell = UnitCell.cubic(10.0)

    def test_rmscd(self):
        lhs = CrystalStructure(
            self.cell,
            elements=["C", "N", "H"],
            positions=[[0.1, 0.1, 0.1], [0.5, 0.5, 0.5], [0.2, 0.2, 0.2]],
        )
        rhs = CrystalStructure(
            self.cell,
            elements=["C", "N", "H"],
            positions=[[0.11, 0.1, 0.1], [0.5, 0.5, 0.5], [0.7, 0.2, 0.2]],
        )
        self.assertAlmostEqual(root_mean_square_cartesian_displacement(lhs, rhs), np.sqrt(0.005))
        self.assertAlmostEqual(root_mean_square_cartesian_displacement(lhs, lhs), 0.0)

    def test_rmscd_element_mismatch(self):
        lhs = CrystalStructure(self.cell, elements=["C", "N"], positions=[[0.1, 0.1, 0.1], [0.5, 0.5, 0.5]])
        rhs = CrystalStructure(self.cell, elements=["C", "O"], positions=[[0.1, 0.1, 0.1], [0.5, 0.5, 0.5]])
        with self.assertRaises(StructureMismatchError):
            root_mean_square_cartesian_displacement(lhs, rhs)

    def test_rmscd_with_matching(self):
        op = SymmetryOperation.from_string_code("x,1/2-y,1/2+z")
        rhs = CrystalStructure(monoclinic_cell(), SpaceGroup.P21c(), ELEMENTS, POSITIONS)
        lhs = CrystalStructure(
            monoclinic_cell(), SpaceGroup.P21c(), ELEMENTS[::-1], op(POSITIONS[::-1]) + (1, 0, 0)
        )
        self.assertAlmostEqual(rmscd_with_matching(lhs, rhs), 0.0)

    def test_rmscd_with_shifts(self):
        rhs = CrystalStructure(self.cell, elements=ELEMENTS, positions=POSITIONS)
        lhs = CrystalStructure(self.cell, elements=ELEMENTS, positions=POSITIONS + (0.0, 0.5, 0.5))
        self.assertGreater(rmscd_with_matching(lhs, rhs), 1.0)
        self.assertAlmostEqual(rmscd_with_matching(lhs, rhs, add_shifts=True), 0.0)

    def test_rmscd_duplicate_match(self):
        lhs = CrystalStructure(self.cell, elements=["C", "C"], positions=[[0.1, 0.2, 0.3], [0.11, 0.2, 0.3]])
        rhs = CrystalStructure(self.cell, elements=["C", "C"], positions=[[0.1, 0.2, 0.3], [0.6, 0.7, 0.1]])
        with self.assertRaises(StructureMismatchError):
            rmscd_with_matching(lhs, rhs)
