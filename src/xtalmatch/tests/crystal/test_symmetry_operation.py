import logging
import unittest
import numpy as np
from xtalmatch.crystal import SymmetryOperation
from xtalmatch.crystal.symmetry_operation import decode_symm_str, encode_symm_str
from xtalmatch.exceptions import InvalidSymmetryOperationError

LOG = logging.getLogger(__name__)


class SymmetryOperationTestCase(unittest.TestCase):
    identity = SymmetryOperation.identity()
    screw = SymmetryOperation.from_string_code("-x,1/2+y,1/2-z")

    def test_string_codes(self):
        self.assertEqual(str(self.identity), "+x,+y,+z")
        self.assertEqual(str(self.screw), "-x,1/2+y,1/2-z")
        self.assertEqual(self.screw.cif_form, "-x,1/2+y,1/2-z")
        hexagonal = SymmetryOperation.from_string_code("x - y, x, z + 1/6")
        np.testing.assert_allclose(hexagonal.rotation, [[1, -1, 0], [1, 0, 0], [0, 0, 1]])
        np.testing.assert_allclose(hexagonal.translation, (0, 0, 1 / 6))
        self.assertEqual(repr(self.identity), "<SymmetryOperation: +x,+y,+z>")

    def test_decode_reduces_translation(self):
        rot, trans = decode_symm_str("x-1/2,y+3/2,z-0.25")
        np.testing.assert_allclose(rot, np.eye(3))
        np.testing.assert_allclose(trans, (0.5, 0.5, 0.75))
        self.assertEqual(encode_symm_str(rot, trans), "1/2+x,1/2+y,3/4+z")

    def test_invalid_string_codes(self):
        for code in ("x,y", "x,y,z,x", "x,y,q", "x,y,1/0+z"):
            with self.assertRaises(InvalidSymmetryOperationError):
                SymmetryOperation.from_string_code(code)

    def test_composition(self):
        product = self.screw * self.screw
        np.testing.assert_allclose(product.rotation, np.eye(3))
        np.testing.assert_allclose(product.translation, (0, 1, 0))
        self.assertFalse(product == self.identity)
        self.assertTrue(product.equal_modulo_lattice(self.identity))
        self.assertTrue(product.reduced() == self.identity)

    def test_composition_order(self):
        a = SymmetryOperation.from_string_code("-y,x,z")
        b = SymmetryOperation.from_string_code("x+1/2,y,z")
        x = np.array((0.1, 0.2, 0.3))
        np.testing.assert_allclose((a * b)(x), a(b(x)))
        np.testing.assert_allclose((b * a)(x), b(a(x)))

    def test_inverse(self):
        op = SymmetryOperation.from_string_code("-y,x-y,1/3+z")
        self.assertTrue((op * op.inverse()).is_identity())
        self.assertTrue((op.inverse() * op).is_identity())
        inverted = self.screw.inverted()
        np.testing.assert_allclose(inverted.rotation, -self.screw.rotation)
        np.testing.assert_allclose(inverted.translation, -self.screw.translation)

    def test_translation_arithmetic(self):
        op = self.identity + (0.5, 0.0, 0.0)
        np.testing.assert_allclose(op.translation, (0.5, 0, 0))
        np.testing.assert_allclose((op - (0.5, 0.0, 0.0)).translation, np.zeros(3))

    def test_equality(self):
        a = SymmetryOperation(np.eye(3), (0.999, 0.0, 0.0))
        b = SymmetryOperation(np.eye(3), (0.001, 0.0, 0.0))
        self.assertFalse(a.equal_exact_tolerance(b, 0.01))
        self.assertTrue(a.equal_modulo_lattice(b, 0.01))
        self.assertFalse(a.equal_modulo_lattice(b, 1e-4))
        self.assertNotEqual(a, b)

    def test_apply(self):
        coords = np.array([[0.1, 0.2, 0.3], [0.5, 0.5, 0.5]])
        expected = np.array([[-0.1, 0.7, 0.2], [-0.5, 1.0, 0.0]])
        np.testing.assert_allclose(self.screw(coords), expected)
        np.testing.assert_allclose(self.screw(coords[0]), expected[0])
        homogeneous = np.hstack((coords, np.ones((2, 1))))
        np.testing.assert_allclose(self.screw(homogeneous)[:, :3], expected)

    def test_seitz_matrix(self):
        seitz = self.screw.seitz_matrix
        np.testing.assert_allclose(seitz[:3, :3], self.screw.rotation)
        np.testing.assert_allclose(seitz[:3, 3], (0, 0.5, 0.5))
        np.testing.assert_allclose(seitz[3], (0, 0, 0, 1))

    def test_rotation_part_type(self):
        expected = {
            "x,y,z": 1,
            "-x,-y,-z": -1,
            "-x,y,-z": 2,
            "x,-y,z": -2,
            "z,x,y": 3,
            "-z,-x,-y": -3,
            "-y,x,z": 4,
            "y,-x,-z": -4,
            "x-y,x,z": 6,
            "-x+y,-x,-z": -6,
        }
        for code, rotation_type in expected.items():
            op = SymmetryOperation.from_string_code(code)
            self.assertEqual(op.rotation_part_type(), rotation_type, code)
            self.assertEqual(op.is_proper(), rotation_type > 0, code)

    def test_non_crystallographic_rotation(self):
        with self.assertRaises(InvalidSymmetryOperationError):
            SymmetryOperation(np.diag((2.0, 1.0, 1.0))).rotation_part_type()
        c, s = np.cos(np.pi / 4), np.sin(np.pi / 4)
        with self.assertRaises(InvalidSymmetryOperationError):
            SymmetryOperation([[c, -s, 0], [s, c, 0], [0, 0, 1]]).rotation_part_type()

    def test_inversion(self):
        inversion = SymmetryOperation.inversion()
        self.assertEqual(str(inversion), "-x,-y,-z")
        shifted = SymmetryOperation.inversion((0.25, 0, 0))
        np.testing.assert_allclose(shifted((0.25, 0.1, 0.1)), (0.25, -0.1, -0.1))
