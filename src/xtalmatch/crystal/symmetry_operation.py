from fractions import Fraction
import logging
import numpy as np
import re
from xtalmatch.exceptions import InvalidSymmetryOperationError
from xtalmatch.util.num import (
    DEFAULT_TOLERANCE,
    adjust_for_translations,
    difference_modulo_lattice,
    nearly_equal,
    nearly_zero,
)

LOG = logging.getLogger(__name__)


SYMM_STR_SYMBOL_REGEX = re.compile(r".*?([+-]*[xyz0-9\/\.]+)")

# trace of a proper rotation -> order of the rotation
_PROPER_ROTATION_ORDER = {3: 1, -1: 2, 0: 3, 1: 4, 2: 6}


def _format_translation(t: float) -> str:
    f = Fraction(t).limit_denominator(12)
    if abs(float(f) - t) > 1e-6:
        return "{:.6f}".format(t).rstrip("0")
    if f == 0:
        return ""
    return str(f)


def encode_symm_str(rotation, translation):
    """
    Encode a rotation matrix and (rational) translation vector
    into string form e.g. 1/2-x,z-1/3,-y-1/6

    >>> encode_symm_str(((-1, 0, 0), (0, 0, 1), (0, 1, 0)), (0, 0.5, 1/3))
    '-x,1/2+z,1/3+y'
    >>> encode_symm_str(((1, -1, 0), (1, 0, 0), (0, 0, 1)), (0, 0, 1/6))
    '+x-y,+x,1/6+z'

    Args:
        rotation (array_like): (3,3) matrix encoding the rotation component
            of the symmetry operation, usually with elements of -1, 0 or 1
        translation (array_like): (3) vector of rational numbers encoding the translation component
            of the symmetry operation

    Returns:
        str: the encoded symmetry operation
    """
    symbols = "xyz"
    res = []
    for i in (0, 1, 2):
        v = _format_translation(translation[i])
        for j in range(0, 3):
            c = rotation[i][j]
            if abs(c) < 1e-8:
                continue
            s = "-" if c < 0 else "+"
            mag = abs(c)
            if abs(mag - 1) > 1e-8:
                s += "{:g}*".format(mag)
            v += s + symbols[j]
        res.append(v)
    return ",".join(res)


def decode_symm_str(s):
    """
    Decode a symmetry operation represented in the string
    form e.g. '1/2 + x, y, -z -0.25' into a rotation matrix
    and translation vector. The translation is reduced to [0, 1).

    >>> encode_symm_str(*decode_symm_str("x,y,z"))
    '+x,+y,+z'
    >>> encode_symm_str(*decode_symm_str("1/2 - x,y-0.3333333,z"))
    '1/2-x,2/3+y,+z'

    Args:
        s (str): the encoded symmetry operation string

    Returns:
        Tuple[np.ndarray, np.ndarray]: a (3,3) rotation matrix and a (3) translation vector

    Raises:
        InvalidSymmetryOperationError: if the string does not have three components,
            or a component cannot be interpreted
    """
    rotation = np.zeros((3, 3), dtype=np.float64)
    translation = np.zeros((3,), dtype=np.float64)
    tokens = s.lower().replace(" ", "").split(",")
    if len(tokens) != 3:
        raise InvalidSymmetryOperationError(
            "Expected 3 comma separated components in symmetry operation '{}'".format(s)
        )
    for i, row in enumerate(tokens):
        symbols = re.findall(SYMM_STR_SYMBOL_REGEX, row.strip())
        if not symbols:
            raise InvalidSymmetryOperationError(
                "Empty component in symmetry operation '{}'".format(s)
            )
        for symbol in symbols:
            for idx, axis in enumerate("xyz"):
                if axis in symbol:
                    fac = -1 if "-" + axis in symbol else 1
                    rotation[i, idx] = fac
                    break
            else:
                try:
                    if "/" in symbol:
                        numerator, denominator = symbol.split("/")
                        translation[i] += float(
                            Fraction(Fraction(numerator), Fraction(denominator))
                        )
                    else:
                        translation[i] += float(Fraction(symbol))
                except (ValueError, ZeroDivisionError) as e:
                    raise InvalidSymmetryOperationError(
                        "Could not parse '{}' in symmetry operation '{}'".format(symbol, s)
                    ) from e
    return rotation, adjust_for_translations(translation)


class SymmetryOperation:
    """
    Class to represent a crystallographic symmetry operation,
    composed of a rotation and a translation, acting on fractional
    coordinates as x' = R x + t.

    Composition follows the usual convention for affine maps, i.e.
    `(a * b)(x) == a(b(x))`.

    Attributes:
        rotation (np.ndarray): (3, 3) rotation matrix in fractional coordinates
        translation (np.ndarray): (3) translation vector in fractional coordinates
    """

    rotation: np.ndarray
    translation: np.ndarray

    def __init__(self, rotation, translation=(0.0, 0.0, 0.0)):
        """
        Construct a new symmetry operation from a rotation matrix and
        a translation vector. The translation is stored as given, see
        `reduced` for the canonical form.

        Arguments:
            rotation (array_like): (3, 3) rotation matrix
            translation (array_like, optional): (3) translation vector (default zero)
        """
        self.rotation = np.array(rotation, dtype=np.float64).reshape(3, 3)
        self.translation = np.array(translation, dtype=np.float64).reshape(3)

    @property
    def seitz_matrix(self) -> np.ndarray:
        "The Seitz matrix form of this SymmetryOperation"
        s = np.eye(4, dtype=np.float64)
        s[:3, :3] = self.rotation
        s[:3, 3] = self.translation
        return s

    @property
    def cif_form(self) -> str:
        "Represent this SymmetryOperation in string form e.g. '+x,+y,+z'"
        return str(self)

    @property
    def determinant(self) -> float:
        "determinant of the rotation part"
        return float(np.linalg.det(self.rotation))

    def is_proper(self, tolerance=DEFAULT_TOLERANCE) -> bool:
        "True if the rotation part has determinant +1"
        return nearly_equal(self.determinant, 1.0, tolerance)

    def rotation_part_type(self, tolerance=DEFAULT_TOLERANCE) -> int:
        """
        The signed order of the rotation part of this operation, i.e.
        1, 2, 3, 4 or 6 for proper rotations and -1, -2, -3, -4 or -6
        for improper rotations (-1 is the inversion, -2 a mirror plane).

        Uses the trace of the rotation, which is independent of the basis.

        Returns:
            int: the rotation type

        Raises:
            InvalidSymmetryOperationError: if the rotation is not a crystallographic rotation
        """
        det = self.determinant
        if nearly_equal(det, 1.0, tolerance):
            sign = 1
        elif nearly_equal(det, -1.0, tolerance):
            sign = -1
        else:
            raise InvalidSymmetryOperationError(
                "Rotation of {} has determinant {:.6f}".format(self, det)
            )
        trace = sign * np.trace(self.rotation)
        rounded = int(np.rint(trace))
        if not nearly_equal(trace, rounded, tolerance) or rounded not in _PROPER_ROTATION_ORDER:
            raise InvalidSymmetryOperationError(
                "Rotation of {} has trace {:.6f}, not a crystallographic rotation".format(
                    self, sign * trace
                )
            )
        return sign * _PROPER_ROTATION_ORDER[rounded]

    def reduced(self):
        """
        A copy of this symmetry operation with its translation reduced to [0, 1).

        Returns:
            SymmetryOperation: the reduced symmetry operation
        """
        return SymmetryOperation(self.rotation, adjust_for_translations(self.translation))

    def inverted(self):
        """
        A copy of this symmetry operation under inversion (through the origin)

        Returns:
            SymmetryOperation: an inverted copy of this symmetry operation
        """
        return SymmetryOperation(-self.rotation, -self.translation)

    def inverse(self):
        """
        The algebraic inverse of this symmetry operation i.e. (R^-1, -R^-1 t),
        such that `self * self.inverse()` is the identity.

        Returns:
            SymmetryOperation: the inverse operation
        """
        rinv = np.linalg.inv(self.rotation)
        return SymmetryOperation(rinv, -np.dot(rinv, self.translation))

    def __mul__(self, other):
        """
        Compose two symmetry operations, `self` is applied last.

        Returns:
            SymmetryOperation: the composed operation (R1 R2, R1 t2 + t1)
        """
        if not isinstance(other, SymmetryOperation):
            return NotImplemented
        return SymmetryOperation(
            np.dot(self.rotation, other.rotation),
            np.dot(self.rotation, other.translation) + self.translation,
        )

    def __add__(self, value: np.ndarray):
        """
        Add a vector to this symmetry operation's translation vector.

        Returns:
            SymmetryOperation: a copy of this symmetry operation under additional translation
        """
        return SymmetryOperation(self.rotation, self.translation + np.asarray(value))

    def __sub__(self, value: np.ndarray):
        """
        Subtract a vector from this symmetry operation's translation.

        Returns:
            SymmetryOperation: a copy of this symmetry operation under additional translation
        """
        return SymmetryOperation(self.rotation, self.translation - np.asarray(value))

    def apply(self, coordinates: np.ndarray) -> np.ndarray:
        """
        Apply this symmetry operation to a set of fractional coordinates.

        Args:
            coordinates (np.ndarray): (N,3) or (N,4) array of fractional coordinates or homogeneous
                fractional coordinates, or a single (3) position.

        Returns:
            np.ndarray: transformed coordinates, same shape as the input
        """
        coordinates = np.asarray(coordinates, dtype=np.float64)
        if coordinates.ndim == 1:
            return np.dot(self.rotation, coordinates) + self.translation
        if coordinates.shape[1] == 4:
            return np.dot(coordinates, self.seitz_matrix.T)
        return np.dot(coordinates, self.rotation.T) + self.translation

    def equal_exact_tolerance(self, other, tolerance=DEFAULT_TOLERANCE) -> bool:
        """
        Compare rotation and translation component-wise, translations
        are NOT reduced: 0.999 and 0.001 are different.

        Args:
            other (SymmetryOperation): the operation to compare against
            tolerance (float, optional): absolute tolerance for each component

        Returns:
            bool: whether the two operations are equal
        """
        return nearly_equal(self.rotation, other.rotation, tolerance) and nearly_equal(
            self.translation, other.translation, tolerance
        )

    def equal_modulo_lattice(self, other, tolerance=DEFAULT_TOLERANCE) -> bool:
        """
        Compare two operations, treating translations that differ by
        an integer lattice vector as equal.

        Args:
            other (SymmetryOperation): the operation to compare against
            tolerance (float, optional): absolute tolerance for each component

        Returns:
            bool: whether the two operations are equal modulo lattice translations
        """
        return nearly_equal(self.rotation, other.rotation, tolerance) and nearly_zero(
            difference_modulo_lattice(self.translation, other.translation), tolerance
        )

    def __str__(self):
        return encode_symm_str(self.rotation, self.translation)

    def __eq__(self, other):
        if not isinstance(other, SymmetryOperation):
            return NotImplemented
        return self.equal_exact_tolerance(other)

    __hash__ = None

    def __repr__(self):
        return "<{}: {}>".format(self.__class__.__name__, self)

    def __call__(self, coordinates):
        return self.apply(coordinates)

    @classmethod
    def from_string_code(cls, code: str):
        """
        Alternative constructor from a string encoded
        symmetry operation e.g. '+x,+y,+z'.

        See also the `encode_symm_str`, `decode_symm_str` methods.

        Args:
            code (str): string-encoded symmetry operation

        Returns:
            SymmetryOperation: a new symmetry operation from the provided string code
        """
        rot, trans = decode_symm_str(code)
        return cls(rot, trans)

    def is_identity(self, tolerance=DEFAULT_TOLERANCE) -> bool:
        "Returns true if this is the identity symmetry operation '+x,+y,+z'"
        return nearly_equal(self.rotation, np.eye(3), tolerance) and nearly_zero(
            self.translation, tolerance
        )

    @classmethod
    def identity(cls):
        "Alternative constructor for the the identity symop i.e. x,y,z"
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def inversion(cls, position=(0.0, 0.0, 0.0)):
        """
        Alternative constructor for an inversion, by default through the origin
        i.e. -x,-y,-z. The translation part is `2 * position`.
        """
        return cls(-np.eye(3), 2 * np.asarray(position, dtype=np.float64))
