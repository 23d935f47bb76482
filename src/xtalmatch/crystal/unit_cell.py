import logging
from enum import Enum

import numpy as np

from xtalmatch.util.num import (
    DEFAULT_TOLERANCE,
    cartesian_product,
    difference_modulo_lattice,
    nearly_equal,
)

LOG = logging.getLogger(__name__)

_NEIGHBOUR_OFFSETS = cartesian_product((-1, 0, 1), (-1, 0, 1), (-1, 0, 1)).astype(np.float64)


class LatticeSystem(Enum):
    TRICLINIC = "triclinic"
    MONOCLINIC = "monoclinic"
    ORTHORHOMBIC = "orthorhombic"
    TRIGONAL = "trigonal"
    TETRAGONAL = "tetragonal"
    HEXAGONAL = "hexagonal"
    RHOMBOHEDRAL = "rhombohedral"
    CUBIC = "cubic"

    def __str__(self):
        return self.value


def deduce_lattice_system(cell, tolerance=DEFAULT_TOLERANCE) -> LatticeSystem:
    """
    Classify a unit cell purely from its geometry, i.e. which angles
    are 90 (or 120) degrees and which lengths are equal. This knows
    nothing about the symmetry of the contents of the cell, so it may
    disagree with the crystal system of the space group.

    Trigonal is never returned, as a trigonal cell is geometrically
    either hexagonal or rhombohedral.

    Args:
        cell (UnitCell): the unit cell to classify
        tolerance (float, optional): tolerance for comparing lengths (Angstroms)
            and angles (degrees)

    Returns:
        LatticeSystem: the lattice system
    """
    a, b, c = cell.lengths
    alpha, beta, gamma = np.degrees(cell.angles)
    angles_equal = nearly_equal(alpha, beta, tolerance) and nearly_equal(alpha, gamma, tolerance)
    ab_equal = nearly_equal(a, b, tolerance)
    alpha_is_90 = nearly_equal(alpha, 90.0, tolerance)
    if angles_equal:
        if alpha_is_90:
            if ab_equal:
                if nearly_equal(a, c, tolerance):
                    return LatticeSystem.CUBIC
                return LatticeSystem.TETRAGONAL
            return LatticeSystem.ORTHORHOMBIC
        elif ab_equal and nearly_equal(a, c, tolerance):
            return LatticeSystem.RHOMBOHEDRAL
        LOG.warning(
            "Cell angles are all equal (%.4f) but lengths are not, "
            "cell will be classified as monoclinic or triclinic",
            alpha,
        )
    beta_is_90 = nearly_equal(beta, 90.0, tolerance)
    if ab_equal and alpha_is_90 and beta_is_90 and nearly_equal(gamma, 120.0, tolerance):
        return LatticeSystem.HEXAGONAL
    gamma_is_90 = nearly_equal(gamma, 90.0, tolerance)
    if (
        (alpha_is_90 and beta_is_90)
        or (alpha_is_90 and gamma_is_90)
        or (beta_is_90 and gamma_is_90)
    ):
        return LatticeSystem.MONOCLINIC
    return LatticeSystem.TRICLINIC


class UnitCell:
    """
    Storage class for the lattice vectors of a crystal i.e. its unit cell.

    The basis is always in the standard orientation: lattice vector A
    along x, B in the xy-plane. Both `direct` and `inverse` are written in
    closed form from the cell parameters, so they are algebraic inverses.

    Attributes:
        direct (np.ndarray): the direct matrix of this unit cell
            i.e. the lattice vectors
        reciprocal_lattice (np.ndarray): the reciprocal matrix of
            this unit cell i.e. the reciprocal lattice vectors
        inverse (np.ndarray): the inverse matrix of this unit
            cell i.e. the transpose of `reciprocal_lattice`
        lattice (np.ndarray): an alias for `direct`
        lattice_system (LatticeSystem): geometric classification of this cell
        tolerance (float): tolerance used when classifying this cell
    """

    def __init__(self, vectors, tolerance=DEFAULT_TOLERANCE):
        """
        Create a UnitCell object from a list of lattice vectors or
        a row major direct matrix. Unless otherwise specified, length
        units are Angstroms, and angular units are radians.

        Args:
            vectors (array_like): (3, 3) array of lattice vectors, row major i.e. vectors[0, :] is
                lattice vector A etc.
            tolerance (float, optional): tolerance used when classifying this cell
        """
        self.tolerance = tolerance
        self.set_vectors(vectors)

    @property
    def lattice(self) -> np.ndarray:
        "The direct matrix of this unit cell i.e. vectors of the lattice"
        return self.direct

    @property
    def reciprocal_lattice(self) -> np.ndarray:
        "The reciprocal matrix of this unit cell i.e. vectors of the reciprocal lattice"
        return self.inverse.T

    @property
    def metric_tensor(self) -> np.ndarray:
        "The metric tensor G of this unit cell, G_ij = a_i . a_j"
        return np.dot(self.direct, self.direct.T)

    @property
    def reciprocal_metric_tensor(self) -> np.ndarray:
        "The reciprocal metric tensor G* of this unit cell, the inverse of G"
        return np.dot(self.inverse.T, self.inverse)

    def to_cartesian(self, coords: np.ndarray) -> np.ndarray:
        """
        Transform coordinates from fractional space (a, b, c)
        to Cartesian space (x, y, z). The x-direction will be aligned
        along lattice vector A.

        Args:
            coords (array_like): (N, 3) array of fractional coordinates

        Returns:
            np.ndarray: (N, 3) array of Cartesian coordinates
        """
        return np.dot(coords, self.direct)

    def to_fractional(self, coords: np.ndarray) -> np.ndarray:
        """
        Transform coordinates from Cartesian space (x, y, z)
        to fractional space (a, b, c). The x-direction will is assumed
        be aligned along lattice vector A.

        Args:
            coords (array_like): an (N, 3) array of Cartesian coordinates

        Returns:
            np.ndarray: (N, 3) array of fractional coordinates
        """
        return np.dot(coords, self.inverse)

    def set_lengths_and_angles(self, lengths, angles):
        """
        Modify this unit cell by setting the lattice vectors
        according to lengths a, b, c and angles alpha, beta, gamma of
        a parallelipiped.

        Args:
            lengths (array_like): array of (a, b, c), the unit cell side lengths in Angstroms.
            angles (array_like): array of (alpha, beta, gamma), the unit cell angles lengths
                in radians.
        """
        self.lengths = np.array(lengths, dtype=np.float64)
        self.angles = np.array(angles, dtype=np.float64)
        a, b, c = self.lengths
        ca, cb, cg = np.cos(self.angles)
        sg = np.sin(self.angles[2])
        v = self.volume()
        self.direct = np.array((
            (a, 0, 0),
            (b * cg, b * sg, 0),
            (c * cb, c * (ca - cb * cg) / sg, v / (a * b * sg))
        ))
        self.inverse = np.array((
            (1.0 / a, 0.0, 0.0),
            (-cg / (a * sg), 1 / (b * sg), 0),
            (
                b * c * (ca * cg - cb) / v / sg,
                a * c * (cb * cg - ca) / v / sg,
                a * b * sg / v,
            )
        ))
        self._set_cell_type()

    def set_vectors(self, vectors):
        """
        Modify this unit cell by setting the lattice vectors
        according to those provided. This is performed by setting the
        lattice parameters (lengths and angles) based on the provided vectors,
        such that it results in a consistent basis without directly
        matrix inverse (and typically losing precision). The resulting
        basis is in the standard orientation, not necessarily that of `vectors`.

        Args:
            vectors (array_like): (3, 3) array of lattice vectors, row major i.e. vectors[0, :] is
                lattice vector A etc.
        """
        vectors = np.asarray(vectors, dtype=np.float64)
        a, b, c = np.linalg.norm(vectors, axis=1)
        u_a = vectors[0, :] / a
        u_b = vectors[1, :] / b
        u_c = vectors[2, :] / c
        alpha = np.arccos(np.clip(np.vdot(u_b, u_c), -1, 1))
        beta = np.arccos(np.clip(np.vdot(u_c, u_a), -1, 1))
        gamma = np.arccos(np.clip(np.vdot(u_a, u_b), -1, 1))
        self.set_lengths_and_angles((a, b, c), (alpha, beta, gamma))

    def _set_cell_type(self):
        self.lattice_system = deduce_lattice_system(self, self.tolerance)
        system = self.lattice_system
        if system == LatticeSystem.CUBIC:
            self.unique_parameters = (self.a,)
        elif system == LatticeSystem.RHOMBOHEDRAL:
            self.unique_parameters = (self.a, self.alpha_deg)
        elif system in (LatticeSystem.HEXAGONAL, LatticeSystem.TETRAGONAL):
            self.unique_parameters = (self.a, self.c)
        elif system == LatticeSystem.ORTHORHOMBIC:
            self.unique_parameters = (self.a, self.b, self.c)
        elif system == LatticeSystem.MONOCLINIC:
            self.unique_parameters = (self.a, self.b, self.c, self.beta_deg)
        else:
            self.unique_parameters = tuple(self.parameters)

    @property
    def cell_type(self) -> str:
        "name of the lattice system of this cell e.g. 'cubic'"
        return self.lattice_system.value

    def volume(self) -> float:
        """The volume of the unit cell, in cubic Angstroms"""
        a, b, c = self.lengths
        ca, cb, cg = np.cos(self.angles)
        return a * b * c * np.sqrt(1 - ca * ca - cb * cb - cg * cg + 2 * ca * cb * cg)

    @property
    def a(self) -> float:
        "Length of lattice vector a"
        return self.lengths[0]

    @property
    def v_a(self) -> np.ndarray:
        "lattice vector a"
        return self.direct[0]

    @property
    def v_a_star(self) -> np.ndarray:
        "reciprocal lattice vector a*"
        return self.inverse[:, 0]

    @property
    def a_star(self) -> float:
        "length of reciprocal lattice vector a*"
        return self.b * self.c * np.sin(self.alpha) / self.volume()

    @property
    def alpha(self) -> float:
        "Angle between lattice vectors b and c"
        return self.angles[0]

    @property
    def b(self) -> float:
        "Length of lattice vector b"
        return self.lengths[1]

    @property
    def v_b(self) -> np.ndarray:
        "lattice vector b"
        return self.direct[1]

    @property
    def v_b_star(self) -> np.ndarray:
        "reciprocal lattice vector b*"
        return self.inverse[:, 1]

    @property
    def b_star(self) -> float:
        "length of reciprocal lattice vector b*"
        return self.a * self.c * np.sin(self.beta) / self.volume()

    @property
    def beta(self) -> float:
        "Angle between lattice vectors a and c"
        return self.angles[1]

    @property
    def c(self) -> float:
        "Length of lattice vector c"
        return self.lengths[2]

    @property
    def v_c(self) -> np.ndarray:
        "lattice vector c"
        return self.direct[2]

    @property
    def v_c_star(self) -> np.ndarray:
        "reciprocal lattice vector c*"
        return self.inverse[:, 2]

    @property
    def c_star(self) -> float:
        "length of reciprocal lattice vector c*"
        return self.a * self.b * np.sin(self.gamma) / self.volume()

    @property
    def gamma(self) -> float:
        "Angle between lattice vectors a and b"
        return self.angles[2]

    @property
    def alpha_deg(self) -> float:
        "Angle between lattice vectors b and c in degrees"
        return np.degrees(self.angles[0])

    @property
    def beta_deg(self) -> float:
        "Angle between lattice vectors a and c in degrees"
        return np.degrees(self.angles[1])

    @property
    def gamma_deg(self) -> float:
        "Angle between lattice vectors a and b in degrees"
        return np.degrees(self.angles[2])

    @property
    def parameters(self) -> np.ndarray:
        "single vector of lattice side lengths and angles in degrees"
        atol = 1e-6
        l = np.array(self.lengths)
        deg = np.degrees(self.angles)
        len_diffs = np.abs(l[:, np.newaxis] - l[np.newaxis, :]) < atol
        ang_diffs = np.abs(deg[:, np.newaxis] - deg[np.newaxis, :]) < atol
        for i in range(3):
            l[len_diffs[i]] = l[i]
            deg[ang_diffs[i]] = deg[i]
        return np.hstack((l, deg))

    def shortest_distance2(self, lhs, rhs):
        """
        Squared version of `shortest_distance`, see there for details.

        Returns:
            Tuple[float | np.ndarray, np.ndarray]: the squared shortest distance(s)
                and the corresponding fractional difference vector(s)
        """
        lhs = np.asarray(lhs, dtype=np.float64)
        rhs = np.asarray(rhs, dtype=np.float64)
        single = lhs.ndim == 1 and rhs.ndim == 1
        diff = np.atleast_2d(difference_modulo_lattice(rhs, lhs)).copy()
        best = np.sum(self.to_cartesian(diff) ** 2, axis=1)
        rows = np.arange(diff.shape[0])
        # very oblique cells may need more than one pass
        while True:
            candidates = diff[:, np.newaxis, :] + _NEIGHBOUR_OFFSETS[np.newaxis, :, :]
            d2 = np.sum(self.to_cartesian(candidates) ** 2, axis=2)
            idx = np.argmin(d2, axis=1)
            new = d2[rows, idx]
            improved = new < best
            if not np.any(improved):
                break
            diff[improved] = candidates[rows[improved], idx[improved]]
            best[improved] = new[improved]
        if single:
            return float(best[0]), diff[0]
        return best, diff

    def shortest_distance(self, lhs, rhs):
        """
        The shortest (minimum image) distance between fractional
        positions `lhs` and `rhs` under the periodicity of this lattice.

        Either argument may be a single (3) position or an (N, 3) array,
        the two are broadcast against each other and every row is treated
        independently.

        Args:
            lhs (array_like): fractional position(s)
            rhs (array_like): fractional position(s)

        Returns:
            Tuple[float | np.ndarray, np.ndarray]: the shortest distance(s) in Angstroms,
                and the fractional difference vector(s) `rhs - lhs` (including the
                lattice translation) realising that distance
        """
        d2, diff = self.shortest_distance2(lhs, rhs)
        return np.sqrt(d2), diff

    def transform(self, matrix):
        """
        A new unit cell with lattice vectors given by `matrix` applied to
        those of this cell, i.e. new A = m00 A + m01 B + m02 C etc.

        Args:
            matrix (array_like): (3, 3) transformation matrix, usually integer

        Returns:
            UnitCell: the transformed cell
        """
        matrix = np.asarray(matrix, dtype=np.float64)
        det = np.linalg.det(matrix)
        if not nearly_equal(det, 1.0, self.tolerance):
            LOG.warning("Unit cell transformation matrix has determinant %.6f", det)
        return UnitCell(np.dot(matrix, self.direct), tolerance=self.tolerance)

    def rescale_volume(self, target_volume: float, z: int = 0):
        """
        A new unit cell with the same angles and length ratios as this
        cell, isotropically scaled to the target volume.

        Args:
            target_volume (float): target volume (per `z` molecules if `z` is given)
            z (int, optional): the number of formula units in the target cell, if 0 the
                target volume is the total volume of the cell.

        Returns:
            UnitCell: the rescaled cell
        """
        current_z = 1
        if z == 0:
            z = 1
        else:
            current_z = int(round((self.volume() / target_volume) * z))
        k = ((target_volume / z) / (self.volume() / current_z)) ** (1.0 / 3.0)
        return UnitCell.from_lengths_and_angles(
            self.lengths * k, self.angles, tolerance=self.tolerance
        )

    def enclosing_box(self):
        """
        The Cartesian axis-aligned box enclosing this unit cell.

        Returns:
            Tuple[np.ndarray, np.ndarray]: the minimum and maximum corners
        """
        corners = self.to_cartesian(cartesian_product((0, 1), (0, 1), (0, 1)))
        return corners.min(axis=0), corners.max(axis=0)

    def average(self, other):
        "A unit cell with parameters averaged between this cell and `other`"
        return UnitCell.from_lengths_and_angles(
            0.5 * (self.lengths + other.lengths),
            0.5 * (self.angles + other.angles),
            tolerance=self.tolerance,
        )

    @classmethod
    def from_lengths_and_angles(cls, lengths, angles, unit="radians", tolerance=DEFAULT_TOLERANCE):
        """
        Construct a new UnitCell from the provided lengths and angles.

        Args:
            lengths (array_like): Lattice side lengths (a, b, c) in Angstroms.
            angles (array_like): Lattice angles (alpha, beta, gamma) in provided units (default radians)
            unit (str, optional): Unit for angles i.e. 'radians' or 'degrees' (default radians).
            tolerance (float, optional): tolerance used when classifying the cell

        Returns:
            UnitCell: A new unit cell object representing the provided lattice.
        """
        uc = cls(np.eye(3), tolerance=tolerance)
        if unit == "radians":
            if np.any(np.abs(angles) > np.pi):
                LOG.warning(
                    "Large angle in UnitCell.from_lengths_and_angles, "
                    "are you sure your angles are not in degrees?"
                )
            uc.set_lengths_and_angles(lengths, angles)
        else:
            uc.set_lengths_and_angles(lengths, np.radians(angles))
        return uc

    @classmethod
    def cubic(cls, length, **kwargs):
        """
        Construct a new cubic UnitCell from the provided side length.

        Args:
            length (float): Lattice side length a in Angstroms.

        Returns:
            UnitCell: A new unit cell object representing the provided lattice.
        """
        return cls(np.eye(3) * length, **kwargs)

    @classmethod
    def triclinic(cls, *params, **kwargs):
        """
        Construct a new UnitCell from the provided side lengths and angles.

        Args:
            params (array_like): Lattice side lengths and angles (a, b, c, alpha, beta, gamma)

        Returns:
            UnitCell: A new unit cell object representing the provided lattice.
        """
        if len(params) != 6:
            raise ValueError("Require three lengths and three angles for a triclinic cell")
        return cls.from_lengths_and_angles(params[:3], params[3:], **kwargs)

    @classmethod
    def monoclinic(cls, *params, **kwargs):
        """
        Construct a new UnitCell from the provided side lengths and angle.

        Args:
            params (array_like): Lattice side lengths and angles (a, b, c, beta)

        Returns:
            UnitCell: A new unit cell object representing the provided lattice.
        """
        if len(params) != 4:
            raise ValueError("Require three lengths and one angle for a monoclinic cell")
        unit = kwargs.get("unit", "radians")
        if unit != "radians":
            alpha, gamma = 90, 90
        else:
            alpha, gamma = np.pi / 2, np.pi / 2
        return cls.from_lengths_and_angles(
            params[:3], (alpha, params[3], gamma), **kwargs
        )

    @classmethod
    def tetragonal(cls, *params, **kwargs):
        """
        Construct a new UnitCell from the provided side lengths.

        Args:
            params (array_like): Lattice side lengths (a, c)

        Returns:
            UnitCell: A new unit cell object representing the provided lattice.
        """
        if len(params) != 2:
            raise ValueError("Require 2 lengths for a tetragonal cell")
        return cls.orthorhombic(params[0], params[0], params[1], **kwargs)

    @classmethod
    def hexagonal(cls, *params, **kwargs):
        """
        Construct a new UnitCell from the provided side lengths.

        Args:
            params (array_like): Lattice side lengths (a, c)

        Returns:
            UnitCell: A new unit cell object representing the provided lattice.
        """
        if len(params) != 2:
            raise ValueError("Require 2 lengths for a hexagonal cell")
        kwargs.pop("unit", None)
        angles = [np.pi / 2, np.pi / 2, 2 * np.pi / 3]
        return cls.from_lengths_and_angles(
            (params[0], params[0], params[1]), angles, unit="radians", **kwargs
        )

    @classmethod
    def rhombohedral(cls, *params, **kwargs):
        """
        Construct a new UnitCell from the provided side length and angle.

        Args:
            params (array_like): Lattice side length a and angle alpha

        Returns:
            UnitCell: A new unit cell object representing the provided lattice.
        """
        if len(params) != 2:
            raise ValueError("Require 1 length and 1 angle for a rhombohedral cell")
        return cls.from_lengths_and_angles([params[0]] * 3, [params[1]] * 3, **kwargs)

    @classmethod
    def orthorhombic(cls, *lengths, **kwargs):
        """
        Construct a new orthorhombic UnitCell from the provided side lengths.

        Args:
            lengths (array_like): Lattice side lengths (a, b, c) in Angstroms.

        Returns:
            UnitCell: A new unit cell object representing the provided lattice.
        """
        if len(lengths) != 3:
            raise ValueError("Require three lengths for an orthorhombic cell")
        kwargs.pop("unit", None)
        return cls(np.diag(lengths), **kwargs)

    def __repr__(self):
        cell = self.cell_type
        unique = self.unique_parameters
        s = "<{{}}: {{}} ({})>".format(",".join("{:.3f}" for p in unique))
        return s.format(self.__class__.__name__, cell, *unique)
