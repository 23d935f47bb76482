import logging
from copy import deepcopy
from typing import List

import numpy as np

from xtalmatch.exceptions import (
    GroupClosureError,
    InconsistentSymmetryError,
    InvalidSymmetryOperationError,
    MissingIdentityError,
)
from xtalmatch.util.num import DEFAULT_TOLERANCE, nearly_equal, nearly_zero
from .point_group import PointGroup
from .symmetry_operation import SymmetryOperation

LOG = logging.getLogger(__name__)


LATTICE_TYPE_TRANSLATIONS = {
    "P": (),
    "I": ((1 / 2, 1 / 2, 1 / 2),),
    "R": ((2 / 3, 1 / 3, 1 / 3), (1 / 3, 2 / 3, 2 / 3)),  # obverse, hexagonal axes
    "F": ((0, 1 / 2, 1 / 2), (1 / 2, 0, 1 / 2), (1 / 2, 1 / 2, 0)),
    "A": ((0, 1 / 2, 1 / 2),),
    "B": ((1 / 2, 0, 1 / 2),),
    "C": ((1 / 2, 1 / 2, 0),),
}


def _contains(symops, symop, tolerance) -> bool:
    return any(symop.equal_modulo_lattice(s, tolerance) for s in symops)


def check_if_closed(symmetry_operations, tolerance=DEFAULT_TOLERANCE):
    """
    Check that a list of symmetry operations is closed under
    composition, i.e. the product of any two operations is (modulo
    a lattice translation) also in the list.

    Args:
        symmetry_operations (List[SymmetryOperation]): the operations to check
        tolerance (float, optional): tolerance used for comparisons

    Raises:
        GroupClosureError: if some product is not in the list
    """
    for a in symmetry_operations:
        for b in symmetry_operations:
            product = a * b
            if not _contains(symmetry_operations, product, tolerance):
                raise GroupClosureError(
                    "Symmetry operations are not closed: {} * {} = {} "
                    "is not in the list".format(a, b, product.reduced())
                )


def same_symmetry_operations(lhs, rhs, tolerance=DEFAULT_TOLERANCE) -> bool:
    """
    Check if two space groups (or lists of symmetry operations) are made
    up of the same symmetry operations, regardless of their order.

    Note that this is stricter than two groups being the same space group
    type, as the setting (choice of unit cell and origin) must match too.

    Args:
        lhs (SpaceGroup | List[SymmetryOperation]): first set of operations
        rhs (SpaceGroup | List[SymmetryOperation]): second set of operations
        tolerance (float, optional): tolerance used for comparisons

    Returns:
        bool: whether the operations are the same
    """
    if isinstance(lhs, SpaceGroup):
        lhs = lhs.symmetry_operations
    if isinstance(rhs, SpaceGroup):
        rhs = rhs.symmetry_operations
    if len(lhs) != len(rhs):
        return False
    return all(_contains(rhs, s, tolerance) for s in lhs) and all(
        _contains(lhs, s, tolerance) for s in rhs
    )


class SpaceGroup:
    """
    Represent a crystallographic space group as an ordered, closed
    list of symmetry operations in fractional coordinates. The first
    operation is always the identity.

    On construction (and after every modification) the list of
    operations is decomposed into the centring vectors, the inversion
    (if any) and a set of representative operations: one per rotation,
    where a rotation R and its negative -R share a representative.

    Attributes:
        name (str): free-text name of the space group e.g. 'P21/c', not used in any calculation
        symmetry_operations (List[SymmetryOperation]): List of symmetry operations making up this space group
        tolerance (float): tolerance used for all comparisons of symmetry operations
        has_inversion (bool): whether any operation has rotation -1
        has_inversion_at_origin (bool): whether there is an inversion centre at the origin
        position_of_inversion (np.ndarray): translation of the inversion closest to the origin
        centring_vectors (List[np.ndarray]): non-zero pure translations in this group
        representative_symmetry_operations (List[SymmetryOperation]): one operation per rotation pair +R/-R
    """

    def __init__(self, symmetry_operations=None, name=None, tolerance=DEFAULT_TOLERANCE):
        """
        Construct a new space group from a list of symmetry operations. If no
        operations are given, the result is P1.

        Args:
            symmetry_operations (List[SymmetryOperation], optional): closed list of operations,
                which must include the identity
            name (str, optional): free-text name of the space group
            tolerance (float, optional): tolerance used for all comparisons

        Raises:
            GroupClosureError: if the operations are not closed under composition
            InvalidSymmetryOperationError: if any rotation has a determinant other than +/-1
            MissingIdentityError: if the identity is not present
        """
        self.tolerance = tolerance
        if symmetry_operations is None:
            self.symmetry_operations = [SymmetryOperation.identity()]
            self.name = "P1" if name is None else name
        else:
            symops = [s.reduced() for s in symmetry_operations]
            check_if_closed(symops, tolerance)
            self.symmetry_operations = self._identity_first(symops)
            self.name = "" if name is None else name
        self.decompose()

    def _identity_first(self, symops):
        if not symops:
            raise MissingIdentityError("No symmetry operations provided")
        if symops[0].is_identity(self.tolerance):
            return symops
        for i, s in enumerate(symops):
            if s.is_identity(self.tolerance):
                symops[0], symops[i] = symops[i], symops[0]
                break
        return symops

    @classmethod
    def from_string_codes(cls, codes, name=None, **kwargs):
        """
        Construct a space group from string encoded symmetry operations
        e.g. ['x,y,z', '-x,1/2+y,1/2-z'].

        Args:
            codes (Iterable[str]): the string encoded symmetry operations
            name (str, optional): free-text name of the space group
            **kwargs: passed to the constructor

        Returns:
            SpaceGroup: the new space group
        """
        return cls([SymmetryOperation.from_string_code(c) for c in codes], name=name, **kwargs)

    @classmethod
    def P21c(cls, **kwargs):
        "The space group P2_1/c (unique axis b, cell choice 1)"
        sg = cls.from_string_codes(("x,y,z", "-x,1/2+y,1/2-z"), name="P21/c", **kwargs)
        sg.add_inversion_at_origin()
        return sg

    def decompose(self):
        """
        Decompose the symmetry operations of this space group into
        centring vectors, inversion and representative operations. This
        is always a full recalculation from `symmetry_operations`.

        Raises:
            InvalidSymmetryOperationError: if a rotation has a determinant other than +/-1
            MissingIdentityError: if there is no pure translation of zero length
        """
        tol = self.tolerance
        identity = np.eye(3)
        centring_candidates = []
        inversion_translations = []
        self.has_inversion = False
        self.has_inversion_at_origin = False
        self.position_of_inversion = np.zeros(3)
        nproper, nimproper = 0, 0
        for s in self.symmetry_operations:
            det = s.determinant
            if nearly_equal(det, 1.0, tol):
                nproper += 1
                if nearly_equal(s.rotation, identity, tol):
                    centring_candidates.append(s.translation)
            elif nearly_equal(det, -1.0, tol):
                nimproper += 1
                if nearly_equal(s.rotation, -identity, tol):
                    self.has_inversion = True
                    inversion_translations.append(s.translation)
            else:
                raise InvalidSymmetryOperationError(
                    "Unexpected determinant {:.6f} for symmetry operation {}".format(det, s)
                )
        LOG.debug("%d proper and %d improper symmetry operations", nproper, nimproper)

        nzero = sum(1 for t in centring_candidates if nearly_zero(t, tol))
        if nzero == 0:
            raise MissingIdentityError("Identity not found in symmetry operations")
        if nzero > 1:
            LOG.warning("Identity occurs %d times in symmetry operations", nzero)
        self.centring_vectors = [t for t in centring_candidates if not nearly_zero(t, tol)]

        if self.has_inversion:
            # translations are in [0, 1) so the smallest sum is the
            # (Manhattan) closest inversion to the origin
            sums = [np.sum(t) for t in inversion_translations]
            idx = int(np.argmin(sums))
            self.position_of_inversion = inversion_translations[idx]
            self.has_inversion_at_origin = nearly_zero(sums[idx], tol)

        self.representative_symmetry_operations = []
        for s in self.symmetry_operations:
            for r in self.representative_symmetry_operations:
                if nearly_equal(s.rotation, r.rotation, tol) or nearly_equal(
                    s.rotation, -r.rotation, tol
                ):
                    break
            else:
                self.representative_symmetry_operations.append(s)

    @property
    def symops(self):
        "alias for `self.symmetry_operations`"
        return self.symmetry_operations

    @property
    def centrosymmetric(self) -> bool:
        "alias for `self.has_inversion`"
        return self.has_inversion

    def symmetry_operation(self, i) -> SymmetryOperation:
        return self.symmetry_operations[i]

    def __len__(self):
        return len(self.symmetry_operations)

    def __iter__(self):
        return iter(self.symmetry_operations)

    def __repr__(self):
        return "<{} {}: {} symops>".format(self.__class__.__name__, self.name, len(self))

    def copy(self):
        "a deep copy of this space group"
        return deepcopy(self)

    @property
    def cif_section(self) -> str:
        "Representation of the SpaceGroup in CIF files"
        return "\n".join(
            "{} {}".format(i, sym.cif_form)
            for i, sym in enumerate(self.symmetry_operations, start=1)
        )

    def point_group(self) -> PointGroup:
        """
        The point group of this space group, i.e. all rotations with the
        translations removed.

        Returns:
            PointGroup: the point group
        """
        rotations = []
        for s in self.representative_symmetry_operations:
            rotations.append(s.rotation)
            if self.has_inversion:
                rotations.append(-s.rotation)
        return PointGroup(rotations, tolerance=self.tolerance)

    def laue_class(self) -> PointGroup:
        "The point group of this space group, with the inversion added"
        result = self.point_group()
        if not self.has_inversion:
            result.add_inversion()
        return result

    def crystal_system(self) -> str:
        """
        The crystal system of the space group e.g. triclinic, monoclinic etc.
        deduced from the orders of the rotations of the representative
        symmetry operations.

        Returns:
            str: the crystal system

        Raises:
            InconsistentSymmetryError: if the rotations match no crystal system
        """
        if len(self.representative_symmetry_operations) == 1:
            return "triclinic"
        counts = {2: 0, 3: 0, 4: 0, 6: 0}
        for s in self.representative_symmetry_operations:
            order = abs(s.rotation_part_type(self.tolerance))
            if order in counts:
                counts[order] += 1
        if counts[3] == 8:
            return "cubic"
        if counts[6] == 2:
            return "hexagonal"
        if counts[3] == 2:
            return "trigonal"
        if counts[4] == 2:
            return "tetragonal"
        if counts[2] == 3:
            return "orthorhombic"
        if counts[2] == 1:
            return "monoclinic"
        raise InconsistentSymmetryError(
            "Could not determine crystal system of {} from rotation orders {}".format(
                self, counts
            )
        )

    def centring_symbol(self) -> str:
        """
        The lattice centring symbol (P, A, B, C, I, F or R) matching the
        centring vectors of this space group, or '?' if they do not
        correspond to a conventional centring.
        """
        for symbol, translations in LATTICE_TYPE_TRANSLATIONS.items():
            expected = [SymmetryOperation(np.eye(3), t) for t in translations]
            actual = [SymmetryOperation(np.eye(3), t) for t in self.centring_vectors]
            if same_symmetry_operations(expected, actual, self.tolerance):
                return symbol
        return "?"

    def add_inversion_at_origin(self):
        """
        Add an inversion through the origin to this space group, doubling
        the number of symmetry operations. Does nothing if there already is
        an inversion at the origin.
        """
        if self.has_inversion_at_origin:
            return
        if self.has_inversion:
            LOG.warning(
                "Adding an inversion at the origin to %s, which already has an inversion at %s",
                self,
                self.position_of_inversion,
            )
        inversion = SymmetryOperation.inversion()
        symops = []
        for s in self.symmetry_operations:
            symops.append(s)
            symops.append((inversion * s).reduced())
        self.symmetry_operations = symops
        self.decompose()

    def add_centring_vectors(self, centring_vectors):
        """
        Add pure translations (e.g. (1/2, 1/2, 0) for C-centring) to this
        space group. Every existing operation is combined with every new
        centring vector, duplicates are removed.

        Args:
            centring_vectors (array_like): (N, 3) array of centring vectors

        Raises:
            GroupClosureError: if the centring vectors are not compatible with
                the existing symmetry operations
        """
        vectors = [np.zeros(3)] + [np.asarray(v, dtype=np.float64) for v in centring_vectors]
        symops = []
        for s in self.symmetry_operations:
            for v in vectors:
                candidate = (s + v).reduced()
                if not _contains(symops, candidate, self.tolerance):
                    symops.append(candidate)
        check_if_closed(symops, self.tolerance)
        self.symmetry_operations = symops
        self.decompose()

    def apply_similarity_transformation(self, transformation):
        """
        Re-express this space group under a change of basis/origin, replacing
        every operation g by S g S^-1.

        Args:
            transformation (SymmetryOperation | array_like): the operation S,
                or a (3, 3) matrix for a transformation without origin shift
        """
        if not isinstance(transformation, SymmetryOperation):
            transformation = SymmetryOperation(transformation)
        inverse = transformation.inverse()
        self.symmetry_operations = [
            (transformation * s * inverse).reduced() for s in self.symmetry_operations
        ]
        self.decompose()

    def remove_duplicate_symmetry_operations(self):
        "Remove symmetry operations that are equal modulo a lattice translation"
        symops = [self.symmetry_operations[0]]
        for s in self.symmetry_operations[1:]:
            if not _contains(symops, s, self.tolerance):
                symops.append(s)
        if len(symops) != len(self.symmetry_operations):
            LOG.debug(
                "Removed %d duplicate symmetry operations",
                len(self.symmetry_operations) - len(symops),
            )
        self.symmetry_operations = symops
        self.decompose()

    def expanded_symmetry_operations(self) -> List[SymmetryOperation]:
        """
        Regenerate the full list of symmetry operations from the
        decomposition, i.e. every representative operation combined with
        every centring vector and, if present, the inversion.

        Returns:
            List[SymmetryOperation]: the regenerated operations (as a set,
                equal to `symmetry_operations`)
        """
        vectors = [np.zeros(3)] + list(self.centring_vectors)
        inversion = SymmetryOperation(-np.eye(3), self.position_of_inversion)
        symops = []
        for s in self.representative_symmetry_operations:
            for v in vectors:
                centred = (s + v).reduced()
                symops.append(centred)
                if self.has_inversion:
                    symops.append((inversion * centred).reduced())
        return symops

    def apply_all_symops(self, coordinates: np.ndarray):
        """
        For a given set of coordinates, apply all symmetry
        operations in this space group, yielding a set subject
        to only translational symmetry (i.e. a unit cell).
        Assumes the input coordinates are fractional.

        Args:
            coordinates (np.ndarray): (N, 3) set of fractional coordinates

        Returns:
            Tuple[np.ndarray, np.ndarray]: a (MxN) array of generator symop indices
                and an (MxN, 3) array of coordinates where M is the number of symmetry
                operations in this space group.
        """
        coordinates = np.asarray(coordinates, dtype=np.float64)
        nsites = len(coordinates)
        transformed = np.empty((nsites * len(self), 3))
        generator_symop = np.empty(nsites * len(self), dtype=np.int32)
        for i, s in enumerate(self.symmetry_operations):
            transformed[i * nsites : (i + 1) * nsites] = s(coordinates)
            generator_symop[i * nsites : (i + 1) * nsites] = i
        return generator_symop, transformed
