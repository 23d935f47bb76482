"""
Find the symmetry operation relating two crystal structures, and
measure how different they are.

The two structures are assumed to share a space group and to have the
same atoms, possibly in a different order, at positions related by one
symmetry operation, a lattice translation and possibly a shift of the
origin (e.g. half a unit cell along a).
"""
import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np

from xtalmatch.exceptions import AmbiguousMatchError, StructureMismatchError
from xtalmatch.util.num import absolute_relative_difference, cartesian_product, nearly_zero
from .space_group import SpaceGroup, same_symmetry_operations
from .structure import CrystalStructure, is_h_or_d
from .symmetry_operation import SymmetryOperation

LOG = logging.getLogger(__name__)


def check_lattice_differences(lhs, rhs, length_threshold=0.1, angle_threshold=10.0) -> bool:
    """
    Log a warning for every lattice parameter that differs by more than
    `length_threshold` (relative) or `angle_threshold` (degrees) between
    two unit cells.

    Returns:
        bool: True if the unit cells are similar
    """
    similar = True
    for name, a, b in zip("abc", lhs.lengths, rhs.lengths):
        if absolute_relative_difference(a, b) > length_threshold:
            LOG.warning(
                "%s parameters differ by more than %.0f%%: %.4f vs %.4f",
                name,
                100 * length_threshold,
                a,
                b,
            )
            similar = False
    for name, a, b in zip(("alpha", "beta", "gamma"), np.degrees(lhs.angles), np.degrees(rhs.angles)):
        if abs(a - b) > angle_threshold:
            LOG.warning(
                "%s angles differ by more than %.1f degrees: %.4f vs %.4f",
                name,
                angle_threshold,
                a,
                b,
            )
            similar = False
    return similar


def _check_same_natoms(lhs, rhs):
    if lhs.natoms != rhs.natoms:
        raise StructureMismatchError(
            "Numbers of atoms are not the same: {} vs {}".format(lhs.natoms, rhs.natoms)
        )


def _nearest_images(cell, position, element, rhs, space_group, shifts):
    """
    For a single position, find the nearest image among all atoms of `rhs`
    with the same element, under all symmetry operations and shifts.

    Returns:
        Tuple[int, int, int, float, np.ndarray]: the matching atom, symmetry
            operation and shift indices, the distance and the matched position
    """
    candidates = np.array([j for j, el in enumerate(rhs.elements) if el == element], dtype=int)
    if len(candidates) == 0:
        raise StructureMismatchError("No atom of element {} to match".format(element))
    shifted = (rhs.positions[candidates][:, np.newaxis, :] + shifts[np.newaxis, :, :]).reshape(-1, 3)
    nsymops, nshifts = len(space_group), len(shifts)
    # one symop at a time, neighbour scans are (atoms x shifts x 27)
    d2 = np.empty((nsymops, len(candidates), nshifts))
    for k, s in enumerate(space_group.symmetry_operations):
        d2[k] = cell.shortest_distance2(position, s(shifted))[0].reshape(len(candidates), nshifts)
    # (atom, symop, shift) in that order, matching a nested loop
    best = int(np.argmin(d2.transpose(1, 0, 2)))
    j, rest = divmod(best, nsymops * nshifts)
    k, m = divmod(rest, nshifts)
    image = space_group.symmetry_operations[k](shifted[j * nshifts + m])
    distance, vector = cell.shortest_distance(position, image)
    return candidates[j], k, m, float(distance), position + vector


def _most_common(votes, kind, items, strict):
    best = int(np.argmax(votes))
    if votes[best] == 0:
        return best
    for i, n in enumerate(votes):
        if i != best and n != 0:
            LOG.debug("%s %d (%s) found %d times", kind, i, items[i], n)
    ties = np.flatnonzero(votes == votes[best])
    if len(ties) > 1:
        message = "{} choice is ambiguous: {} each have {} votes".format(
            kind, ", ".join(str(items[i]) for i in ties), votes[best]
        )
        if strict:
            raise AmbiguousMatchError(message)
        LOG.warning("%s, using the first", message)
    return best


@dataclass
class MatchResult:
    """
    The transformation relating two crystal structures, as found by `find_match`.

    `symmetry_operation` maps the fractional coordinates of `rhs` onto
    those of `lhs`, up to the lattice translation `integer_shifts`.

    Attributes:
        symmetry_operation (SymmetryOperation): the symmetry operation, including the origin shift
        integer_shifts (np.ndarray): (3) lattice translation aligning the centres of the structures
        space_group (SpaceGroup): the space group that was searched (including any added inversion)
        shifts (np.ndarray): (M, 3) the origin shifts that were searched
        symmetry_operation_votes (np.ndarray): number of atoms voting for each symmetry operation
        shift_votes (np.ndarray): number of atoms voting for each shift
        matches (np.ndarray): index of the matching `rhs` atom for each `lhs` atom, -1 for H/D
        distances (np.ndarray): distance to the nearest image for each `lhs` atom, nan for H/D
        duplicate_matches (List[int]): `lhs` atoms whose match was already taken
    """

    symmetry_operation: SymmetryOperation
    integer_shifts: np.ndarray
    space_group: SpaceGroup
    shifts: np.ndarray
    symmetry_operation_votes: np.ndarray
    shift_votes: np.ndarray
    matches: np.ndarray
    distances: np.ndarray
    duplicate_matches: List[int] = field(default_factory=list)

    @property
    def full_symmetry_operation(self) -> SymmetryOperation:
        "the symmetry operation including the integer lattice translation"
        return self.symmetry_operation + self.integer_shifts

    def transform(self, structure: CrystalStructure) -> CrystalStructure:
        """
        Apply the full transformation to (a copy of) a structure,
        normally the `rhs` structure passed to `find_match`.
        """
        result = structure.copy()
        result.positions = self.full_symmetry_operation(structure.positions)
        return result


def find_match(
    lhs: CrystalStructure,
    rhs: CrystalStructure,
    shift_steps=1,
    add_inversion=False,
    correct_floating_axes=False,
    strict=False,
) -> MatchResult:
    """
    Find the symmetry operation, and shift of the origin, that maps `rhs`
    onto `lhs` (`lhs` is the target).

    Every non-hydrogen atom of `lhs` is matched to its nearest image among
    all atoms of `rhs` with the same element, under all symmetry
    operations of the space group and all origin shifts on a grid of
    1 / `shift_steps` along a, b and c, and votes for the symmetry
    operation and the shift producing that image. The symmetry operation
    and the shift with the most votes win.

    Args:
        lhs (CrystalStructure): the target structure
        rhs (CrystalStructure): the structure to be transformed
        shift_steps (int, optional): number of origin shifts along each axis
        add_inversion (bool, optional): also search the inversion of every operation
        correct_floating_axes (bool, optional): for polar space groups, shift the
            origin along floating axes to align the centres of the structures
        strict (bool, optional): raise `AmbiguousMatchError` rather than warn if
            the vote is tied

    Returns:
        MatchResult: the transformation and the tally of votes

    Raises:
        StructureMismatchError: if the structures have different numbers of atoms
        AmbiguousMatchError: if `strict` and the vote is tied
    """
    _check_same_natoms(lhs, rhs)
    check_lattice_differences(lhs.unit_cell, rhs.unit_cell)
    cell = lhs.unit_cell.average(rhs.unit_cell)
    if not same_symmetry_operations(lhs.space_group, rhs.space_group):
        LOG.warning("Space groups are different, this will give nonsensical results")
    space_group = rhs.space_group.copy()
    natoms = lhs.natoms
    if natoms == 0:
        return MatchResult(
            SymmetryOperation.identity(),
            np.zeros(3, dtype=int),
            space_group,
            np.zeros((1, 3)),
            np.zeros(len(space_group), dtype=int),
            np.zeros(1, dtype=int),
            np.zeros(0, dtype=int),
            np.zeros(0),
        )

    floating_axes_correction = np.zeros(3)
    if correct_floating_axes:
        rotation_sum = sum(s.rotation for s in space_group.symmetry_operations)
        com_lhs = lhs.centre_of_mass()
        com_rhs = rhs.centre_of_mass()
        for i in range(3):
            if not nearly_zero(rotation_sum[i, i], space_group.tolerance):
                LOG.debug("Floating axis found along %s", "abc"[i])
                floating_axes_correction[i] = com_lhs[i] - com_rhs[i]

    if add_inversion and not space_group.has_inversion_at_origin:
        space_group.add_inversion_at_origin()

    if shift_steps <= 1:
        shifts = floating_axes_correction[np.newaxis, :]
    else:
        steps = np.arange(shift_steps) / shift_steps
        shifts = floating_axes_correction + cartesian_product(steps, steps, steps)

    symop_votes = np.zeros(len(space_group), dtype=int)
    shift_votes = np.zeros(len(shifts), dtype=int)
    matches = np.full(natoms, -1, dtype=int)
    distances = np.full(natoms, np.nan)
    duplicates = []
    done = np.zeros(natoms, dtype=bool)
    for i in range(natoms):
        element = lhs.elements[i]
        if is_h_or_d(element):
            continue
        j, k, m, distance, _ = _nearest_images(
            cell, lhs.positions[i], element, rhs, space_group, shifts
        )
        LOG.debug("%s: smallest distance = %.4f (symop %d, shift %d)", lhs.labels[i], distance, k, m)
        if done[j]:
            LOG.warning("%s matches %s, which already has a match", lhs.labels[i], rhs.labels[j])
            duplicates.append(i)
        done[j] = True
        matches[i] = j
        distances[i] = distance
        symop_votes[k] += 1
        shift_votes[m] += 1

    if not np.any(symop_votes):
        LOG.warning("No non-hydrogen atoms to match, returning the identity")
    k = _most_common(symop_votes, "Symmetry operation", space_group.symmetry_operations, strict)
    m = _most_common(shift_votes, "Shift", [tuple(s) for s in shifts], strict)
    symop = space_group.symmetry_operations[k]
    result = SymmetryOperation(
        symop.rotation, np.dot(symop.rotation, shifts[m]) + symop.translation
    )
    integer_shifts = np.rint(lhs.centre_of_mass() - result(rhs.centre_of_mass())).astype(int)
    LOG.debug(
        "Most common symmetry operation %s (%d votes), shift %s (%d votes), integer shifts %s",
        symop,
        symop_votes[k],
        shifts[m],
        shift_votes[m],
        integer_shifts,
    )
    return MatchResult(
        result,
        integer_shifts,
        space_group,
        shifts,
        symop_votes,
        shift_votes,
        matches,
        distances,
        duplicates,
    )


def _cartesian_displacements(lhs, rhs, lhs_positions, rhs_positions):
    "|G1 (r1 - r2)| and |G2 (r1 - r2)| averaged"
    difference = lhs_positions - rhs_positions
    return 0.5 * (
        np.linalg.norm(lhs.unit_cell.to_cartesian(difference), axis=-1)
        + np.linalg.norm(rhs.unit_cell.to_cartesian(difference), axis=-1)
    )


def root_mean_square_cartesian_displacement(lhs: CrystalStructure, rhs: CrystalStructure) -> float:
    """
    Root mean square Cartesian displacement (RMSCD) between two
    structures, atom i of `lhs` being compared with atom i of `rhs`.
    Pairs of hydrogen (or deuterium) atoms are skipped. Each displacement
    is the average of the displacement in the Cartesian frames of both
    structures. Positions are used as given, i.e. without lattice
    translations.

    Args:
        lhs (CrystalStructure): the first structure
        rhs (CrystalStructure): the second structure

    Returns:
        float: the RMSCD in Angstroms, 0 if there are no non-hydrogen atoms

    Raises:
        StructureMismatchError: if the numbers of atoms differ, or the
            elements of a pair of atoms differ
    """
    _check_same_natoms(lhs, rhs)
    include = np.ones(lhs.natoms, dtype=bool)
    for i, (a, b) in enumerate(zip(lhs.elements, rhs.elements)):
        if is_h_or_d(a) and is_h_or_d(b):
            include[i] = False
            continue
        if a != b:
            raise StructureMismatchError(
                "Elements are not the same for atom {}: {} vs {}".format(i, a, b)
            )
    if not np.any(include):
        return 0.0
    d = _cartesian_displacements(lhs, rhs, lhs.positions[include], rhs.positions[include])
    return float(np.sqrt(np.mean(d ** 2)))


def rmscd_with_matching(lhs: CrystalStructure, rhs: CrystalStructure, add_shifts=False) -> float:
    """
    RMSCD between two structures with the same atoms in a different
    order: every atom of `lhs` is matched to the nearest image of an
    atom of `rhs` (same element, any symmetry operation of the space
    group of `rhs`, any lattice translation) before the displacement is
    measured. Hydrogen and deuterium atoms are not included.

    Args:
        lhs (CrystalStructure): the first structure
        rhs (CrystalStructure): the second structure
        add_shifts (bool, optional): also try all combinations of shifts of
            1/2 along a, b and c

    Returns:
        float: the RMSCD in Angstroms

    Raises:
        StructureMismatchError: if the numbers of atoms differ, or two
            non-hydrogen atoms of `lhs` match the same atom of `rhs`
    """
    _check_same_natoms(lhs, rhs)
    natoms = lhs.natoms
    if natoms == 0:
        return 0.0
    check_lattice_differences(lhs.unit_cell, rhs.unit_cell)
    cell = lhs.unit_cell.average(rhs.unit_cell)
    shifts = [(0.0, 0.0, 0.0)]
    if add_shifts:
        shifts += [
            (0.5, 0.0, 0.0),
            (0.5, 0.5, 0.0),
            (0.5, 0.0, 0.5),
            (0.0, 0.5, 0.0),
            (0.0, 0.5, 0.5),
            (0.0, 0.0, 0.5),
            (0.5, 0.5, 0.5),
        ]
    shifts = np.array(shifts)
    done = np.zeros(natoms, dtype=bool)
    include = np.zeros(natoms, dtype=bool)
    best_matches = np.empty((natoms, 3))
    for i in range(natoms):
        element = lhs.elements[i]
        j, _, _, distance, best_matches[i] = _nearest_images(
            cell, lhs.positions[i], element, rhs, rhs.space_group, shifts
        )
        LOG.debug("%s: smallest distance = %.4f", lhs.labels[i], distance)
        if is_h_or_d(element):
            continue
        if done[j]:
            raise StructureMismatchError(
                "{} matches {}, which already has a match".format(lhs.labels[i], rhs.labels[j])
            )
        done[j] = True
        include[i] = True
    if not np.any(include):
        return 0.0
    d = _cartesian_displacements(lhs, rhs, lhs.positions[include], best_matches[include])
    return float(np.sqrt(np.mean(d ** 2)))
