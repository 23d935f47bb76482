"""
Collapse an expanded (P1) supercell back to a single unit cell,
averaging the copies of each atom.

All functions here leave their input untouched and return a new
`CrystalStructure`.
"""
import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from xtalmatch.util.num import RunningAverage, adjust_for_translations
from .space_group import SpaceGroup
from .structure import CrystalStructure
from .unit_cell import UnitCell

LOG = logging.getLogger(__name__)


def supercell_dimensions(supercell_cell: UnitCell, cell: UnitCell) -> Tuple[int, int, int]:
    """
    The dimensions u, v, w of a supercell with respect to the parent cell,
    from the ratios of the lattice lengths.

    Args:
        supercell_cell (UnitCell): the lattice of the supercell
        cell (UnitCell): the lattice of the parent cell

    Returns:
        Tuple[int, int, int]: the supercell dimensions
    """
    u, v, w = (int(round(x)) for x in supercell_cell.lengths / cell.lengths)
    return u, v, w


def _collapsed(structure, u, v, w, reduce=True):
    "copy of structure in the collapsed lattice, positions rescaled"
    if u < 1 or v < 1 or w < 1:
        raise ValueError("Supercell dimensions must be positive, got {} {} {}".format(u, v, w))
    dims = np.array((u, v, w), dtype=np.float64)
    cell = UnitCell.from_lengths_and_angles(
        structure.unit_cell.lengths / dims,
        structure.unit_cell.angles,
        tolerance=structure.unit_cell.tolerance,
    )
    positions = structure.positions * dims
    if reduce:
        positions = adjust_for_translations(positions)
    result = structure.copy()
    result.unit_cell = cell
    result.positions = positions
    return result


def _warn_elements(structure, i, j):
    if structure.elements[i] != structure.elements[j]:
        LOG.warning(
            "Atoms to be averaged have different elements: %s (%s) and %s (%s)",
            structure.labels[i],
            structure.elements[i],
            structure.labels[j],
            structure.elements[j],
        )


def collapse_supercell(
    structure: CrystalStructure, u: int, v: int, w: int, space_group: SpaceGroup = None, threshold=0.3
) -> CrystalStructure:
    """
    Collapse a P1 supercell of u x v x w cells back to a single cell.

    Without a space group, the translational copies of each atom are
    found by distance (below `threshold` Angstroms from the running
    average position, in the collapsed lattice) and averaged. A warning
    is logged if the number of copies found is not u * v * w.

    With a space group (that of the parent cell), atoms are not
    averaged, rather each atom is moved to the symmetry equivalent
    position closest to the origin.

    Args:
        structure (CrystalStructure): the supercell, space group P1
        u (int): number of cells along a
        v (int): number of cells along b
        w (int): number of cells along c
        space_group (SpaceGroup, optional): space group of the parent cell
        threshold (float, optional): distance (Angstroms) below which atoms are copies

    Returns:
        CrystalStructure: the collapsed structure
    """
    result = _collapsed(structure, u, v, w)
    if space_group is not None:
        for i, position in enumerate(result.positions):
            _, images = space_group.apply_all_symops(position[np.newaxis, :])
            images = np.vstack((position, adjust_for_translations(images)))
            norms = np.linalg.norm(images, axis=1)
            result.positions[i] = images[np.argmin(norms)]
        return result

    multiplicity = u * v * w
    done = np.zeros(result.natoms, dtype=bool)
    elements, positions, labels = [], [], []
    for i in range(result.natoms):
        if done[i]:
            continue
        done[i] = True
        average = RunningAverage()
        average.add_value(result.positions[i])
        for j in range(i + 1, result.natoms):
            if done[j]:
                continue
            distance, difference = result.unit_cell.shortest_distance(
                average.average, result.positions[j]
            )
            if distance < threshold:
                _warn_elements(result, i, j)
                average.add_value(average.average + difference)
                done[j] = True
        if len(average) != multiplicity:
            LOG.warning(
                "Number of averaged atoms for %s (%d) is not equal to the multiplicity (%d)",
                result.labels[i],
                len(average),
                multiplicity,
            )
        elements.append(result.elements[i])
        positions.append(average.average)
        labels.append(result.labels[i])
    result.elements, result.labels = elements, labels
    result.positions = np.array(positions).reshape(-1, 3)
    return result


def collapse_ordered_supercell(structure: CrystalStructure, u: int, v: int, w: int) -> CrystalStructure:
    """
    Collapse a P1 supercell of u x v x w cells back to a single cell, trusting
    the order of the atoms: with n atoms per cell, atom n + i is the copy of
    atom i in the next cell, and so on.

    Args:
        structure (CrystalStructure): the supercell, space group P1
        u (int): number of cells along a
        v (int): number of cells along b
        w (int): number of cells along c

    Returns:
        CrystalStructure: the collapsed structure

    Raises:
        ValueError: if the number of atoms is not a multiple of u * v * w
    """
    result = _collapsed(structure, u, v, w, reduce=False)
    multiplicity = u * v * w
    if result.natoms % multiplicity != 0:
        raise ValueError(
            "Number of atoms ({}) is not a multiple of the supercell multiplicity ({})".format(
                result.natoms, multiplicity
            )
        )
    natoms = result.natoms // multiplicity
    positions = np.empty((natoms, 3))
    for i in range(natoms):
        reference = result.positions[i]
        average = RunningAverage()
        average.add_value(reference)
        for j in range(1, multiplicity):
            jatom = natoms * j + i
            _warn_elements(result, i, jatom)
            position = result.positions[jatom]
            average.add_value(position - np.rint(position - reference))
        positions[i] = average.average
    result.elements = result.elements[:natoms]
    result.labels = result.labels[:natoms]
    result.positions = positions
    return result


@dataclass
class SymmetryExpandedCollapse:
    """
    The result of `collapse_symmetry_expanded_supercell`.

    Attributes:
        structure (CrystalStructure): the averaged asymmetric unit, in the collapsed cell
        positions (np.ndarray): (natoms, multiplicity, 3) the positions of every copy
            of every atom after mapping onto the first copy
        esds (np.ndarray): (natoms, 3) estimated standard deviations of the averages
        actual_centre (np.ndarray): the centre of the supercell before drift correction
        ndistances_gt_5 (int): number of copies still more than 5 Angstroms from the first copy
    """

    structure: CrystalStructure
    positions: np.ndarray
    esds: np.ndarray
    actual_centre: np.ndarray
    ndistances_gt_5: int


def collapse_symmetry_expanded_supercell(
    structure: CrystalStructure,
    u: int,
    v: int,
    w: int,
    space_group: SpaceGroup = None,
    drift_correction=False,
    target_centre=(0.0, 0.0, 0.0),
) -> SymmetryExpandedCollapse:
    """
    Collapse a supercell of u x v x w cells, each of which contains the
    full space group expansion of the asymmetric unit (in the order
    cell-major, then symmetry operation, then atom), back to the asymmetric
    unit.

    Every copy of an atom is mapped by every symmetry operation (plus the
    lattice translation bringing it nearest), and the image closest (in
    Cartesian space) to the first copy is averaged.

    Args:
        structure (CrystalStructure): the expanded supercell
        u (int): number of cells along a
        v (int): number of cells along b
        w (int): number of cells along c
        space_group (SpaceGroup, optional): the space group of the parent cell,
            default is the space group of `structure`
        drift_correction (bool, optional): shift all atoms so that their centre
            is at `target_centre` before collapsing
        target_centre (array_like, optional): fractional coordinates (in the supercell)
            of the target centre for drift correction

    Returns:
        SymmetryExpandedCollapse: the averaged structure and the individual positions

    Raises:
        ValueError: if the number of atoms is not a multiple of the multiplicity
    """
    if space_group is None:
        space_group = structure.space_group
    shifted = structure.copy()
    actual_centre = shifted.centre_of_mass()
    if drift_correction:
        shifted.positions = shifted.positions - actual_centre + np.asarray(target_centre)
    result = _collapsed(shifted, u, v, w, reduce=False)
    multiplicity = u * v * w * len(space_group)
    if result.natoms % multiplicity != 0:
        raise ValueError(
            "Number of atoms ({}) is not a multiple of the multiplicity ({})".format(
                result.natoms, multiplicity
            )
        )
    natoms = result.natoms // multiplicity
    positions = np.empty((natoms, multiplicity, 3))
    averages = np.empty((natoms, 3))
    esds = np.empty((natoms, 3))
    ndistances_gt_5 = 0
    for i in range(natoms):
        reference = result.positions[i]
        positions[i, 0] = reference
        average = RunningAverage()
        average.add_value(reference)
        for j in range(1, multiplicity):
            jatom = natoms * j + i
            _warn_elements(result, i, jatom)
            _, images = space_group.apply_all_symops(result.positions[jatom][np.newaxis, :])
            images -= np.rint(images - reference)
            d2 = np.sum(result.unit_cell.to_cartesian(images - reference) ** 2, axis=1)
            best = int(np.argmin(d2))
            if d2[best] > 25.0:
                ndistances_gt_5 += 1
            positions[i, j] = images[best]
            average.add_value(images[best])
        averages[i] = average.average
        esds[i] = average.esd
    if ndistances_gt_5 > 0:
        LOG.warning("Number of distances > 5.0 Angstroms: %d", ndistances_gt_5)
    result.elements = result.elements[:natoms]
    result.labels = result.labels[:natoms]
    result.positions = averages
    result.space_group = space_group.copy()
    result.space_group_symmetry_has_been_applied = False
    return SymmetryExpandedCollapse(result, positions, esds, actual_centre, ndistances_gt_5)
