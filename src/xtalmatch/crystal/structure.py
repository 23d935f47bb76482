import logging
from copy import deepcopy
from typing import List, Tuple

import numpy as np
from scipy.spatial import cKDTree as KDTree

from xtalmatch.util.num import adjust_for_translations, nearly_equal
from .space_group import SpaceGroup
from .symmetry_operation import SymmetryOperation
from .unit_cell import LatticeSystem, UnitCell

LOG = logging.getLogger(__name__)

# lattice systems a cell may (geometrically) have for a given crystal system
_COMPATIBLE_LATTICE_SYSTEMS = {
    "triclinic": set(LatticeSystem),
    "monoclinic": {
        LatticeSystem.MONOCLINIC,
        LatticeSystem.ORTHORHOMBIC,
        LatticeSystem.TETRAGONAL,
        LatticeSystem.HEXAGONAL,
        LatticeSystem.CUBIC,
    },
    "orthorhombic": {LatticeSystem.ORTHORHOMBIC, LatticeSystem.TETRAGONAL, LatticeSystem.CUBIC},
    "tetragonal": {LatticeSystem.TETRAGONAL, LatticeSystem.CUBIC},
    "trigonal": {LatticeSystem.HEXAGONAL, LatticeSystem.RHOMBOHEDRAL, LatticeSystem.CUBIC},
    "hexagonal": {LatticeSystem.HEXAGONAL},
    "cubic": {LatticeSystem.CUBIC},
}


def is_h_or_d(element: str) -> bool:
    "True if the element symbol is hydrogen or deuterium"
    return element in ("H", "D")


def duplicate_sites(unit_cell, elements, positions, threshold) -> np.ndarray:
    """
    Find sites that lie within `threshold` (Angstroms, minimum image) of an
    earlier, non-duplicate site of the same element.

    Candidate pairs are found with a periodic KD-tree in fractional space,
    then checked with the exact minimum image distance.

    Args:
        unit_cell (UnitCell): the lattice of the sites
        elements (List[str]): element symbol of each site
        positions (np.ndarray): (N, 3) fractional coordinates
        threshold (float): separation (Angstroms) below which sites are duplicates

    Returns:
        np.ndarray: (N) boolean mask, True for sites that are duplicates
    """
    nsites = len(positions)
    duplicate = np.zeros(nsites, dtype=bool)
    if nsites < 2:
        return duplicate
    frac = adjust_for_translations(positions)
    # |x_cart| >= sigma_min |x_frac| so this radius cannot miss a pair
    sigma_min = np.linalg.svd(unit_cell.direct, compute_uv=False)[-1]
    tree = KDTree(frac, boxsize=1.0)
    pairs = tree.query_pairs(threshold / sigma_min, output_type="ndarray")
    earlier = [[] for _ in range(nsites)]
    for i, j in pairs:
        i, j = min(i, j), max(i, j)
        earlier[j].append(i)
    for j in range(nsites):
        for i in sorted(earlier[j]):
            if duplicate[i] or elements[i] != elements[j]:
                continue
            distance, _ = unit_cell.shortest_distance(positions[i], positions[j])
            if distance < threshold:
                duplicate[j] = True
                break
    return duplicate


def symmetry_duplicate_sites(unit_cell, space_group, elements, positions, threshold) -> np.ndarray:
    """
    Find sites for which some space group image lies within `threshold`
    (Angstroms, minimum image) of an earlier, non-duplicate site of the
    same element, i.e. sites that are symmetry equivalent to an earlier site.

    Args:
        unit_cell (UnitCell): the lattice of the sites
        space_group (SpaceGroup): the symmetry relating the sites
        elements (List[str]): element symbol of each site
        positions (np.ndarray): (N, 3) fractional coordinates
        threshold (float): separation (Angstroms) below which sites are equivalent

    Returns:
        np.ndarray: (N) boolean mask, True for sites that are duplicates
    """
    nsites = len(positions)
    duplicate = np.zeros(nsites, dtype=bool)
    if nsites < 2:
        return duplicate
    _, images = space_group.apply_all_symops(positions)
    # image of site j under symop k is at k * nsites + j
    owners = np.tile(np.arange(nsites), len(space_group))
    sigma_min = np.linalg.svd(unit_cell.direct, compute_uv=False)[-1]
    tree = KDTree(adjust_for_translations(positions), boxsize=1.0)
    neighbours = tree.query_ball_point(adjust_for_translations(images), threshold / sigma_min)
    earlier = [[] for _ in range(nsites)]
    for image, (j, sites) in enumerate(zip(owners, neighbours)):
        for i in sites:
            if i < j:
                earlier[j].append((i, image))
    for j in range(nsites):
        for i, image in sorted(earlier[j]):
            if duplicate[i] or elements[i] != elements[j]:
                continue
            distance, _ = unit_cell.shortest_distance(positions[i], images[image])
            if distance < threshold:
                duplicate[j] = True
                break
    return duplicate


class CrystalStructure:
    """
    Storage class for a crystal structure: an ordered list of atoms
    (element symbol, fractional position and label) in a unit cell,
    along with the space group relating them.

    Attributes:
        unit_cell (UnitCell): the translational symmetry
        space_group (SpaceGroup): the symmetry within the unit cell
        elements (List[str]): element symbol of each atom e.g. 'C'
        positions (np.ndarray): (N, 3) fractional coordinates of each atom
        labels (List[str]): label of each atom
        name (str): name of this structure
        space_group_symmetry_has_been_applied (bool): whether the atoms
            fill the unit cell, or are an asymmetric unit
    """

    def __init__(
        self,
        unit_cell: UnitCell = None,
        space_group: SpaceGroup = None,
        elements=(),
        positions=None,
        labels=None,
        name: str = "",
    ):
        """
        Construct a new crystal structure.

        Args:
            unit_cell (UnitCell, optional): the unit cell, default is a 10 Angstrom cubic cell
            space_group (SpaceGroup, optional): the space group, default P1, stored as a copy
            elements (Iterable[str], optional): element symbols of the atoms
            positions (array_like, optional): (N, 3) fractional coordinates of the atoms
            labels (Iterable[str], optional): labels of the atoms, by default
                the element symbol followed by the (1-based) atom index
            name (str, optional): name of this structure
        """
        self.unit_cell = UnitCell.cubic(10.0) if unit_cell is None else unit_cell
        self.space_group = SpaceGroup() if space_group is None else space_group.copy()
        self.name = name
        self.elements = []
        self.positions = np.empty((0, 3))
        self.labels = []
        self.space_group_symmetry_has_been_applied = False
        if positions is not None:
            self.add_atoms(elements, positions, labels)
        self.check_lattice_system()

    @property
    def natoms(self) -> int:
        "the number of atoms in this structure"
        return len(self.elements)

    def __len__(self):
        return self.natoms

    @property
    def cartesian_positions(self) -> np.ndarray:
        "(N, 3) array of Cartesian coordinates of the atoms"
        return self.unit_cell.to_cartesian(self.positions)

    def copy(self):
        "a deep copy of this structure"
        return deepcopy(self)

    def add_atoms(self, elements, positions, labels=None):
        """
        Append atoms to this structure.

        Args:
            elements (Iterable[str]): element symbols of the new atoms
            positions (array_like): (N, 3) fractional coordinates of the new atoms
            labels (Iterable[str], optional): labels of the new atoms

        Raises:
            ValueError: if the number of elements, positions and labels differ
        """
        elements = list(elements)
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if labels is None:
            labels = [
                "{}{}".format(el, self.natoms + i + 1) for i, el in enumerate(elements)
            ]
        labels = list(labels)
        if not (len(elements) == len(positions) == len(labels)):
            raise ValueError(
                "Mismatched number of elements ({}), positions ({}) and labels ({})".format(
                    len(elements), len(positions), len(labels)
                )
            )
        self.elements.extend(elements)
        self.positions = np.vstack((self.positions, positions))
        self.labels.extend(labels)

    def _keep_atoms(self, mask):
        self.elements = [x for x, keep in zip(self.elements, mask) if keep]
        self.labels = [x for x, keep in zip(self.labels, mask) if keep]
        self.positions = self.positions[mask]

    def check_lattice_system(self) -> bool:
        """
        Compare the geometric lattice system of the unit cell with the
        crystal system of the space group, and log a warning if the cell
        is not compatible with the symmetry.

        Returns:
            bool: whether the unit cell and space group are compatible
        """
        crystal_system = self.space_group.crystal_system()
        lattice_system = self.unit_cell.lattice_system
        if lattice_system in _COMPATIBLE_LATTICE_SYSTEMS[crystal_system]:
            return True
        LOG.warning(
            "Unit cell of %s is %s, but its space group %s is %s",
            self.name or "crystal structure",
            lattice_system,
            self.space_group.name,
            crystal_system,
        )
        return False

    def apply_space_group_symmetry(self, threshold=0.1):
        """
        Generate all symmetry equivalent atoms, so that the atoms fill the
        unit cell. Images that fall within `threshold` Angstroms of an
        earlier atom of the same element are atoms on special positions,
        and are not added.

        Args:
            threshold (float, optional): separation (Angstroms) below which
                images are considered to coincide
        """
        if self.space_group_symmetry_has_been_applied:
            LOG.warning("Space group symmetry has already been applied to %s", self)
        natoms = self.natoms
        _, images = self.space_group.apply_all_symops(self.positions)
        # atom major: each atom followed by its images
        images = images.reshape(len(self.space_group), natoms, 3).transpose(1, 0, 2)
        new_positions = images[:, 1:, :].reshape(-1, 3)
        nimages = len(self.space_group) - 1
        new_elements = [el for el in self.elements for _ in range(nimages)]
        new_labels = [label for label in self.labels for _ in range(nimages)]
        all_elements = self.elements + new_elements
        all_positions = np.vstack((self.positions, new_positions))
        duplicate = duplicate_sites(self.unit_cell, all_elements, all_positions, threshold)
        keep = ~duplicate[natoms:]
        LOG.debug("%d images coincide with existing atoms", np.count_nonzero(~keep))
        self.add_atoms(
            [x for x, k in zip(new_elements, keep) if k],
            new_positions[keep],
            [x for x, k in zip(new_labels, keep) if k],
        )
        self.space_group_symmetry_has_been_applied = True

    def reduce_to_asymmetric_unit(self, threshold=0.001):
        """
        Remove atoms that are symmetry equivalent (within `threshold` Angstroms,
        under any space group operation and lattice translation) to an earlier
        atom of the same element, leaving the asymmetric unit.

        Args:
            threshold (float, optional): separation (Angstroms) below which
                atoms are considered to be duplicates
        """
        duplicate = symmetry_duplicate_sites(
            self.unit_cell, self.space_group, self.elements, self.positions, threshold
        )
        if np.any(duplicate):
            LOG.debug("Removing %d duplicate atoms", np.count_nonzero(duplicate))
        self._keep_atoms(~duplicate)
        self.space_group_symmetry_has_been_applied = False

    def supercell(self, u: int, v: int, w: int):
        """
        Create a u x v x w supercell of this structure in space group P1.
        If space group symmetry has not yet been applied, it is applied (to
        a copy) first. Labels of the new atoms are suffixed with '_i_j_k'.

        Args:
            u (int): number of cells along a
            v (int): number of cells along b
            w (int): number of cells along c

        Returns:
            CrystalStructure: the supercell

        Raises:
            ValueError: if any of u, v or w is 0
        """
        if u < 1 or v < 1 or w < 1:
            raise ValueError("Supercell dimensions must be positive, got {} {} {}".format(u, v, w))
        source = self
        if not self.space_group_symmetry_has_been_applied:
            source = self.copy()
            source.apply_space_group_symmetry()
        dims = np.array((u, v, w), dtype=np.float64)
        cell = UnitCell.from_lengths_and_angles(
            source.unit_cell.lengths * dims,
            source.unit_cell.angles,
            tolerance=source.unit_cell.tolerance,
        )
        elements, positions, labels = [], [], []
        for i in range(u):
            for j in range(v):
                for k in range(w):
                    elements.extend(source.elements)
                    positions.append((source.positions + (i, j, k)) / dims)
                    labels.extend(
                        "{}_{}_{}_{}".format(label, i, j, k) for label in source.labels
                    )
        result = CrystalStructure(
            cell,
            SpaceGroup(tolerance=source.space_group.tolerance),
            elements,
            np.vstack(positions),
            labels,
            name=source.name,
        )
        result.space_group_symmetry_has_been_applied = True
        return result

    def convert_to_p1(self):
        "this structure with all symmetry equivalent atoms, in space group P1"
        return self.supercell(1, 1, 1)

    def transform(self, matrix):
        """
        Transform this structure to a new basis, the new lattice vectors
        being `matrix` applied to the current ones. Positions transform
        with the inverse transpose of `matrix`, and the space group is
        transformed accordingly.

        Args:
            matrix (array_like): (3, 3) transformation matrix
        """
        matrix = np.asarray(matrix, dtype=np.float64)
        inverse_transpose = np.linalg.inv(matrix).T
        self.unit_cell = self.unit_cell.transform(matrix)
        self.positions = np.dot(self.positions, inverse_transpose.T)
        self.space_group.apply_similarity_transformation(SymmetryOperation(inverse_transpose))
        self.check_lattice_system()

    def position_all_atoms_within_unit_cell(self):
        "move all fractional coordinates into [0, 1)"
        self.positions = adjust_for_translations(self.positions)

    def centre_of_mass(self) -> np.ndarray:
        """
        The (unweighted) centre of the atoms, in fractional coordinates.

        Raises:
            ValueError: if there are no atoms
        """
        if self.natoms == 0:
            raise ValueError("There are no atoms, centre of mass is undefined")
        return np.mean(self.positions, axis=0)

    def _symmetry_distances(self, lhs, rhs):
        images = self.space_group.apply_all_symops(np.atleast_2d(rhs))[1]
        return self.unit_cell.shortest_distance(lhs, images)

    def shortest_distance(self, lhs, rhs) -> Tuple[float, np.ndarray]:
        """
        The shortest distance between fractional positions `lhs` and `rhs`,
        taking all space group symmetry operations (and lattice translations)
        into account.

        Args:
            lhs (array_like): (3) fractional position
            rhs (array_like): (3) fractional position

        Returns:
            Tuple[float, np.ndarray]: the distance in Angstroms and the fractional
                difference vector
        """
        distances, vectors = self._symmetry_distances(lhs, rhs)
        idx = int(np.argmin(distances))
        return float(distances[idx]), vectors[idx]

    def second_shortest_distance(self, lhs, rhs) -> Tuple[float, np.ndarray]:
        """
        As `shortest_distance`, but the shortest distance that is not
        (nearly) equal to the shortest distance.

        Returns:
            Tuple[float, np.ndarray]: the distance in Angstroms (inf if there is none)
                and the fractional difference vector
        """
        distances, vectors = self._symmetry_distances(lhs, rhs)
        shortest = np.min(distances)
        result, result_vector = np.inf, vectors[0]
        for d, vec in zip(distances, vectors):
            if nearly_equal(d, shortest):
                continue
            if d < result:
                result, result_vector = float(d), vec
        return result, result_vector

    def __repr__(self):
        return "<{} {}: {} atoms, {}, {}>".format(
            self.__class__.__name__,
            self.name,
            self.natoms,
            self.space_group.name,
            self.unit_cell.cell_type,
        )
