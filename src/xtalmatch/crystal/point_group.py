import logging
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from xtalmatch.exceptions import InconsistentSymmetryError
from xtalmatch.util.num import DEFAULT_TOLERANCE, nearly_equal
from .symmetry_operation import SymmetryOperation

LOG = logging.getLogger(__name__)

# order in which rotation types are tallied
ROTATION_TYPES = (-6, -4, -3, -2, -1, 1, 2, 3, 4, 6)


@dataclass(frozen=True)
class PointGroupData:
    number: int
    symbol: str
    schoenflies: str
    crystal_system: str
    laue_group: str
    rotation_types: Tuple[int, ...]


# rotation_types are the number of operations of each type in ROTATION_TYPES
# this tally uniquely identifies each of the 32 crystallographic point groups
POINT_GROUP_DATA = (
    PointGroupData(1, "1", "C1", "triclinic", "-1", (0, 0, 0, 0, 0, 1, 0, 0, 0, 0)),
    PointGroupData(2, "-1", "Ci", "triclinic", "-1", (0, 0, 0, 0, 1, 1, 0, 0, 0, 0)),
    PointGroupData(3, "2", "C2", "monoclinic", "2/m", (0, 0, 0, 0, 0, 1, 1, 0, 0, 0)),
    PointGroupData(4, "m", "Cs", "monoclinic", "2/m", (0, 0, 0, 1, 0, 1, 0, 0, 0, 0)),
    PointGroupData(5, "2/m", "C2h", "monoclinic", "2/m", (0, 0, 0, 1, 1, 1, 1, 0, 0, 0)),
    PointGroupData(6, "222", "D2", "orthorhombic", "mmm", (0, 0, 0, 0, 0, 1, 3, 0, 0, 0)),
    PointGroupData(7, "mm2", "C2v", "orthorhombic", "mmm", (0, 0, 0, 2, 0, 1, 1, 0, 0, 0)),
    PointGroupData(8, "mmm", "D2h", "orthorhombic", "mmm", (0, 0, 0, 3, 1, 1, 3, 0, 0, 0)),
    PointGroupData(9, "4", "C4", "tetragonal", "4/m", (0, 0, 0, 0, 0, 1, 1, 0, 2, 0)),
    PointGroupData(10, "-4", "S4", "tetragonal", "4/m", (0, 2, 0, 0, 0, 1, 1, 0, 0, 0)),
    PointGroupData(11, "4/m", "C4h", "tetragonal", "4/m", (0, 2, 0, 1, 1, 1, 1, 0, 2, 0)),
    PointGroupData(12, "422", "D4", "tetragonal", "4/mmm", (0, 0, 0, 0, 0, 1, 5, 0, 2, 0)),
    PointGroupData(13, "4mm", "C4v", "tetragonal", "4/mmm", (0, 0, 0, 4, 0, 1, 1, 0, 2, 0)),
    PointGroupData(14, "-42m", "D2d", "tetragonal", "4/mmm", (0, 2, 0, 2, 0, 1, 3, 0, 0, 0)),
    PointGroupData(15, "4/mmm", "D4h", "tetragonal", "4/mmm", (0, 2, 0, 5, 1, 1, 5, 0, 2, 0)),
    PointGroupData(16, "3", "C3", "trigonal", "-3", (0, 0, 0, 0, 0, 1, 0, 2, 0, 0)),
    PointGroupData(17, "-3", "C3i", "trigonal", "-3", (0, 0, 2, 0, 1, 1, 0, 2, 0, 0)),
    PointGroupData(18, "32", "D3", "trigonal", "-3m", (0, 0, 0, 0, 0, 1, 3, 2, 0, 0)),
    PointGroupData(19, "3m", "C3v", "trigonal", "-3m", (0, 0, 0, 3, 0, 1, 0, 2, 0, 0)),
    PointGroupData(20, "-3m", "D3d", "trigonal", "-3m", (0, 0, 2, 3, 1, 1, 3, 2, 0, 0)),
    PointGroupData(21, "6", "C6", "hexagonal", "6/m", (0, 0, 0, 0, 0, 1, 1, 2, 0, 2)),
    PointGroupData(22, "-6", "C3h", "hexagonal", "6/m", (2, 0, 0, 1, 0, 1, 0, 2, 0, 0)),
    PointGroupData(23, "6/m", "C6h", "hexagonal", "6/m", (2, 0, 2, 1, 1, 1, 1, 2, 0, 2)),
    PointGroupData(24, "622", "D6", "hexagonal", "6/mmm", (0, 0, 0, 0, 0, 1, 7, 2, 0, 2)),
    PointGroupData(25, "6mm", "C6v", "hexagonal", "6/mmm", (0, 0, 0, 6, 0, 1, 1, 2, 0, 2)),
    PointGroupData(26, "-6m2", "D3h", "hexagonal", "6/mmm", (2, 0, 0, 4, 0, 1, 3, 2, 0, 0)),
    PointGroupData(27, "6/mmm", "D6h", "hexagonal", "6/mmm", (2, 0, 2, 7, 1, 1, 7, 2, 0, 2)),
    PointGroupData(28, "23", "T", "cubic", "m-3", (0, 0, 0, 0, 0, 1, 3, 8, 0, 0)),
    PointGroupData(29, "m-3", "Th", "cubic", "m-3", (0, 0, 8, 3, 1, 1, 3, 8, 0, 0)),
    PointGroupData(30, "432", "O", "cubic", "m-3m", (0, 0, 0, 0, 0, 1, 9, 8, 6, 0)),
    PointGroupData(31, "-43m", "Td", "cubic", "m-3m", (0, 6, 0, 6, 0, 1, 3, 8, 0, 0)),
    PointGroupData(32, "m-3m", "Oh", "cubic", "m-3m", (0, 6, 8, 9, 1, 1, 9, 8, 6, 0)),
)

POINT_GROUP_FROM_ROTATION_TYPES = {x.rotation_types: x for x in POINT_GROUP_DATA}


class PointGroup:
    """
    A crystallographic point group, represented by its rotation
    matrices (in the fractional basis of the lattice they came from).

    The group is identified among the 32 crystallographic point groups by
    counting the number of operations of each rotation type.

    Attributes:
        rotations (List[np.ndarray]): the distinct (3, 3) rotation matrices
        tolerance (float): tolerance used when comparing rotations
    """

    def __init__(self, rotations, tolerance=DEFAULT_TOLERANCE):
        self.tolerance = tolerance
        self.rotations = []
        for r in rotations:
            self._add_rotation(r)
        self._classify()

    def _add_rotation(self, rotation):
        rotation = np.asarray(rotation, dtype=np.float64)
        for r in self.rotations:
            if nearly_equal(r, rotation, self.tolerance):
                return
        self.rotations.append(rotation)

    def _classify(self):
        counts = {t: 0 for t in ROTATION_TYPES}
        for r in self.rotations:
            counts[SymmetryOperation(r).rotation_part_type(self.tolerance)] += 1
        self.rotation_types = tuple(counts[t] for t in ROTATION_TYPES)
        self._data = POINT_GROUP_FROM_ROTATION_TYPES.get(self.rotation_types, None)
        if self._data is None:
            LOG.debug("Rotation type tally %s matches no point group", self.rotation_types)

    def _require_data(self) -> PointGroupData:
        if self._data is None:
            raise InconsistentSymmetryError(
                "Rotations (types {}) do not form a crystallographic point group".format(
                    dict(zip(ROTATION_TYPES, self.rotation_types))
                )
            )
        return self._data

    @property
    def is_crystallographic(self) -> bool:
        "whether or not these rotations were identified as one of the 32 point groups"
        return self._data is not None

    @property
    def order(self) -> int:
        "the number of distinct rotations in this point group"
        return len(self.rotations)

    @property
    def has_inversion(self) -> bool:
        return any(nearly_equal(r, -np.eye(3), self.tolerance) for r in self.rotations)

    def add_inversion(self):
        """
        Add the inversion to this point group, along with the product of
        the inversion and every existing rotation. No-op if the group is
        already centrosymmetric.
        """
        if self.has_inversion:
            return
        for r in list(self.rotations):
            self._add_rotation(-r)
        self._classify()

    @property
    def number(self) -> int:
        "the point group number from 1-32"
        return self._require_data().number

    @property
    def symbol(self) -> str:
        "the Hermann-Mauguin symbol of this point group e.g. 2/m"
        return self._require_data().symbol

    @property
    def schoenflies(self) -> str:
        "the Schoenflies symbol of this point group e.g. C2h"
        return self._require_data().schoenflies

    @property
    def crystal_system(self) -> str:
        "the crystal system this point group belongs to"
        return self._require_data().crystal_system

    @property
    def laue_group(self) -> str:
        "the symbol of the Laue class of this point group"
        return self._require_data().laue_group

    @property
    def symmetry_operations(self) -> List[SymmetryOperation]:
        return [SymmetryOperation(r, np.zeros(3)) for r in self.rotations]

    def __len__(self):
        return len(self.rotations)

    def __repr__(self):
        symbol = self._data.symbol if self._data is not None else "?"
        return "<PointGroup: {}>".format(symbol)
