"""
This module implements functionality associated with
3D periodic crystals: unit cells (`UnitCell`), space groups (`SpaceGroup`),
point groups (`PointGroup`), symmetry operations in fractional coordinates
(`SymmetryOperation`), crystal structures (`CrystalStructure`), and
matching of crystal structures (`find_match`).
"""

from .matching import (
    MatchResult,
    find_match,
    rmscd_with_matching,
    root_mean_square_cartesian_displacement,
)
from .point_group import PointGroup
from .space_group import SpaceGroup, same_symmetry_operations
from .structure import CrystalStructure
from .supercell import (
    collapse_ordered_supercell,
    collapse_supercell,
    collapse_symmetry_expanded_supercell,
    supercell_dimensions,
)
from .symmetry_operation import SymmetryOperation
from .unit_cell import LatticeSystem, UnitCell, deduce_lattice_system

__all__ = [
    "CrystalStructure",
    "LatticeSystem",
    "MatchResult",
    "PointGroup",
    "SpaceGroup",
    "SymmetryOperation",
    "UnitCell",
    "collapse_ordered_supercell",
    "collapse_supercell",
    "collapse_symmetry_expanded_supercell",
    "deduce_lattice_system",
    "find_match",
    "rmscd_with_matching",
    "root_mean_square_cartesian_displacement",
    "same_symmetry_operations",
    "supercell_dimensions",
]
