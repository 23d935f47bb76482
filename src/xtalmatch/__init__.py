from .crystal import (
    CrystalStructure,
    LatticeSystem,
    PointGroup,
    SpaceGroup,
    SymmetryOperation,
    UnitCell,
    find_match,
)
from .exceptions import (
    AmbiguousMatchError,
    GroupClosureError,
    InconsistentSymmetryError,
    InvalidSymmetryOperationError,
    MissingIdentityError,
    StructureMismatchError,
    SymmetryError,
)

__version__ = "0.1.0"

__all__ = [
    "AmbiguousMatchError",
    "CrystalStructure",
    "GroupClosureError",
    "InconsistentSymmetryError",
    "InvalidSymmetryOperationError",
    "LatticeSystem",
    "MissingIdentityError",
    "PointGroup",
    "SpaceGroup",
    "StructureMismatchError",
    "SymmetryError",
    "SymmetryOperation",
    "UnitCell",
    "find_match",
]
