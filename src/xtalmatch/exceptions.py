"""
Exceptions raised by xtalmatch.

All symmetry related problems derive from `SymmetryError`, and all
problems comparing two structures derive from `StructureMismatchError`.
Both are subclasses of `ValueError` so existing `except ValueError`
handling keeps working.
"""


class SymmetryError(ValueError):
    "Base class for malformed symmetry input"


class GroupClosureError(SymmetryError):
    "A set of symmetry operations is not closed under composition"


class InvalidSymmetryOperationError(SymmetryError):
    "A symmetry operation is not a valid crystallographic operation"


class MissingIdentityError(SymmetryError):
    "A set of symmetry operations does not contain the identity"


class InconsistentSymmetryError(SymmetryError):
    """
    A (syntactically valid) space group could not be classified, i.e.
    the classification reached a state that should be unreachable.
    """


class StructureMismatchError(ValueError):
    "Two crystal structures cannot be compared atom by atom"


class AmbiguousMatchError(StructureMismatchError):
    "More than one transformation is equally consistent with the atom matches"
