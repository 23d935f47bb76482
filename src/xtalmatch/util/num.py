import numpy as np

DEFAULT_TOLERANCE = 1e-6


def nearly_equal(a, b, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """
    Compare two scalars or arrays element-wise within an absolute
    tolerance.

    >>> nearly_equal(1.0, 1.0 + 1e-9)
    True
    >>> nearly_equal((0.5, 0.0), (0.5, 0.01), tolerance=1e-3)
    False

    Args:
        a (array_like): first value
        b (array_like): second value, must broadcast against `a`
        tolerance (float, optional): maximum absolute difference for any element
            (default `DEFAULT_TOLERANCE`)

    Returns:
        bool: `True` if every element differs by no more than `tolerance`
    """
    return bool(np.all(np.abs(np.asarray(a) - np.asarray(b)) <= tolerance))


def nearly_zero(a, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    "Returns true if every element of `a` is within `tolerance` of zero"
    return bool(np.all(np.abs(np.asarray(a)) <= tolerance))


def adjust_for_translations(x: np.ndarray) -> np.ndarray:
    """
    Reduce fractional coordinates into the half-open interval [0, 1).

    Values that end up within floating point noise of 1.0 after the
    reduction are mapped back to 0.0, so that e.g. -1e-17 becomes 0.0
    rather than 1.0.

    Args:
        x (array_like): fractional coordinates of any shape

    Returns:
        np.ndarray: the reduced coordinates
    """
    x = np.mod(np.asarray(x, dtype=np.float64), 1.0)
    return np.where(np.isclose(x, 1.0, rtol=0.0, atol=1e-12), 0.0, x)


def difference_modulo_lattice(a, b) -> np.ndarray:
    """
    The difference `a - b` folded to the nearest integer class, i.e.
    every component lies in [-0.5, 0.5].
    """
    d = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return d - np.rint(d)


def cartesian_product(*arrays) -> np.ndarray:
    """
    Efficiently calculate the Cartesian product of the
    provided vectors A x B x C ... etc. This will maintain
    order in loops from the right most array.

    Args:
        *arrays (array_like): 1D arrays to use for the Cartesian product

    Returns:
        np.ndarray: The Cartesian product of the provided vectors.
    """
    arrays = [np.asarray(a) for a in arrays]
    la = len(arrays)
    dtype = np.result_type(*arrays)
    arr = np.empty([len(a) for a in arrays] + [la], dtype=dtype)
    for i, a in enumerate(np.ix_(*arrays)):
        arr[..., i] = a
    return arr.reshape(-1, la)


def absolute_relative_difference(a: float, b: float) -> float:
    "|a - b| relative to the mean of a and b"
    return abs(a - b) / (0.5 * (a + b))


class RunningAverage:
    """
    Accumulate the mean (and spread) of a sequence of equally shaped
    values, one value at a time.

    Attributes:
        count (int): the number of values added so far
    """

    def __init__(self):
        self.count = 0
        self._mean = None
        self._m2 = None

    def add_value(self, value):
        value = np.asarray(value, dtype=np.float64)
        self.count += 1
        if self._mean is None:
            self._mean = value.copy()
            self._m2 = np.zeros_like(value)
            return
        delta = value - self._mean
        self._mean = self._mean + delta / self.count
        self._m2 = self._m2 + delta * (value - self._mean)

    @property
    def average(self) -> np.ndarray:
        if self._mean is None:
            raise ValueError("No values have been added to this RunningAverage")
        return self._mean

    @property
    def variance(self) -> np.ndarray:
        "sample variance, zero for fewer than two values"
        if self.count < 2:
            return np.zeros_like(self.average)
        return self._m2 / (self.count - 1)

    @property
    def esd(self) -> np.ndarray:
        "estimated standard deviation of the mean"
        return np.sqrt(self.variance / self.count)

    def __len__(self):
        return self.count
