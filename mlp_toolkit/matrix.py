"""
matrix.py
~~~~~~~~~

Dense two-dimensional matrix used by the multilayer perceptron.

Values live in a float64 numpy array of shape (rows, columns). The shape of
a matrix never changes; operations that produce a different shape return a
new matrix. Mutating operations are named ``*_in_place`` and return the
matrix itself so they can be chained, their non-destructive counterparts
are static methods returning a fresh matrix.
"""

from numbers import Real
from typing import Callable, Iterable, List, Sequence, Tuple, Union

import numpy as np

from mlp_toolkit.errors import ConstructionError, RangeError, ShapeMismatchError


MapFunction = Callable[[float, int, int], float]
Operand = Union['Matrix', Real]


class Matrix:
    """
    A rows x columns matrix of real numbers, zero-filled on construction.

    Args:
        rows: Number of rows (>= 0)
        columns: Number of columns (>= 0)

    Raises:
        ConstructionError: If either dimension is negative or not an integer
    """

    def __init__(self, rows: int, columns: int):
        for name, value in (('rows', rows), ('columns', columns)):
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise ConstructionError(
                    f"Matrix {name} must be an integer, got {value!r}"
                )
            if value < 0:
                raise ConstructionError(
                    f"Matrix {name} must be non-negative, got {value}"
                )
        self.rows = int(rows)
        self.columns = int(columns)
        self.data = np.zeros((self.rows, self.columns), dtype=float)

    # ------------------------------------------------------------------
    # Construction and conversion
    # ------------------------------------------------------------------

    @classmethod
    def from_vector(cls, values: Iterable[float]) -> 'Matrix':
        """Build a column matrix (len(values) x 1) from a flat sequence."""
        try:
            array = np.array(list(values), dtype=float)
        except (TypeError, ValueError) as e:
            raise ShapeMismatchError(
                f"Cannot build a column matrix from {values!r}: {e}"
            ) from e
        if array.ndim != 1:
            raise ShapeMismatchError(
                f"Expected a flat sequence of numbers, got {array.ndim} dimensions"
            )
        result = cls(array.shape[0], 1)
        result.data[:, 0] = array
        return result

    @classmethod
    def from_grid(cls, grid: Sequence[Sequence[float]]) -> 'Matrix':
        """
        Build a matrix whose rows are the rows of ``grid``.

        The values are copied, so later changes to ``grid`` do not leak into
        the matrix and vice versa.

        Raises:
            ShapeMismatchError: If a row is not a sequence or the rows have
                unequal lengths
        """
        try:
            rows = [list(row) for row in grid]
        except TypeError as e:
            raise ShapeMismatchError(
                f"Expected a sequence of rows, got {grid!r}: {e}"
            ) from e
        lengths = {len(row) for row in rows}
        if len(lengths) > 1:
            raise ShapeMismatchError(
                f"All rows must have the same length, got lengths {sorted(lengths)}"
            )
        columns = lengths.pop() if lengths else 0
        result = cls(len(rows), columns)
        if rows and columns:
            try:
                result.data[:, :] = np.array(rows, dtype=float)
            except (TypeError, ValueError) as e:
                raise ShapeMismatchError(f"Grid contains non-numeric values: {e}") from e
        return result

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'Matrix':
        """Build a matrix from a 2-D numpy array (copied)."""
        array = np.asarray(array, dtype=float)
        if array.ndim != 2:
            raise ShapeMismatchError(
                f"Expected a 2-D array, got {array.ndim} dimensions"
            )
        result = cls(array.shape[0], array.shape[1])
        result.data[:, :] = array
        return result

    def to_flat(self) -> List[float]:
        """All values in row-major order."""
        return [float(value) for value in self.data.flatten()]

    def to_grid(self) -> List[List[float]]:
        """Values as a list of rows."""
        return [[float(value) for value in row] for row in self.data]

    def to_list(self) -> Union[List[float], List[List[float]]]:
        """Like ``to_grid`` except that a single-row matrix degrades to a flat list."""
        if self.rows == 1:
            return self.to_flat()
        return self.to_grid()

    def copy(self) -> 'Matrix':
        return Matrix.from_array(self.data)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.rows, self.columns

    def __getitem__(self, index: Tuple[int, int]) -> float:
        row, column = index
        return float(self.data[row, column])

    def __setitem__(self, index: Tuple[int, int], value: float) -> None:
        row, column = index
        self.data[row, column] = value

    def __eq__(self, other) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self.data, other.data))

    def __repr__(self) -> str:
        return f"Matrix({self.rows}x{self.columns}, {self.to_grid()})"

    # ------------------------------------------------------------------
    # In-place operations
    # ------------------------------------------------------------------

    def randomize(self, lower: float, upper: float) -> 'Matrix':
        """
        Fill the matrix with values drawn uniformly from ``[lower, upper)``.

        When ``lower == upper`` every element becomes exactly ``lower``.

        Raises:
            RangeError: If upper < lower
        """
        if lower is None or upper is None or upper < lower:
            raise RangeError(
                f"Invalid randomization bounds: lower={lower}, upper={upper}"
            )
        if lower == upper:
            self.data.fill(lower)
        else:
            self.data[:, :] = np.random.uniform(lower, upper, size=self.shape)
        return self

    def map_in_place(self, func: MapFunction) -> 'Matrix':
        """Replace every element with ``func(value, row, column)``."""
        self.data = Matrix.mapped(self, func).data
        return self

    def add_in_place(self, other: Operand) -> 'Matrix':
        """Element-wise add a matrix of the same shape, or add a scalar."""
        if isinstance(other, Matrix):
            self._require_same_shape(other, 'addition')
            self.data += other.data
        else:
            self.data += self._require_scalar(other)
        return self

    def multiply_in_place(self, other: Operand) -> 'Matrix':
        """Element-wise multiply by a matrix of the same shape, or by a scalar."""
        if isinstance(other, Matrix):
            self._require_same_shape(other, 'multiplication')
            self.data *= other.data
        else:
            self.data *= self._require_scalar(other)
        return self

    # ------------------------------------------------------------------
    # Non-destructive operations
    # ------------------------------------------------------------------

    @staticmethod
    def mapped(matrix: 'Matrix', func: MapFunction) -> 'Matrix':
        """Return a new matrix holding ``func(value, row, column)`` for every element."""
        result = Matrix(matrix.rows, matrix.columns)
        for row in range(matrix.rows):
            for column in range(matrix.columns):
                result.data[row, column] = func(float(matrix.data[row, column]), row, column)
        return result

    @staticmethod
    def added(matrix: 'Matrix', other: Operand) -> 'Matrix':
        return matrix.copy().add_in_place(other)

    @staticmethod
    def multiplied(matrix: 'Matrix', other: Operand) -> 'Matrix':
        return matrix.copy().multiply_in_place(other)

    @staticmethod
    def subtract(first: 'Matrix', second: 'Matrix') -> 'Matrix':
        """Element-wise ``first - second``."""
        first._require_same_shape(second, 'subtraction')
        return Matrix.from_array(first.data - second.data)

    @staticmethod
    def dot(first: 'Matrix', second: 'Matrix') -> 'Matrix':
        """
        Matrix product.

        Raises:
            ShapeMismatchError: If first.columns != second.rows
        """
        if first.columns != second.rows:
            raise ShapeMismatchError(
                f"Columns of first ({first.rows}x{first.columns}) must match "
                f"rows of second ({second.rows}x{second.columns})"
            )
        return Matrix.from_array(np.dot(first.data, second.data))

    @staticmethod
    def transpose(matrix: 'Matrix') -> 'Matrix':
        return Matrix.from_array(matrix.data.T)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _require_same_shape(self, other: 'Matrix', operation: str) -> None:
        if not isinstance(other, Matrix):
            raise TypeError(f"Element-wise {operation} needs a Matrix, got {type(other).__name__}")
        if self.shape != other.shape:
            raise ShapeMismatchError(
                f"Incompatible matrices for element-wise {operation}: "
                f"{self.rows}x{self.columns} and {other.rows}x{other.columns}"
            )

    @staticmethod
    def _require_scalar(value) -> float:
        if isinstance(value, bool) or not isinstance(value, (Real, np.number)):
            raise TypeError(f"Expected a Matrix or a real number, got {type(value).__name__}")
        return float(value)
