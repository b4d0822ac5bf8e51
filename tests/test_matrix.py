"""
test_matrix.py
~~~~~~~~~~~~~~

Unit tests for the dense matrix engine.
"""

import numpy as np
import pytest

from mlp_toolkit.errors import ConstructionError, RangeError, ShapeMismatchError
from mlp_toolkit.matrix import Matrix


@pytest.fixture
def a():
    return Matrix.from_grid([[1, 2, 3], [4, 5, 6]])


@pytest.fixture
def b():
    return Matrix.from_grid([[7, 8], [9, 10], [11, 12]])


@pytest.mark.unit
class TestConstruction:

    def test_zero_filled(self):
        m = Matrix(2, 3)
        assert m.shape == (2, 3)
        assert m.to_grid() == [[0, 0, 0], [0, 0, 0]]

    def test_empty_dimensions_allowed(self):
        assert Matrix(0, 0).shape == (0, 0)
        assert Matrix(3, 0).to_grid() == [[], [], []]

    @pytest.mark.parametrize("rows, columns", [(-1, 2), (2, -1), (1.5, 2), (None, 1)])
    def test_invalid_dimensions(self, rows, columns):
        with pytest.raises(ConstructionError):
            Matrix(rows, columns)

    def test_from_vector_is_column(self):
        m = Matrix.from_vector([1, 2, 3])
        assert m.shape == (3, 1)
        assert m.to_grid() == [[1], [2], [3]]

    def test_from_vector_rejects_nested(self):
        with pytest.raises(ShapeMismatchError):
            Matrix.from_vector([[1, 2], [3, 4]])

    def test_from_grid(self, a):
        assert a.shape == (2, 3)
        assert a[1, 2] == 6

    def test_from_grid_rejects_ragged_rows(self):
        with pytest.raises(ShapeMismatchError):
            Matrix.from_grid([[1, 2], [3]])

    @pytest.mark.parametrize("grid", [[1, 2, 3], [[1, 2], 3], 5])
    def test_from_grid_rejects_non_sequence_rows(self, grid):
        with pytest.raises(ShapeMismatchError):
            Matrix.from_grid(grid)

    def test_from_grid_copies_input(self):
        grid = [[1, 2], [3, 4]]
        m = Matrix.from_grid(grid)
        grid[0][0] = 99
        assert m[0, 0] == 1
        m.to_grid()[1][1] = 42
        assert m[1, 1] == 4

    def test_to_list_degrades_single_row(self):
        assert Matrix.from_grid([[1, 2, 3]]).to_list() == [1, 2, 3]
        assert Matrix.from_grid([[1], [2]]).to_list() == [[1], [2]]

    def test_to_flat_is_row_major(self, a):
        assert a.to_flat() == [1, 2, 3, 4, 5, 6]


@pytest.mark.unit
class TestRandomize:

    def test_equal_bounds_fill_with_lower(self):
        m = Matrix(4, 5).randomize(1, 1)
        assert np.all(m.data == 1)

    def test_samples_within_bounds(self):
        m = Matrix(100, 100).randomize(-0.5, 2.0)
        assert np.all(m.data >= -0.5)
        assert np.all(m.data <= 2.0)
        # Values are actually spread over the range
        assert m.data.min() < 0 < 1.5 < m.data.max()

    def test_upper_below_lower_raises_and_keeps_values(self):
        m = Matrix.from_grid([[1, 2]])
        with pytest.raises(RangeError):
            m.randomize(1, 0)
        assert m.to_grid() == [[1, 2]]


@pytest.mark.unit
class TestMap:

    def test_map_in_place_passes_position(self, a):
        result = a.map_in_place(lambda value, row, column: value * 10 + row + column)
        assert result is a
        assert a.to_grid() == [[10, 21, 32], [41, 52, 63]]

    def test_mapped_does_not_mutate(self, a):
        result = Matrix.mapped(a, lambda value, row, column: -value)
        assert result.to_grid() == [[-1, -2, -3], [-4, -5, -6]]
        assert a.to_grid() == [[1, 2, 3], [4, 5, 6]]

    def test_failing_map_leaves_matrix_unchanged(self, a):
        def explode(value, row, column):
            if row == 1:
                raise RuntimeError("boom")
            return 0

        with pytest.raises(RuntimeError):
            a.map_in_place(explode)
        assert a.to_grid() == [[1, 2, 3], [4, 5, 6]]


@pytest.mark.unit
class TestArithmetic:

    def test_dot(self, a, b):
        result = Matrix.dot(a, b)
        assert result.shape == (2, 2)
        assert result.to_grid() == [[58, 64], [139, 154]]

    def test_dot_does_not_mutate(self, a, b):
        Matrix.dot(a, b)
        assert a.to_grid() == [[1, 2, 3], [4, 5, 6]]
        assert b.to_grid() == [[7, 8], [9, 10], [11, 12]]

    def test_dot_mismatch_raises(self, a):
        with pytest.raises(ShapeMismatchError):
            Matrix.dot(a, a)
        assert a.to_grid() == [[1, 2, 3], [4, 5, 6]]

    def test_dot_with_identity(self, a):
        eye = Matrix.from_array(np.eye(3))
        assert Matrix.dot(a, eye) == a

    def test_transpose(self, a):
        t = Matrix.transpose(a)
        assert t.shape == (3, 2)
        assert t.to_grid() == [[1, 4], [2, 5], [3, 6]]
        assert a.shape == (2, 3)

    def test_transpose_twice_is_identity(self, a, b):
        assert Matrix.transpose(Matrix.transpose(a)) == a
        product = Matrix.dot(a, b)
        assert Matrix.transpose(product) == Matrix.dot(Matrix.transpose(b), Matrix.transpose(a))

    def test_add_in_place_matrix_and_scalar(self, a):
        a.add_in_place(Matrix.from_grid([[1, 1, 1], [2, 2, 2]])).add_in_place(0.5)
        assert a.to_grid() == [[2.5, 3.5, 4.5], [6.5, 7.5, 8.5]]

    def test_add_shape_mismatch_leaves_operands(self, a, b):
        with pytest.raises(ShapeMismatchError):
            a.add_in_place(b)
        assert a.to_grid() == [[1, 2, 3], [4, 5, 6]]
        assert b.to_grid() == [[7, 8], [9, 10], [11, 12]]

    def test_added_does_not_mutate(self, a):
        result = Matrix.added(a, 1)
        assert result.to_grid() == [[2, 3, 4], [5, 6, 7]]
        assert a.to_grid() == [[1, 2, 3], [4, 5, 6]]

    def test_multiply_in_place(self, a):
        a.multiply_in_place(Matrix.from_grid([[2, 2, 2], [0, 1, -1]])).multiply_in_place(2)
        assert a.to_grid() == [[4, 8, 12], [0, 10, -12]]

    def test_multiplied_does_not_mutate(self, a):
        by_matrix = Matrix.multiplied(a, a)
        by_scalar = Matrix.multiplied(a, 3)
        assert by_matrix.to_grid() == [[1, 4, 9], [16, 25, 36]]
        assert by_scalar.to_grid() == [[3, 6, 9], [12, 15, 18]]
        assert a.to_grid() == [[1, 2, 3], [4, 5, 6]]

    def test_multiply_shape_mismatch(self, a, b):
        with pytest.raises(ShapeMismatchError):
            Matrix.multiplied(a, b)
        with pytest.raises(ShapeMismatchError):
            a.multiply_in_place(b)
        assert a.to_grid() == [[1, 2, 3], [4, 5, 6]]

    def test_multiply_rejects_non_numeric(self, a):
        with pytest.raises(TypeError):
            a.multiply_in_place("2")

    def test_subtract(self, a):
        other = Matrix.from_grid([[1, 1, 1], [1, 1, 1]])
        result = Matrix.subtract(a, other)
        assert result.to_grid() == [[0, 1, 2], [3, 4, 5]]
        assert a.to_grid() == [[1, 2, 3], [4, 5, 6]]
        assert other.to_grid() == [[1, 1, 1], [1, 1, 1]]

    def test_subtract_shape_mismatch(self, a, b):
        with pytest.raises(ShapeMismatchError):
            Matrix.subtract(a, b)


@pytest.mark.unit
def test_copy_is_independent(a):
    c = a.copy()
    c[0, 0] = 100
    assert a[0, 0] == 1
    assert c != a
