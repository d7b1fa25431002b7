"""Tests for the uniform cubic B-spline basis."""

from __future__ import annotations

import numpy as np
import numpy.testing as nptest
import pytest
from scipy.interpolate import BSpline

from mbafit.basis import (
    tabulate_cubic_Bspline_basis,
    tabulate_cubic_Bspline_basis_1D,
    tabulate_cubic_Bspline_basis_derivative_1D,
)
from mbafit.errors import ShapeMismatchError

TOL: float = 1e-12


class TestCubicBspline1D:
    def test_doc_example(self) -> None:
        res = tabulate_cubic_Bspline_basis_1D([0.0, 0.5, 1.0])
        exp = np.array(
            [
                [1.0, 4.0, 1.0, 0.0],
                [0.125, 2.875, 2.875, 0.125],
                [0.0, 1.0, 4.0, 1.0],
            ]
        ) / 6.0
        nptest.assert_allclose(res, exp, rtol=TOL, atol=TOL)

    def test_matches_scipy_cardinal_Bspline(self) -> None:
        # b_k(t) is the cardinal cubic B-spline on knots 0..4 evaluated at t + 3 - k.
        cardinal = BSpline.basis_element(np.arange(5.0), extrapolate=False)
        t = np.linspace(0.0, 0.99, 34)
        res = tabulate_cubic_Bspline_basis_1D(t)
        for k in range(4):
            nptest.assert_allclose(res[:, k], cardinal(t + 3.0 - k), rtol=1e-10, atol=TOL)

    @pytest.mark.parametrize("t", [np.linspace(0.0, 1.0, 21), np.array([-2.5, -0.3, 1.7, 4.0])])
    def test_partition_of_unity(self, t: np.ndarray) -> None:
        sums = np.sum(tabulate_cubic_Bspline_basis_1D(t), axis=-1)
        nptest.assert_allclose(sums, 1.0, rtol=TOL)

    def test_nonnegativity_on_cell(self) -> None:
        res = tabulate_cubic_Bspline_basis_1D(np.linspace(0.0, 1.0, 51))
        assert np.all(res >= 0.0)

    def test_shape_preservation(self) -> None:
        res = tabulate_cubic_Bspline_basis_1D([[0.0, 0.5], [0.25, 0.75]])
        assert res.shape == (2, 2, 4)
        assert tabulate_cubic_Bspline_basis_1D(0.5).shape == (4,)

    def test_out_array(self) -> None:
        out = np.empty((3, 4))
        res = tabulate_cubic_Bspline_basis_1D([0.0, 0.5, 1.0], out=out)
        assert res is out
        nptest.assert_allclose(out.sum(axis=-1), 1.0)

    def test_out_array_wrong_shape_raises(self) -> None:
        with pytest.raises(ShapeMismatchError, match="expected shape"):
            tabulate_cubic_Bspline_basis_1D([0.0, 0.5], out=np.empty((3, 4)))

    def test_out_array_wrong_dtype_raises(self) -> None:
        with pytest.raises(ValueError, match="dtype"):
            tabulate_cubic_Bspline_basis_1D([0.0, 0.5], out=np.empty((2, 4), dtype=np.float32))


class TestCubicBsplineDerivative1D:
    def test_derivatives_sum_to_zero(self) -> None:
        res = tabulate_cubic_Bspline_basis_derivative_1D(np.linspace(-1.0, 2.0, 31))
        nptest.assert_allclose(res.sum(axis=-1), 0.0, atol=TOL)

    def test_matches_finite_differences(self) -> None:
        t = np.linspace(0.05, 0.95, 19)
        eps = 1e-6
        fd = (
            tabulate_cubic_Bspline_basis_1D(t + eps) - tabulate_cubic_Bspline_basis_1D(t - eps)
        ) / (2.0 * eps)
        nptest.assert_allclose(tabulate_cubic_Bspline_basis_derivative_1D(t), fd, atol=1e-8)

    def test_endpoint_values(self) -> None:
        res = tabulate_cubic_Bspline_basis_derivative_1D([0.0, 1.0])
        nptest.assert_allclose(res[0], [-0.5, 0.0, 0.5, 0.0], atol=TOL)
        nptest.assert_allclose(res[1], [0.0, -0.5, 0.0, 0.5], atol=TOL)


class TestTensorCubicBspline:
    def test_weights_are_outer_product(self) -> None:
        nodes, weights = tabulate_cubic_Bspline_basis([[2, 5]], [[0.5, 0.25]])
        assert nodes.shape == (1, 16, 2)
        assert weights.shape == (1, 16)

        b_x = tabulate_cubic_Bspline_basis_1D(0.5)
        b_y = tabulate_cubic_Bspline_basis_1D(0.25)
        nptest.assert_allclose(weights[0].reshape(4, 4), np.outer(b_x, b_y), rtol=TOL)

        # C ordering: last dimension varies fastest.
        expected_nodes = np.array([[2 + i, 5 + j] for i in range(4) for j in range(4)])
        nptest.assert_array_equal(nodes[0], expected_nodes)

    @pytest.mark.parametrize("ndim", [1, 2, 3])
    def test_partition_of_unity(self, ndim: int, rng: np.random.Generator) -> None:
        cells = rng.integers(0, 10, size=(7, ndim))
        offsets = rng.random((7, ndim))
        nodes, weights = tabulate_cubic_Bspline_basis(cells, offsets)
        assert nodes.shape == (7, 4**ndim, ndim)
        nptest.assert_allclose(weights.sum(axis=1), 1.0, rtol=TOL)
        assert np.all(nodes >= cells[:, None, :])
        assert np.all(nodes <= cells[:, None, :] + 3)

    def test_shape_mismatch_raises(self) -> None:
        with pytest.raises(ShapeMismatchError):
            tabulate_cubic_Bspline_basis([[0, 0]], [[0.5, 0.5, 0.5]])
        with pytest.raises(ShapeMismatchError):
            tabulate_cubic_Bspline_basis([0, 0], [0.5, 0.5])
