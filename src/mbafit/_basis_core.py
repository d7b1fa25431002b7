"""Core Numba-compiled implementations of the uniform cubic B-spline basis.

This module provides low-level, Numba-accelerated functions for evaluating the
four cubic B-spline blending functions active over a unit lattice cell, their
first derivatives, and their tensor product over several dimensions.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

import numba as nb
import numpy as np
import numpy.typing as npt

F = TypeVar("F", bound=Callable[..., Any])

if TYPE_CHECKING:
    # During type-checking, make the decorator a no-op that preserves types.
    def nb_jit(*args: object, **kwargs: object) -> Callable[[F], F]:
        def decorator(func: F) -> F:
            return func

        return decorator
else:
    # At runtime, use the real Numba decorator.
    nb_jit = nb.jit  # type: ignore[attr-defined]


ONE_SIXTH = 1.0 / 6.0


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _cubic_Bspline_weights_core(t: float, out: npt.NDArray[np.float64]) -> None:
    """Evaluate the four cubic B-spline blending functions at the local offset t.

    The blending functions are::

        b0(t) = (1 - t)^3 / 6
        b1(t) = (3 t^3 - 6 t^2 + 4) / 6
        b2(t) = (-3 t^3 + 3 t^2 + 3 t + 1) / 6
        b3(t) = t^3 / 6

    They are non-negative and sum to one for t in [0, 1]. Values of t outside
    that range are evaluated with the same polynomials (extrapolation).

    Args:
        t (float): Local offset inside the lattice cell.
        out (npt.NDArray[np.float64]): Output array of shape (4,).
    """
    t2 = t * t
    t3 = t2 * t
    one_minus_t = 1.0 - t

    out[0] = one_minus_t * one_minus_t * one_minus_t * ONE_SIXTH
    out[1] = (3.0 * t3 - 6.0 * t2 + 4.0) * ONE_SIXTH
    out[2] = (-3.0 * t3 + 3.0 * t2 + 3.0 * t + 1.0) * ONE_SIXTH
    out[3] = t3 * ONE_SIXTH


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _cubic_Bspline_derivative_weights_core(t: float, out: npt.NDArray[np.float64]) -> None:
    """Evaluate the first derivatives (with respect to t) of the cubic blending functions.

    Args:
        t (float): Local offset inside the lattice cell.
        out (npt.NDArray[np.float64]): Output array of shape (4,).
    """
    t2 = t * t
    one_minus_t = 1.0 - t

    out[0] = -0.5 * one_minus_t * one_minus_t
    out[1] = 1.5 * t2 - 2.0 * t
    out[2] = -1.5 * t2 + t + 0.5
    out[3] = 0.5 * t2


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _tabulate_cubic_Bspline_basis_1D_core(
    t: npt.NDArray[np.float64],
    derivative: bool,
    out: npt.NDArray[np.float64],
) -> None:
    """Tabulate the cubic blending functions (or their derivatives) at many offsets.

    Args:
        t (npt.NDArray[np.float64]): 1D array of local offsets.
        derivative (bool): If True, tabulate first derivatives instead of values.
        out (npt.NDArray[np.float64]): Output array of shape (len(t), 4).
            No validation performed inside this numba-compiled function.
    """
    for j in range(t.shape[0]):
        if derivative:
            _cubic_Bspline_derivative_weights_core(t[j], out[j])
        else:
            _cubic_Bspline_weights_core(t[j], out[j])


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _tabulate_tensor_cubic_Bspline_basis_core(
    cells: npt.NDArray[np.int64],
    offsets: npt.NDArray[np.float64],
    out_nodes: npt.NDArray[np.int64],
    out_weights: npt.NDArray[np.float64],
) -> None:
    """Tabulate the tensor-product cubic basis for points given in cell coordinates.

    For every point and every one of the ``4**ndim`` combinations of 1D blending
    functions, stores the (padded) control node index tuple and the product of
    the 1D weights. Combinations are enumerated in C order: the last dimension
    varies fastest.

    Args:
        cells (npt.NDArray[np.int64]): Cell indices, shape (n_pts, ndim).
        offsets (npt.NDArray[np.float64]): Local offsets, shape (n_pts, ndim).
        out_nodes (npt.NDArray[np.int64]): Output node indices,
            shape (n_pts, 4**ndim, ndim).
        out_weights (npt.NDArray[np.float64]): Output weights, shape (n_pts, 4**ndim).

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    n_pts, ndim = cells.shape
    n_comb = 1
    for _ in range(ndim):
        n_comb *= 4
    weights_1D = np.empty((ndim, 4), dtype=np.float64)

    for j in range(n_pts):
        for d in range(ndim):
            _cubic_Bspline_weights_core(offsets[j, d], weights_1D[d])

        for comb in range(n_comb):
            rem = comb
            weight = 1.0
            for d in range(ndim - 1, -1, -1):
                shift = rem % 4
                rem //= 4
                out_nodes[j, comb, d] = cells[j, d] + shift
                weight *= weights_1D[d, shift]
            out_weights[j, comb] = weight


def _warmup_numba_functions() -> None:
    """Precompile numba functions with float64 signatures for faster first call."""
    t_dummy = np.array([0.0, 0.5, 1.0], dtype=np.float64)
    out_dummy = np.empty((3, 4), dtype=np.float64)
    _tabulate_cubic_Bspline_basis_1D_core(t_dummy, False, out_dummy)
    _tabulate_cubic_Bspline_basis_1D_core(t_dummy, True, out_dummy)

    cells_dummy = np.zeros((1, 2), dtype=np.int64)
    offsets_dummy = np.full((1, 2), 0.5, dtype=np.float64)
    nodes_dummy = np.empty((1, 16, 2), dtype=np.int64)
    weights_dummy = np.empty((1, 16), dtype=np.float64)
    _tabulate_tensor_cubic_Bspline_basis_core(
        cells_dummy, offsets_dummy, nodes_dummy, weights_dummy
    )


# Precompile numba functions on module import (skip during type checking)
if not TYPE_CHECKING:
    _warmup_numba_functions()
