"""Uniform cubic B-spline basis evaluation.

The basis of a control lattice cell is made of the four cubic B-spline
blending functions active over that cell. Multidimensional bases are tensor
products of the 1D ones.
"""

from __future__ import annotations

import numpy as np
import numpy.typing as npt

from ._basis_core import (
    _tabulate_cubic_Bspline_basis_1D_core,
    _tabulate_tensor_cubic_Bspline_basis_core,
)
from ._basis_utils import (
    _compute_final_output_shape_1D,
    _normalize_offsets_1D,
    _validate_out_array,
)
from .errors import ShapeMismatchError

N_CUBIC_BASIS = 4


def _tabulate_cubic_Bspline_1D_impl(
    t: npt.ArrayLike,
    derivative: bool,
    out: npt.NDArray[np.float64] | None,
) -> npt.NDArray[np.float64]:
    input_shape = np.shape(t)
    t_flat = _normalize_offsets_1D(t)
    expected_shape = _compute_final_output_shape_1D(input_shape, N_CUBIC_BASIS)

    if out is None:
        out = np.empty(expected_shape, dtype=np.float64)
    else:
        _validate_out_array(out, expected_shape)

    _tabulate_cubic_Bspline_basis_1D_core(
        t_flat, derivative, out.reshape(t_flat.size, N_CUBIC_BASIS)
    )
    return out


def tabulate_cubic_Bspline_basis_1D(
    t: npt.ArrayLike, out: npt.NDArray[np.float64] | None = None
) -> npt.NDArray[np.float64]:
    """Evaluate the four cubic B-spline blending functions at local offsets.

    Args:
        t (npt.ArrayLike): Local offsets inside a lattice cell. Can be a scalar,
            list, or numpy array. Offsets outside [0, 1] are extrapolated.
        out (npt.NDArray[np.float64] | None): Optional output array where the
            result will be stored. Must have shape ``(*t.shape, 4)``, dtype
            float64 and be C-contiguous. Defaults to None.

    Returns:
        npt.NDArray[np.float64]: Blending function values with shape ``(*t.shape, 4)``.
        If `out` was provided, returns the same array.

    Raises:
        ShapeMismatchError: If `out` is provided and has incorrect shape.

    Example:
        >>> tabulate_cubic_Bspline_basis_1D([0.0, 0.5, 1.0])
        array([[0.16666667, 0.66666667, 0.16666667, 0.        ],
               [0.02083333, 0.47916667, 0.47916667, 0.02083333],
               [0.        , 0.16666667, 0.66666667, 0.16666667]])
    """
    return _tabulate_cubic_Bspline_1D_impl(t, False, out)


def tabulate_cubic_Bspline_basis_derivative_1D(
    t: npt.ArrayLike, out: npt.NDArray[np.float64] | None = None
) -> npt.NDArray[np.float64]:
    """Evaluate the first derivatives of the cubic blending functions at local offsets.

    Derivatives are taken with respect to the local offset ``t`` (cell units).

    Args:
        t (npt.ArrayLike): Local offsets inside a lattice cell.
        out (npt.NDArray[np.float64] | None): Optional output array of shape
            ``(*t.shape, 4)``. Defaults to None.

    Returns:
        npt.NDArray[np.float64]: Derivative values with shape ``(*t.shape, 4)``.
    """
    return _tabulate_cubic_Bspline_1D_impl(t, True, out)


def tabulate_cubic_Bspline_basis(
    cells: npt.ArrayLike, offsets: npt.ArrayLike
) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.float64]]:
    """Evaluate the tensor-product cubic basis at points in cell coordinates.

    For each point and each of the ``4**ndim`` combinations of 1D blending
    functions, returns the index tuple of the control node the combination
    applies to (in the padded lattice, where cell ``c`` is supported by nodes
    ``c, ..., c + 3``) and the combination weight. Combinations are ordered in
    C order (last dimension fastest).

    Args:
        cells (npt.ArrayLike): Integer cell indices of shape (n_pts, ndim).
        offsets (npt.ArrayLike): Local offsets of shape (n_pts, ndim).

    Returns:
        tuple[npt.NDArray[np.int64], npt.NDArray[np.float64]]: Node indices of
        shape (n_pts, 4**ndim, ndim) and weights of shape (n_pts, 4**ndim).

    Raises:
        ShapeMismatchError: If `cells` and `offsets` are not 2D arrays of the
            same shape with at least one column.
    """
    cells_arr = np.ascontiguousarray(np.asarray(cells, dtype=np.int64))
    offsets_arr = np.ascontiguousarray(np.asarray(offsets, dtype=np.float64))

    if cells_arr.ndim != 2 or cells_arr.shape != offsets_arr.shape:  # noqa: PLR2004
        raise ShapeMismatchError(
            "cells and offsets must be 2D arrays of the same shape, got "
            f"{cells_arr.shape} and {offsets_arr.shape}"
        )
    n_pts, ndim = cells_arr.shape
    if ndim < 1:
        raise ShapeMismatchError("The dimension of the points must be at least 1.")

    n_comb = N_CUBIC_BASIS**ndim
    nodes = np.empty((n_pts, n_comb, ndim), dtype=np.int64)
    weights = np.empty((n_pts, n_comb), dtype=np.float64)
    _tabulate_tensor_cubic_Bspline_basis_core(cells_arr, offsets_arr, nodes, weights)
    return nodes, weights


__all__ = [
    "N_CUBIC_BASIS",
    "tabulate_cubic_Bspline_basis",
    "tabulate_cubic_Bspline_basis_1D",
    "tabulate_cubic_Bspline_basis_derivative_1D",
]
