"""Numba-compiled kernels for control lattice mapping, fitting and evaluation.

All kernels work on flattened control node arrays: node ``(i_0, ..., i_{ndim-1})``
of a lattice with padded shape ``resolution + 3`` is stored at
``sum(i_d * strides[d])`` (C order). Sparse lattices store the sorted flat
indices of their supported nodes together with the node values.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

import numba as nb
import numpy as np
import numpy.typing as npt

from ._basis_core import _cubic_Bspline_derivative_weights_core, _cubic_Bspline_weights_core

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


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _map_coordinate(x: float, lo: float, hi: float, resolution: int) -> tuple[int, float]:
    """Map a scalar coordinate to a clamped cell index and a local offset.

    Points exactly at ``hi`` land in the last cell with offset 1. Points outside
    ``[lo, hi]`` are clamped to the first or last cell and their offset leaves
    ``[0, 1)``.

    Args:
        x (float): Coordinate in domain space.
        lo (float): Lower bound of the domain.
        hi (float): Upper bound of the domain.
        resolution (int): Number of lattice intervals.

    Returns:
        tuple[int, float]: Cell index in ``[0, resolution - 1]`` and local offset.
    """
    u = (x - lo) / (hi - lo) * resolution
    cell = int(np.floor(u))
    if cell < 0:
        cell = 0
    elif cell > resolution - 1:
        cell = resolution - 1
    return cell, u - cell


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _map_points_core(
    pts: npt.NDArray[np.float64],
    lo: npt.NDArray[np.float64],
    hi: npt.NDArray[np.float64],
    resolution: npt.NDArray[np.int64],
    out_cells: npt.NDArray[np.int64],
    out_offsets: npt.NDArray[np.float64],
) -> None:
    """Map points of shape (n_pts, ndim) to cell indices and local offsets.

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    n_pts, ndim = pts.shape
    for j in range(n_pts):
        for d in range(ndim):
            cell, offset = _map_coordinate(pts[j, d], lo[d], hi[d], resolution[d])
            out_cells[j, d] = cell
            out_offsets[j, d] = offset


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _point_basis(  # noqa: PLR0913
    pt: npt.NDArray[np.float64],
    lo: npt.NDArray[np.float64],
    hi: npt.NDArray[np.float64],
    resolution: npt.NDArray[np.int64],
    strides: npt.NDArray[np.int64],
    weights_1D: npt.NDArray[np.float64],
    out_flat: npt.NDArray[np.int64],
    out_phi: npt.NDArray[np.float64],
) -> None:
    """Compute the flat node indices and tensor-product weights active at a point.

    Args:
        pt (npt.NDArray[np.float64]): Point, shape (ndim,).
        lo (npt.NDArray[np.float64]): Lower corner of the domain.
        hi (npt.NDArray[np.float64]): Upper corner of the domain.
        resolution (npt.NDArray[np.int64]): Lattice intervals per dimension.
        strides (npt.NDArray[np.int64]): Flat strides of the padded lattice.
        weights_1D (npt.NDArray[np.float64]): Scratch array of shape (ndim, 4).
        out_flat (npt.NDArray[np.int64]): Output flat node indices, shape (4**ndim,).
        out_phi (npt.NDArray[np.float64]): Output weights, shape (4**ndim,).
    """
    ndim = pt.shape[0]
    base = 0
    for d in range(ndim):
        cell, offset = _map_coordinate(pt[d], lo[d], hi[d], resolution[d])
        base += cell * strides[d]
        _cubic_Bspline_weights_core(offset, weights_1D[d])

    for comb in range(out_flat.shape[0]):
        rem = comb
        flat = base
        phi = 1.0
        for d in range(ndim - 1, -1, -1):
            shift = rem % 4
            rem //= 4
            flat += shift * strides[d]
            phi *= weights_1D[d, shift]
        out_flat[comb] = flat
        out_phi[comb] = phi


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _accumulate_core(  # noqa: PLR0913
    pts: npt.NDArray[np.float64],
    residuals: npt.NDArray[np.float64],
    weights: npt.NDArray[np.float64],
    lo: npt.NDArray[np.float64],
    hi: npt.NDArray[np.float64],
    resolution: npt.NDArray[np.int64],
    strides: npt.NDArray[np.int64],
    out_numerator: npt.NDArray[np.float64],
    out_denominator: npt.NDArray[np.float64],
) -> None:
    """Accumulate the local least-squares contributions of all samples.

    Each sample spreads its residual ``r`` over the ``4**ndim`` control nodes
    ``k`` of its support. With ``s = sum_k phi_k**2``, the value that alone
    reproduces the sample at node ``k`` is ``phi_k * r / s``, and it enters the
    node average with weight ``w * phi_k**2``::

        numerator[k]   += w * phi_k**2 * (phi_k * r / s)
        denominator[k] += w * phi_k**2

    The accumulators are added to, never reset, so partial sums computed over
    disjoint sample subsets can be merged before the final division.

    Args:
        pts (npt.NDArray[np.float64]): Sample coordinates, shape (n_pts, ndim).
        residuals (npt.NDArray[np.float64]): Residual per sample, shape (n_pts,).
        weights (npt.NDArray[np.float64]): Weight per sample, shape (n_pts,).
        lo (npt.NDArray[np.float64]): Lower corner of the domain.
        hi (npt.NDArray[np.float64]): Upper corner of the domain.
        resolution (npt.NDArray[np.int64]): Lattice intervals per dimension.
        strides (npt.NDArray[np.int64]): Flat strides of the padded lattice.
        out_numerator (npt.NDArray[np.float64]): Flat numerator accumulator.
        out_denominator (npt.NDArray[np.float64]): Flat denominator accumulator.

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    n_pts, ndim = pts.shape
    n_comb = 1
    for _ in range(ndim):
        n_comb *= 4
    weights_1D = np.empty((ndim, 4), dtype=np.float64)
    flat = np.empty(n_comb, dtype=np.int64)
    phi = np.empty(n_comb, dtype=np.float64)

    for j in range(n_pts):
        w = weights[j]
        if w == 0.0:
            continue

        _point_basis(pts[j], lo, hi, resolution, strides, weights_1D, flat, phi)

        sum_phi2 = 0.0
        for comb in range(n_comb):
            sum_phi2 += phi[comb] * phi[comb]
        if sum_phi2 == 0.0:
            continue

        scale = residuals[j] / sum_phi2
        for comb in range(n_comb):
            phi2 = w * phi[comb] * phi[comb]
            out_numerator[flat[comb]] += phi2 * phi[comb] * scale
            out_denominator[flat[comb]] += phi2


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _node_value(
    node_ids: npt.NDArray[np.int64],
    node_values: npt.NDArray[np.float64],
    dense: bool,
    flat: int,
) -> float:
    """Look up a control node value in dense or sparse storage (0 when absent)."""
    if dense:
        return node_values[flat]
    pos = np.searchsorted(node_ids, flat)
    if pos < node_ids.shape[0] and node_ids[pos] == flat:
        return node_values[pos]
    return 0.0


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _evaluate_core(  # noqa: PLR0913
    pts: npt.NDArray[np.float64],
    lo: npt.NDArray[np.float64],
    hi: npt.NDArray[np.float64],
    resolution: npt.NDArray[np.int64],
    strides: npt.NDArray[np.int64],
    node_ids: npt.NDArray[np.int64],
    node_values: npt.NDArray[np.float64],
    dense: bool,
    out: npt.NDArray[np.float64],
) -> None:
    """Evaluate a control lattice at points and add the result to ``out``.

    Args:
        pts (npt.NDArray[np.float64]): Query points, shape (n_pts, ndim).
        lo (npt.NDArray[np.float64]): Lower corner of the domain.
        hi (npt.NDArray[np.float64]): Upper corner of the domain.
        resolution (npt.NDArray[np.int64]): Lattice intervals per dimension.
        strides (npt.NDArray[np.int64]): Flat strides of the padded lattice.
        node_ids (npt.NDArray[np.int64]): Sorted flat indices of the stored nodes
            (ignored for dense storage).
        node_values (npt.NDArray[np.float64]): Stored node values.
        dense (bool): Whether ``node_values`` holds every node of the lattice.
        out (npt.NDArray[np.float64]): Accumulator, shape (n_pts,).

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    n_pts, ndim = pts.shape
    n_comb = 1
    for _ in range(ndim):
        n_comb *= 4
    weights_1D = np.empty((ndim, 4), dtype=np.float64)
    flat = np.empty(n_comb, dtype=np.int64)
    phi = np.empty(n_comb, dtype=np.float64)

    for j in range(n_pts):
        _point_basis(pts[j], lo, hi, resolution, strides, weights_1D, flat, phi)
        acc = 0.0
        for comb in range(n_comb):
            acc += phi[comb] * _node_value(node_ids, node_values, dense, flat[comb])
        out[j] += acc


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _gradient_core(  # noqa: PLR0913
    pts: npt.NDArray[np.float64],
    lo: npt.NDArray[np.float64],
    hi: npt.NDArray[np.float64],
    resolution: npt.NDArray[np.int64],
    strides: npt.NDArray[np.int64],
    node_ids: npt.NDArray[np.int64],
    node_values: npt.NDArray[np.float64],
    dense: bool,
    out: npt.NDArray[np.float64],
) -> None:
    """Evaluate the gradient of a control lattice at points and add it to ``out``.

    The derivative along dimension ``d`` replaces the 1D blending weights of
    that dimension by their derivatives, scaled by ``resolution[d] / (hi[d] - lo[d])``
    to convert from cell units to domain units.

    Args:
        pts (npt.NDArray[np.float64]): Query points, shape (n_pts, ndim).
        lo (npt.NDArray[np.float64]): Lower corner of the domain.
        hi (npt.NDArray[np.float64]): Upper corner of the domain.
        resolution (npt.NDArray[np.int64]): Lattice intervals per dimension.
        strides (npt.NDArray[np.int64]): Flat strides of the padded lattice.
        node_ids (npt.NDArray[np.int64]): Sorted flat indices of the stored nodes
            (ignored for dense storage).
        node_values (npt.NDArray[np.float64]): Stored node values.
        dense (bool): Whether ``node_values`` holds every node of the lattice.
        out (npt.NDArray[np.float64]): Accumulator, shape (n_pts, ndim).

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    n_pts, ndim = pts.shape
    n_comb = 1
    for _ in range(ndim):
        n_comb *= 4
    weights_1D = np.empty((ndim, 4), dtype=np.float64)
    derivs_1D = np.empty((ndim, 4), dtype=np.float64)
    scales = np.empty(ndim, dtype=np.float64)

    for j in range(n_pts):
        base = 0
        for d in range(ndim):
            cell, offset = _map_coordinate(pts[j, d], lo[d], hi[d], resolution[d])
            base += cell * strides[d]
            _cubic_Bspline_weights_core(offset, weights_1D[d])
            _cubic_Bspline_derivative_weights_core(offset, derivs_1D[d])
            scales[d] = resolution[d] / (hi[d] - lo[d])

        for comb in range(n_comb):
            rem = comb
            flat = base
            for d in range(ndim - 1, -1, -1):
                flat += (rem % 4) * strides[d]
                rem //= 4
            value = _node_value(node_ids, node_values, dense, flat)
            if value == 0.0:
                continue

            for dd in range(ndim):
                rem = comb
                phi = 1.0
                for d in range(ndim - 1, -1, -1):
                    shift = rem % 4
                    rem //= 4
                    if d == dd:
                        phi *= derivs_1D[d, shift]
                    else:
                        phi *= weights_1D[d, shift]
                out[j, dd] += phi * scales[dd] * value


def _warmup_numba_functions() -> None:
    """Precompile numba functions with float64 signatures for faster first call."""
    pts_dummy = np.array([[0.25, 0.75]], dtype=np.float64)
    lo_dummy = np.zeros(2, dtype=np.float64)
    hi_dummy = np.ones(2, dtype=np.float64)
    resolution_dummy = np.array([1, 1], dtype=np.int64)
    strides_dummy = np.array([4, 1], dtype=np.int64)
    cells_dummy = np.empty((1, 2), dtype=np.int64)
    offsets_dummy = np.empty((1, 2), dtype=np.float64)
    numerator_dummy = np.zeros(16, dtype=np.float64)
    denominator_dummy = np.zeros(16, dtype=np.float64)
    ids_dummy = np.arange(16, dtype=np.int64)
    out_dummy = np.zeros(1, dtype=np.float64)
    grad_dummy = np.zeros((1, 2), dtype=np.float64)

    _map_points_core(
        pts_dummy, lo_dummy, hi_dummy, resolution_dummy, cells_dummy, offsets_dummy
    )
    _accumulate_core(
        pts_dummy,
        np.ones(1, dtype=np.float64),
        np.ones(1, dtype=np.float64),
        lo_dummy,
        hi_dummy,
        resolution_dummy,
        strides_dummy,
        numerator_dummy,
        denominator_dummy,
    )
    for dense in (True, False):
        _evaluate_core(
            pts_dummy,
            lo_dummy,
            hi_dummy,
            resolution_dummy,
            strides_dummy,
            ids_dummy,
            numerator_dummy,
            dense,
            out_dummy,
        )
        _gradient_core(
            pts_dummy,
            lo_dummy,
            hi_dummy,
            resolution_dummy,
            strides_dummy,
            ids_dummy,
            numerator_dummy,
            dense,
            grad_dummy,
        )


# Precompile numba functions on module import (skip during type checking)
if not TYPE_CHECKING:
    _warmup_numba_functions()
