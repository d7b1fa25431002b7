"""Control lattices: one level of a multilevel B-spline approximation.

A control lattice of resolution ``r`` (intervals per dimension) over a
bounding box holds ``r + 3`` control nodes per dimension. Node ``i`` along a
dimension sits at knot position ``i - 1``, so the four nodes supporting cell
``c`` are ``c, ..., c + 3``.
"""

from __future__ import annotations

import numpy as np
import numpy.typing as npt

from ._basis_utils import _compute_strides, _freeze, _normalize_points
from ._lattice_impl import _accumulate_core, _evaluate_core, _gradient_core
from .config import StorageKind
from .domain import BoundingBox, validate_resolution
from .errors import InvalidConfigError, InvalidSampleError, ShapeMismatchError

LATTICE_PADDING = 3

_EMPTY_IDS = _freeze(np.empty(0, dtype=np.int64))


class ControlLattice:
    """A regular grid of scalar control values, stored densely."""

    def __init__(
        self,
        box: BoundingBox,
        resolution: npt.ArrayLike,
        values: npt.ArrayLike,
        fill_ratio: float | None = None,
    ) -> None:
        """Initialize a dense control lattice.

        Args:
            box (BoundingBox): Domain of the lattice.
            resolution (npt.ArrayLike): Number of intervals per dimension.
            values (npt.ArrayLike): Control node values of shape ``resolution + 3``.
                The array is copied and frozen.
            fill_ratio (float | None): Fraction of nodes that received data when
                the lattice was fitted. If None, the fraction of nonzero nodes
                is used.

        Raises:
            ShapeMismatchError: If `values` does not have shape ``resolution + 3``.
        """
        self._box = box
        self._resolution = validate_resolution(resolution, box.ndim)
        self._shape = tuple(int(n) + LATTICE_PADDING for n in self._resolution)
        self._strides = _freeze(_compute_strides(self._shape))

        values_arr = np.asarray(values, dtype=np.float64)
        if values_arr.shape != self._shape:
            raise ShapeMismatchError(
                f"Control values have shape {values_arr.shape}, but expected shape {self._shape}"
            )
        self._values = _freeze(np.array(values_arr, order="C"))
        self._flat_values = self._values.reshape(-1)

        if fill_ratio is None:
            fill_ratio = float(np.count_nonzero(self._values)) / self.num_nodes
        self._fill_ratio = float(fill_ratio)

    @property
    def ndim(self) -> int:
        """Number of dimensions of the lattice."""
        return self._box.ndim

    @property
    def box(self) -> BoundingBox:
        """Domain of the lattice."""
        return self._box

    @property
    def resolution(self) -> tuple[int, ...]:
        """Number of intervals per dimension."""
        return tuple(int(n) for n in self._resolution)

    @property
    def shape(self) -> tuple[int, ...]:
        """Number of control nodes per dimension (``resolution + 3``)."""
        return self._shape

    @property
    def num_nodes(self) -> int:
        """Total number of control nodes."""
        return int(np.prod(self._shape))

    @property
    def fill_ratio(self) -> float:
        """Fraction of control nodes supported by at least one sample."""
        return self._fill_ratio

    @property
    def storage(self) -> StorageKind:
        """Storage layout of the lattice."""
        return StorageKind.DENSE

    @property
    def num_stored(self) -> int:
        """Number of node values held in memory."""
        return self.num_nodes

    @property
    def values(self) -> npt.NDArray[np.float64]:
        """Control node values as a dense read-only array of shape ``resolution + 3``."""
        return self._values

    def _storage_arrays(self) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.float64], bool]:
        return _EMPTY_IDS, self._flat_values, True

    def _add_to(self, pts: npt.NDArray[np.float64], out: npt.NDArray[np.float64]) -> None:
        """Add the lattice values at (n_pts, ndim) points to ``out`` (no validation)."""
        node_ids, node_values, dense = self._storage_arrays()
        _evaluate_core(
            pts,
            self._box.lo,
            self._box.hi,
            self._resolution,
            self._strides,
            node_ids,
            node_values,
            dense,
            out,
        )

    def _add_gradient_to(self, pts: npt.NDArray[np.float64], out: npt.NDArray[np.float64]) -> None:
        """Add the lattice gradients at (n_pts, ndim) points to ``out`` (no validation)."""
        node_ids, node_values, dense = self._storage_arrays()
        _gradient_core(
            pts,
            self._box.lo,
            self._box.hi,
            self._resolution,
            self._strides,
            node_ids,
            node_values,
            dense,
            out,
        )

    def apply(self, points: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Evaluate the lattice at points.

        Args:
            points (npt.ArrayLike): Points of shape ``(..., ndim)``. Points outside
                the bounding box are extrapolated.

        Returns:
            npt.NDArray[np.float64]: Values with the leading shape of `points`.

        Raises:
            ShapeMismatchError: If the trailing axis of `points` is not ``ndim``.
        """
        pts, leading_shape = _normalize_points(points, self.ndim)
        out = np.zeros(pts.shape[0], dtype=np.float64)
        self._add_to(pts, out)
        return out.reshape(leading_shape)

    __call__ = apply

    def gradient(self, points: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Evaluate the gradient of the lattice at points.

        Args:
            points (npt.ArrayLike): Points of shape ``(..., ndim)``.

        Returns:
            npt.NDArray[np.float64]: Gradients of shape ``(..., ndim)`` in domain units.

        Raises:
            ShapeMismatchError: If the trailing axis of `points` is not ``ndim``.
        """
        pts, leading_shape = _normalize_points(points, self.ndim)
        out = np.zeros(pts.shape, dtype=np.float64)
        self._add_gradient_to(pts, out)
        return out.reshape(*leading_shape, self.ndim)

    def to_dense(self) -> ControlLattice:
        """Return a densely stored lattice with the same values."""
        return self

    def to_sparse(self) -> SparseControlLattice:
        """Return a sparsely stored lattice holding the nonzero node values."""
        node_ids = np.flatnonzero(self._flat_values)
        return SparseControlLattice(
            self._box,
            self._resolution,
            node_ids,
            self._flat_values[node_ids],
            fill_ratio=self._fill_ratio,
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(resolution={self.resolution}, "
            f"storage={self.storage.value}, fill_ratio={self.fill_ratio:.3f})"
        )


class SparseControlLattice(ControlLattice):
    """A control lattice that stores only its supported control nodes.

    Nodes that are not stored evaluate to zero.
    """

    def __init__(  # noqa: PLR0913
        self,
        box: BoundingBox,
        resolution: npt.ArrayLike,
        node_ids: npt.ArrayLike,
        node_values: npt.ArrayLike,
        fill_ratio: float | None = None,
    ) -> None:
        """Initialize a sparse control lattice.

        Args:
            box (BoundingBox): Domain of the lattice.
            resolution (npt.ArrayLike): Number of intervals per dimension.
            node_ids (npt.ArrayLike): Flat (C-order) indices of the stored nodes in
                the padded lattice. Must be unique.
            node_values (npt.ArrayLike): Values of the stored nodes.
            fill_ratio (float | None): Fraction of nodes that received data when
                the lattice was fitted. If None, the fraction of stored nodes is used.

        Raises:
            ShapeMismatchError: If `node_ids` and `node_values` are not vectors of the
                same length, or an index lies outside the lattice.
        """
        self._box = box
        self._resolution = validate_resolution(resolution, box.ndim)
        self._shape = tuple(int(n) + LATTICE_PADDING for n in self._resolution)
        self._strides = _freeze(_compute_strides(self._shape))

        ids = np.asarray(node_ids, dtype=np.int64)
        vals = np.asarray(node_values, dtype=np.float64)
        if ids.ndim != 1 or vals.shape != ids.shape:
            raise ShapeMismatchError(
                f"node_ids and node_values must be vectors of the same length, "
                f"got shapes {ids.shape} and {vals.shape}"
            )
        if ids.size > 0 and (ids.min() < 0 or ids.max() >= self.num_nodes):
            raise ShapeMismatchError(f"node_ids must lie in [0, {self.num_nodes})")

        order = np.argsort(ids, kind="stable")
        self._node_ids = _freeze(np.ascontiguousarray(ids[order]))
        self._node_values = _freeze(np.ascontiguousarray(vals[order]))
        if np.any(np.diff(self._node_ids) == 0):
            raise ShapeMismatchError("node_ids must be unique")

        if fill_ratio is None:
            fill_ratio = float(self._node_ids.size) / self.num_nodes
        self._fill_ratio = float(fill_ratio)

    @property
    def storage(self) -> StorageKind:
        """Storage layout of the lattice."""
        return StorageKind.SPARSE

    @property
    def num_stored(self) -> int:
        """Number of node values held in memory."""
        return int(self._node_ids.size)

    @property
    def node_ids(self) -> npt.NDArray[np.int64]:
        """Sorted flat indices of the stored nodes."""
        return self._node_ids

    @property
    def node_values(self) -> npt.NDArray[np.float64]:
        """Values of the stored nodes, aligned with :attr:`node_ids`."""
        return self._node_values

    @property
    def values(self) -> npt.NDArray[np.float64]:
        """Control node values expanded to a dense array of shape ``resolution + 3``."""
        dense = np.zeros(self.num_nodes, dtype=np.float64)
        dense[self._node_ids] = self._node_values
        return _freeze(dense.reshape(self._shape))

    def _storage_arrays(self) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.float64], bool]:
        return self._node_ids, self._node_values, False

    def to_dense(self) -> ControlLattice:
        """Return a densely stored lattice with the same values."""
        return ControlLattice(self._box, self._resolution, self.values, fill_ratio=self._fill_ratio)

    def to_sparse(self) -> SparseControlLattice:
        """Return a sparsely stored lattice with the same values."""
        return self


def _validate_samples(
    ndim: int,
    points: npt.ArrayLike,
    values: npt.ArrayLike,
    weights: npt.ArrayLike | None,
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Validate a sample set and normalize it to contiguous float64 arrays.

    Raises:
        ShapeMismatchError: If `points` is not an ``n x ndim`` matrix or `values`
            and `weights` are not vectors of length ``n``.
        InvalidSampleError: If the set is empty, holds non-finite entries or
            negative weights, or all weights are zero.
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[1] != ndim:  # noqa: PLR2004
        raise ShapeMismatchError(f"coo should be a n x {ndim} matrix, got shape {pts.shape}")
    n_pts = pts.shape[0]

    vals = np.asarray(values, dtype=np.float64)
    if vals.ndim != 1 or vals.shape[0] != n_pts:
        raise ShapeMismatchError(
            f"coo and val dimensions disagree: {n_pts} points and values of shape {vals.shape}"
        )

    if weights is None:
        wts = np.ones(n_pts, dtype=np.float64)
    else:
        wts = np.asarray(weights, dtype=np.float64)
        if wts.ndim != 1 or wts.shape[0] != n_pts:
            raise ShapeMismatchError(
                f"coo and weights dimensions disagree: {n_pts} points and weights "
                f"of shape {wts.shape}"
            )

    if n_pts == 0:
        raise InvalidSampleError("At least one sample is required")
    if not np.all(np.isfinite(pts)):
        raise InvalidSampleError("Sample coordinates must be finite")
    if not np.all(np.isfinite(vals)):
        raise InvalidSampleError("Sample values must be finite")
    if not np.all(np.isfinite(wts)) or np.any(wts < 0.0):
        raise InvalidSampleError("Sample weights must be finite and non-negative")
    if not np.any(wts > 0.0):
        raise InvalidSampleError("At least one sample weight must be positive")

    return (
        np.ascontiguousarray(pts),
        np.ascontiguousarray(vals),
        np.ascontiguousarray(wts),
    )


def _fit_control_lattice_impl(  # noqa: PLR0913
    box: BoundingBox,
    resolution: npt.NDArray[np.int64],
    pts: npt.NDArray[np.float64],
    residuals: npt.NDArray[np.float64],
    weights: npt.NDArray[np.float64],
    storage: StorageKind,
    min_fill: float,
) -> ControlLattice:
    """Fit a lattice to validated samples (no validation performed)."""
    shape = tuple(int(n) + LATTICE_PADDING for n in resolution)
    strides = _compute_strides(shape)
    num_nodes = int(np.prod(shape))

    numerator = np.zeros(num_nodes, dtype=np.float64)
    denominator = np.zeros(num_nodes, dtype=np.float64)
    _accumulate_core(
        pts, residuals, weights, box.lo, box.hi, resolution, strides, numerator, denominator
    )

    supported = denominator > 0.0
    values = np.zeros(num_nodes, dtype=np.float64)
    np.divide(numerator, denominator, out=values, where=supported)
    fill_ratio = float(np.count_nonzero(supported)) / num_nodes

    if storage is StorageKind.AUTO:
        storage = StorageKind.DENSE if fill_ratio >= min_fill else StorageKind.SPARSE

    if storage is StorageKind.SPARSE:
        node_ids = np.flatnonzero(supported)
        return SparseControlLattice(
            box, resolution, node_ids, values[node_ids], fill_ratio=fill_ratio
        )
    return ControlLattice(box, resolution, values.reshape(shape), fill_ratio=fill_ratio)


def fit_control_lattice(  # noqa: PLR0913
    box: BoundingBox,
    resolution: npt.ArrayLike,
    points: npt.ArrayLike,
    values: npt.ArrayLike,
    weights: npt.ArrayLike | None = None,
    storage: StorageKind = StorageKind.DENSE,
    min_fill: float = 0.5,
) -> ControlLattice:
    """Fit one control lattice to scattered samples by local least squares.

    Every sample distributes its value over the ``4**ndim`` control nodes of its
    support; each node then takes the weighted average of the contributions it
    received. Nodes without any contribution are set to zero. No linear system
    is solved and each node only depends on the samples in its neighbourhood.

    Args:
        box (BoundingBox): Domain of the lattice.
        resolution (npt.ArrayLike): Number of intervals per dimension.
        points (npt.ArrayLike): Sample coordinates of shape (n_pts, ndim).
        values (npt.ArrayLike): Values (or residuals) to fit, shape (n_pts,).
        weights (npt.ArrayLike | None): Non-negative sample weights, shape (n_pts,).
            Defaults to 1 for every sample.
        storage (StorageKind): Storage of the result. ``AUTO`` stores the lattice
            sparsely when its fill ratio is below `min_fill`. Defaults to DENSE.
        min_fill (float): Fill ratio threshold used by ``AUTO`` storage.

    Returns:
        ControlLattice: The fitted, frozen lattice.

    Raises:
        ShapeMismatchError: If the inputs do not have matching shapes.
        InvalidDomainError: If `resolution` is not made of positive integers.
        InvalidSampleError: If the samples are empty or not finite.
        InvalidConfigError: If `storage` is not a StorageKind.
    """
    if not isinstance(storage, StorageKind):
        raise InvalidConfigError(f"Unknown storage kind: {storage!r}")
    res = validate_resolution(resolution, box.ndim)
    pts, vals, wts = _validate_samples(box.ndim, points, values, weights)
    return _fit_control_lattice_impl(box, res, pts, vals, wts, storage, min_fill)


__all__ = [
    "LATTICE_PADDING",
    "ControlLattice",
    "SparseControlLattice",
    "fit_control_lattice",
]
