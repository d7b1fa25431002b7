"""Bounding boxes and the mapping of domain points to lattice cells."""

from __future__ import annotations

from collections.abc import Iterable

import numpy as np
import numpy.typing as npt

from ._basis_utils import _as_vector, _freeze, _normalize_points
from ._lattice_impl import _map_points_core
from .errors import InvalidDomainError, OutOfDomainError, ShapeMismatchError


class BoundingBox:
    """Axis-aligned box ``[lo, hi]`` over which a model is built."""

    def __init__(self, lo: npt.ArrayLike, hi: npt.ArrayLike) -> None:
        """Initialize the bounding box.

        Args:
            lo (npt.ArrayLike): Lower corner, a vector of size ndim.
            hi (npt.ArrayLike): Upper corner, a vector of size ndim.

        Raises:
            ShapeMismatchError: If `lo` is not a non-empty vector or `hi` does not
                have the same size.
            InvalidDomainError: If a bound is not finite or ``lo[d] >= hi[d]``
                for some dimension ``d``.
        """
        lo_arr = np.asarray(lo, dtype=np.float64)
        if lo_arr.ndim != 1 or lo_arr.size < 1:
            raise ShapeMismatchError(f"lo should be a non-empty vector, got shape {lo_arr.shape}")
        ndim = lo_arr.size
        hi_arr = _as_vector(hi, ndim, "hi")

        if not (np.all(np.isfinite(lo_arr)) and np.all(np.isfinite(hi_arr))):
            raise InvalidDomainError("Bounding box corners must be finite")
        bad = np.flatnonzero(lo_arr >= hi_arr)
        if bad.size > 0:
            d = int(bad[0])
            raise InvalidDomainError(
                f"lo must be smaller than hi in every dimension, "
                f"got lo[{d}]={lo_arr[d]} >= hi[{d}]={hi_arr[d]}"
            )

        self._lo = _freeze(np.array(lo_arr))
        self._hi = _freeze(np.array(hi_arr))

    @classmethod
    def from_points(cls, points: npt.ArrayLike, padding: float = 0.0) -> BoundingBox:
        """Create the smallest box enclosing the points, optionally padded.

        Args:
            points (npt.ArrayLike): Points of shape (n_pts, ndim).
            padding (float): Relative padding added on each side, as a fraction of
                the extent of the points along each dimension. Defaults to 0.

        Returns:
            BoundingBox: The enclosing box.

        Raises:
            ShapeMismatchError: If `points` is not a non-empty 2D array.
            InvalidDomainError: If the points are degenerate along a dimension.
        """
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim != 2 or pts.shape[0] == 0 or pts.shape[1] == 0:  # noqa: PLR2004
            raise ShapeMismatchError(
                f"points should be a non-empty n x ndim array, got shape {pts.shape}"
            )
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        extent = hi - lo
        return cls(lo - padding * extent, hi + padding * extent)

    @property
    def ndim(self) -> int:
        """Number of dimensions of the box."""
        return int(self._lo.size)

    @property
    def lo(self) -> npt.NDArray[np.float64]:
        """Lower corner (read-only)."""
        return self._lo

    @property
    def hi(self) -> npt.NDArray[np.float64]:
        """Upper corner (read-only)."""
        return self._hi

    @property
    def extent(self) -> npt.NDArray[np.float64]:
        """Side lengths ``hi - lo``."""
        return self._hi - self._lo

    def contains(self, points: npt.ArrayLike) -> npt.NDArray[np.bool_]:
        """Check which points lie inside the closed box.

        Args:
            points (npt.ArrayLike): Points of shape ``(..., ndim)``.

        Returns:
            npt.NDArray[np.bool_]: Boolean mask with the leading shape of `points`.
        """
        pts, leading_shape = _normalize_points(points, self.ndim)
        inside = np.all((pts >= self._lo) & (pts <= self._hi), axis=1)
        return inside.reshape(leading_shape)

    def check_contains(self, points: npt.NDArray[np.float64]) -> None:
        """Raise if any of the (n_pts, ndim) points lies outside the box.

        Raises:
            OutOfDomainError: If a point lies outside the box.
        """
        outside = ~np.all((points >= self._lo) & (points <= self._hi), axis=1)
        if np.any(outside):
            first = int(np.flatnonzero(outside)[0])
            raise OutOfDomainError(
                f"{int(np.count_nonzero(outside))} point(s) outside the domain "
                f"[{self._lo.tolist()}, {self._hi.tolist()}], first: {points[first].tolist()}"
            )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BoundingBox):
            return NotImplemented
        return bool(np.array_equal(self._lo, other._lo) and np.array_equal(self._hi, other._hi))

    def __hash__(self) -> int:
        return hash((self._lo.tobytes(), self._hi.tobytes()))

    def __repr__(self) -> str:
        return f"BoundingBox(lo={self._lo.tolist()}, hi={self._hi.tolist()})"


def validate_resolution(
    resolution: Iterable[int] | npt.ArrayLike, ndim: int
) -> npt.NDArray[np.int64]:
    """Validate a lattice resolution (number of intervals per dimension).

    Args:
        resolution (Iterable[int] | npt.ArrayLike): Positive integers, one per dimension.
        ndim (int): Expected number of dimensions.

    Returns:
        npt.NDArray[np.int64]: Read-only resolution vector.

    Raises:
        ShapeMismatchError: If the size does not match ``ndim``.
        InvalidDomainError: If an entry is not a positive integer.
    """
    raw = np.asarray(resolution)
    res = _as_vector(raw, ndim, "grid", dtype=np.int64)
    if not np.array_equal(res, raw):
        raise InvalidDomainError(f"grid entries must be integers, got {raw.tolist()}")
    if np.any(res < 1):
        raise InvalidDomainError(f"grid entries must be positive, got {res.tolist()}")
    return _freeze(np.array(res))


def map_points(
    box: BoundingBox, resolution: npt.ArrayLike, points: npt.ArrayLike
) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.float64]]:
    """Map points to lattice cell indices and local offsets.

    For each dimension ``d``::

        u = (p[d] - lo[d]) / (hi[d] - lo[d]) * resolution[d]
        cell = clamp(floor(u), 0, resolution[d] - 1)
        t = u - cell

    Points exactly on the upper bound fall in the last cell with ``t = 1``.
    Points outside the box are clamped to the boundary cells and their offsets
    leave ``[0, 1)``, which extrapolates the spline.

    Args:
        box (BoundingBox): Domain of the lattice.
        resolution (npt.ArrayLike): Number of intervals per dimension.
        points (npt.ArrayLike): Points of shape ``(..., ndim)``.

    Returns:
        tuple[npt.NDArray[np.int64], npt.NDArray[np.float64]]: Cell indices and
        offsets, both of shape ``(..., ndim)``.

    Raises:
        ShapeMismatchError: If the points or resolution do not match the box dimension.
        InvalidDomainError: If the resolution is not made of positive integers.

    Example:
        >>> cells, offsets = map_points(BoundingBox([0.0], [1.0]), [4], [[0.375], [1.0], [1.5]])
        >>> cells.ravel(), offsets.ravel()
        (array([1, 3, 3]), array([0.5, 1. , 3. ]))
    """
    res = validate_resolution(resolution, box.ndim)
    pts, leading_shape = _normalize_points(points, box.ndim)

    cells = np.empty(pts.shape, dtype=np.int64)
    offsets = np.empty(pts.shape, dtype=np.float64)
    _map_points_core(pts, box.lo, box.hi, res, cells, offsets)

    out_shape = (*leading_shape, box.ndim)
    return cells.reshape(out_shape), offsets.reshape(out_shape)


__all__ = ["BoundingBox", "map_points", "validate_resolution"]
