"""Callable front objects wrapping multilevel B-spline construction and evaluation."""

from __future__ import annotations

from typing import Any, ClassVar

import numpy as np
import numpy.typing as npt

from ._basis_utils import _as_vector
from .builder import MultilevelBuilder
from .config import MBAConfig
from .domain import BoundingBox
from .errors import ShapeMismatchError
from .model import MultilevelModel


class MBA:
    """Multilevel B-spline approximation of scattered data.

    The object is built once from the samples and then called on arrays of query
    points with a trailing axis of length ndim.

    Example:
        >>> coo = np.array([[0.3, 0.6], [0.8, 0.1], [0.5, 0.5]])
        >>> val = np.array([0.2, 0.7, 0.4])
        >>> interp = MBA([0, 0], [1, 1], [3, 3], coo, val)
        >>> interp(np.zeros((5, 7, 2))).shape
        (5, 7)
    """

    ndim: ClassVar[int | None] = None

    def __init__(  # noqa: PLR0913
        self,
        lo: npt.ArrayLike,
        hi: npt.ArrayLike,
        grid: npt.ArrayLike,
        coo: npt.ArrayLike,
        val: npt.ArrayLike,
        max_levels: int | None = None,
        tol: float | None = None,
        min_fill: float | None = None,
        *,
        weights: npt.ArrayLike | None = None,
        config: MBAConfig | None = None,
        **options: Any,
    ) -> None:
        """Build the approximation.

        Args:
            lo (npt.ArrayLike): Lower corner of the domain, a vector of size ndim.
            hi (npt.ArrayLike): Upper corner of the domain, a vector of size ndim.
            grid (npt.ArrayLike): Base resolution (intervals per dimension).
            coo (npt.ArrayLike): Sample coordinates, an n x ndim matrix.
            val (npt.ArrayLike): Sample values, a vector of size n.
            max_levels (int | None): Maximum number of lattice levels. If None, taken
                from `config` (8 by default).
            tol (float | None): RMS residual convergence threshold. If None, taken
                from `config` (1e-8 by default).
            min_fill (float | None): Fill ratio threshold in (0, 1]. If None, taken
                from `config` (0.5 by default).
            weights (npt.ArrayLike | None): Optional non-negative sample weights.
            config (MBAConfig | None): Base configuration. The `max_levels`, `tol`
                and `min_fill` arguments override it when given.
            **options (Any): Further configuration overrides (`fill_policy`,
                `domain_policy`, `storage`, `initial`).

        Raises:
            ShapeMismatchError: If an input does not have the expected shape.
            InvalidDomainError: If ``lo[d] >= hi[d]`` or the grid is invalid.
            InvalidConfigError: If an option is invalid.
            InvalidSampleError: If the samples are empty or not finite.
        """
        lo_arr = np.asarray(lo, dtype=np.float64)
        ndim = self.ndim if self.ndim is not None else int(lo_arr.size)
        lo_arr = _as_vector(lo_arr, ndim, "lo")
        hi_arr = _as_vector(hi, ndim, "hi")
        grid_arr = np.asarray(grid)
        if grid_arr.ndim != 1 or grid_arr.shape[0] != ndim:
            raise ShapeMismatchError(f"grid should be a vector of size {ndim}")

        for name, value in (("max_levels", max_levels), ("tol", tol), ("min_fill", min_fill)):
            if value is not None:
                options[name] = value

        builder = MultilevelBuilder(BoundingBox(lo_arr, hi_arr), grid_arr, config, **options)
        self._model = builder.build(coo, val, weights)

    @property
    def model(self) -> MultilevelModel:
        """The underlying multilevel model."""
        return self._model

    def __call__(self, coo: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Evaluate the approximation.

        Args:
            coo (npt.ArrayLike): Query points with a trailing axis of length ndim.

        Returns:
            npt.NDArray[np.float64]: Values with the leading shape of `coo`.
        """
        return self._model.apply(coo)

    def gradient(self, coo: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Evaluate the gradient of the approximation, shape ``(..., ndim)``."""
        return self._model.gradient(coo)

    def __repr__(self) -> str:
        return self._model.summary()


class mba1(MBA):  # noqa: N801
    """Multilevel B-spline approximation in 1D."""

    ndim = 1


class mba2(MBA):  # noqa: N801
    """Multilevel B-spline approximation in 2D."""

    ndim = 2


class mba3(MBA):  # noqa: N801
    """Multilevel B-spline approximation in 3D."""

    ndim = 3


__all__ = ["MBA", "mba1", "mba2", "mba3"]
