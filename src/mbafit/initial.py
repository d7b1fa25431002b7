"""Initial approximations removed from the data before the first lattice level."""

from __future__ import annotations

import numpy as np
import numpy.typing as npt
import scipy.linalg

from ._basis_utils import _normalize_points
from .config import InitialApproximation
from .errors import InvalidConfigError, ShapeMismatchError


class LinearApproximation:
    """Affine function ``c0 + sum_d c_d * x_d`` fitted by weighted least squares."""

    def __init__(self, coefficients: npt.ArrayLike) -> None:
        """Initialize the approximation.

        Args:
            coefficients (npt.ArrayLike): Vector ``[c0, c_1, ..., c_ndim]``.
        """
        coeffs = np.array(coefficients, dtype=np.float64)
        if coeffs.ndim != 1 or coeffs.size < 2:  # noqa: PLR2004
            raise ShapeMismatchError(
                f"coefficients should be a vector of size ndim + 1, got shape {coeffs.shape}"
            )
        coeffs.flags.writeable = False
        self._coefficients = coeffs

    @classmethod
    def fit(
        cls,
        points: npt.NDArray[np.float64],
        values: npt.NDArray[np.float64],
        weights: npt.NDArray[np.float64] | None = None,
    ) -> LinearApproximation:
        """Fit the affine function to samples.

        Rank-deficient sample sets (e.g. fewer than ``ndim + 1`` points, or points
        on a hyperplane) yield the minimum-norm solution.

        Args:
            points (npt.NDArray[np.float64]): Sample coordinates, shape (n_pts, ndim).
            values (npt.NDArray[np.float64]): Sample values, shape (n_pts,).
            weights (npt.NDArray[np.float64] | None): Sample weights. Defaults to 1.

        Returns:
            LinearApproximation: The fitted approximation.
        """
        n_pts = points.shape[0]
        design = np.hstack([np.ones((n_pts, 1)), points])
        rhs = np.asarray(values, dtype=np.float64)
        if weights is not None:
            sqrt_w = np.sqrt(weights)
            design = design * sqrt_w[:, None]
            rhs = rhs * sqrt_w
        coefficients, _, _, _ = scipy.linalg.lstsq(design, rhs)
        return cls(coefficients)

    @property
    def ndim(self) -> int:
        """Number of dimensions of the domain."""
        return int(self._coefficients.size - 1)

    @property
    def coefficients(self) -> npt.NDArray[np.float64]:
        """Coefficients ``[c0, c_1, ..., c_ndim]`` (read-only)."""
        return self._coefficients

    def __call__(self, points: npt.ArrayLike) -> npt.NDArray[np.float64]:
        pts, leading_shape = _normalize_points(points, self.ndim)
        values = self._coefficients[0] + pts @ self._coefficients[1:]
        return values.reshape(leading_shape)

    def gradient(self, points: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Gradient at points of shape ``(..., ndim)``; constant for an affine function."""
        _, leading_shape = _normalize_points(points, self.ndim)
        return np.broadcast_to(self._coefficients[1:], (*leading_shape, self.ndim)).copy()

    def __repr__(self) -> str:
        return f"LinearApproximation(coefficients={self._coefficients.tolist()})"


def resolve_initial(
    initial: str | InitialApproximation | None,
    points: npt.NDArray[np.float64],
    values: npt.NDArray[np.float64],
    weights: npt.NDArray[np.float64],
) -> InitialApproximation | None:
    """Turn the ``initial`` configuration option into a callable (or None).

    Raises:
        InvalidConfigError: If `initial` is an unknown name.
    """
    if initial is None:
        return None
    if isinstance(initial, str):
        if initial == "linear":
            return LinearApproximation.fit(points, values, weights)
        raise InvalidConfigError(f"Unknown initial approximation: {initial!r}")
    return initial


def evaluate_initial(
    initial: InitialApproximation, points: npt.NDArray[np.float64]
) -> npt.NDArray[np.float64]:
    """Evaluate an initial approximation at (n_pts, ndim) points.

    Raises:
        ShapeMismatchError: If the callable does not return one value per point.
    """
    result = np.asarray(initial(points), dtype=np.float64)
    if result.shape != (points.shape[0],):
        try:
            result = np.broadcast_to(result, (points.shape[0],))
        except ValueError as err:
            raise ShapeMismatchError(
                f"Initial approximation returned shape {result.shape} "
                f"for {points.shape[0]} points"
            ) from err
    return result


__all__ = ["LinearApproximation", "evaluate_initial", "resolve_initial"]
