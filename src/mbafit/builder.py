"""Level-by-level construction of multilevel B-spline models.

Each level fits a control lattice to the residuals left by the previous
levels, then the lattice resolution is doubled along every dimension. The loop
stops when the RMS residual reaches the tolerance or when ``max_levels``
lattices exist, so it always terminates.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import numpy.typing as npt

from .config import FillPolicy, MBAConfig, make_config
from .domain import BoundingBox, validate_resolution
from .initial import evaluate_initial, resolve_initial
from .lattice import ControlLattice, _fit_control_lattice_impl, _validate_samples
from .model import LevelReport, MultilevelModel, Termination

logger = logging.getLogger(__name__)


def _weighted_rms(residuals: npt.NDArray[np.float64], weights: npt.NDArray[np.float64]) -> float:
    """RMS of the residuals, each sample counted with its weight."""
    return float(np.sqrt(np.dot(weights, residuals * residuals) / np.sum(weights)))


class MultilevelBuilder:
    """Builds :class:`~mbafit.model.MultilevelModel` instances over a fixed domain."""

    def __init__(
        self,
        box: BoundingBox,
        grid: npt.ArrayLike,
        config: MBAConfig | None = None,
        **options: Any,
    ) -> None:
        """Initialize the builder.

        Args:
            box (BoundingBox): Domain of the model.
            grid (npt.ArrayLike): Base resolution (intervals per dimension) of the
                first level.
            config (MBAConfig | None): Construction options. Defaults to ``MBAConfig()``.
            **options (Any): Overrides of individual `config` fields.

        Raises:
            ShapeMismatchError: If `grid` does not have one entry per dimension.
            InvalidDomainError: If `grid` is not made of positive integers.
            InvalidConfigError: If an option is invalid.
        """
        self._box = box
        self._grid = validate_resolution(grid, box.ndim)
        self._config = make_config(config, **options)

    @property
    def box(self) -> BoundingBox:
        """Domain of the built models."""
        return self._box

    @property
    def grid(self) -> tuple[int, ...]:
        """Base resolution of the first level."""
        return tuple(int(n) for n in self._grid)

    @property
    def config(self) -> MBAConfig:
        """Construction options."""
        return self._config

    def build(
        self,
        points: npt.ArrayLike,
        values: npt.ArrayLike,
        weights: npt.ArrayLike | None = None,
    ) -> MultilevelModel:
        """Build a model approximating the samples.

        Args:
            points (npt.ArrayLike): Sample coordinates, shape (n_pts, ndim).
            values (npt.ArrayLike): Sample values, shape (n_pts,).
            weights (npt.ArrayLike | None): Non-negative sample weights, shape
                (n_pts,). Defaults to 1 for every sample.

        Returns:
            MultilevelModel: The fitted model.

        Raises:
            ShapeMismatchError: If the sample arrays do not have matching shapes.
            InvalidSampleError: If the samples are empty or not finite.
        """
        config = self._config
        pts, vals, wts = _validate_samples(self._box.ndim, points, values, weights)

        initial = resolve_initial(config.initial, pts, vals, wts)
        residuals = vals.copy()
        if initial is not None:
            residuals -= evaluate_initial(initial, pts)

        logger.debug(
            "Building multilevel model: %d samples, ndim=%d, base grid %s, max_levels=%d",
            pts.shape[0],
            self._box.ndim,
            self.grid,
            config.max_levels,
        )

        resolution = np.array(self._grid)
        lattices: list[ControlLattice] = []
        reports: list[LevelReport] = []
        termination = Termination.MAX_LEVELS_REACHED

        for level in range(config.max_levels):
            lattice = _fit_control_lattice_impl(
                self._box, resolution, pts, residuals, wts, config.storage, config.min_fill
            )
            lattices.append(lattice)

            contribution = np.zeros_like(residuals)
            lattice._add_to(pts, contribution)
            residuals -= contribution
            rms = _weighted_rms(residuals, wts)

            report = LevelReport(level, lattice.resolution, lattice.storage, lattice.fill_ratio, rms)
            reports.append(report)
            logger.debug(
                "Level %d: resolution %s, %s storage, fill ratio %.3f, rms %.3e",
                level,
                report.resolution,
                report.storage.value,
                report.fill_ratio,
                rms,
            )

            if rms <= config.tol:
                termination = Termination.CONVERGED
                break
            if level + 1 == config.max_levels:
                break
            if lattice.fill_ratio < config.min_fill:
                if config.fill_policy is FillPolicy.STOP:
                    termination = Termination.SPARSE_LATTICE
                    break
                logger.debug(
                    "Level %d fill ratio %.3f below min_fill %.3f, refining anyway",
                    level,
                    lattice.fill_ratio,
                    config.min_fill,
                )

            resolution = resolution * 2

        logger.info(
            "Multilevel model built: %d level(s), rms %.3e, %s",
            len(lattices),
            reports[-1].rms,
            termination.value,
        )

        return MultilevelModel(
            self._box,
            lattices,
            initial=initial,
            reports=reports,
            termination=termination,
            domain_policy=config.domain_policy,
        )


def build_model(  # noqa: PLR0913
    lo: npt.ArrayLike,
    hi: npt.ArrayLike,
    grid: npt.ArrayLike,
    points: npt.ArrayLike,
    values: npt.ArrayLike,
    weights: npt.ArrayLike | None = None,
    config: MBAConfig | None = None,
    **options: Any,
) -> MultilevelModel:
    """Build a multilevel B-spline model of scattered samples.

    Args:
        lo (npt.ArrayLike): Lower corner of the domain, a vector of size ndim.
        hi (npt.ArrayLike): Upper corner of the domain, a vector of size ndim.
        grid (npt.ArrayLike): Base resolution (intervals per dimension).
        points (npt.ArrayLike): Sample coordinates, shape (n_pts, ndim).
        values (npt.ArrayLike): Sample values, shape (n_pts,).
        weights (npt.ArrayLike | None): Non-negative sample weights. Defaults to 1.
        config (MBAConfig | None): Construction options. Defaults to ``MBAConfig()``.
        **options (Any): Overrides of individual `config` fields, e.g.
            ``max_levels=6`` or ``fill_policy="stop"``.

    Returns:
        MultilevelModel: The fitted model.

    Raises:
        ShapeMismatchError: If an input does not have the expected shape.
        InvalidDomainError: If ``lo[d] >= hi[d]`` for some ``d`` or the grid is invalid.
        InvalidConfigError: If an option is invalid.
        InvalidSampleError: If the samples are empty or not finite.

    Example:
        >>> rng = np.random.default_rng(0)
        >>> pts = rng.random((100, 2))
        >>> model = build_model([0, 0], [1, 1], [4, 4], pts, pts[:, 0] * pts[:, 1])
        >>> model([[0.5, 0.5], [0.25, 0.75]]).shape
        (2,)
    """
    builder = MultilevelBuilder(BoundingBox(lo, hi), grid, config, **options)
    return builder.build(points, values, weights)


__all__ = ["MultilevelBuilder", "build_model"]
