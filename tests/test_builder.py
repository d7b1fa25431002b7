"""Tests for the level-by-level multilevel construction."""

from __future__ import annotations

import logging

import numpy as np
import numpy.testing as nptest
import pytest

from mbafit.builder import MultilevelBuilder, build_model
from mbafit.config import FillPolicy, MBAConfig, StorageKind
from mbafit.domain import BoundingBox
from mbafit.errors import (
    InvalidConfigError,
    InvalidDomainError,
    InvalidSampleError,
    ShapeMismatchError,
)
from mbafit.initial import LinearApproximation
from mbafit.model import Termination

Samples = tuple[np.ndarray, np.ndarray]


def _clustered_samples() -> Samples:
    # Two samples share their coordinates but not their values, so the residual
    # never vanishes.
    pts = np.array([[0.01, 0.01], [0.01, 0.01], [0.03, 0.02]])
    vals = np.array([0.0, 1.0, 0.5])
    return pts, vals


class TestMultilevelBuilder:
    def test_properties(self) -> None:
        box = BoundingBox([0.0, 0.0], [1.0, 1.0])
        builder = MultilevelBuilder(box, [4, 2], max_levels=3)
        assert builder.box is box
        assert builder.grid == (4, 2)
        assert builder.config == MBAConfig(max_levels=3)

    def test_config_and_overrides(self) -> None:
        box = BoundingBox([0.0], [1.0])
        builder = MultilevelBuilder(box, [4], MBAConfig(tol=1e-3), fill_policy="stop")
        assert builder.config.tol == 1e-3
        assert builder.config.fill_policy is FillPolicy.STOP

    def test_builder_is_reusable(self, sincos_samples: Samples) -> None:
        pts, vals = sincos_samples
        builder = MultilevelBuilder(BoundingBox([0.0, 0.0], [1.0, 1.0]), [4, 4], max_levels=3)
        first = builder.build(pts, vals)
        second = builder.build(pts[:100], vals[:100])
        assert first.num_levels == 3
        assert second.num_levels == 3
        assert not np.array_equal(first.lattices[0].values, second.lattices[0].values)


class TestBuildModel:
    def test_smooth_surface_is_approximated(self, sincos_samples: Samples) -> None:
        pts, vals = sincos_samples
        model = build_model([0, 0], [1, 1], [4, 4], pts, vals, max_levels=6, tol=1e-6)
        assert 1 <= model.num_levels <= 6
        assert model.rms_error(pts, vals) < 1e-3

    def test_residual_is_non_increasing(self, sincos_samples: Samples) -> None:
        pts, vals = sincos_samples
        model = build_model([0, 0], [1, 1], [2, 2], pts, vals, max_levels=8, tol=1e-12)
        rms = [report.rms for report in model.reports]
        assert len(rms) == 8
        assert all(finer <= coarser for coarser, finer in zip(rms, rms[1:]))
        assert rms[-1] < 1e-2 * rms[0]

    def test_reported_rms_matches_model(self, sincos_samples: Samples) -> None:
        pts, vals = sincos_samples
        model = build_model([0, 0], [1, 1], [4, 4], pts, vals, max_levels=3, tol=1e-12)
        nptest.assert_allclose(model.reports[-1].rms, model.rms_error(pts, vals), rtol=1e-8)

    def test_resolution_doubles_per_level(self, sincos_samples: Samples) -> None:
        pts, vals = sincos_samples
        model = build_model([0, 0], [1, 1], [4, 4], pts, vals, max_levels=3, tol=1e-12)
        assert model.termination is Termination.MAX_LEVELS_REACHED
        assert [lattice.resolution for lattice in model.lattices] == [(4, 4), (8, 8), (16, 16)]
        assert [report.level for report in model.reports] == [0, 1, 2]
        assert [report.resolution for report in model.reports] == [(4, 4), (8, 8), (16, 16)]

    def test_anisotropic_grid_doubles_per_dimension(self, sincos_samples: Samples) -> None:
        pts, vals = sincos_samples
        model = build_model([0, 0], [1, 1], [3, 1], pts, vals, max_levels=2, tol=1e-12)
        assert [lattice.resolution for lattice in model.lattices] == [(3, 1), (6, 2)]

    def test_large_tolerance_converges_immediately(self, sincos_samples: Samples) -> None:
        pts, vals = sincos_samples
        model = build_model([0, 0], [1, 1], [4, 4], pts, vals, tol=10.0)
        assert model.num_levels == 1
        assert model.termination is Termination.CONVERGED

    def test_max_levels_is_respected(self, sincos_samples: Samples) -> None:
        pts, vals = sincos_samples
        model = build_model([0, 0], [1, 1], [1, 1], pts, vals, max_levels=1, tol=1e-12)
        assert model.num_levels == 1
        assert model.termination is Termination.MAX_LEVELS_REACHED

    def test_fill_policy_stop(self) -> None:
        pts, vals = _clustered_samples()
        model = build_model([0, 0], [1, 1], [4, 4], pts, vals, fill_policy=FillPolicy.STOP)
        assert model.num_levels == 1
        assert model.termination is Termination.SPARSE_LATTICE
        assert model.reports[0].fill_ratio < 0.5

    def test_fill_policy_continue(self) -> None:
        pts, vals = _clustered_samples()
        model = build_model([0, 0], [1, 1], [4, 4], pts, vals, max_levels=4)
        assert model.num_levels == 4
        assert model.termination is Termination.MAX_LEVELS_REACHED
        assert all(np.isfinite(report.rms) for report in model.reports)

    def test_duplicate_coordinates_average(self) -> None:
        pts, vals = _clustered_samples()
        model = build_model([0, 0], [1, 1], [4, 4], pts, vals, max_levels=8)
        nptest.assert_allclose(model(pts[0]), 0.5, atol=1e-2)

    def test_sparse_levels_use_sparse_storage(self) -> None:
        pts, vals = _clustered_samples()
        model = build_model([0, 0], [1, 1], [4, 4], pts, vals, max_levels=2)
        assert all(lattice.storage is StorageKind.SPARSE for lattice in model.lattices)

        dense = build_model(
            [0, 0], [1, 1], [4, 4], pts, vals, max_levels=2, storage=StorageKind.DENSE
        )
        assert all(lattice.storage is StorageKind.DENSE for lattice in dense.lattices)
        queries = np.random.default_rng(3).random((50, 2))
        nptest.assert_allclose(model(queries), dense(queries), rtol=1e-12, atol=1e-14)

    def test_linear_initial_reproduces_linear_data(self, rng: np.random.Generator) -> None:
        pts = rng.random((30, 2))
        vals = 1.0 + 2.0 * pts[:, 0] - 3.0 * pts[:, 1]
        model = build_model([0, 0], [1, 1], [2, 2], pts, vals, initial="linear")
        assert isinstance(model.initial, LinearApproximation)
        nptest.assert_allclose(model.initial.coefficients, [1.0, 2.0, -3.0], atol=1e-10)
        assert model.termination is Termination.CONVERGED

        queries = rng.uniform(-0.5, 1.5, size=(20, 2))
        expected = 1.0 + 2.0 * queries[:, 0] - 3.0 * queries[:, 1]
        nptest.assert_allclose(model(queries), expected, atol=1e-8)
        nptest.assert_allclose(model.gradient(queries), np.tile([2.0, -3.0], (20, 1)), atol=1e-7)

    def test_callable_initial(self, rng: np.random.Generator) -> None:
        pts = rng.random((10, 1))
        model = build_model([0], [1], [2], pts, np.full(10, 5.0), initial=lambda p: 5.0)
        assert model.termination is Termination.CONVERGED
        nptest.assert_allclose(model([[0.2], [0.7]]), [5.0, 5.0], atol=1e-12)

    def test_zero_weight_outlier_is_ignored(self, sincos_samples: Samples) -> None:
        pts, vals = sincos_samples
        pts_out = np.vstack([pts, [[0.5, 0.5]]])
        vals_out = np.append(vals, 1e6)
        weights = np.append(np.ones(len(vals)), 0.0)

        reference = build_model([0, 0], [1, 1], [4, 4], pts, vals, max_levels=4)
        weighted = build_model(
            [0, 0], [1, 1], [4, 4], pts_out, vals_out, weights=weights, max_levels=4
        )
        queries = np.random.default_rng(7).random((40, 2))
        nptest.assert_array_equal(weighted(queries), reference(queries))
        nptest.assert_allclose(
            [r.rms for r in weighted.reports], [r.rms for r in reference.reports], rtol=1e-12
        )

    def test_construction_is_deterministic(self, sincos_samples: Samples) -> None:
        pts, vals = sincos_samples
        first = build_model([0, 0], [1, 1], [4, 4], pts, vals, max_levels=4)
        second = build_model([0, 0], [1, 1], [4, 4], pts, vals, max_levels=4)
        queries = np.random.default_rng(11).random((25, 2))
        nptest.assert_array_equal(first(queries), second(queries))

    @pytest.mark.parametrize("ndim", [1, 3])
    def test_other_dimensions(self, ndim: int, rng: np.random.Generator) -> None:
        pts = rng.random((150, ndim))
        vals = np.sum(pts**2, axis=1)
        model = build_model([0.0] * ndim, [1.0] * ndim, [2] * ndim, pts, vals, max_levels=4)
        assert model.ndim == ndim
        assert model.rms_error(pts, vals) < model.reports[0].rms

    def test_logging(
        self, sincos_samples: Samples, caplog: pytest.LogCaptureFixture
    ) -> None:
        pts, vals = sincos_samples
        with caplog.at_level(logging.DEBUG, logger="mbafit"):
            build_model([0, 0], [1, 1], [4, 4], pts, vals, max_levels=2)
        assert "Level 0: resolution (4, 4)" in caplog.text
        assert "Level 1: resolution (8, 8)" in caplog.text
        assert "Multilevel model built: 2 level(s)" in caplog.text

    @pytest.mark.parametrize(
        "options",
        [
            {"max_levels": 0},
            {"tol": 0.0},
            {"min_fill": 0.0},
            {"min_fill": 1.5},
            {"fill_policy": "sometimes"},
            {"initial": "quadratic"},
            {"smoothing": 1.0},
        ],
    )
    def test_invalid_config_raises(self, options: dict[str, object]) -> None:
        with pytest.raises(InvalidConfigError):
            build_model([0, 0], [1, 1], [4, 4], [[0.5, 0.5]], [1.0], **options)

    def test_invalid_domain_raises(self) -> None:
        with pytest.raises(InvalidDomainError):
            build_model([0, 1], [1, 1], [4, 4], [[0.5, 0.5]], [1.0])
        with pytest.raises(InvalidDomainError):
            build_model([0, 0], [1, 1], [4, 0], [[0.5, 0.5]], [1.0])

    def test_shape_mismatch_raises(self) -> None:
        with pytest.raises(ShapeMismatchError):
            build_model([0, 0], [1, 1], [4, 4, 4], [[0.5, 0.5]], [1.0])
        with pytest.raises(ShapeMismatchError):
            build_model([0, 0], [1, 1], [4, 4], [[0.5, 0.5]], [1.0, 2.0])
        with pytest.raises(ShapeMismatchError):
            build_model([0, 0], [1, 1, 1], [4, 4], [[0.5, 0.5]], [1.0])

    def test_empty_samples_raise(self) -> None:
        with pytest.raises(InvalidSampleError):
            build_model([0, 0], [1, 1], [4, 4], np.zeros((0, 2)), np.zeros(0))
