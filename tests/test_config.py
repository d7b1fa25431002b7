"""Tests for construction options."""

from __future__ import annotations

import numpy as np
import pytest

from mbafit.config import (
    DomainPolicy,
    FillPolicy,
    MBAConfig,
    StorageKind,
    make_config,
    validate_config,
)
from mbafit.errors import InvalidConfigError, MBAError


def test_defaults() -> None:
    config = make_config()
    assert config == MBAConfig()
    assert config.max_levels == 8
    assert config.tol == 1e-8
    assert config.min_fill == 0.5
    assert config.fill_policy is FillPolicy.CONTINUE
    assert config.domain_policy is DomainPolicy.EXTRAPOLATE
    assert config.storage is StorageKind.AUTO
    assert config.initial is None


def test_overrides_keep_base() -> None:
    base = MBAConfig(max_levels=3)
    config = make_config(base, tol=1e-4)
    assert config.max_levels == 3
    assert config.tol == 1e-4
    assert base.tol == 1e-8


def test_enum_values_by_name() -> None:
    config = make_config(fill_policy="stop", domain_policy="reject", storage="sparse")
    assert config.fill_policy is FillPolicy.STOP
    assert config.domain_policy is DomainPolicy.REJECT
    assert config.storage is StorageKind.SPARSE


def test_numpy_integer_levels_accepted() -> None:
    assert make_config(max_levels=np.int64(4)).max_levels == 4


def test_initial_options() -> None:
    assert make_config(initial="linear").initial == "linear"

    def plane(points: np.ndarray) -> np.ndarray:
        return points[:, 0]

    assert make_config(initial=plane).initial is plane


@pytest.mark.parametrize(
    "options",
    [
        {"max_levels": 0},
        {"max_levels": 2.5},
        {"max_levels": True},
        {"tol": 0.0},
        {"tol": -1.0},
        {"tol": float("nan")},
        {"min_fill": 0.0},
        {"min_fill": 1.01},
        {"fill_policy": "never"},
        {"domain_policy": "clamp"},
        {"storage": "compressed"},
        {"storage": 1},
        {"initial": "cubic"},
        {"initial": 3.0},
        {"max_level": 4},
    ],
)
def test_invalid_options_raise(options: dict[str, object]) -> None:
    with pytest.raises(InvalidConfigError):
        make_config(**options)


def test_validate_config_direct() -> None:
    validate_config(MBAConfig())
    with pytest.raises(InvalidConfigError, match="max_levels"):
        validate_config(MBAConfig(max_levels=-1))


def test_errors_share_base_class() -> None:
    with pytest.raises(MBAError):
        make_config(tol=0.0)
    with pytest.raises(ValueError):
        make_config(tol=0.0)
