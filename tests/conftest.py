"""Pytest configuration: make `src` importable and provide shared sample sets."""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import numpy.typing as npt
import pytest


def _ensure_src_on_sys_path() -> None:
    """Prepend the repository `src` directory to `sys.path` if missing."""
    repo_root: Path = Path(__file__).resolve().parents[1]
    src_path: Path = repo_root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


_ensure_src_on_sys_path()


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(20240611)


@pytest.fixture
def sincos_samples(
    rng: np.random.Generator,
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """200 random samples of sin(2 pi x) cos(2 pi y) on [0, 1]^2."""
    pts = rng.random((200, 2))
    vals = np.sin(2.0 * np.pi * pts[:, 0]) * np.cos(2.0 * np.pi * pts[:, 1])
    return pts, vals
