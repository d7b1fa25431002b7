"""Configuration options for multilevel B-spline approximation."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any, NamedTuple

import numpy as np
import numpy.typing as npt

from .errors import InvalidConfigError

InitialApproximation = Callable[[npt.NDArray[np.float64]], npt.ArrayLike]


class DomainPolicy(Enum):
    """Behaviour for query points that fall outside the bounding box.

    Attributes:
        EXTRAPOLATE (DomainPolicy): Clamp the lattice cell to the valid range and
            let the local offset leave ``[0, 1)``, so the boundary control nodes
            extend the surface smoothly.
        REJECT (DomainPolicy): Raise :class:`~mbafit.errors.OutOfDomainError`.
    """

    EXTRAPOLATE = "extrapolate"
    REJECT = "reject"


class FillPolicy(Enum):
    """What the builder does with a level whose fill ratio is below ``min_fill``.

    Attributes:
        CONTINUE (FillPolicy): Keep refining. Sparsity frequently resolves once the
            lattice resolution matches the local data density.
        STOP (FillPolicy): Keep the sparse level and stop refining.
    """

    CONTINUE = "continue"
    STOP = "stop"


class StorageKind(Enum):
    """Storage layout of fitted control lattices.

    Attributes:
        AUTO (StorageKind): Dense when the fill ratio reaches ``min_fill``,
            sparse otherwise.
        DENSE (StorageKind): Always store every control node.
        SPARSE (StorageKind): Always store only the supported control nodes.
    """

    AUTO = "auto"
    DENSE = "dense"
    SPARSE = "sparse"


class MBAConfig(NamedTuple):
    """Options controlling the multilevel construction.

    Attributes:
        max_levels (int): Maximum number of lattice levels. Must be at least 1.
        tol (float): Convergence threshold on the RMS residual. Must be positive.
        min_fill (float): Fill ratio threshold in ``(0, 1]``.
        fill_policy (FillPolicy): Effect of a fill ratio below ``min_fill``.
        domain_policy (DomainPolicy): Handling of out-of-domain queries.
        storage (StorageKind): Storage layout of the fitted lattices.
        initial (str | Callable | None): Initial approximation subtracted before
            the first level: ``None`` (zero), ``"linear"`` (least-squares plane)
            or a callable mapping ``(n, ndim)`` points to ``(n,)`` values.
    """

    max_levels: int = 8
    tol: float = 1e-8
    min_fill: float = 0.5
    fill_policy: FillPolicy = FillPolicy.CONTINUE
    domain_policy: DomainPolicy = DomainPolicy.EXTRAPOLATE
    storage: StorageKind = StorageKind.AUTO
    initial: str | InitialApproximation | None = None


_INITIAL_KINDS = ("linear",)


def validate_config(config: MBAConfig) -> None:
    """Validate the options of a configuration.

    Args:
        config (MBAConfig): Configuration to validate.

    Raises:
        InvalidConfigError: If ``max_levels < 1``, ``tol <= 0``, ``min_fill`` is
            outside ``(0, 1]``, a policy is not a member of its enumeration, or
            ``initial`` is neither None, a known name nor a callable.
    """
    if isinstance(config.max_levels, bool) or not isinstance(
        config.max_levels, (int, np.integer)
    ):
        raise InvalidConfigError(f"max_levels must be an integer, got {config.max_levels!r}")
    if config.max_levels < 1:
        raise InvalidConfigError(f"max_levels must be at least 1, got {config.max_levels}")
    if not np.isfinite(config.tol) or config.tol <= 0.0:
        raise InvalidConfigError(f"tol must be positive, got {config.tol}")
    if not 0.0 < config.min_fill <= 1.0:
        raise InvalidConfigError(f"min_fill must be in (0, 1], got {config.min_fill}")
    if not isinstance(config.fill_policy, FillPolicy):
        raise InvalidConfigError(f"Unknown fill policy: {config.fill_policy!r}")
    if not isinstance(config.domain_policy, DomainPolicy):
        raise InvalidConfigError(f"Unknown domain policy: {config.domain_policy!r}")
    if not isinstance(config.storage, StorageKind):
        raise InvalidConfigError(f"Unknown storage kind: {config.storage!r}")
    initial = config.initial
    if initial is not None and not callable(initial) and initial not in _INITIAL_KINDS:
        raise InvalidConfigError(
            f"initial must be None, one of {_INITIAL_KINDS} or a callable, got {initial!r}"
        )


def make_config(config: MBAConfig | None = None, **options: Any) -> MBAConfig:
    """Create a validated configuration from a base configuration and overrides.

    Enumerated options may be given by value (e.g. ``fill_policy="stop"``).

    Args:
        config (MBAConfig | None): Base configuration. Defaults to ``MBAConfig()``.
        **options (Any): Field overrides.

    Returns:
        MBAConfig: The validated configuration.

    Raises:
        InvalidConfigError: If an option name is unknown or a value is invalid.
    """
    base = MBAConfig() if config is None else config

    unknown = set(options) - set(MBAConfig._fields)
    if unknown:
        raise InvalidConfigError(f"Unknown configuration options: {sorted(unknown)}")

    for name, enum_type in (
        ("fill_policy", FillPolicy),
        ("domain_policy", DomainPolicy),
        ("storage", StorageKind),
    ):
        value = options.get(name)
        if isinstance(value, str):
            try:
                options[name] = enum_type(value)
            except ValueError as err:
                raise InvalidConfigError(f"Unknown {name}: {value!r}") from err

    result = base._replace(**options)
    validate_config(result)
    return result


__all__ = [
    "DomainPolicy",
    "FillPolicy",
    "InitialApproximation",
    "MBAConfig",
    "StorageKind",
    "make_config",
    "validate_config",
]
