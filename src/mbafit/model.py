"""Multilevel B-spline model: the sum of a hierarchy of control lattices."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from enum import Enum
from typing import NamedTuple

import numpy as np
import numpy.typing as npt

from ._basis_utils import _normalize_points
from .config import DomainPolicy, InitialApproximation, StorageKind
from .domain import BoundingBox
from .errors import InvalidConfigError, ShapeMismatchError
from .initial import evaluate_initial
from .lattice import ControlLattice


class Termination(Enum):
    """Reason why the multilevel construction stopped.

    Attributes:
        CONVERGED (Termination): The RMS residual reached the tolerance.
        MAX_LEVELS_REACHED (Termination): The maximum number of levels was built.
        SPARSE_LATTICE (Termination): The last level was sparser than ``min_fill``
            and the fill policy requested to stop refining.
    """

    CONVERGED = "converged"
    MAX_LEVELS_REACHED = "max_levels_reached"
    SPARSE_LATTICE = "sparse_lattice"


class LevelReport(NamedTuple):
    """Diagnostics of one construction level.

    Attributes:
        level (int): Level index, starting at 0.
        resolution (tuple[int, ...]): Lattice intervals per dimension.
        storage (StorageKind): Storage layout of the lattice.
        fill_ratio (float): Fraction of control nodes supported by samples.
        rms (float): RMS residual at the samples after adding this level.
    """

    level: int
    resolution: tuple[int, ...]
    storage: StorageKind
    fill_ratio: float
    rms: float


class MultilevelModel:
    """Immutable multilevel B-spline approximation.

    The value at a point is the initial approximation (if any) plus the sum of
    every lattice level, added from coarse to fine.
    """

    def __init__(  # noqa: PLR0913
        self,
        box: BoundingBox,
        lattices: Sequence[ControlLattice],
        initial: InitialApproximation | None = None,
        reports: Sequence[LevelReport] = (),
        termination: Termination | None = None,
        domain_policy: DomainPolicy = DomainPolicy.EXTRAPOLATE,
    ) -> None:
        """Initialize the model.

        Args:
            box (BoundingBox): Domain shared by all lattices.
            lattices (Sequence[ControlLattice]): Lattices ordered from coarse to fine.
            initial (InitialApproximation | None): Initial approximation added to
                the lattice sum. Defaults to None (zero).
            reports (Sequence[LevelReport]): Construction diagnostics, one per level.
            termination (Termination | None): Reason the construction stopped.
            domain_policy (DomainPolicy): Handling of out-of-domain queries.

        Raises:
            ShapeMismatchError: If a lattice is defined over another domain or the
                number of reports does not match the number of lattices.
            InvalidConfigError: If `domain_policy` is not a DomainPolicy.
        """
        self._box = box
        self._lattices = tuple(lattices)
        for lattice in self._lattices:
            if lattice.box != box:
                raise ShapeMismatchError(
                    f"Lattice domain {lattice.box} differs from model domain {box}"
                )
        self._reports = tuple(reports)
        if self._reports and len(self._reports) != len(self._lattices):
            raise ShapeMismatchError(
                f"Got {len(self._reports)} level reports for {len(self._lattices)} lattices"
            )
        if not isinstance(domain_policy, DomainPolicy):
            raise InvalidConfigError(f"Unknown domain policy: {domain_policy!r}")
        self._initial = initial
        self._termination = termination
        self._domain_policy = domain_policy

    @property
    def ndim(self) -> int:
        """Number of dimensions of the domain."""
        return self._box.ndim

    @property
    def bounding_box(self) -> BoundingBox:
        """Domain of the model."""
        return self._box

    @property
    def lattices(self) -> tuple[ControlLattice, ...]:
        """Lattices ordered from coarse to fine."""
        return self._lattices

    @property
    def levels(self) -> tuple[tuple[tuple[int, ...], ControlLattice], ...]:
        """Pairs of (resolution, lattice), ordered from coarse to fine."""
        return tuple((lattice.resolution, lattice) for lattice in self._lattices)

    @property
    def num_levels(self) -> int:
        """Number of lattice levels."""
        return len(self._lattices)

    @property
    def reports(self) -> tuple[LevelReport, ...]:
        """Construction diagnostics, one per level."""
        return self._reports

    @property
    def termination(self) -> Termination | None:
        """Reason the construction stopped (None if the model was assembled by hand)."""
        return self._termination

    @property
    def initial(self) -> InitialApproximation | None:
        """Initial approximation added to the lattice sum."""
        return self._initial

    @property
    def domain_policy(self) -> DomainPolicy:
        """Handling of out-of-domain queries."""
        return self._domain_policy

    def __len__(self) -> int:
        return len(self._lattices)

    def __iter__(self) -> Iterator[ControlLattice]:
        return iter(self._lattices)

    def _prepare_points(
        self, points: npt.ArrayLike
    ) -> tuple[npt.NDArray[np.float64], tuple[int, ...]]:
        pts, leading_shape = _normalize_points(points, self.ndim)
        if self._domain_policy is DomainPolicy.REJECT:
            self._box.check_contains(pts)
        return pts, leading_shape

    def apply(self, points: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Evaluate the model at points.

        Args:
            points (npt.ArrayLike): Query points of shape ``(..., ndim)``. A single
                point of shape ``(ndim,)`` yields a 0-d array.

        Returns:
            npt.NDArray[np.float64]: One value per point, with the leading shape of
            `points`.

        Raises:
            ShapeMismatchError: If the trailing axis of `points` is not ``ndim``.
            OutOfDomainError: If the domain policy is REJECT and a point lies
                outside the bounding box.
        """
        pts, leading_shape = self._prepare_points(points)
        out = np.zeros(pts.shape[0], dtype=np.float64)
        if self._initial is not None:
            out += evaluate_initial(self._initial, pts)
        for lattice in self._lattices:
            lattice._add_to(pts, out)
        return out.reshape(leading_shape)

    __call__ = apply

    def _initial_gradient(
        self, initial: InitialApproximation, pts: npt.NDArray[np.float64]
    ) -> npt.NDArray[np.float64]:
        """Gradient of the initial approximation, by central differences if needed."""
        gradient = getattr(initial, "gradient", None)
        if gradient is not None:
            return np.asarray(gradient(pts), dtype=np.float64).reshape(pts.shape)

        out = np.empty(pts.shape, dtype=np.float64)
        steps = 1e-6 * self._box.extent
        for d in range(self.ndim):
            shift = np.zeros(self.ndim)
            shift[d] = steps[d]
            forward = evaluate_initial(initial, pts + shift)
            backward = evaluate_initial(initial, pts - shift)
            out[:, d] = (forward - backward) / (2.0 * steps[d])
        return out

    def gradient(self, points: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Evaluate the gradient of the model at points.

        Args:
            points (npt.ArrayLike): Query points of shape ``(..., ndim)``.

        Returns:
            npt.NDArray[np.float64]: Gradients of shape ``(..., ndim)``.

        Raises:
            ShapeMismatchError: If the trailing axis of `points` is not ``ndim``.
            OutOfDomainError: If the domain policy is REJECT and a point lies
                outside the bounding box.
        """
        pts, leading_shape = self._prepare_points(points)
        out = np.zeros(pts.shape, dtype=np.float64)
        if self._initial is not None:
            out += self._initial_gradient(self._initial, pts)
        for lattice in self._lattices:
            lattice._add_gradient_to(pts, out)
        return out.reshape(*leading_shape, self.ndim)

    def residuals(self, points: npt.ArrayLike, values: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Compute ``values - model(points)``.

        Raises:
            ShapeMismatchError: If `values` does not match the leading shape of `points`.
        """
        predicted = self.apply(points)
        vals = np.asarray(values, dtype=np.float64)
        if vals.shape != predicted.shape:
            raise ShapeMismatchError(
                f"values have shape {vals.shape}, but points have leading shape {predicted.shape}"
            )
        return vals - predicted

    def rms_error(self, points: npt.ArrayLike, values: npt.ArrayLike) -> float:
        """Root-mean-square of the residuals at the given samples."""
        res = self.residuals(points, values)
        if res.size == 0:
            return 0.0
        return float(np.sqrt(np.mean(res * res)))

    def summary(self) -> str:
        """Return a textual summary of the construction, one line per level."""
        lo = ", ".join(f"{x:g}" for x in self._box.lo)
        hi = ", ".join(f"{x:g}" for x in self._box.hi)
        termination = "n/a" if self._termination is None else self._termination.value
        lines = [
            f"MultilevelModel: ndim={self.ndim}, domain=[{lo}] x [{hi}], "
            f"levels={self.num_levels}, termination={termination}"
        ]
        if self._initial is not None:
            lines.append(f"  initial: {self._initial!r}")
        lines.append(f"  {'level':>5}  {'resolution':<16}  {'storage':<7}  {'fill':>6}  {'rms':>10}")
        for level, lattice in enumerate(self._lattices):
            rms = f"{self._reports[level].rms:10.3e}" if self._reports else f"{'-':>10}"
            resolution = " x ".join(str(n) for n in lattice.resolution)
            lines.append(
                f"  {level:>5}  {resolution:<16}  {lattice.storage.value:<7}  "
                f"{lattice.fill_ratio:6.3f}  {rms}"
            )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


__all__ = ["LevelReport", "MultilevelModel", "Termination"]
