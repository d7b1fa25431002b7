"""Public API surface for mbafit.

Multilevel B-spline approximation of scattered data in N dimensions.
Defines package metadata and exported interfaces.
"""

import logging
from typing import Final

# Public API imports
from .basis import (
    tabulate_cubic_Bspline_basis,
    tabulate_cubic_Bspline_basis_1D,
    tabulate_cubic_Bspline_basis_derivative_1D,
)
from .builder import MultilevelBuilder, build_model
from .config import DomainPolicy, FillPolicy, MBAConfig, StorageKind, make_config
from .domain import BoundingBox, map_points
from .errors import (
    InvalidConfigError,
    InvalidDomainError,
    InvalidSampleError,
    MBAError,
    OutOfDomainError,
    ShapeMismatchError,
)
from .initial import LinearApproximation
from .lattice import ControlLattice, SparseControlLattice, fit_control_lattice
from .mba import MBA, mba1, mba2, mba3
from .model import LevelReport, MultilevelModel, Termination

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Package metadata
__version__: Final[str] = "0.1.0"
__license__: Final[str] = "MIT"
__author__: Final[str] = "mbafit developers"

# Public interface: only functions/classes that don't start with _
__all__ = [
    "MBA",
    "BoundingBox",
    "ControlLattice",
    "DomainPolicy",
    "FillPolicy",
    "InvalidConfigError",
    "InvalidDomainError",
    "InvalidSampleError",
    "LevelReport",
    "LinearApproximation",
    "MBAConfig",
    "MBAError",
    "MultilevelBuilder",
    "MultilevelModel",
    "OutOfDomainError",
    "ShapeMismatchError",
    "SparseControlLattice",
    "StorageKind",
    "Termination",
    "__author__",
    "__license__",
    "__version__",
    "build_model",
    "fit_control_lattice",
    "make_config",
    "map_points",
    "mba1",
    "mba2",
    "mba3",
    "tabulate_cubic_Bspline_basis",
    "tabulate_cubic_Bspline_basis_1D",
    "tabulate_cubic_Bspline_basis_derivative_1D",
]
