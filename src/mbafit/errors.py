"""Exceptions raised by mbafit.

All errors are raised at construction or evaluation boundaries, before any
numerical work takes place. They derive from :class:`ValueError` so callers
catching invalid-input errors generically keep working.
"""


class MBAError(ValueError):
    """Base class for all mbafit input errors."""


class ShapeMismatchError(MBAError):
    """An input array does not have the expected dimensionality or length."""


class InvalidDomainError(MBAError):
    """The bounding box is degenerate (``lo[d] >= hi[d]`` for some ``d``) or not finite."""


class InvalidConfigError(MBAError):
    """A configuration option is outside its admissible range."""


class InvalidSampleError(MBAError):
    """The sample set is empty or holds non-finite coordinates, values or weights."""


class OutOfDomainError(MBAError):
    """A query point lies outside the bounding box under the rejecting domain policy."""


__all__ = [
    "InvalidConfigError",
    "InvalidDomainError",
    "InvalidSampleError",
    "MBAError",
    "OutOfDomainError",
    "ShapeMismatchError",
]
