"""Utility functions for input normalization and output validation."""

import numpy as np
from numpy import typing as npt

from .errors import ShapeMismatchError


def _normalize_offsets_1D(t: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Normalize local offsets to a contiguous 1D float64 array.

    Converts input offsets (scalar, list, or numpy array) to a 1D numpy array.
    Zero-dimensional arrays (scalars) are converted to 1D arrays with a single
    element. Multi-dimensional arrays are flattened.

    Returns:
        A contiguous 1D numpy array with dtype np.float64.
    """
    return np.ascontiguousarray(np.asarray(t, dtype=np.float64).ravel())


def _compute_final_output_shape_1D(input_shape: tuple[int, ...], n_basis: int) -> tuple[int, ...]:
    """Compute the final output shape for 1D basis functions.

    Args:
        input_shape (tuple[int, ...]): The shape of the input offsets (before normalization).
        n_basis (int): The number of basis functions.

    Returns:
        tuple[int, ...]: The final output shape ``(*input_shape, n_basis)``.
    """
    return (*input_shape, n_basis)


def _validate_out_array(
    out: npt.NDArray[np.float64],
    expected_shape: tuple[int, ...],
    expected_dtype: npt.DTypeLike = np.float64,
) -> None:
    """Validate that the output array has the correct shape and dtype.

    This function follows NumPy's style for output array validation.

    Args:
        out (npt.NDArray[np.float64]): The output array to validate.
        expected_shape (tuple[int, ...]): The expected shape of the output array.
        expected_dtype (npt.DTypeLike): The expected dtype. Defaults to float64.

    Raises:
        ShapeMismatchError: If the array shape does not match expectations.
        ValueError: If the dtype does not match or the array is not writeable
            and C-contiguous.
    """
    if out.shape != expected_shape:
        raise ShapeMismatchError(
            f"Output array has shape {out.shape}, but expected shape {expected_shape}"
        )
    if out.dtype != expected_dtype:
        raise ValueError(f"Output array has dtype {out.dtype}, but expected dtype {expected_dtype}")
    if not out.flags.writeable:
        raise ValueError("Output array is not writeable")
    if not out.flags.c_contiguous:
        raise ValueError("Output array is not C-contiguous")


def _normalize_points(
    points: npt.ArrayLike, ndim: int, name: str = "points"
) -> tuple[npt.NDArray[np.float64], tuple[int, ...]]:
    """Flatten an array of points with a trailing axis of length ``ndim``.

    Args:
        points (npt.ArrayLike): Points of shape ``(..., ndim)``.
        ndim (int): Expected length of the trailing axis.
        name (str): Name of the argument used in error messages.

    Returns:
        tuple[npt.NDArray[np.float64], tuple[int, ...]]: Contiguous float64 array of
        shape ``(n_pts, ndim)`` and the leading shape of the input.

    Raises:
        ShapeMismatchError: If the input has no trailing axis of length ``ndim``.
    """
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim < 1 or arr.shape[-1] != ndim:
        raise ShapeMismatchError(
            f"{name} should have a trailing axis of size {ndim}, got shape {arr.shape}"
        )
    leading_shape = arr.shape[:-1]
    return np.ascontiguousarray(arr.reshape(-1, ndim)), leading_shape


def _as_vector(
    values: npt.ArrayLike, size: int, name: str, dtype: npt.DTypeLike = np.float64
) -> npt.NDArray[np.generic]:
    """Convert the input to a 1D array of the given size.

    Raises:
        ShapeMismatchError: If the input is not a vector of length ``size``.
    """
    arr = np.asarray(values, dtype=dtype)
    if arr.ndim != 1 or arr.shape[0] != size:
        raise ShapeMismatchError(
            f"{name} should be a vector of size {size}, got shape {arr.shape}"
        )
    return np.ascontiguousarray(arr)


def _compute_strides(shape: tuple[int, ...]) -> npt.NDArray[np.int64]:
    """Compute the C-order strides (in elements) of an array with the given shape."""
    strides = np.ones(len(shape), dtype=np.int64)
    for d in range(len(shape) - 2, -1, -1):
        strides[d] = strides[d + 1] * shape[d + 1]
    return strides


def _freeze(arr: npt.NDArray[np.generic]) -> npt.NDArray[np.generic]:
    """Mark an array as read-only and return it."""
    arr.flags.writeable = False
    return arr
