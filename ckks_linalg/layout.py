"""
Slot layout encoding for matrix-vector products.

A CKKS ciphertext only supports elementwise arithmetic and cyclic rotation,
so a matrix-vector product has to be expressed as one elementwise product of
two carefully aligned slot vectors followed by a block-wise reduction:

    matrix (k x n)  --flatten_column_major-->  [M[0][0] .. M[k-1][0] | M[0][1] .. | ...]
    vector (k,)     --tile(v, n)------------>  [v[0]    .. v[k-1]    | v[0]    .. | ...]

Column ``c`` of the matrix lands in slots ``[c*k, (c+1)*k)`` and is lined up
with a full copy of the vector, so summing each block of width ``k`` yields
``sum_r M[r][c] * v[r]``.

Every function here is pure: inputs are never modified and the output is a
fresh float64 CPU tensor.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import torch

from .errors import EncodingOverflow, ShapeError

MatrixLike = Union[torch.Tensor, Sequence[Sequence[float]]]
VectorLike = Union[torch.Tensor, Sequence[float]]


def _is_row(row: object) -> bool:
    if isinstance(row, torch.Tensor):
        return row.ndim == 1
    return isinstance(row, Sequence) and not isinstance(row, (str, bytes))


def as_matrix(matrix: MatrixLike) -> torch.Tensor:
    """Validate a matrix and return it as a 2-D float64 tensor.

    Raises:
        ShapeError: If the matrix is empty, ragged, not two-dimensional,
            or holds non-numeric entries.
    """
    if isinstance(matrix, torch.Tensor):
        mat = matrix.detach().to(dtype=torch.float64, device="cpu")
    else:
        rows = list(matrix)
        if not rows:
            raise ShapeError("matrix must have at least one row")
        for i, row in enumerate(rows):
            if not _is_row(row):
                raise ShapeError(
                    f"matrix must be 2-D: row {i} is a {type(row).__name__}, not a sequence"
                )
        rows = [list(row) for row in rows]
        row_len = len(rows[0])
        for i, row in enumerate(rows):
            if len(row) != row_len:
                raise ShapeError(
                    f"matrix must be rectangular: row 0 has {row_len} entries, "
                    f"row {i} has {len(row)}"
                )
        try:
            mat = torch.tensor(rows, dtype=torch.float64)
        except (TypeError, ValueError, RuntimeError) as exc:
            raise ShapeError(f"matrix entries must be real numbers: {exc}") from exc

    if mat.ndim != 2:
        raise ShapeError(f"matrix must be 2-D, got {mat.ndim}-D")
    if mat.shape[0] == 0 or mat.shape[1] == 0:
        raise ShapeError(f"matrix must be non-empty, got shape {tuple(mat.shape)}")
    return mat


def as_vector(vector: VectorLike) -> torch.Tensor:
    """Validate a vector and return it as a 1-D float64 tensor."""
    try:
        vec = torch.as_tensor(vector, dtype=torch.float64).detach().cpu()
    except (TypeError, ValueError, RuntimeError) as exc:
        raise ShapeError(f"vector must be a flat sequence of real numbers: {exc}") from exc
    if vec.ndim != 1:
        raise ShapeError(f"vector must be 1-D, got {vec.ndim}-D")
    if vec.numel() == 0:
        raise ShapeError("vector must be non-empty")
    return vec


def check_capacity(length: int, capacity: Optional[int], what: str = "slot vector") -> None:
    """Raise EncodingOverflow if ``length`` slots do not fit in ``capacity``."""
    if capacity is not None and length > capacity:
        raise EncodingOverflow(length, capacity, what)


def flatten_column_major(matrix: MatrixLike, capacity: Optional[int] = None) -> torch.Tensor:
    """Flatten a matrix column by column.

    Slot ``col * k + row`` holds ``matrix[row][col]`` where ``k`` is the
    number of rows, so each column forms a contiguous block of width ``k``.

    Args:
        matrix: Non-empty rectangular matrix (k x n).
        capacity: Optional slot capacity to check the k*n result against.

    Returns:
        1-D float64 tensor of length k*n.

    Raises:
        ShapeError: If the matrix is empty or ragged.
        EncodingOverflow: If k*n exceeds ``capacity``.
    """
    mat = as_matrix(matrix)
    check_capacity(mat.numel(), capacity, "flattened matrix")
    # transpose then row-major flatten == column-major flatten
    return mat.t().contiguous().reshape(-1).clone()


def flatten_row_major(matrix: MatrixLike, capacity: Optional[int] = None) -> torch.Tensor:
    """Flatten a matrix row by row (slot ``row * n + col`` holds ``matrix[row][col]``)."""
    mat = as_matrix(matrix)
    check_capacity(mat.numel(), capacity, "flattened matrix")
    return mat.reshape(-1).clone()


def unflatten_column_major(slots: VectorLike, rows: int, cols: int) -> torch.Tensor:
    """Inverse of :func:`flatten_column_major`.

    Only the first ``rows * cols`` slots are read; anything after them is
    treated as padding.
    """
    if rows <= 0 or cols <= 0:
        raise ShapeError(f"rows and cols must be positive, got ({rows}, {cols})")
    flat = torch.as_tensor(slots, dtype=torch.float64).detach().cpu().reshape(-1)
    needed = rows * cols
    if flat.numel() < needed:
        raise ShapeError(
            f"slot vector has {flat.numel()} entries, {needed} are required "
            f"for a {rows}x{cols} matrix"
        )
    return flat[:needed].reshape(cols, rows).t().contiguous()


def tile(vector: VectorLike, repetitions: int, capacity: Optional[int] = None) -> torch.Tensor:
    """Repeat a vector end to end.

    Args:
        vector: Non-empty 1-D vector.
        repetitions: Number of copies, at least 1.
        capacity: Optional slot capacity to check the result against.

    Returns:
        1-D float64 tensor of length ``len(vector) * repetitions``.

    Raises:
        ShapeError: If ``repetitions < 1`` or the vector is empty.
        EncodingOverflow: If the tiled length exceeds ``capacity``.
    """
    if repetitions < 1:
        raise ShapeError(f"repetitions must be >= 1, got {repetitions}")
    vec = as_vector(vector)
    check_capacity(vec.numel() * repetitions, capacity, "tiled vector")
    return vec.repeat(repetitions)
