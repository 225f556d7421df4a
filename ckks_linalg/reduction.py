"""
Rotate-and-sum reduction over contiguous slot blocks.

Under encryption there is no random access to slots; the only way to move a
value from one slot to another is a cyclic rotation of the whole vector.
Summing a block of ``k`` neighbouring slots is therefore done by adding
rotated copies of the ciphertext to itself. After the reduction, slot
``j`` holds ``sum(x[j + i*step] for i in range(k))``; in particular the first
slot of each block of width ``k`` holds the sum of that block.

Two strategies are provided:

- ``"linear"``: rotate by ``step`` repeatedly, ``k - 1`` rotations and
  additions. Needs a single rotation key.
- ``"log"``: binary decomposition of ``k``. Window sums of width 1, 2, 4, ...
  are built by doubling, and the windows matching the set bits of ``k`` are
  stitched together. At most ``2 * floor(log2(k))`` rotations for any ``k``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Set

from .errors import ShapeError

if TYPE_CHECKING:
    from .ciphertext import Ciphertext
    from .evaluator import Evaluator

logger = logging.getLogger(__name__)

LINEAR = "linear"
LOG = "log"
STRATEGIES = (LINEAR, LOG)
DEFAULT_STRATEGY = LOG


def _check_args(block_width: int, step: int, strategy: str) -> None:
    if block_width < 1:
        raise ShapeError(f"block_width must be >= 1, got {block_width}")
    if step == 0:
        raise ValueError("step must be non-zero")
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown reduction strategy {strategy!r}; use one of {STRATEGIES}")


def _log_schedule(block_width: int) -> List[tuple]:
    """Operation schedule for the logarithmic strategy.

    Each entry is ``("emit", offset)`` (add the current window rotated by
    ``offset`` into the accumulator) or ``("double", width)`` (extend the
    window by adding itself rotated by ``width``). Offsets are in units of
    ``step``.
    """
    schedule = []
    remaining = block_width
    offset = 0
    width = 1
    while remaining:
        if remaining & 1:
            schedule.append(("emit", offset))
            offset += width
        remaining >>= 1
        if remaining:
            schedule.append(("double", width))
            width *= 2
    return schedule


def reduction_rotations(block_width: int, step: int = 1, strategy: str = DEFAULT_STRATEGY) -> List[int]:
    """Rotation offsets :func:`rotate_sum` will request.

    Register these with the context before reducing.

    Example:
        >>> reduction_rotations(4, strategy="log")
        [1, 2]
        >>> reduction_rotations(4, strategy="linear")
        [1]
    """
    _check_args(block_width, step, strategy)
    if block_width == 1:
        return []
    if strategy == LINEAR:
        return [step]

    offsets: Set[int] = set()
    for _op, amount in _log_schedule(block_width):
        if amount:
            offsets.add(amount * step)
    return sorted(offsets)


def rotation_count(block_width: int, strategy: str = DEFAULT_STRATEGY) -> int:
    """Number of homomorphic rotations a reduction performs."""
    _check_args(block_width, 1, strategy)
    if strategy == LINEAR:
        return block_width - 1
    return sum(1 for _op, amount in _log_schedule(block_width) if amount)


def rotate_sum(
    ct: "Ciphertext",
    block_width: int,
    evaluator: "Evaluator",
    *,
    step: int = 1,
    strategy: str = DEFAULT_STRATEGY,
) -> "Ciphertext":
    """Sum every block of ``block_width`` slots into the block's first slot.

    Args:
        ct: Ciphertext whose slots are grouped in contiguous blocks.
        block_width: Width ``k`` of each block.
        evaluator: Evaluator holding the rotation keys from
            :func:`reduction_rotations`.
        step: Distance between summed slots (1 for contiguous blocks).
        strategy: ``"log"`` (default) or ``"linear"``.

    Returns:
        New ciphertext; slot ``c * k`` holds ``sum(ct[c*k : c*k + k])``.

    Raises:
        MissingRotationKey: On the first rotation whose key is absent.
    """
    _check_args(block_width, step, strategy)
    if block_width == 1:
        return ct

    if strategy == LINEAR:
        acc = ct
        rotated = ct
        for _ in range(1, block_width):
            rotated = evaluator.rotate(rotated, step)
            acc = evaluator.add(acc, rotated)
        logger.debug("linear rotate_sum: width=%d rotations=%d", block_width, block_width - 1)
        return acc

    acc: Optional["Ciphertext"] = None
    window = ct
    for op, amount in _log_schedule(block_width):
        if op == "emit":
            term = evaluator.rotate(window, amount * step)
            acc = term if acc is None else evaluator.add(acc, term)
        else:
            window = evaluator.add(window, evaluator.rotate(window, amount * step))

    # block_width >= 1 always emits at least once
    assert acc is not None
    logger.debug(
        "log rotate_sum: width=%d rotations=%d", block_width, rotation_count(block_width, LOG)
    )
    return acc
