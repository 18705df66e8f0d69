"""Binary insertion over a 1-based ranked list.

The search keeps inclusive bounds ``[low, high]`` over the ranks the new
movie might displace. Each answer discards the compared rank and one side of
the range; once the bounds cross, ``low`` is the insertion rank.
"""


def initial_bounds(size: int) -> tuple[int, int]:
    """Bounds covering a whole list of ``size`` entries."""
    return 1, size


def midpoint(low: int, high: int) -> int:
    """Upper-middle rank of the inclusive range ``[low, high]``.

    With two candidates left this picks ``high``, so every answer strictly
    shrinks the range.
    """
    return low + (high - low + 1) // 2


def narrow(low: int, high: int, mid: int, new_preferred: bool) -> tuple[int, int]:
    """Apply one answer to the bounds.

    Preferring the new movie places it above ``mid`` (a lower rank number),
    otherwise below it.
    """
    if new_preferred:
        return low, mid - 1
    return mid + 1, high


def is_converged(low: int, high: int) -> bool:
    """True once the bounds have crossed and ``low`` is the final rank."""
    return low > high


def max_comparisons(size: int) -> int:
    """Worst-case answers needed to place a movie in a list of ``size``.

    Equal to ceil(log2(size + 1)).
    """
    return size.bit_length()
