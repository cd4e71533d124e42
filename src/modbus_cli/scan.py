"""
Sliding-window register scan.

Reads ``[start, end)`` in windows of ``window_size`` registers, advancing by
``step``. A step smaller than the window size makes windows overlap, so each
address in the overlap is read more than once; aggregate() records every
reading per address and whether they all agree.
"""

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable

from .errors import ValidationError
from .types import ScanResult, WindowResult

logger = logging.getLogger(__name__)

ReadFn = Callable[[int, int], bytes]

REGISTER_SIZE = 2


def scan_windows(
    start: int,
    end: int,
    window_size: int,
    step: int,
    include_partial: bool,
    read: ReadFn,
) -> list[WindowResult]:
    """
    Read each window with read(address, count) and return the raw results in order.

    A trailing window shorter than window_size is skipped when include_partial
    is False; the loop keeps stepping past it rather than stopping. Any
    exception from read() propagates and nothing is returned.
    """
    if window_size < 1:
        raise ValidationError(f"window size must be >= 1, got {window_size}")
    if step < 1:
        raise ValidationError(f"step must be >= 1, got {step}")

    windows: list[WindowResult] = []
    address = start
    while address < end:
        count = min(window_size, end - address)
        if count <= 0:
            break
        if not include_partial and count < window_size:
            logger.debug("Skipping partial window at %d (%d < %d)", address, count, window_size)
            address += step
            continue

        data = read(address, count)
        if len(data) % REGISTER_SIZE != 0:
            raise ValidationError(
                f"read at {address} returned {len(data)} bytes, expected a multiple of {REGISTER_SIZE}"
            )
        logger.debug("Window %d+%d: %d bytes", address, count, len(data))
        windows.append(WindowResult(address=address, data=data))
        address += step
    return windows


def aggregate(windows: Iterable[WindowResult]) -> list[ScanResult]:
    """Group window bytes per register address, in window-then-offset order, sorted by address."""
    by_address: dict[int, list[bytes]] = defaultdict(list)
    for window in windows:
        data = window.data
        for offset in range(0, len(data) - len(data) % REGISTER_SIZE, REGISTER_SIZE):
            by_address[window.address + offset // REGISTER_SIZE].append(
                bytes(data[offset:offset + REGISTER_SIZE])
            )

    results: list[ScanResult] = []
    for address in sorted(by_address):
        values = by_address[address]
        identical = all(v == values[0] for v in values[1:])
        results.append(ScanResult(address=address, values=tuple(values), identical=identical))
    return results


def scan(
    start: int,
    end: int,
    window_size: int,
    step: int,
    include_partial: bool,
    read: ReadFn,
) -> list[ScanResult]:
    """Scan [start, end) and return one ScanResult per address touched, ascending."""
    return aggregate(scan_windows(start, end, window_size, step, include_partial, read))
