"""Tracked allocation of blocks whose addresses honour an alignment."""

from __future__ import annotations

import struct
import threading

from allocwatch.registry import Block, Location, TrackerError, ZeroSizeError
from allocwatch.tracker import MemoryTracker, _where

POINTER_SIZE = struct.calcsize("P")

_ALIGNED_REGION_START = 1 << 44
_aligned_cursor = _ALIGNED_REGION_START
_aligned_lock = threading.Lock()


def _aligned_address(alignment: int, size: int) -> int:
    """Reserve *size* bytes of address space starting on an *alignment* boundary."""
    global _aligned_cursor
    with _aligned_lock:
        address = (_aligned_cursor + alignment - 1) & ~(alignment - 1)
        _aligned_cursor = address + size
        return address


class AlignmentError(TrackerError):
    """Raised when an alignment or a size does not fit the alignment rules."""


def is_power_of_two(value: int) -> bool:
    """True if *value* is a positive power of two."""
    return value > 0 and value & (value - 1) == 0


class AlignedAllocator:
    """Aligned allocations recorded in the registry of a MemoryTracker."""

    def __init__(self, tracker: MemoryTracker) -> None:
        self.tracker = tracker

    def _new_block(self, alignment: int, size: int, file: str, line: int) -> Block:
        """Validate the request and make an untracked aligned block."""
        where = Location(file, line)
        if not is_power_of_two(alignment):
            raise AlignmentError(f"Alignment must be a power of 2.\n{where}")
        if alignment < POINTER_SIZE:
            raise AlignmentError(
                "Alignment must be greater than or equal to the pointer size "
                f"({POINTER_SIZE}).\n{where}"
            )
        if size == 0:
            raise ZeroSizeError(f"No processing was done because size is zero.\n{where}")
        if size < alignment:
            raise AlignmentError(f"Size must be greater than or equal to alignment.\n{where}")
        if size % alignment:
            raise AlignmentError(f"Size must be a multiple of alignment.\n{where}")
        return Block(bytearray(size), _aligned_address(alignment, size))

    def _check_product(self, count: int, size: int, file: str, line: int) -> int:
        return self.tracker._check_product(count, size, file, line)

    def aligned_alloc(
        self, alignment: int, size: int, file: str | None = None, line: int | None = None
    ) -> Block:
        """Allocate *size* bytes at an address that is a multiple of *alignment*."""
        file, line = _where(file, line)
        registry = self.tracker.registry
        with registry.locked():
            block = self._new_block(alignment, size, file, line)
            registry.entry_add(block, size, file, line)
            return block

    def aligned_calloc(
        self,
        alignment: int,
        count: int,
        size: int,
        file: str | None = None,
        line: int | None = None,
    ) -> Block:
        """Allocate *count* zeroed elements of *size* bytes, aligned."""
        file, line = _where(file, line)
        total = self._check_product(count, size, file, line)
        block = self.aligned_alloc(alignment, total, file, line)
        block.data[:] = bytes(total)
        return block

    def aligned_realloc(
        self,
        block: Block | None,
        alignment: int,
        size: int,
        file: str | None = None,
        line: int | None = None,
    ) -> Block | None:
        """Move *block* to a new aligned block of *size* bytes, keeping its contents.

        A None block is allocated afresh; a size of zero frees the block and
        gives None. The returned block is always a different one.
        """
        file, line = _where(file, line)
        if block is None:
            return self.aligned_alloc(alignment, size, file, line)
        registry = self.tracker.registry
        with registry.locked():
            if size == 0:
                self.tracker.free(block, file, line)
                return None
            old_size = registry.get_size(block, file, line)
            if old_size == 0:
                return None
            new_block = self._new_block(alignment, size, file, line)
            keep = min(old_size, size, len(block.data))
            new_block.data[:keep] = block.data[:keep]
            registry.entry_update(block, new_block, size, file, line)
            block.data.clear()
            return new_block