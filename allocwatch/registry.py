"""Bookkeeping for tracked memory blocks: entries, locking and reporting."""

from __future__ import annotations

import itertools
import sys
import threading
import warnings
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TextIO

DEFAULT_ADDRESS_LIMIT = 2**64 - 1

_address_counter = itertools.count(0x10000, 0x10)
_address_lock = threading.Lock()


def _next_address() -> int:
    with _address_lock:
        return next(_address_counter)


class TrackerError(Exception):
    """Base class for errors raised by the memory tracker."""


class ZeroSizeError(TrackerError):
    """Raised when a size or count of zero makes a request meaningless."""


class AllocationOverflowError(TrackerError):
    """Raised when count * size exceeds the address limit."""


class UntrackedBlockError(TrackerError):
    """Raised when a block has no entry in the registry."""


class DoubleFreeError(TrackerError):
    """Raised when a block that is already freed is freed again."""

    def __init__(self, location: Location, previous: Location | None) -> None:
        self.location = location
        self.previous = previous
        message = f"Memory already freed!\nrefree {location}"
        if previous is not None:
            message += f"\nfree {previous}"
        super().__init__(message)


@dataclass(frozen=True)
class Location:
    """A place in the calling code: file name and line number."""

    file: str
    line: int

    def __str__(self) -> str:
        return f"File: {self.file}   Line: {self.line}"


@dataclass(eq=False)
class Block:
    """A block of memory: its bytes and a unique address."""

    data: bytearray
    address: int = field(default_factory=_next_address)

    @property
    def size(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"Block(address={self.address:#x}, size={len(self.data)})"


@dataclass
class Entry:
    """What the registry knows about one tracked block."""

    block: Block
    size: int
    alloc: Location
    last_realloc: Location | None = None
    freed_at: Location | None = None

    @property
    def is_freed(self) -> bool:
        return self.freed_at is not None


class Registry:
    """Table of tracked blocks, keyed by address, guarded by one lock.

    In debug mode freed blocks stay in the table, marked with where they were
    freed; otherwise freeing removes the entry.
    """

    def __init__(self, debug: bool = False, address_limit: int = DEFAULT_ADDRESS_LIMIT) -> None:
        if address_limit <= 0:
            raise ValueError("address_limit must be positive")
        self.debug = debug
        self.address_limit = address_limit
        self._entries: dict[int, Entry] = {}
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator[Registry]:
        """Hold the registry lock for the duration of the block."""
        with self._lock:
            yield self

    def entry_add(self, block: Block | None, size: int, file: str, line: int) -> Entry:
        """Start tracking *block* with *size*; an existing entry is replaced."""
        if block is None:
            raise TrackerError(
                f"block is None! Memory cannot be tracked!\n{Location(file, line)}"
            )
        entry = Entry(block=block, size=size, alloc=Location(file, line))
        self._entries[block.address] = entry
        return entry

    def entry_update(
        self,
        old_block: Block | None,
        new_block: Block | None,
        new_size: int,
        file: str,
        line: int,
    ) -> Entry:
        """Move the entry of *old_block* to *new_block* with a new size."""
        if old_block is None:
            return self.entry_add(new_block, new_size, file, line)
        if new_block is None:
            new_block = old_block

        entry = self._entries.get(old_block.address)
        if entry is None:
            warnings.warn(
                "No entry found to update! The memory might not be tracked.\n"
                f"{Location(file, line)}",
                RuntimeWarning,
                stacklevel=2,
            )
            return self.entry_add(new_block, new_size, file, line)

        if new_block.address != old_block.address:
            del self._entries[old_block.address]
            self._entries[new_block.address] = entry
        entry.block = new_block
        entry.size = new_size
        entry.last_realloc = Location(file, line)
        return entry

    def entry_free(self, block: Block | None, file: str, line: int) -> None:
        """Record that *block* was freed; a None block is ignored."""
        if block is None:
            return
        entry = self._entries.get(block.address)
        if entry is None:
            raise UntrackedBlockError(
                "No entry found to free! The memory might not be tracked.\n"
                f"{Location(file, line)}"
            )
        if self.debug:
            entry.freed_at = Location(file, line)
        else:
            del self._entries[block.address]

    def get_size(self, block: Block | None, file: str, line: int) -> int:
        """Return the tracked size of *block*."""
        if block is None:
            raise TrackerError(
                f"Cannot return value because block is None.\n{Location(file, line)}"
            )
        entry = self._entries.get(block.address)
        if entry is None:
            raise UntrackedBlockError(
                "No entry found to get size! The memory might not be tracked.\n"
                f"{Location(file, line)}"
            )
        return entry.size

    def lookup(self, block: Block) -> Entry | None:
        """Return the entry for *block*, or None if it is not tracked."""
        return self._entries.get(block.address)

    def entries(self) -> list[Entry]:
        """A snapshot of all entries, in the order they were added."""
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, block: object) -> bool:
        return isinstance(block, Block) and block.address in self._entries

    def _describe(self, entry: Entry) -> str:
        head = (
            f"\nAlready Freed: {'true' if entry.is_freed else 'false'}\n"
            f"Pointer: {entry.block.address:#x}   Size: {entry.size}\n"
        )
        if not self.debug:
            return head + "Please use debug mode if you need more detailed information.\n"
        lines = [head]
        if entry.freed_at is not None:
            lines.append(f"free {entry.freed_at}\n")
        lines.append(f"alloc {entry.alloc}\n")
        if entry.last_realloc is not None:
            lines.append(f"Last realloc {entry.last_realloc}\n")
        return "".join(lines)

    def report(self) -> str:
        """Text describing every entry currently held."""
        body = "".join(self._describe(entry) for entry in self.entries())
        return "\n" + body + "\n\n"

    def all_check(self, stream: TextIO | None = None) -> None:
        """Write the report to *stream* (standard output by default)."""
        (stream if stream is not None else sys.stdout).write(self.report())