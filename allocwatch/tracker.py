"""Allocation front end that records every block in a registry."""

from __future__ import annotations

import sys
import warnings
from typing import TextIO

from allocwatch.registry import (
    DEFAULT_ADDRESS_LIMIT,
    AllocationOverflowError,
    Block,
    DoubleFreeError,
    Entry,
    Location,
    Registry,
    ZeroSizeError,
)

_UNDEFINED_REALLOC = (
    "Undefined behavior, do not use anymore. "
    "The memory block will be freed and None will be returned."
)


def _where(file: str | None, line: int | None) -> tuple[str, int]:
    """Fill in a missing file or line from the caller of the public method."""
    if file is None or line is None:
        frame = sys._getframe(2)
        if file is None:
            file = frame.f_code.co_filename
        if line is None:
            line = frame.f_lineno
    return file, line


def _zero_error(what: str, file: str, line: int) -> ZeroSizeError:
    return ZeroSizeError(
        f"No processing was done because the {what} is zero.\n{Location(file, line)}"
    )


class MemoryTracker:
    """Hands out blocks of memory and keeps a record of each of them.

    Every public method takes the caller's file and line; when they are left
    out, the location of the direct caller is used.
    """

    def __init__(self, debug: bool = False, address_limit: int = DEFAULT_ADDRESS_LIMIT) -> None:
        self.registry = Registry(debug, address_limit)

    def _check_product(self, count: int, size: int, file: str, line: int) -> int:
        """The byte count of *count* elements of *size*, refusing zero sizes and overflow."""
        if size == 0:
            raise _zero_error("size", file, line)
        if count > self.registry.address_limit // size:
            raise AllocationOverflowError(f"Memory allocation overflow.\n{Location(file, line)}")
        return count * size

    def _new_tracked(self, size: int, file: str, line: int) -> Block:
        with self.registry.locked():
            block = Block(bytearray(size))
            self.registry.entry_add(block, size, file, line)
            return block

    def _release_for_zero(self, block: Block | None, file: str, line: int) -> None:
        warnings.warn(f"{_UNDEFINED_REALLOC}\n{Location(file, line)}", RuntimeWarning, stacklevel=3)
        self.free(block, file, line)

    def malloc(self, size: int, file: str | None = None, line: int | None = None) -> Block:
        """Allocate *size* bytes and track the block."""
        file, line = _where(file, line)
        if size == 0:
            raise _zero_error("size", file, line)
        return self._new_tracked(size, file, line)

    def calloc(
        self, count: int, size: int, file: str | None = None, line: int | None = None
    ) -> Block:
        """Allocate *count* zeroed elements of *size* bytes each."""
        file, line = _where(file, line)
        if count == 0:
            raise _zero_error("count", file, line)
        return self._new_tracked(self._check_product(count, size, file, line), file, line)

    def realloc(
        self, block: Block | None, size: int, file: str | None = None, line: int | None = None
    ) -> Block | None:
        """Resize *block* to *size* bytes; a size of zero frees it and gives None."""
        file, line = _where(file, line)
        with self.registry.locked():
            if size == 0:
                self._release_for_zero(block, file, line)
                return None
            if block is None:
                new_block = Block(bytearray(size))
                self.registry.entry_update(None, new_block, size, file, line)
                return new_block
            current = len(block.data)
            if size < current:
                del block.data[size:]
            else:
                block.data.extend(bytes(size - current))
            self.registry.entry_update(block, block, size, file, line)
            return block

    def free(self, block: Block | None, file: str | None = None, line: int | None = None) -> None:
        """Release *block*; None is ignored."""
        file, line = _where(file, line)
        if block is None:
            return
        with self.registry.locked():
            entry = self.registry.lookup(block)
            if self.registry.debug and entry is not None and entry.is_freed:
                raise DoubleFreeError(Location(file, line), entry.freed_at)
            block.data.clear()
            self.registry.entry_free(block, file, line)

    def recalloc(
        self,
        block: Block | None,
        count: int,
        size: int,
        file: str | None = None,
        line: int | None = None,
    ) -> Block | None:
        """Resize *block* to *count* elements, zeroing any bytes beyond the old size."""
        file, line = _where(file, line)
        with self.registry.locked():
            if block is None:
                return self.calloc(count, size, file, line)

            entry = self.registry.lookup(block)
            old_size = entry.size if entry is not None else 0
            if old_size == 0:
                if entry is None:
                    warnings.warn(
                        "No entry found to recalloc! The memory might not be tracked.\n"
                        f"{Location(file, line)}",
                        RuntimeWarning,
                        stacklevel=2,
                    )
                else:
                    self.registry.entry_free(block, file, line)
                if count and size:
                    return self.calloc(count, size, file, line)
                return None

            new_block = self.realloc_array(block, count, size, file, line)
            if new_block is None:
                return None
            new_size = count * size
            if old_size < new_size:
                new_block.data[old_size:new_size] = bytes(new_size - old_size)
            return new_block

    def malloc_array(
        self, count: int, size: int, file: str | None = None, line: int | None = None
    ) -> Block:
        """Allocate room for *count* elements of *size* bytes each."""
        file, line = _where(file, line)
        return self.malloc(self._check_product(count, size, file, line), file, line)

    def calloc_array(
        self, count: int, size: int, file: str | None = None, line: int | None = None
    ) -> Block:
        """Same as calloc."""
        file, line = _where(file, line)
        return self.calloc(count, size, file, line)

    def realloc_array(
        self,
        block: Block | None,
        count: int,
        size: int,
        file: str | None = None,
        line: int | None = None,
    ) -> Block | None:
        """Resize *block* to *count* elements of *size* bytes each."""
        file, line = _where(file, line)
        with self.registry.locked():
            if size == 0:
                self._release_for_zero(block, file, line)
                return None
            return self.realloc(block, self._check_product(count, size, file, line), file, line)

    def recalloc_array(
        self,
        block: Block | None,
        count: int,
        size: int,
        file: str | None = None,
        line: int | None = None,
    ) -> Block | None:
        """Same as recalloc."""
        file, line = _where(file, line)
        return self.recalloc(block, count, size, file, line)

    def get_size(self, block: Block | None, file: str | None = None, line: int | None = None) -> int:
        """The tracked size of *block*."""
        file, line = _where(file, line)
        with self.registry.locked():
            return self.registry.get_size(block, file, line)

    def all_check(self, stream: TextIO | None = None) -> None:
        """Write a description of every tracked block to *stream*."""
        with self.registry.locked():
            self.registry.all_check(stream)

    def close(self, stream: TextIO | None = None) -> list[Entry]:
        """Free every block still held and start over with an empty registry.

        In debug mode each block that was never freed is reported to *stream*
        (standard error by default). The leaked entries are returned.
        """
        out = stream if stream is not None else sys.stderr
        with self.registry.locked():
            registry = self.registry
            leaked = [entry for entry in registry.entries() if not entry.is_freed]
            for entry in leaked:
                if registry.debug:
                    message = (
                        "\nMemory not freed!\n"
                        f"Pointer: {entry.block.address:#x}   Size: {entry.size}\n"
                        f"alloc {entry.alloc}\n"
                    )
                    if entry.last_realloc is not None:
                        message += f"Last realloc {entry.last_realloc}\n"
                    out.write(message)
                self.free(entry.block, __file__, 0)
            self.registry = Registry(registry.debug, registry.address_limit)
        return leaked

    def __enter__(self) -> MemoryTracker:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()