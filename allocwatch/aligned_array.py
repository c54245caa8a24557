"""Array-shaped aligned allocations: element counts, zero-filling resizes."""

from __future__ import annotations

from allocwatch.aligned import AlignedAllocator
from allocwatch.registry import Block
from allocwatch.tracker import _where


class ArrayAlignedAllocator(AlignedAllocator):
    """Aligned allocator that also works in element counts.

    Every public method takes the caller's file and line; when they are left
    out, the location of the direct caller is used.
    """

    def aligned_recalloc(
        self,
        block: Block | None,
        alignment: int,
        count: int,
        size: int,
        file: str | None = None,
        line: int | None = None,
    ) -> Block | None:
        """Move *block* to *count* aligned elements, zeroing bytes past the old size.

        A None block is allocated zeroed. A block whose tracked size is zero
        gives None.
        """
        file, line = _where(file, line)
        if block is None:
            return self.aligned_calloc(alignment, count, size, file, line)
        registry = self.tracker.registry
        with registry.locked():
            old_size = registry.get_size(block, file, line)
            if old_size == 0:
                return None
            new_block = self.aligned_realloc_array(block, alignment, count, size, file, line)
            if new_block is None:
                return None
            new_size = count * size
            if old_size < new_size:
                new_block.data[old_size:new_size] = bytes(new_size - old_size)
            return new_block

    def aligned_alloc_array(
        self,
        alignment: int,
        count: int,
        size: int,
        file: str | None = None,
        line: int | None = None,
    ) -> Block:
        """Allocate room for *count* elements of *size* bytes, aligned."""
        file, line = _where(file, line)
        total = self._check_product(count, size, file, line)
        return self.aligned_alloc(alignment, total, file, line)

    def aligned_calloc_array(
        self,
        alignment: int,
        count: int,
        size: int,
        file: str | None = None,
        line: int | None = None,
    ) -> Block:
        """Same as aligned_calloc."""
        file, line = _where(file, line)
        return self.aligned_calloc(alignment, count, size, file, line)

    def aligned_realloc_array(
        self,
        block: Block | None,
        alignment: int,
        count: int,
        size: int,
        file: str | None = None,
        line: int | None = None,
    ) -> Block | None:
        """Move *block* to *count* aligned elements of *size* bytes each.

        An element size of zero frees the block and gives None.
        """
        file, line = _where(file, line)
        with self.tracker.registry.locked():
            if size == 0:
                self.tracker.free(block, file, line)
                return None
            total = self._check_product(count, size, file, line)
            return self.aligned_realloc(block, alignment, total, file, line)

    def aligned_recalloc_array(
        self,
        block: Block | None,
        alignment: int,
        count: int,
        size: int,
        file: str | None = None,
        line: int | None = None,
    ) -> Block | None:
        """Same as aligned_recalloc."""
        file, line = _where(file, line)
        return self.aligned_recalloc(block, alignment, count, size, file, line)