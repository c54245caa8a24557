# allocwatch

`allocwatch` hands out blocks of memory and keeps a registry of what happens
to each one. For every block it records the size, where the block was
allocated, where it was last reallocated and, in debug mode, where it was
freed. With that record it catches a double free, a free or resize of a block
it never saw, and blocks still live when tracking stops.

## Installation

```
pip install allocwatch
```

It needs Python 3.10 or later and nothing outside the standard library.

## Pieces

- `allocwatch.registry`
  - `Registry(debug=False, address_limit=2**64 - 1)` holds the tracked
    entries, keyed by block address, behind one reentrant lock
    (`Registry.locked()`). It offers `entry_add`, `entry_update`,
    `entry_free`, `get_size`, `lookup`, `entries`, `report` and `all_check`,
    and supports `len()` and `in`.
  - `Location` is a file and line pair.
  - `Block` is an allocation: a `bytearray` in `data` and a unique `address`.
  - `Entry` is what the registry keeps about a block: `size`, `alloc`,
    `last_realloc`, `freed_at` and `is_freed`.
  - The errors: `TrackerError` and its subclasses `ZeroSizeError`,
    `AllocationOverflowError`, `UntrackedBlockError` and `DoubleFreeError`.
- `allocwatch.tracker`
  - `MemoryTracker(debug=False, address_limit=...)` supplies `malloc`,
    `calloc`, `realloc`, `free`, `recalloc`, `malloc_array`, `calloc_array`,
    `realloc_array`, `recalloc_array`, `get_size`, `all_check` and `close`.
    Its registry is `tracker.registry`.
  - It works as a context manager; leaving the `with` block calls `close()`.
- `allocwatch.aligned`
  - `AlignedAllocator(tracker)` supplies `aligned_alloc`, `aligned_calloc`
    and `aligned_realloc`, recorded in the tracker's registry.
  - `is_power_of_two` is a helper, and `AlignmentError` (a `TrackerError`) is
    raised for a bad alignment or size.
- `allocwatch.aligned_array`
  - `ArrayAlignedAllocator` extends `AlignedAllocator` with
    `aligned_recalloc`, `aligned_alloc_array`, `aligned_calloc_array`,
    `aligned_realloc_array` and `aligned_recalloc_array`.

## Example

```python
import sys

from allocwatch.tracker import MemoryTracker

with MemoryTracker() as tracker:
    block = tracker.malloc(64, __file__, 7)
    block = tracker.realloc(block, 128, __file__, 8)
    tracker.free(block, __file__, 9)
    leaked = tracker.calloc(4, 16, __file__, 10)
    tracker.all_check(sys.stdout)
# leaving the block frees "leaked"
```

Every call takes a `file` and a `line` so that a report points at the call
site; when they are left out, the file and line of the direct caller are used.

A request the tracker refuses raises an exception from `allocwatch.registry`:

- a size or count of zero passed to `malloc`, `calloc` or the array forms
  raises `ZeroSizeError`;
- `count * size` above the address limit raises `AllocationOverflowError`;
- freeing a block the registry does not hold raises `UntrackedBlockError`.

`realloc` and `realloc_array` with a size of zero free the block, issue a
`RuntimeWarning` and return `None`. Resizing a block the registry does not
know issues a `RuntimeWarning` and starts tracking it. `recalloc` zeroes the
bytes beyond the old size.

## Closing

`close(stream=None)` frees every block that was never freed, replaces the
registry with an empty one and returns the leaked entries. In debug mode each
leaked block is also described on `stream` (standard error by default).

## Aligned blocks

```python
from allocwatch.aligned import AlignedAllocator
from allocwatch.tracker import MemoryTracker

with MemoryTracker() as tracker:
    aligned = AlignedAllocator(tracker)
    block = aligned.aligned_alloc(16, 64, __file__, 5)
    block = aligned.aligned_realloc(block, 32, 128, __file__, 6)
    tracker.free(block, __file__, 7)
```

The alignment must be a power of two and at least the size of a pointer. The
size must be at least the alignment and a whole multiple of it. Otherwise the
call raises `AlignmentError`. `aligned_realloc` always moves the contents to a
new block and returns that one.

## Debug mode

Pass `debug=True` to `MemoryTracker` (or `Registry`). Freed entries then stay
in the registry, marked with where they were freed, so a second free of the
same block raises `DoubleFreeError` naming both places, and reports show
allocation, last reallocation and free sites. Without debug mode, freeing
removes the entry, and a second free raises `UntrackedBlockError`.

## What it does not do

The blocks are simulated: each is a `bytearray` with a made-up address.
`allocwatch` does not hook or watch Python's own memory allocator or that of
any other program, and it has no command-line tool; it is used as a library.