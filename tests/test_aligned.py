import pytest

from allocwatch.aligned import (
    POINTER_SIZE,
    AlignedAllocator,
    AlignmentError,
    is_power_of_two,
)
from allocwatch.registry import (
    AllocationOverflowError,
    Block,
    DoubleFreeError,
    UntrackedBlockError,
    ZeroSizeError,
)
from allocwatch.tracker import MemoryTracker


@pytest.fixture
def tracker():
    return MemoryTracker()


@pytest.fixture
def aligned(tracker):
    return AlignedAllocator(tracker)


@pytest.mark.parametrize("value", [1, 2, 4, 8, 16, 1024, 2**40])
def test_is_power_of_two_true(value):
    assert is_power_of_two(value) is True


@pytest.mark.parametrize("value", [0, -4, 3, 6, 12, 1023])
def test_is_power_of_two_false(value):
    assert is_power_of_two(value) is False


@pytest.mark.parametrize("alignment", [16, 32, 64, 256])
def test_alloc_address_is_aligned(aligned, alignment):
    block = aligned.aligned_alloc(alignment, alignment * 2, "a.c", 1)
    assert block.address % alignment == 0
    assert len(block.data) == alignment * 2


def test_alloc_is_tracked(aligned, tracker):
    block = aligned.aligned_alloc(16, 64, "a.c", 3)
    assert block in tracker.registry
    assert tracker.get_size(block, "a.c", 4) == 64
    entry = tracker.registry.lookup(block)
    assert entry.alloc.file == "a.c"
    assert entry.alloc.line == 3


def test_alloc_blocks_do_not_overlap(aligned):
    first = aligned.aligned_alloc(64, 128, "a.c", 1)
    second = aligned.aligned_alloc(64, 64, "a.c", 2)
    assert first.address + 128 <= second.address or second.address + 64 <= first.address


def test_alloc_default_location_is_caller(aligned, tracker):
    block = aligned.aligned_alloc(16, 16)
    entry = tracker.registry.lookup(block)
    assert entry.alloc.file == __file__


def test_alloc_rejects_non_power_of_two(aligned, tracker):
    with pytest.raises(AlignmentError, match="power of 2"):
        aligned.aligned_alloc(24, 48, "a.c", 1)
    assert len(tracker.registry) == 0


def test_alloc_rejects_small_alignment(aligned):
    with pytest.raises(AlignmentError, match="greater than or equal to the pointer size"):
        aligned.aligned_alloc(POINTER_SIZE // 2, POINTER_SIZE * 2, "a.c", 1)


def test_alloc_rejects_zero_size(aligned):
    with pytest.raises(ZeroSizeError):
        aligned.aligned_alloc(16, 0, "a.c", 1)


def test_alloc_rejects_size_below_alignment(aligned):
    with pytest.raises(AlignmentError, match="greater than or equal to alignment"):
        aligned.aligned_alloc(64, 32, "a.c", 1)


def test_alloc_rejects_size_not_multiple(aligned):
    with pytest.raises(AlignmentError, match="multiple of alignment"):
        aligned.aligned_alloc(16, 40, "a.c", 1)


def test_calloc_zeroed_and_sized(aligned, tracker):
    block = aligned.aligned_calloc(16, 4, 8, "a.c", 1)
    assert bytes(block.data) == bytes(32)
    assert block.address % 16 == 0
    assert tracker.get_size(block, "a.c", 2) == 32


def test_calloc_zero_size(aligned):
    with pytest.raises(ZeroSizeError):
        aligned.aligned_calloc(16, 4, 0, "a.c", 1)


def test_calloc_zero_count(aligned):
    with pytest.raises(ZeroSizeError):
        aligned.aligned_calloc(16, 0, 8, "a.c", 1)


def test_calloc_overflow():
    small = MemoryTracker(address_limit=1024)
    allocator = AlignedAllocator(small)
    with pytest.raises(AllocationOverflowError):
        allocator.aligned_calloc(16, 1000, 16, "a.c", 1)
    assert len(small.registry) == 0


def test_calloc_total_must_fit_alignment(aligned):
    with pytest.raises(AlignmentError):
        aligned.aligned_calloc(64, 3, 8, "a.c", 1)


def test_realloc_none_allocates(aligned, tracker):
    block = aligned.aligned_realloc(None, 32, 64, "a.c", 1)
    assert block.address % 32 == 0
    assert tracker.get_size(block, "a.c", 2) == 64


def test_realloc_grow_keeps_contents(aligned, tracker):
    block = aligned.aligned_alloc(16, 16, "a.c", 1)
    block.data[:] = bytes(range(16))
    grown = aligned.aligned_realloc(block, 16, 48, "a.c", 2)
    assert grown is not block
    assert bytes(grown.data[:16]) == bytes(range(16))
    assert len(grown.data) == 48
    assert block not in tracker.registry
    assert grown in tracker.registry
    assert tracker.get_size(grown, "a.c", 3) == 48
    assert len(tracker.registry) == 1


def test_realloc_shrink_truncates(aligned):
    block = aligned.aligned_alloc(16, 64, "a.c", 1)
    block.data[:] = bytes(range(64))
    smaller = aligned.aligned_realloc(block, 16, 32, "a.c", 2)
    assert bytes(smaller.data) == bytes(range(32))
    assert len(block.data) == 0


def test_realloc_new_alignment(aligned):
    block = aligned.aligned_alloc(16, 64, "a.c", 1)
    moved = aligned.aligned_realloc(block, 64, 64, "a.c", 2)
    assert moved.address % 64 == 0


def test_realloc_records_location(aligned, tracker):
    block = aligned.aligned_alloc(16, 16, "a.c", 1)
    moved = aligned.aligned_realloc(block, 16, 32, "b.c", 9)
    entry = tracker.registry.lookup(moved)
    assert (entry.last_realloc.file, entry.last_realloc.line) == ("b.c", 9)
    assert (entry.alloc.file, entry.alloc.line) == ("a.c", 1)


def test_realloc_zero_frees(aligned, tracker):
    block = aligned.aligned_alloc(16, 16, "a.c", 1)
    assert aligned.aligned_realloc(block, 16, 0, "a.c", 2) is None
    assert len(tracker.registry) == 0


def test_realloc_untracked_block(aligned):
    stray = Block(bytearray(16))
    with pytest.raises(UntrackedBlockError):
        aligned.aligned_realloc(stray, 16, 32, "a.c", 1)


def test_realloc_invalid_size_leaves_block(aligned, tracker):
    block = aligned.aligned_alloc(16, 32, "a.c", 1)
    with pytest.raises(AlignmentError):
        aligned.aligned_realloc(block, 16, 40, "a.c", 2)
    assert tracker.get_size(block, "a.c", 3) == 32
    assert len(block.data) == 32


def test_debug_realloc_zero_after_free_is_double_free():
    tracker = MemoryTracker(debug=True)
    allocator = AlignedAllocator(tracker)
    block = allocator.aligned_alloc(16, 16, "a.c", 1)
    tracker.free(block, "a.c", 2)
    with pytest.raises(DoubleFreeError):
        allocator.aligned_realloc(block, 16, 0, "a.c", 3)


def test_close_releases_aligned_blocks(aligned, tracker):
    aligned.aligned_alloc(16, 16, "a.c", 1)
    aligned.aligned_calloc(32, 2, 32, "a.c", 2)
    leaked = tracker.close()
    assert len(leaked) == 2
    assert len(tracker.registry) == 0