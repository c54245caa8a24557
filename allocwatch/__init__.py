"""Tracking of simulated memory blocks: sizes, call sites, leaks and double frees."""

__version__ = "0.9.3"
__all__ = ["registry", "tracker", "aligned", "aligned_array"]