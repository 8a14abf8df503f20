"""Reclaim: disk-space auditing and cleanup for Linux hosts."""

__version__ = "0.1.0"
