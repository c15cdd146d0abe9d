"""Shared utilities."""

from amlsubtypes.utils.fileio import (
    atomic_open,
    atomic_write_csv,
    atomic_write_json,
    atomic_write_text,
)

__all__ = ['atomic_open', 'atomic_write_csv', 'atomic_write_json', 'atomic_write_text']
