"""
I/O module: snapshot formats and diagnostic tables.
"""

from .snapshot import (
    ColumnFile,
    HDF5File,
    FORMATS,
    open_snapshot,
    load_snapshot,
    convert,
    write_snapshot,
    parse_file_name,
)
from .diagnostics import write_column_depth_table, read_column_depth_table

__all__ = [
    "ColumnFile",
    "HDF5File",
    "FORMATS",
    "open_snapshot",
    "load_snapshot",
    "convert",
    "write_snapshot",
    "parse_file_name",
    "write_column_depth_table",
    "read_column_depth_table",
]
