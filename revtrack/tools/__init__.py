"""
CLI tools for revtrack.

- history: derive history schemas and read revisions of a record

Invariants:
    - Tools never write to a database
"""

from .history_cli import HistoryCLI, load_schema_file

__all__ = ["HistoryCLI", "load_schema_file"]
