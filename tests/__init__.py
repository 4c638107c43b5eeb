"""
revtrack Test Suite.

This package contains:
- unit/: Unit tests (descriptors, derivation, store layer, writer, config, CLI)
- integration/: Integration tests (tracked models on a SQLite file)
"""
