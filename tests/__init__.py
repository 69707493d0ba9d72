"""
DBGuard Test Suite.

This package contains:
- unit/: Unit tests (temporary SQLite files, in-memory remote store, fakes)
- integration/: Integration tests (snapshot -> restore round trips, service,
  scheduler and daemon wiring)
"""
