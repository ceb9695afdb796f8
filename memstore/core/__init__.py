"""Canonical SQLite store, dedup policy, history and analytics."""
