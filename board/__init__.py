"""Minimal message board backed by a single SQLite file."""
