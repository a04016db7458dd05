"""Fake capture processes and helpers for stream tests."""
