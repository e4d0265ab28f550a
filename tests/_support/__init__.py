"""
Test support utilities for labelsync tests.

Helpers that don't fit as pytest fixtures but are used across test files.
"""
