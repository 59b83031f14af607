"""Packaged data files (default inference rules)."""
