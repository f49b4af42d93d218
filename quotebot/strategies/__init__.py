"""Quoting strategies."""
