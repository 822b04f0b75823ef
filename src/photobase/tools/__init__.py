"""Photobase - Input normalization helpers."""
