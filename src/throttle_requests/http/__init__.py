"""Async HTTP helpers shared by unit-of-work implementations."""
