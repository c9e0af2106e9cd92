"""Boule night draw and result engine."""

__version__ = "0.1.0"
