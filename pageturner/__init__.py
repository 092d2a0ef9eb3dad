"""Capture orchestration for hands-free e-reader page capture."""

__version__ = "0.1.0"
