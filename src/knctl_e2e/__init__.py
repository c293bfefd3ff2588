"""Test-support layer for the knctl end-to-end suite."""

__version__ = "0.1.0"
