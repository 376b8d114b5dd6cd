"""
Query Monitor

Live dashboard backend for a single distributed query execution.
"""

__version__ = "0.1.0"
