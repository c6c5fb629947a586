"""
SubAlign - Subtitle timing utility.

Shifts SRT files by a constant offset and re-times them against a reference
track using operator-confirmed anchors and piecewise-linear mapping.
"""

__version__ = "0.1.0";
__author__ = "SubAlign Project";
__license__ = "MIT";
