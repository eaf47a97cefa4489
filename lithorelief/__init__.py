"""
LithoRelief - photo to printable lithophane (binary STL)
"""

__version__ = "0.1.0"
