"""
Streaming generation engine for dictated clinical letters.
"""

__version__ = "0.1.0"
