"""
Prompt resolution helpers.
"""

from .placeholders import placeholder_names, substitute

__all__ = ["placeholder_names", "substitute"]
