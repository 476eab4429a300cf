"""Built-in prompt templates."""

from .static_catalog import STATIC_TEMPLATES, StaticTemplateSource

__all__ = ["STATIC_TEMPLATES", "StaticTemplateSource"]
