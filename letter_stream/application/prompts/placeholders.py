"""
Placeholder substitution for template instruction text.
"""

import re
from typing import Mapping

PLACEHOLDER_PATTERN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)


def substitute(template: str, variables: Mapping[str, str]) -> str:
    """
    Replace every ``{{name}}`` marker with ``variables[name]``.

    Unknown names become an empty string; substituted values are never
    scanned again, so a value containing ``{{x}}`` is inserted verbatim.

    Args:
        template: Instruction text containing markers
        variables: Values by marker name

    Returns:
        str: The resolved text
    """

    def _replace(match: "re.Match[str]") -> str:
        value = variables.get(match.group(1))
        return value if value else ""

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def placeholder_names(template: str) -> list[str]:
    """Marker names in order of first appearance."""
    seen: dict[str, None] = {}
    for match in PLACEHOLDER_PATTERN.finditer(template):
        seen.setdefault(match.group(1), None)
    return list(seen)
