"""Placeholder substitution for message templates."""

import re
from typing import Any, Mapping

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")


def render(template: str, fields: Mapping[str, Any]) -> str:
    """Replace every {key} in template with its value from fields.

    Keys match exactly. Placeholders with no field, or with a None value,
    render as an empty string. Braces that do not wrap a bare word are left
    untouched. Never raises for any template text.

    Examples:
        >>> render("Olá {nome}, vence em {vencimento}", {"nome": "Ana"})
        'Olá Ana, vence em '
    """
    if not template:
        return ""

    def _substitute(match: "re.Match[str]") -> str:
        value = fields.get(match.group(1))
        return "" if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(_substitute, template)
