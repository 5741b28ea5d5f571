"""``${name}`` template rendering for rule code templates."""

from __future__ import annotations

import re
from typing import Any, Callable, Mapping, Optional

TEMPLATE_VAR_RE = re.compile(r"\$\{([\w:.]+)\}")


def render_template(
    template: str,
    values: Mapping[str, Any],
    quote: Optional[Callable[[str], str]] = None,
) -> str:
    """Fill ``${name}`` slots from ``values``; unknown slots stay as written.

    ``quote`` is applied to each substituted value, so a script template can
    take step text verbatim without that text changing the script's tokens.
    """
    def _replacer(match: re.Match) -> str:
        value = values.get(match.group(1))
        if value is None:
            return match.group(0)
        text = str(value)
        return quote(text) if quote else text

    return TEMPLATE_VAR_RE.sub(_replacer, template)
