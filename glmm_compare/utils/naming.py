"""Coefficient-name conventions shared by the results and the harmonizer."""

import re

_CATEGORICAL_LEVEL = re.compile(r"^C\((?P<var>[^,()]+?)\s*(?:,.*)?\)\[T\.(?P<level>.+)\]$")
_PLAIN_LEVEL = re.compile(r"^(?P<var>[^\[\]]+)\[T\.(?P<level>.+)\]$")


def normalize_term_name(raw: str) -> str:
    """Return the canonical form of a coefficient name.

    Removes the ``": "`` and ``" "`` separators some packages put between a
    factor and its level, then turns ``&`` interactions into ``:``.

    >>> normalize_term_name("period: 2")
    'period2'
    >>> normalize_term_name("sex&period")
    'sex:period'
    """
    return raw.replace(": ", "").replace(" ", "").replace("&", ":")


def patsy_term_name(raw: str) -> str:
    """Translate a patsy column name to the R model-matrix convention.

    ``Intercept`` becomes ``(Intercept)`` and treatment-coded levels such as
    ``C(period)[T.2]`` or ``period[T.2]`` become ``period2``. Interactions
    are translated part by part.
    """
    parts = []
    for part in raw.split(":"):
        if part == "Intercept":
            parts.append("(Intercept)")
            continue
        match = _CATEGORICAL_LEVEL.match(part) or _PLAIN_LEVEL.match(part)
        if match:
            parts.append(match.group("var").strip() + match.group("level"))
        else:
            parts.append(part)
    return ":".join(parts)
