"""
Suitability rules.

A card may carry ordered rules that promote one route to the front of
its preference order when a condition over the routing environment or
the request parameters holds.

Predicate grammar:
    <route>
    <route> if <path> == <literal>
    <route> if <path> != <literal>

``path`` is ``env.<key>``, ``params.<key>``, or a bare key looked up in
the rule's ``when`` scope; nested keys use dots. Literals are ``true``,
``false``, ``null``, numbers, or (optionally quoted) strings. A path that
does not resolve never matches.

Examples:
    - when: params
      predicate: "cli if owner == acme"
      reason: "acme repositories are mirrored locally"
    - when: env
      predicate: "graphql if env.githubTokenPresent == true"
      reason: "token available"
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from ..envelope import RouteSource
from ..registry.schemas import SuitabilityRule

logger = logging.getLogger(__name__)

_PREDICATE = re.compile(
    r"^\s*(?P<route>\w+)\s*(?:\bif\b\s+(?P<path>[\w.]+)\s*(?P<op>==|!=)\s*(?P<literal>.+?))?\s*$",
    re.IGNORECASE,
)
_UNRESOLVED = object()


@dataclass(frozen=True, slots=True)
class ParsedPredicate:
    route: RouteSource
    path: str | None = None
    operator: str | None = None
    expected: Any = None

    @property
    def is_unconditional(self) -> bool:
        return self.path is None


def parse_literal(text: str) -> Any:
    text = text.strip()
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("null", "none"):
        return None
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def parse_predicate(predicate: str) -> ParsedPredicate | None:
    """Parse a predicate; None when it is not in the grammar."""
    match = _PREDICATE.match(predicate)
    if match is None:
        return None
    try:
        route = RouteSource(match.group("route").lower())
    except ValueError:
        return None
    if match.group("path") is None:
        return ParsedPredicate(route)
    return ParsedPredicate(
        route=route,
        path=match.group("path"),
        operator=match.group("op"),
        expected=parse_literal(match.group("literal")),
    )


def _resolve(path: str, scope: str, env: dict[str, Any], params: dict[str, Any]) -> Any:
    head, _, rest = path.partition(".")
    if head in ("env", "params") and rest:
        current: Any = env if head == "env" else params
        parts = rest.split(".")
    else:
        current = env if scope == "env" else params
        parts = path.split(".")

    for part in parts:
        if not isinstance(current, dict) or part not in current:
            return _UNRESOLVED
        current = current[part]
    return current


def rule_matches(rule: SuitabilityRule, env: dict[str, Any], params: dict[str, Any]) -> RouteSource | None:
    """Route promoted by a rule, or None when the rule does not apply."""
    parsed = parse_predicate(rule.predicate)
    if parsed is None:
        logger.warning(f"[suitability] Unparseable predicate ignored: {rule.predicate!r}")
        return None

    if parsed.is_unconditional:
        return parsed.route

    actual = _resolve(parsed.path, rule.when, env, params)
    if actual is _UNRESOLVED:
        return None

    equal = actual == parsed.expected
    if parsed.operator == "==":
        return parsed.route if equal else None
    return parsed.route if not equal else None


def apply_suitability(
    order: list[RouteSource],
    rules: tuple[SuitabilityRule, ...],
    env: dict[str, Any],
    params: dict[str, Any],
) -> tuple[list[RouteSource], SuitabilityRule | None]:
    """
    Reorder routes by the first matching rule.

    Only routes already in ``order`` can be promoted. Returns the new order
    and the rule that produced it (None when no rule applied).
    """
    for rule in rules:
        route = rule_matches(rule, env, params)
        if route is None or route not in order:
            continue
        reordered = [route, *(candidate for candidate in order if candidate != route)]
        return reordered, rule
    return list(order), None
