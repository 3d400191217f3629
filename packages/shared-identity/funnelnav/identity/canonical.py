"""Canonical display names for meeting participants.

A raw participant name is resolved in three stages:

1. Follow recorded alias edges (``original -> target``) through the alias map,
   at most ``max_alias_hops`` times, stopping on a missing, empty,
   self-referencing or already visited key.
2. Apply ordered exact-prefix rules for known ambiguous real names.
3. Infer ``First Second`` from names with three or more tokens whose first two
   tokens look like a person (``"Chris Lipper Functional Coach"``), otherwise
   keep the trimmed name unchanged.

Example:
    >>> canonicalizer = Canonicalizer()
    >>> canonicalizer.canonicalize("matt s (guest)")
    'Matt Shiebler'
    >>> canonicalizer.canonicalize("jane doe - ceo")
    'Jane Doe'
    >>> canonicalizer.canonicalize("Lori", {"lori": "Lori Smith"})
    'Lori Smith'
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from funnelnav.identity.config import DEFAULT_NON_PERSON_TOKENS, DEFAULT_PREFIX_RULES
from funnelnav.identity.names import has_letter, normalize_name, to_display_token, tokenize

if TYPE_CHECKING:
    from funnelnav.identity.config import IdentityConfig

DEFAULT_MAX_ALIAS_HOPS = 12


@dataclass(frozen=True)
class PrefixRule:
    """Exact-prefix rule mapping a name pattern to a canonical display name."""

    pattern: re.Pattern[str]
    canonical: str

    @classmethod
    def compile(cls, regex: str, canonical: str) -> PrefixRule:
        """Compile a case-insensitive prefix rule."""
        return cls(pattern=re.compile(regex, re.IGNORECASE), canonical=canonical)

    def matches(self, name: str) -> bool:
        return bool(self.pattern.search(name))


def resolve_alias_chain(
    raw_name: str | None,
    alias_map: Mapping[str, str] | None,
    max_hops: int = DEFAULT_MAX_ALIAS_HOPS,
) -> str:
    """Follow alias edges starting at ``raw_name``.

    Keys of ``alias_map`` are normalized names (see ``build_alias_map``).
    Cycles terminate because every visited key is remembered, and the walk
    never exceeds ``max_hops`` edges.

    Args:
        raw_name: Name as it appeared in the roster.
        alias_map: Normalized original name -> target display name.
        max_hops: Maximum number of edges to follow.

    Returns:
        The last name reached, or the trimmed input when no edge applies.

    Examples:
        >>> resolve_alias_chain("A", {"a": "B", "b": "A"})
        'A'
        >>> resolve_alias_chain("A", {"a": "B", "b": "C"})
        'C'
        >>> resolve_alias_chain("  Emil ", {})
        'Emil'
    """
    fallback = str(raw_name or "").strip()
    if not alias_map:
        return fallback

    current = fallback
    current_key = normalize_name(current)
    seen: set[str] = set()

    for _ in range(max_hops):
        if not current_key or current_key in seen:
            break
        seen.add(current_key)

        target = alias_map.get(current_key)
        if not target:
            break

        target = str(target).strip()
        target_key = normalize_name(target)
        if not target or not target_key or target_key == current_key:
            break

        current = target
        current_key = target_key

    return current or fallback


class Canonicalizer:
    """Deterministic participant-name canonicalization.

    Example:
        >>> Canonicalizer().canonicalize("Allen G.")
        'Allen Goddard'
    """

    def __init__(
        self,
        prefix_rules: Iterable[tuple[str, str]] | None = None,
        non_person_tokens: Iterable[str] | None = None,
        max_alias_hops: int = DEFAULT_MAX_ALIAS_HOPS,
    ) -> None:
        """Initialize the canonicalizer.

        Args:
            prefix_rules: Ordered ``(regex, canonical)`` pairs; first match wins.
            non_person_tokens: Device/role words that block first+last inference.
            max_alias_hops: Bound on alias chain length.
        """
        rules = DEFAULT_PREFIX_RULES if prefix_rules is None else prefix_rules
        self.prefix_rules = [PrefixRule.compile(regex, canonical) for regex, canonical in rules]
        self.non_person_tokens = frozenset(
            DEFAULT_NON_PERSON_TOKENS if non_person_tokens is None else non_person_tokens
        )
        self.max_alias_hops = max_alias_hops

    @classmethod
    def from_config(cls, config: IdentityConfig) -> Canonicalizer:
        """Build a canonicalizer from an ``IdentityConfig``."""
        return cls(
            prefix_rules=config.prefix_rules,
            non_person_tokens=config.non_person_tokens,
            max_alias_hops=config.max_alias_hops,
        )

    def apply_prefix_rules(self, name: str) -> str | None:
        """Return the canonical name of the first matching prefix rule."""
        for rule in self.prefix_rules:
            if rule.matches(name):
                return rule.canonical
        return None

    def infer_first_last(self, name: str) -> str | None:
        """Infer ``First Second`` from a decorated name.

        Only names with at least three tokens qualify, and both leading tokens
        must be two or more characters, contain a letter and not be a
        device/role word.
        """
        tokens = tokenize(name)
        if len(tokens) < 3:
            return None

        first, second = tokens[0], tokens[1]
        if len(first) < 2 or len(second) < 2:
            return None
        if not has_letter(first) or not has_letter(second):
            return None
        if first in self.non_person_tokens or second in self.non_person_tokens:
            return None

        return f"{to_display_token(first)} {to_display_token(second)}"

    def apply_heuristics(self, name: str | None) -> str:
        """Apply prefix rules, then first+last inference, to a resolved name."""
        trimmed = str(name or "").strip()
        if not trimmed:
            return ""
        return self.apply_prefix_rules(trimmed) or self.infer_first_last(trimmed) or trimmed

    def resolve_alias_chain(self, raw_name: str | None, alias_map: Mapping[str, str] | None) -> str:
        return resolve_alias_chain(raw_name, alias_map, self.max_alias_hops)

    def canonicalize(self, raw_name: str | None, alias_map: Mapping[str, str] | None = None) -> str:
        """Resolve aliases and heuristics for one raw participant name.

        Args:
            raw_name: Name as it appeared in the roster.
            alias_map: Normalized original name -> target display name.

        Returns:
            Canonical display name; empty string for empty input.
        """
        aliased = self.resolve_alias_chain(raw_name, alias_map)
        return self.apply_heuristics(aliased or raw_name)


_default_canonicalizer = Canonicalizer()


def canonicalize(raw_name: str | None, alias_map: Mapping[str, str] | None = None) -> str:
    """Canonicalize a name with the default rule set."""
    return _default_canonicalizer.canonicalize(raw_name, alias_map)
