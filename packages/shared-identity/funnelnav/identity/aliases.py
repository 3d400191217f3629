"""Alias edges recorded by operators (``original_name -> target_name``).

Edges are stored by an external collaborator; this module only builds the
lookup map consumed by ``resolve_alias_chain`` and computes the edge list that
results from an operator merge.

Example:
    >>> edges = [AliasEdge("Lori's iPhone", "Lori Smith")]
    >>> build_alias_map(edges)
    {"lori's iphone": 'Lori Smith'}
    >>> [e.target_name for e in merge_alias_edges(edges, "Lori Smith", "Lori Smithson")]
    ['Lori Smithson', 'Lori Smithson']
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from funnelnav.identity.exceptions import AliasError
from funnelnav.identity.names import normalize_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AliasEdge:
    """One recorded ``original -> target`` alias."""

    original_name: str
    target_name: str
    edge_id: str | None = None

    @property
    def original_key(self) -> str:
        return normalize_name(self.original_name)

    @property
    def target_key(self) -> str:
        return normalize_name(self.target_name)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AliasEdge:
        """Create an edge from a stored row with ``original_name``/``target_name``."""
        edge_id = data.get("id")
        return cls(
            original_name=str(data.get("original_name") or "").strip(),
            target_name=str(data.get("target_name") or "").strip(),
            edge_id=str(edge_id) if edge_id is not None else None,
        )


def _as_edges(rows: Iterable[AliasEdge | Mapping[str, Any]] | None) -> list[AliasEdge]:
    return [row if isinstance(row, AliasEdge) else AliasEdge.from_dict(row) for row in rows or []]


def build_alias_map(rows: Iterable[AliasEdge | Mapping[str, Any]] | None) -> dict[str, str]:
    """Build the normalized alias lookup map.

    Rows with a blank original or target are skipped. Later rows override
    earlier ones for the same normalized original name.

    Args:
        rows: ``AliasEdge`` objects or dicts with ``original_name`` and
            ``target_name`` keys.

    Returns:
        Mapping of normalized original name to trimmed target name.
    """
    alias_map: dict[str, str] = {}
    skipped = 0
    for edge in _as_edges(rows):
        key = edge.original_key
        target = edge.target_name.strip()
        if not key or not target:
            skipped += 1
            continue
        alias_map[key] = target
    if skipped:
        logger.debug(f"Skipped {skipped} blank alias rows")
    return alias_map


def merge_alias_edges(
    edges: Iterable[AliasEdge | Mapping[str, Any]],
    source_name: str,
    target_name: str,
) -> list[AliasEdge]:
    """Record that ``source_name`` should resolve to ``target_name``.

    Existing edges whose original is the source or the target are dropped,
    edges that pointed at the source are retargeted to the target, and the
    new ``source -> target`` edge is appended. The input is not modified.

    Args:
        edges: Current alias edges.
        source_name: Name being merged away.
        target_name: Name it should resolve to.

    Returns:
        The new edge list.

    Raises:
        AliasError: If either name is blank or both normalize to the same key.
    """
    source = str(source_name or "").strip()
    target = str(target_name or "").strip()
    source_key = normalize_name(source)
    target_key = normalize_name(target)

    if not source or not target:
        raise AliasError("source_name and target_name are required")
    if source_key == target_key:
        raise AliasError("source_name and target_name must be different normalized names")

    merged: list[AliasEdge] = []
    for edge in _as_edges(edges):
        if edge.original_key in (source_key, target_key):
            continue
        if edge.target_key == source_key:
            edge = replace(edge, target_name=target)
        merged.append(edge)

    merged.append(AliasEdge(original_name=source, target_name=target))
    logger.info(f"Merged alias {source!r} -> {target!r} ({len(merged)} edges)")
    return merged
