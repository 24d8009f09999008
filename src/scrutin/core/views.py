"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/core/views.py`.
Filtres, recherche et pagination calculés sur des données déjà chargées,
plus les compteurs du tableau de bord des publications.

Composants détectés :
  - EntityView
  - StatusFilter
  - ViewQuery
  - Page
  - matches_search
  - filter_entities
  - PublicationStats
  - publication_stats

Notes :
- Aucune relecture de la source : tout est calculé en mémoire.
- Changer un filtre ramène toujours à la page 1.

======================== ENGLISH ========================
File: `src/scrutin/core/views.py`.
Filters, search and pagination computed over already loaded data, plus
the publications dashboard counters.

Detected components:
  - EntityView
  - StatusFilter
  - ViewQuery
  - Page
  - matches_search
  - filter_entities
  - PublicationStats
  - publication_stats

Notes:
- No re-fetch from the source: everything is computed in memory.
- Changing a filter always resets to page 1.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Optional

from scrutin.core.models import AggregationNode, PublicationRecord, PublicationStatus
from scrutin.core.readiness import is_ready_to_publish


@dataclass(frozen=True)
class EntityView:
    """Entité publiable (nœud agrégé + record de publication).

    English: Publishable entity (aggregated node + publication record).
    """

    node: AggregationNode
    record: PublicationRecord

    @property
    def code(self) -> str:
        return self.node.id

    @property
    def label(self) -> Optional[str]:
        return self.node.label

    @property
    def is_ready(self) -> bool:
        return is_ready_to_publish(self.node, self.record)


class StatusFilter(str, Enum):
    ALL = "all"
    READY = "ready"
    NOT_PUBLISHED = PublicationStatus.NOT_PUBLISHED.value
    PUBLISHED = PublicationStatus.PUBLISHED.value
    CANCELLED = PublicationStatus.CANCELLED.value


@dataclass(frozen=True)
class ViewQuery:
    """Filtre courant d'une liste d'entités.

    English: Current filter of an entity list.
    """

    status: StatusFilter = StatusFilter.ALL
    search: str = ""
    page: int = 1
    page_size: int = 10

    def __post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")

    def with_filter(
        self,
        status: Optional[StatusFilter] = None,
        search: Optional[str] = None,
    ) -> "ViewQuery":
        """Nouveau filtre, retour à la page 1. / New filter, back to page 1."""
        return replace(
            self,
            status=self.status if status is None else status,
            search=self.search if search is None else search,
            page=1,
        )

    def with_page(self, page: int) -> "ViewQuery":
        return replace(self, page=page)


@dataclass(frozen=True)
class Page:
    """Sous-ensemble paginé et compteurs recalculés.

    English: Paginated subset and recomputed counters.
    """

    items: List[EntityView]
    total: int
    page: int
    page_size: int
    total_pages: int
    query: ViewQuery = field(default_factory=ViewQuery)


def _text_matches(needle: str, *values: Optional[str]) -> bool:
    return any(value is not None and needle in value.lower() for value in values)


def matches_search(entry: EntityView, search: str) -> Optional[EntityView]:
    """Applique la recherche textuelle à une entité.

    Les unités subordonnées sont toujours filtrées par le texte ; une
    entité sans unité correspondante est écartée, même si son propre
    code ou libellé correspond.

    English:
        Apply the free-text search to an entity.

        Subordinate units are always narrowed by the text; an entity left
        with no matching unit is dropped, even when its own code or label
        matches.
    """
    needle = search.strip().lower()
    if not needle:
        return entry
    matching = tuple(
        child for child in entry.node.children if _text_matches(needle, child.id, child.label)
    )
    if not matching:
        return None
    return replace(entry, node=replace(entry.node, children=matching))


def _status_matches(entry: EntityView, status: StatusFilter) -> bool:
    if status is StatusFilter.ALL:
        return True
    if status is StatusFilter.READY:
        return entry.is_ready
    return entry.record.status.value == status.value


def filter_entities(entries: Iterable[EntityView], query: ViewQuery) -> Page:
    """Filtre, recherche puis pagine une collection déjà chargée.

    Args:
        entries: Entités en mémoire.
        query: Statut, texte recherché, page et taille de page.

    Returns:
        Page: Éléments de la page, total filtré et nombre de pages ; la page
        demandée est ramenée dans ``[1, total_pages]``.

    English:
        Filter, search, then paginate an already loaded collection.
    """
    filtered: List[EntityView] = []
    for entry in entries:
        if not _status_matches(entry, query.status):
            continue
        kept = matches_search(entry, query.search)
        if kept is not None:
            filtered.append(kept)

    total = len(filtered)
    total_pages = math.ceil(total / query.page_size)
    page = min(max(query.page, 1), max(total_pages, 1))
    start = (page - 1) * query.page_size
    return Page(
        items=filtered[start:start + query.page_size],
        total=total,
        page=page,
        page_size=query.page_size,
        total_pages=total_pages,
        query=replace(query, page=page),
    )


@dataclass(frozen=True)
class PublicationStats:
    """Compteurs des cartes statistiques des publications.

    English: Counters of the publications stats cards.
    """

    total_entities: int
    published_entities: int
    pending_entities: int
    cancelled_entities: int
    ready_entities: int
    total_units: int
    imported_units: int
    pending_units: int
    publication_rate: float


def publication_stats(entries: Iterable[EntityView]) -> PublicationStats:
    entries = list(entries)
    published = sum(1 for entry in entries if entry.record.status is PublicationStatus.PUBLISHED)
    cancelled = sum(1 for entry in entries if entry.record.status is PublicationStatus.CANCELLED)
    total_units = sum(entry.node.child_unit_count for entry in entries)
    imported_units = sum(entry.node.imported_child_unit_count for entry in entries)
    rate = round(published / len(entries) * 100, 2) if entries else 0.0
    return PublicationStats(
        total_entities=len(entries),
        published_entities=published,
        pending_entities=len(entries) - published,
        cancelled_entities=cancelled,
        ready_entities=sum(1 for entry in entries if entry.is_ready),
        total_units=total_units,
        imported_units=imported_units,
        pending_units=max(total_units - imported_units, 0),
        publication_rate=rate,
    )
