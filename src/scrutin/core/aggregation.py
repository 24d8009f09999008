"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/core/aggregation.py`.
Agrège les nœuds enfants en totaux parents, niveau par niveau, pour les
deux hiérarchies : géographique (bureau -> lieu de vote -> département ->
région -> national) et électorale (bureau -> CEL -> circonscription ->
national).

Composants détectés :
  - ImportProgress
  - align_candidates
  - aggregate
  - build_hierarchy
  - build_electoral_tree
  - build_geographic_tree
  - entity_nodes
  - iter_level
  - find_node
  - NationalCandidate
  - NationalSummary
  - national_summary

Notes :
- Les pourcentages sont toujours recalculés depuis les totaux sommés,
  jamais moyennés.
- Fonctions pures : aucun état partagé.

======================== ENGLISH ========================
File: `src/scrutin/core/aggregation.py`.
Aggregates child nodes into parent totals, level by level, for both
hierarchies: geographic (station -> voting place -> department -> region ->
national) and electoral (station -> CEL -> circonscription -> national).

Detected components:
  - ImportProgress
  - align_candidates
  - aggregate
  - build_hierarchy
  - build_electoral_tree
  - build_geographic_tree
  - entity_nodes
  - iter_level
  - find_node
  - NationalCandidate
  - NationalSummary
  - national_summary

Notes:
- Percentages are always recomputed from summed totals, never averaged.
- Pure functions: no shared state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from scrutin.core.errors import DataShapeError
from scrutin.core.models import (
    AggregationNode,
    CandidateScore,
    ImportStatus,
    EntityType,
    LeafUnit,
    PublicationRecord,
    PublicationStatus,
)

logger = logging.getLogger(__name__)

ELECTORAL_LEVELS: Tuple[str, ...] = ("cel", "circonscription")
GEOGRAPHIC_LEVELS: Tuple[str, ...] = ("voting_place", "department", "region")
NATIONAL_LEVEL = "national"

# Chaque entité publiable agrège des CEL. / Every publishable entity aggregates CELs.
ENTITY_HIERARCHIES: Dict[EntityType, Tuple[str, ...]] = {
    EntityType.CIRCONSCRIPTION: ELECTORAL_LEVELS,
    EntityType.DEPARTMENT: ("cel", "department"),
    EntityType.COMMUNE: ("cel", "commune"),
}


@dataclass(frozen=True)
class ImportProgress:
    """Compteurs d'import fournis par la couche d'accès aux données.

    English: Import counters supplied by the data-access collaborator.
    """

    child_unit_count: int
    imported_child_unit_count: int


def _is_complete(status: Optional[str]) -> bool:
    if status is None:
        return False
    try:
        return ImportStatus(status).is_complete
    except ValueError:
        return False


def _union_candidate_ids(nodes: Iterable[AggregationNode]) -> List[str]:
    return sorted({candidate_id for node in nodes for candidate_id in node.scores})


def align_candidates(nodes: Sequence[AggregationNode]) -> List[AggregationNode]:
    """Complète chaque nœud pour que tous les frères aient les mêmes candidats.

    Un candidat absent d'un nœud y est ajouté avec 0 voix.

    English:
        Pad each node so that all siblings carry the same candidates.

        A candidate absent from a node is added to it with 0 votes.
    """
    candidate_ids = _union_candidate_ids(nodes)
    aligned: List[AggregationNode] = []
    for node in nodes:
        if all(candidate_id in node.scores for candidate_id in candidate_ids):
            aligned.append(node)
            continue
        scores = dict(node.scores)
        for candidate_id in candidate_ids:
            scores.setdefault(candidate_id, CandidateScore(candidate_id=candidate_id))
        aligned.append(replace(node, scores=scores))
    return aligned


def _aggregate_status(children: Sequence[AggregationNode], child_count: int, imported: int) -> str:
    if child_count == 0 or imported < child_count:
        return ImportStatus.NOT_IMPORTED.value
    if children and all(child.import_status == ImportStatus.PUBLISHED.value for child in children):
        return ImportStatus.PUBLISHED.value
    return ImportStatus.IMPORTED.value


def aggregate(
    children: Iterable[AggregationNode],
    *,
    id: str = "aggregate",
    label: Optional[str] = None,
    level: str = "aggregate",
    progress: Optional[ImportProgress] = None,
) -> AggregationNode:
    """Construit le nœud parent à partir de ses enfants directs.

    Args:
        children: Nœuds enfants (peut être vide : nœud à zéro).
        id: Code du parent.
        label: Libellé du parent.
        level: Niveau hiérarchique du parent.
        progress: Compteurs d'import fournis par le collaborateur ; s'ils
            sont présents ils remplacent ceux dérivés des enfants.

    Returns:
        AggregationNode: Totaux sommés, scores unis par candidat.

    English:
        Build the parent node from its direct children.

        Registered/actual voters and ballot counts are summed; candidate
        keys are unioned and votes summed (missing = 0); turnout and
        percentages are derived from the sums. An empty list yields a
        zero-valued node.
    """
    aligned = align_candidates(list(children))

    scores: Dict[str, CandidateScore] = {}
    for candidate_id in _union_candidate_ids(aligned):
        parts = [child.scores[candidate_id] for child in aligned]
        scores[candidate_id] = CandidateScore(
            candidate_id=candidate_id,
            votes=sum(part.votes for part in parts),
            name=next((part.name for part in parts if part.name), None),
            party=next((part.party for part in parts if part.party), None),
        )

    child_count = len(aligned)
    imported = sum(1 for child in aligned if _is_complete(child.import_status))
    if progress is not None:
        child_count = progress.child_unit_count
        imported = progress.imported_child_unit_count

    node = AggregationNode(
        id=id,
        label=label,
        level=level,
        registered_voters=sum(child.registered_voters for child in aligned),
        actual_voters=sum(child.actual_voters for child in aligned),
        valid_expressed_votes=sum(child.valid_expressed_votes for child in aligned),
        blank_ballots=sum(child.blank_ballots for child in aligned),
        null_ballots=sum(child.null_ballots for child in aligned),
        scores=scores,
        child_unit_count=child_count,
        imported_child_unit_count=imported,
        polling_station_count=sum(child.polling_station_count for child in aligned),
        import_status=_aggregate_status(aligned, child_count, imported),
        children=tuple(aligned),
    )
    logger.debug(
        "node_aggregated level=%s id=%s children=%s imported=%s",
        level,
        id,
        child_count,
        imported,
    )
    return node


def _progress_for(
    level: str,
    node_id: str,
    children: Sequence[AggregationNode],
    progress: Mapping[Tuple[str, str], ImportProgress],
    expected_units: Mapping[str, Mapping[str, int]],
) -> Optional[ImportProgress]:
    explicit = progress.get((level, node_id))
    if explicit is not None:
        return explicit
    expected = expected_units.get(level, {}).get(node_id)
    if expected is None:
        return None
    imported = sum(1 for child in children if _is_complete(child.import_status))
    return ImportProgress(child_unit_count=max(expected, len(children)), imported_child_unit_count=imported)


def build_hierarchy(
    leaves: Sequence[LeafUnit],
    levels: Sequence[str],
    *,
    root_id: str = NATIONAL_LEVEL,
    root_label: Optional[str] = "National",
    progress: Optional[Mapping[Tuple[str, str], ImportProgress]] = None,
    expected_units: Optional[Mapping[str, Mapping[str, int]]] = None,
) -> AggregationNode:
    """Assemble l'arbre d'agrégation du bas vers le haut.

    ``levels`` va du niveau le plus bas au plus haut ; chaque feuille doit
    porter un code pour chacun d'eux. Deux unités partagent un parent
    seulement si tous leurs codes de niveau supérieur coïncident.

    English:
        Assemble the aggregation tree bottom-up.

        ``levels`` goes from the lowest level to the highest; every leaf
        must carry a code for each of them. Two units share a parent only
        when all their higher-level codes match.

        ``progress`` overrides the import counters of a node, keyed by
        ``(level, id)``. ``expected_units`` (level -> id -> count) declares
        how many subordinate units an entity should have; the imported
        count is then derived from the children present.
    """
    progress = dict(progress or {})
    expected_units = expected_units or {}
    current: List[Tuple[AggregationNode, Mapping[str, Tuple[str, Optional[str]]]]] = []
    for leaf in leaves:
        for level in levels:
            if level not in leaf.path:
                raise DataShapeError(leaf.node.id, level, "missing hierarchy code")
        current.append((leaf.node, leaf.path))

    for index, level in enumerate(levels):
        groups: Dict[Tuple[str, ...], List[AggregationNode]] = {}
        paths: Dict[Tuple[str, ...], Mapping[str, Tuple[str, Optional[str]]]] = {}
        labels: Dict[Tuple[str, ...], Optional[str]] = {}
        for node, path in current:
            key = tuple(path[upper][0] for upper in levels[index:])
            groups.setdefault(key, []).append(node)
            paths.setdefault(key, path)
            if not labels.get(key):
                labels[key] = path[level][1]
        current = [
            (
                aggregate(
                    groups[key],
                    id=key[0],
                    label=labels.get(key),
                    level=level,
                    progress=_progress_for(level, key[0], groups[key], progress, expected_units),
                ),
                paths[key],
            )
            for key in sorted(groups)
        ]

    return aggregate(
        [node for node, _ in current],
        id=root_id,
        label=root_label,
        level=NATIONAL_LEVEL,
        progress=progress.get((NATIONAL_LEVEL, root_id)),
    )


def build_electoral_tree(
    leaves: Sequence[LeafUnit],
    progress: Optional[Mapping[Tuple[str, str], ImportProgress]] = None,
    expected_units: Optional[Mapping[str, Mapping[str, int]]] = None,
) -> AggregationNode:
    """Bureau -> CEL -> circonscription -> national."""
    return build_hierarchy(leaves, ELECTORAL_LEVELS, progress=progress, expected_units=expected_units)


def build_geographic_tree(
    leaves: Sequence[LeafUnit],
    progress: Optional[Mapping[Tuple[str, str], ImportProgress]] = None,
    expected_units: Optional[Mapping[str, Mapping[str, int]]] = None,
) -> AggregationNode:
    """Bureau -> lieu de vote -> département -> région -> national."""
    return build_hierarchy(leaves, GEOGRAPHIC_LEVELS, progress=progress, expected_units=expected_units)


def entity_nodes(
    leaves: Sequence[LeafUnit],
    entity_type: EntityType,
    expected_units: Optional[Mapping[str, Mapping[str, int]]] = None,
) -> List[AggregationNode]:
    """Nœuds des entités publiables d'un type donné, avec leurs CEL.

    English: Nodes of the publishable entities of a given type, with their CELs.
    """
    levels = ENTITY_HIERARCHIES[entity_type]
    root = build_hierarchy(leaves, levels, expected_units=expected_units)
    return list(root.children)


def iter_level(root: AggregationNode, level: str) -> Iterator[AggregationNode]:
    """Parcourt en profondeur les nœuds d'un niveau donné.

    English: Depth-first walk over the nodes of a given level.
    """
    if root.level == level:
        yield root
        return
    for child in root.children:
        yield from iter_level(child, level)


def find_node(root: AggregationNode, level: str, node_id: str) -> Optional[AggregationNode]:
    return next((node for node in iter_level(root, level) if node.id == node_id), None)


@dataclass(frozen=True)
class NationalCandidate:
    """Score national d'un candidat et sa répartition par circonscription.

    English: A candidate's national score and its per-circonscription split.
    """

    candidate_id: str
    votes: int
    percentage: float
    name: Optional[str] = None
    party: Optional[str] = None
    votes_by_circonscription: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class NationalSummary:
    """Vue nationale réservée aux administrateurs.

    English: National view reserved for administrators.
    """

    node: AggregationNode
    circonscription_count: int
    published_count: int
    pending_count: int
    candidates: List[NationalCandidate]


def national_summary(
    circonscriptions: Sequence[AggregationNode],
    records: Mapping[str, PublicationRecord],
) -> NationalSummary:
    """Agrège les circonscriptions au niveau national.

    English: Aggregate circonscriptions at the national level.
    """
    node = aggregate(circonscriptions, id=NATIONAL_LEVEL, label="National", level=NATIONAL_LEVEL)
    published = 0
    for circonscription in node.children:
        record = records.get(circonscription.id)
        if record is not None and record.status is PublicationStatus.PUBLISHED:
            published += 1
    candidates = [
        NationalCandidate(
            candidate_id=candidate_id,
            votes=score.votes,
            percentage=node.percentage(candidate_id),
            name=score.name,
            party=score.party,
            votes_by_circonscription={
                circonscription.id: circonscription.scores[candidate_id].votes
                for circonscription in node.children
            },
        )
        for candidate_id, score in sorted(node.scores.items(), key=lambda item: (-item[1].votes, item[0]))
    ]
    return NationalSummary(
        node=node,
        circonscription_count=len(node.children),
        published_count=published,
        pending_count=len(node.children) - published,
        candidates=candidates,
    )
