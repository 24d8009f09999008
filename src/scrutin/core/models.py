"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/core/models.py`.
Modèles immuables partagés par l'agrégation, le classement et la
publication des résultats.

Composants détectés :
  - CandidateScore
  - AggregationNode
  - RankedResult
  - PublicationStatus
  - EntityType
  - HistoryEntry
  - PublicationRecord
  - Role
  - Actor
  - ImportStatus
  - LeafUnit

Notes :
- Un AggregationNode est dérivé et jetable ; il n'est jamais persisté.
- Un PublicationRecord n'est modifié que via la machine d'états.

======================== ENGLISH ========================
File: `src/scrutin/core/models.py`.
Immutable models shared by aggregation, ranking and results publication.

Detected components:
  - CandidateScore
  - AggregationNode
  - RankedResult
  - PublicationStatus
  - EntityType
  - HistoryEntry
  - PublicationRecord
  - Role
  - Actor
  - ImportStatus
  - LeafUnit

Notes:
- An AggregationNode is derived and disposable; it is never persisted.
- A PublicationRecord is only changed through the state machine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple


def _rate(numerator: int, denominator: int) -> float:
    """Pourcentage arrondi à deux décimales, 0 si le dénominateur est nul.

    English: Percentage rounded to two decimals, 0 when the denominator is zero.
    """
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 2)


@dataclass(frozen=True)
class CandidateScore:
    """Score d'un candidat (ou d'une liste) sur un nœud d'agrégation.

    Attributes:
        candidate_id (str): Numéro de dossier du candidat (ex. ``U-02108``).
        votes (int): Voix obtenues sur le nœud.
        name (Optional[str]): Nom affiché.
        party (Optional[str]): Parti ou groupement.

    English:
        Score of a candidate (or list) on an aggregation node.

    Attributes:
        candidate_id (str): Candidate dossier number (e.g. ``U-02108``).
        votes (int): Votes obtained on the node.
        name (Optional[str]): Display name.
        party (Optional[str]): Party or group.
    """

    candidate_id: str
    votes: int = 0
    name: Optional[str] = None
    party: Optional[str] = None

    def percentage(self, valid_expressed_votes: int) -> float:
        """Part des suffrages exprimés. / Share of valid expressed votes."""
        return _rate(self.votes, valid_expressed_votes)


@dataclass(frozen=True)
class AggregationNode:
    """Totaux d'une unité à n'importe quel niveau de la hiérarchie.

    Le même type sert aux bureaux de vote, lieux de vote, départements,
    régions, CEL, circonscriptions et au niveau national.

    English:
        Totals of a unit at any level of the hierarchy.

        The same type serves polling stations, voting places, departments,
        regions, CELs, circonscriptions and the national level.
    """

    id: str
    label: Optional[str] = None
    level: str = "unit"
    registered_voters: int = 0
    actual_voters: int = 0
    valid_expressed_votes: int = 0
    blank_ballots: int = 0
    null_ballots: int = 0
    scores: Mapping[str, CandidateScore] = field(default_factory=dict)
    child_unit_count: int = 0
    imported_child_unit_count: int = 0
    polling_station_count: int = 0
    import_status: Optional[str] = None
    children: Tuple["AggregationNode", ...] = ()

    @property
    def turnout_rate(self) -> float:
        """Taux de participation en %. / Turnout rate in %."""
        return _rate(self.actual_voters, self.registered_voters)

    def percentage(self, candidate_id: str) -> float:
        """Pourcentage d'un candidat, 0 s'il est inconnu.

        English: A candidate's percentage, 0 when unknown.
        """
        score = self.scores.get(candidate_id)
        if score is None:
            return 0.0
        return score.percentage(self.valid_expressed_votes)

    @property
    def candidate_ids(self) -> Tuple[str, ...]:
        return tuple(sorted(self.scores))

    @property
    def pending_child_unit_count(self) -> int:
        return max(self.child_unit_count - self.imported_child_unit_count, 0)

    def to_dict(self, include_children: bool = False) -> Dict[str, object]:
        """Convertit le nœud en dictionnaire simple.

        English: Convert the node into a plain dictionary.
        """
        payload: Dict[str, object] = {
            "id": self.id,
            "label": self.label,
            "level": self.level,
            "registered_voters": self.registered_voters,
            "actual_voters": self.actual_voters,
            "turnout_rate": self.turnout_rate,
            "valid_expressed_votes": self.valid_expressed_votes,
            "blank_ballots": self.blank_ballots,
            "null_ballots": self.null_ballots,
            "polling_station_count": self.polling_station_count,
            "child_unit_count": self.child_unit_count,
            "imported_child_unit_count": self.imported_child_unit_count,
            "scores": {
                candidate_id: {
                    "votes": score.votes,
                    "percentage": score.percentage(self.valid_expressed_votes),
                    "name": score.name,
                    "party": score.party,
                }
                for candidate_id, score in sorted(self.scores.items())
            },
        }
        if include_children:
            payload["children"] = [child.to_dict(include_children=True) for child in self.children]
        return payload


@dataclass(frozen=True)
class RankedResult:
    """Ligne de classement d'un candidat.

    English: Ranking row for a candidate.
    """

    candidate_id: str
    votes: int
    percentage: float
    rank: int
    is_winner: bool = False
    is_tied: bool = False


class PublicationStatus(str, Enum):
    """Statuts de publication.

    English: Publication statuses.
    """

    NOT_PUBLISHED = "NOT_PUBLISHED"
    PUBLISHED = "PUBLISHED"
    CANCELLED = "CANCELLED"


class EntityType(str, Enum):
    """Types d'entités publiables.

    English: Publishable entity types.
    """

    CIRCONSCRIPTION = "circonscription"
    DEPARTMENT = "department"
    COMMUNE = "commune"


class Role(str, Enum):
    """Rôles des opérateurs ; USER est le rôle de consultation.

    English: Operator roles; USER is the read-only viewer role.
    """

    SADMIN = "SADMIN"
    ADMIN = "ADMIN"
    USER = "USER"


@dataclass(frozen=True)
class Actor:
    """Identité déjà authentifiée de l'appelant.

    English: Already authenticated caller identity.
    """

    user_id: str
    role: Role = Role.USER

    @property
    def can_mutate(self) -> bool:
        return self.role in (Role.SADMIN, Role.ADMIN)


@dataclass(frozen=True)
class HistoryEntry:
    """Transition passée d'un PublicationRecord.

    Attributes:
        actor (str): Identifiant de l'opérateur.
        timestamp (datetime): Horodatage UTC de la transition.
        from_status (PublicationStatus): Statut avant la transition.
        to_status (PublicationStatus): Statut après la transition.
        action (str): ``PUBLISH`` ou ``CANCEL``.
        details (Optional[str]): Contexte libre (totaux publiés en JSON).

    English:
        A past transition of a PublicationRecord.
    """

    actor: str
    timestamp: datetime
    from_status: PublicationStatus
    to_status: PublicationStatus
    action: str
    details: Optional[str] = None


@dataclass(frozen=True)
class PublicationRecord:
    """Statut de publication d'une entité et son historique d'audit.

    English: Publication status of an entity and its audit trail.
    """

    entity_id: str
    entity_type: EntityType
    status: PublicationStatus = PublicationStatus.NOT_PUBLISHED
    last_update: Optional[datetime] = None
    history: Tuple[HistoryEntry, ...] = ()


class ImportStatus(str, Enum):
    """État d'import d'une unité : N (non importée), I (importée), P (publiée).

    English: Unit import state: N (not imported), I (imported), P (published).
    """

    NOT_IMPORTED = "N"
    IMPORTED = "I"
    PUBLISHED = "P"

    @property
    def is_complete(self) -> bool:
        return self is not ImportStatus.NOT_IMPORTED


@dataclass(frozen=True)
class LeafUnit:
    """Nœud feuille et son chemin dans la hiérarchie (niveau -> code, libellé).

    English: Leaf node and its path in the hierarchy (level -> code, label).
    """

    node: AggregationNode
    path: Mapping[str, Tuple[str, Optional[str]]] = field(default_factory=dict)
