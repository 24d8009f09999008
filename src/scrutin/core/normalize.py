"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/core/normalize.py`.
Valide les lignes brutes par bureau de vote (déjà extraites des fichiers
importés) et les convertit en nœuds feuilles d'agrégation.

Composants détectés :
  - UnitRowSchema
  - NormalizedRows
  - normalize_row
  - normalize_rows

Notes :
- Inscrits et votants manquants rejettent la ligne (pas de 0 implicite).
- Les voix manquantes d'un candidat valent 0.

======================== ENGLISH ========================
File: `src/scrutin/core/normalize.py`.
Validates raw per-polling-station rows (already extracted from uploaded
files) and turns them into leaf aggregation nodes.

Detected components:
  - UnitRowSchema
  - NormalizedRows
  - normalize_row
  - normalize_rows

Notes:
- Missing registered/actual voters reject the row (no implicit 0).
- Missing candidate votes count as 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from scrutin.core.aggregation import align_candidates
from scrutin.core.errors import DataShapeError, InvariantViolation
from scrutin.core.models import AggregationNode, CandidateScore, ImportStatus, LeafUnit

logger = logging.getLogger(__name__)

# Clés héritées du format d'import des CEL. / Legacy keys of the CEL import format.
LEGACY_KEYS = {
    "numeroBureau": "unit_id",
    "libelleBureau": "label",
    "inscrits": "registered_voters",
    "votants": "actual_voters",
    "suffrageExprime": "valid_expressed_votes",
    "bulletinsBlancs": "blank_ballots",
    "bulletinsNuls": "null_ballots",
    "statutImport": "import_status",
    "codeLieuVote": "voting_place",
    "codeDepartement": "department",
    "codeRegion": "region",
    "codeCel": "cel",
    "codeCommune": "commune",
    "codeCirconscription": "circonscription",
}

LOCATION_LEVELS = ("voting_place", "commune", "department", "region", "cel", "circonscription")


class UnitRowSchema(BaseModel):
    """Schéma d'une ligne brute par bureau de vote.

    English: Raw per-polling-station row schema.
    """

    model_config = ConfigDict(extra="ignore")

    unit_id: str = Field(min_length=1)
    label: Optional[str] = None
    registered_voters: int = Field(ge=0)
    actual_voters: int = Field(ge=0)
    valid_expressed_votes: Optional[int] = Field(default=None, ge=0)
    blank_ballots: int = Field(default=0, ge=0)
    null_ballots: int = Field(default=0, ge=0)
    votes: Dict[str, Optional[int]] = Field(default_factory=dict)
    import_status: ImportStatus = ImportStatus.IMPORTED
    voting_place: Optional[str] = None
    commune: Optional[str] = None
    department: Optional[str] = None
    region: Optional[str] = None
    cel: Optional[str] = None
    circonscription: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)

    @field_validator("unit_id", mode="before")
    @classmethod
    def strip_unit_id(cls, value: Any) -> str:
        """Normalise l'identifiant et valide qu'il n'est pas vide.

        English:
            Normalize the identifier and validate it is not empty.
        """
        cleaned = str(value).strip() if value is not None else ""
        if not cleaned:
            raise ValueError("Field cannot be empty")
        return cleaned

    @field_validator("voting_place", "commune", "department", "region", "cel", "circonscription", mode="before")
    @classmethod
    def location_code_as_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @field_validator("votes")
    @classmethod
    def votes_non_negative(cls, value: Dict[str, Optional[int]]) -> Dict[str, Optional[int]]:
        for candidate_id, votes in value.items():
            if votes is not None and votes < 0:
                raise ValueError(f"votes for {candidate_id} cannot be negative")
        return value


@dataclass(frozen=True)
class NormalizedRows:
    """Unités validées et anomalies non bloquantes relevées.

    English: Validated units and non-blocking anomalies found.
    """

    units: List[LeafUnit]
    warnings: List[InvariantViolation] = field(default_factory=list)


def _migrate_row(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Migre les clés héritées vers les clés canoniques.

    English: Migrate legacy keys into canonical keys.
    """
    migrated = dict(payload)
    for legacy, canonical in LEGACY_KEYS.items():
        if legacy in migrated and canonical not in migrated:
            migrated[canonical] = migrated.pop(legacy)
    return migrated


def _unit_id_hint(payload: Mapping[str, Any]) -> Optional[str]:
    value = payload.get("unit_id")
    return str(value) if value is not None else None


def normalize_row(
    raw: Mapping[str, Any],
    candidates: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> Tuple[LeafUnit, List[InvariantViolation]]:
    """Valide une ligne brute et la convertit en feuille.

    Args:
        raw: Ligne brute (clés canoniques ou héritées).
        candidates: Métadonnées optionnelles par numéro de dossier
            (``name``, ``party``).

    Returns:
        La feuille et la liste des incohérences non bloquantes.

    Raises:
        DataShapeError: Champ numérique obligatoire absent ou invalide.

    English:
        Validate a raw row and convert it into a leaf.
    """
    if not isinstance(raw, Mapping):
        raise DataShapeError(None, "row", "row must be a mapping")
    payload = _migrate_row(raw)
    try:
        row = UnitRowSchema.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        field_name = ".".join(str(part) for part in first.get("loc", ())) or "row"
        raise DataShapeError(_unit_id_hint(payload), field_name, first.get("msg", "invalid")) from exc

    candidates = candidates or {}
    scores: Dict[str, CandidateScore] = {}
    for candidate_id in set(row.votes) | set(candidates):
        info = candidates.get(candidate_id, {})
        scores[candidate_id] = CandidateScore(
            candidate_id=candidate_id,
            votes=row.votes.get(candidate_id) or 0,
            name=info.get("name"),
            party=info.get("party"),
        )

    valid_expressed = row.valid_expressed_votes
    if valid_expressed is None:
        valid_expressed = sum(score.votes for score in scores.values())

    warnings: List[InvariantViolation] = []
    if row.actual_voters > row.registered_voters:
        violation = InvariantViolation(
            row.unit_id,
            f"actual_voters={row.actual_voters} exceeds registered_voters={row.registered_voters}",
        )
        logger.warning(
            "unit_invariant_violation unit=%s actual=%s registered=%s",
            row.unit_id,
            row.actual_voters,
            row.registered_voters,
        )
        warnings.append(violation)

    node = AggregationNode(
        id=row.unit_id,
        label=row.label,
        level="polling_station",
        registered_voters=row.registered_voters,
        actual_voters=row.actual_voters,
        valid_expressed_votes=valid_expressed,
        blank_ballots=row.blank_ballots,
        null_ballots=row.null_ballots,
        scores=scores,
        polling_station_count=1,
        import_status=row.import_status.value,
    )
    path: Dict[str, Tuple[str, Optional[str]]] = {}
    for level in LOCATION_LEVELS:
        code = getattr(row, level)
        if code is not None:
            path[level] = (code, row.labels.get(level))
    return LeafUnit(node=node, path=path), warnings


def normalize_rows(
    rows: Iterable[Mapping[str, Any]],
    candidates: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> NormalizedRows:
    """Valide toutes les lignes et aligne les candidats entre frères.

    Une ligne invalide interrompt le traitement avec ``DataShapeError`` pour
    ne pas fausser les totaux du parent.

    English:
        Validate every row and align candidates across siblings.

        An invalid row stops processing with ``DataShapeError`` so that it
        cannot pollute a parent's totals.
    """
    units: List[LeafUnit] = []
    warnings: List[InvariantViolation] = []
    for raw in rows:
        unit, row_warnings = normalize_row(raw, candidates)
        units.append(unit)
        warnings.extend(row_warnings)

    aligned_nodes = align_candidates([unit.node for unit in units])
    aligned = [LeafUnit(node=node, path=unit.path) for node, unit in zip(aligned_nodes, units)]
    logger.info("rows_normalized units=%s warnings=%s", len(aligned), len(warnings))
    return NormalizedRows(units=aligned, warnings=warnings)
