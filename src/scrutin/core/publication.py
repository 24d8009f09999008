"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/core/publication.py`.
Machine d'états de publication (NON PUBLIÉ -> PUBLIÉ -> ANNULÉ -> PUBLIÉ)
et service exposant publish / cancel / statut / historique.

Composants détectés :
  - Action
  - OutcomeCode
  - TransitionOutcome
  - ExpectedState
  - published_figures
  - transition
  - PublicationService

Notes :
- Chaque transition réussie ajoute exactement une entrée d'historique.
- Une action répétée est rejetée (NO_OP), jamais dupliquée.
- Le service ne laisse échapper aucune exception métier.

======================== ENGLISH ========================
File: `src/scrutin/core/publication.py`.
Publication state machine (NOT_PUBLISHED -> PUBLISHED -> CANCELLED ->
PUBLISHED) and the service exposing publish / cancel / status / history.

Detected components:
  - Action
  - OutcomeCode
  - TransitionOutcome
  - ExpectedState
  - published_figures
  - transition
  - PublicationService

Notes:
- Every successful transition appends exactly one history entry.
- A repeated action is rejected (NO_OP), never duplicated.
- The service never lets a domain exception escape.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Tuple

from scrutin.core.errors import ConcurrentModificationConflict, IllegalTransition
from scrutin.core.models import (
    Actor,
    AggregationNode,
    EntityType,
    HistoryEntry,
    PublicationRecord,
    PublicationStatus,
)
from scrutin.core.readiness import is_reimport_complete, readiness_reason
from scrutin.core.storage import PublicationStore

logger = logging.getLogger(__name__)


class Action(str, Enum):
    PUBLISH = "PUBLISH"
    CANCEL = "CANCEL"


class OutcomeCode(str, Enum):
    """Raisons typées renvoyées à l'appelant.

    English: Typed reasons returned to the caller.
    """

    OK = "OK"
    NOT_READY = "NOT_READY"
    NO_OP = "NO_OP"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    UNAUTHORIZED = "UNAUTHORIZED"
    CONFLICT = "CONFLICT"
    UNKNOWN_ENTITY = "UNKNOWN_ENTITY"


@dataclass(frozen=True)
class TransitionOutcome:
    """Succès avec données ou échec avec raison typée.

    English: Success with data, or failure with a typed reason.
    """

    success: bool
    code: OutcomeCode
    reason: Optional[str] = None
    record: Optional[PublicationRecord] = None
    retryable: bool = False


@dataclass(frozen=True)
class ExpectedState:
    """Statut et horodatage lus par l'appelant avant sa mutation.

    English: Status and timestamp the caller read before mutating.
    """

    status: PublicationStatus
    last_update: Optional[datetime]

    @classmethod
    def of(cls, record: PublicationRecord) -> "ExpectedState":
        return cls(status=record.status, last_update=record.last_update)


def published_figures(node: AggregationNode) -> str:
    """Sérialise les totaux publiés en JSON canonique avec leur empreinte.

    Conservé dans l'historique pour qu'une republication après annulation
    ne fasse pas disparaître les chiffres publiés auparavant.

    English:
        Serialize the published totals into canonical JSON with their hash.

        Kept in history so that re-publishing after a cancellation does not
        erase the figures published before.
    """
    totals = {
        "registered_voters": node.registered_voters,
        "actual_voters": node.actual_voters,
        "valid_expressed_votes": node.valid_expressed_votes,
        "blank_ballots": node.blank_ballots,
        "null_ballots": node.null_ballots,
        "votes": {candidate_id: score.votes for candidate_id, score in node.scores.items()},
    }
    canonical = json.dumps(totals, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return json.dumps({"totals": totals, "sha256": digest}, sort_keys=True, separators=(",", ":"))


def transition(
    record: PublicationRecord,
    action: Action,
    actor: Actor,
    node: Optional[AggregationNode] = None,
    now: Optional[datetime] = None,
) -> PublicationRecord:
    """Applique une action au record selon la table des gardes.

    Args:
        record: État courant de l'entité.
        action: ``PUBLISH`` ou ``CANCEL``.
        actor: Appelant déjà authentifié.
        node: Nœud agrégé de l'entité (obligatoire pour publier).
        now: Horodatage de la transition (UTC courant par défaut).

    Returns:
        PublicationRecord: Nouveau record, avec une entrée d'historique de plus.

    Raises:
        IllegalTransition: Garde non satisfaite ; ``code`` porte la raison.

    English:
        Apply an action to the record following the guard table.
    """
    if not actor.can_mutate:
        raise IllegalTransition(
            OutcomeCode.UNAUTHORIZED.value,
            f"role {actor.role.value} cannot {action.value.lower()} results",
        )

    details: Optional[str] = None
    if action is Action.PUBLISH:
        if record.status is PublicationStatus.PUBLISHED:
            raise IllegalTransition(OutcomeCode.NO_OP.value, "already published")
        if node is None:
            raise IllegalTransition(OutcomeCode.NOT_READY.value, "no aggregated results for entity")
        if record.status is PublicationStatus.CANCELLED:
            if not is_reimport_complete(node):
                raise IllegalTransition(
                    OutcomeCode.NOT_READY.value,
                    "not all subordinate units re-imported "
                    f"({node.imported_child_unit_count}/{node.child_unit_count})",
                )
        else:
            reason = readiness_reason(node, record)
            if reason is not None:
                raise IllegalTransition(OutcomeCode.NOT_READY.value, reason)
        target = PublicationStatus.PUBLISHED
        details = published_figures(node)
    elif action is Action.CANCEL:
        if record.status is PublicationStatus.CANCELLED:
            raise IllegalTransition(OutcomeCode.NO_OP.value, "already cancelled")
        if record.status is not PublicationStatus.PUBLISHED:
            raise IllegalTransition(
                OutcomeCode.ILLEGAL_TRANSITION.value,
                "cancel is only allowed on published results",
            )
        target = PublicationStatus.CANCELLED
    else:
        raise IllegalTransition(OutcomeCode.ILLEGAL_TRANSITION.value, f"unknown action {action!r}")

    timestamp = now or datetime.now(timezone.utc)
    entry = HistoryEntry(
        actor=actor.user_id,
        timestamp=timestamp,
        from_status=record.status,
        to_status=target,
        action=action.value,
        details=details,
    )
    return replace(record, status=target, last_update=timestamp, history=record.history + (entry,))


class PublicationService:
    """Surface de mutation et de consultation des publications.

    English:
        Mutation and query surface for publications. Outcomes are always
        returned, never raised.
    """

    def __init__(
        self,
        store: PublicationStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def ensure_record(self, entity_id: str, entity_type: EntityType) -> PublicationRecord:
        """Crée le record (NON PUBLIÉ) à la première apparition de l'entité.

        English: Create the record (NOT_PUBLISHED) when the entity first appears.
        """
        return self.store.create(PublicationRecord(entity_id=entity_id, entity_type=entity_type))

    def get_record(
        self,
        entity_id: str,
        entity_type: EntityType = EntityType.CIRCONSCRIPTION,
    ) -> Optional[PublicationRecord]:
        return self.store.get(entity_type, entity_id)

    def get_publication_status(
        self,
        entity_id: str,
        entity_type: EntityType = EntityType.CIRCONSCRIPTION,
    ) -> Optional[PublicationStatus]:
        """Statut courant, ``None`` pour une entité inconnue.

        English: Current status, ``None`` for an unknown entity.
        """
        record = self.store.get(entity_type, entity_id)
        return record.status if record is not None else None

    def get_history(
        self,
        entity_id: str,
        entity_type: EntityType = EntityType.CIRCONSCRIPTION,
    ) -> Tuple[HistoryEntry, ...]:
        record = self.store.get(entity_type, entity_id)
        return record.history if record is not None else ()

    def publish(
        self,
        entity_id: str,
        node: AggregationNode,
        actor: Actor,
        expected: Optional[ExpectedState] = None,
        entity_type: EntityType = EntityType.CIRCONSCRIPTION,
    ) -> TransitionOutcome:
        """Publie les résultats de l'entité. / Publish the entity's results."""
        return self._apply(entity_type, entity_id, Action.PUBLISH, actor, node=node, expected=expected)

    def cancel(
        self,
        entity_id: str,
        actor: Actor,
        expected: Optional[ExpectedState] = None,
        entity_type: EntityType = EntityType.CIRCONSCRIPTION,
    ) -> TransitionOutcome:
        """Annule la publication de l'entité. / Cancel the entity's publication."""
        return self._apply(entity_type, entity_id, Action.CANCEL, actor, expected=expected)

    def _apply(
        self,
        entity_type: EntityType,
        entity_id: str,
        action: Action,
        actor: Actor,
        node: Optional[AggregationNode] = None,
        expected: Optional[ExpectedState] = None,
    ) -> TransitionOutcome:
        record = self.store.get(entity_type, entity_id)
        if record is None:
            return TransitionOutcome(
                success=False,
                code=OutcomeCode.UNKNOWN_ENTITY,
                reason=f"unknown {entity_type.value} {entity_id}",
            )

        current = ExpectedState.of(record)
        if expected is not None and expected != current:
            logger.warning(
                "publication_stale_read entity_type=%s entity=%s action=%s expected=%s current=%s",
                entity_type.value,
                entity_id,
                action.value,
                expected.status.value,
                current.status.value,
            )
            return self._conflict(entity_id, record)
        expected = current

        try:
            updated = transition(record, action, actor, node=node, now=self._clock())
        except IllegalTransition as exc:
            logger.info(
                "publication_rejected entity_type=%s entity=%s action=%s actor=%s code=%s reason=%s",
                entity_type.value,
                entity_id,
                action.value,
                actor.user_id,
                exc.code,
                exc.reason,
            )
            return TransitionOutcome(
                success=False,
                code=OutcomeCode(exc.code),
                reason=exc.reason,
                record=record,
            )

        try:
            stored = self.store.compare_and_swap(updated, expected.status, expected.last_update)
        except ConcurrentModificationConflict as exc:
            return self._conflict(entity_id, self.store.get(entity_type, entity_id), str(exc))

        logger.info(
            "publication_transition entity_type=%s entity=%s action=%s actor=%s from=%s to=%s",
            entity_type.value,
            entity_id,
            action.value,
            actor.user_id,
            record.status.value,
            stored.status.value,
        )
        return TransitionOutcome(success=True, code=OutcomeCode.OK, record=stored)

    @staticmethod
    def _conflict(
        entity_id: str,
        record: Optional[PublicationRecord],
        detail: Optional[str] = None,
    ) -> TransitionOutcome:
        reason = f"publication status of {entity_id} changed since it was read; reload and retry"
        if detail:
            reason = f"{reason} ({detail})"
        return TransitionOutcome(
            success=False,
            code=OutcomeCode.CONFLICT,
            reason=reason,
            record=record,
            retryable=True,
        )
