"""Évaluation de l'éligibilité à la publication.

English: Publication readiness evaluation. Purely advisory; nothing here
mutates a PublicationRecord.
"""

from __future__ import annotations

from typing import Optional

from scrutin.core.models import AggregationNode, PublicationRecord, PublicationStatus

__all__ = [
    "is_ready_to_publish",
    "is_reimport_complete",
    "readiness_reason",
]


def is_reimport_complete(node: AggregationNode) -> bool:
    """Toutes les unités subordonnées sont importées (et il y en a).

    English: Every subordinate unit is imported (and there is at least one).
    """
    return node.child_unit_count > 0 and node.imported_child_unit_count == node.child_unit_count


def is_ready_to_publish(node: AggregationNode, record: PublicationRecord) -> bool:
    """Vrai si le nœud peut être publié pour la première fois.

    English:
        True when all subordinate units are imported, there is at least
        one, and the entity is neither published nor cancelled.
    """
    if record.status in (PublicationStatus.PUBLISHED, PublicationStatus.CANCELLED):
        return False
    return is_reimport_complete(node)


def readiness_reason(node: AggregationNode, record: PublicationRecord) -> Optional[str]:
    """Raison lisible pour laquelle le nœud n'est pas prêt, ``None`` sinon.

    English: Human-readable reason why the node is not ready, ``None`` otherwise.
    """
    if record.status is PublicationStatus.PUBLISHED:
        return "already published"
    if node.child_unit_count == 0:
        return "no subordinate units"
    if node.imported_child_unit_count != node.child_unit_count:
        return (
            "not all subordinate units imported "
            f"({node.imported_child_unit_count}/{node.child_unit_count})"
        )
    if record.status is PublicationStatus.CANCELLED:
        return "publication cancelled; re-import subordinate units to publish again"
    return None
