"""Erreurs typées du moteur de résultats.

English: Typed errors of the results engine.
"""

from __future__ import annotations

from typing import Optional


class ScrutinError(Exception):
    """Erreur de base du moteur. / Base engine error."""

    retryable = False


class DataShapeError(ScrutinError):
    """Ligne brute sans champ numérique obligatoire ou avec un champ invalide.

    English: Raw row missing a required numeric field, or carrying an invalid one.
    """

    def __init__(self, unit_id: Optional[str], field: str, message: str = "missing or invalid") -> None:
        super().__init__(f"unit={unit_id or '?'} field={field}: {message}")
        self.unit_id = unit_id
        self.field = field


class InvariantViolation(ScrutinError):
    """Incohérence signalée mais non bloquante (ex. votants > inscrits).

    English: Reported, non-blocking inconsistency (e.g. voters > registered).
    """

    def __init__(self, unit_id: str, message: str) -> None:
        super().__init__(f"unit={unit_id}: {message}")
        self.unit_id = unit_id
        self.message = message


class IllegalTransition(ScrutinError):
    """Action de publication refusée par la table des gardes.

    English: Publication action rejected by the guard table.
    """

    def __init__(self, code: str, reason: str) -> None:
        super().__init__(reason)
        self.code = code
        self.reason = reason


class ConcurrentModificationConflict(ScrutinError):
    """Le statut a changé depuis la dernière lecture de l'appelant.

    English: The status changed since the caller last read it.
    """

    retryable = True

    def __init__(self, entity_id: str, message: str = "stale publication status") -> None:
        super().__init__(f"entity={entity_id}: {message}")
        self.entity_id = entity_id
