"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `conftest.py`.
Fixtures partagées des tests de Scrutin Engine.

Composants détectés :
  - block_network
  - make_row
  - circonscription_rows

======================== ENGLISH ========================
File: `conftest.py`.
Shared fixtures for Scrutin Engine tests.

Detected components:
  - block_network
  - make_row
  - circonscription_rows
"""

from __future__ import annotations

import socket
from typing import Any, Callable, Dict, List

import pytest


@pytest.fixture(autouse=True)
def block_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Empêche toute connexion réseau réelle pendant les tests.

    English:
        Prevents real network connections in tests.
    """

    def guarded_connect(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    def guarded_create_connection(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    monkeypatch.setattr(socket.socket, "connect", guarded_connect, raising=True)
    monkeypatch.setattr(socket, "create_connection", guarded_create_connection, raising=True)


@pytest.fixture
def make_row() -> Callable[..., Dict[str, Any]]:
    """Fabrique une ligne brute par bureau de vote.

    English: Builds a raw per-polling-station row.
    """

    def _make_row(
        unit_id: str,
        registered: int = 100,
        actual: int = 50,
        votes: Dict[str, int] | None = None,
        **location: Any,
    ) -> Dict[str, Any]:
        votes = votes or {}
        row: Dict[str, Any] = {
            "unit_id": unit_id,
            "registered_voters": registered,
            "actual_voters": actual,
            "valid_expressed_votes": sum(votes.values()),
            "blank_ballots": 0,
            "null_ballots": 0,
            "votes": votes,
        }
        row.update(location)
        return row

    return _make_row


@pytest.fixture
def circonscription_rows(make_row: Callable[..., Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Deux circonscriptions (004 et 012), trois CEL, quatre bureaux.

    English: Two circonscriptions (004 and 012), three CELs, four stations.
    """
    return [
        make_row("BV01", 100, 50, {"U-001": 30, "U-002": 20}, cel="C041", circonscription="004",
                 labels={"cel": "CEL ABOBO", "circonscription": "ABOBO"}),
        make_row("BV02", 200, 50, {"U-001": 10, "U-002": 40}, cel="C041", circonscription="004"),
        make_row("BV03", 150, 90, {"U-001": 45, "U-002": 45}, cel="C042", circonscription="004",
                 labels={"cel": "CEL ANYAMA"}),
        make_row("BV04", 80, 40, {"U-001": 25, "U-003": 15}, cel="C120", circonscription="012",
                 labels={"cel": "CEL BOUAKE", "circonscription": "BOUAKE"}),
    ]
