from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
import sqlite3
from pathlib import Path

import pytest

from scrutin.core.errors import ConcurrentModificationConflict
from scrutin.core.models import (
    Actor,
    AggregationNode,
    EntityType,
    PublicationRecord,
    PublicationStatus,
    Role,
)
from scrutin.core.publication import Action, OutcomeCode, PublicationService, transition
from scrutin.core.storage import InMemoryPublicationStore, SQLitePublicationStore

ADMIN = Actor(user_id="admin01", role=Role.ADMIN)
NOW = datetime(2025, 10, 26, 21, 30, tzinfo=timezone.utc)
READY = AggregationNode(id="004", level="circonscription", child_unit_count=2, imported_child_unit_count=2)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    """Les deux implémentations respectent le même contrat.

    English: Both implementations honour the same contract.
    """
    if request.param == "memory":
        yield InMemoryPublicationStore()
        return
    sqlite_store = SQLitePublicationStore(str(tmp_path / "publications.db"))
    yield sqlite_store
    sqlite_store.close()


def test_create_is_idempotent(store) -> None:
    first = store.create(PublicationRecord("004", EntityType.CIRCONSCRIPTION))
    published = transition(first, Action.PUBLISH, ADMIN, node=READY, now=NOW)
    store.compare_and_swap(published, first.status, first.last_update)

    again = store.create(PublicationRecord("004", EntityType.CIRCONSCRIPTION))

    assert again.status is PublicationStatus.PUBLISHED
    assert len(again.history) == 1


def test_compare_and_swap_round_trip(store) -> None:
    record = store.create(PublicationRecord("004", EntityType.CIRCONSCRIPTION))
    published = transition(record, Action.PUBLISH, ADMIN, node=READY, now=NOW)

    stored = store.compare_and_swap(published, PublicationStatus.NOT_PUBLISHED, None)

    assert stored.status is PublicationStatus.PUBLISHED
    assert stored.last_update == NOW
    reloaded = store.get(EntityType.CIRCONSCRIPTION, "004")
    assert reloaded.history == published.history
    assert reloaded.history[0].details == published.history[0].details


def test_stale_compare_and_swap_raises_conflict(store) -> None:
    record = store.create(PublicationRecord("004", EntityType.CIRCONSCRIPTION))
    published = transition(record, Action.PUBLISH, ADMIN, node=READY, now=NOW)
    store.compare_and_swap(published, PublicationStatus.NOT_PUBLISHED, None)

    # Second writer still holds the NOT_PUBLISHED snapshot.
    with pytest.raises(ConcurrentModificationConflict):
        store.compare_and_swap(published, PublicationStatus.NOT_PUBLISHED, None)

    assert len(store.get(EntityType.CIRCONSCRIPTION, "004").history) == 1


def test_history_cannot_be_rewritten(store) -> None:
    record = store.create(PublicationRecord("004", EntityType.CIRCONSCRIPTION))
    published = transition(record, Action.PUBLISH, ADMIN, node=READY, now=NOW)
    store.compare_and_swap(published, PublicationStatus.NOT_PUBLISHED, None)
    current = store.get(EntityType.CIRCONSCRIPTION, "004")
    rewritten = replace(current, history=())

    with pytest.raises(ValueError):
        store.compare_and_swap(rewritten, current.status, current.last_update)


def test_list_records_is_sorted(store) -> None:
    store.create(PublicationRecord("012", EntityType.CIRCONSCRIPTION))
    store.create(PublicationRecord("004", EntityType.CIRCONSCRIPTION))

    assert [record.entity_id for record in store.list_records()] == ["004", "012"]


def test_sqlite_history_survives_reopen(tmp_path: Path) -> None:
    """L'historique persiste après fermeture de la base.

    English: History persists after the database is closed.
    """
    db_path = str(tmp_path / "publications.db")
    first = SQLitePublicationStore(db_path)
    service = PublicationService(first)
    service.ensure_record("004", EntityType.CIRCONSCRIPTION)
    service.publish("004", READY, ADMIN)
    service.cancel("004", ADMIN)
    first.close()

    reopened = SQLitePublicationStore(db_path)
    try:
        history = PublicationService(reopened).get_history("004")
    finally:
        reopened.close()

    assert [entry.action for entry in history] == ["PUBLISH", "CANCEL"]
    assert history[1].from_status is PublicationStatus.PUBLISHED


def test_same_code_under_two_entity_types(store) -> None:
    """La circonscription 004 et le département 004 sont indépendants.

    English: Circonscription 004 and department 004 are independent.
    """
    record = store.create(PublicationRecord("004", EntityType.CIRCONSCRIPTION))
    published = transition(record, Action.PUBLISH, ADMIN, node=READY, now=NOW)
    store.compare_and_swap(published, PublicationStatus.NOT_PUBLISHED, None)

    department = store.create(PublicationRecord("004", EntityType.DEPARTMENT))

    assert department.status is PublicationStatus.NOT_PUBLISHED
    assert department.history == ()
    assert store.get(EntityType.CIRCONSCRIPTION, "004").status is PublicationStatus.PUBLISHED
    assert store.get(EntityType.COMMUNE, "004") is None
    assert [record.entity_type for record in store.list_records()] == [
        EntityType.CIRCONSCRIPTION,
        EntityType.DEPARTMENT,
    ]


def test_locked_database_is_a_retryable_conflict(tmp_path: Path) -> None:
    """Un autre processus détient le verrou d'écriture.

    English: Another process holds the write lock.
    """
    db_path = str(tmp_path / "publications.db")
    store = SQLitePublicationStore(db_path, timeout=0.05)
    service = PublicationService(store)
    service.ensure_record("004", EntityType.CIRCONSCRIPTION)
    blocker = sqlite3.connect(db_path, isolation_level=None)
    blocker.execute("BEGIN IMMEDIATE")
    try:
        record = store.get(EntityType.CIRCONSCRIPTION, "004")
        published = transition(record, Action.PUBLISH, ADMIN, node=READY, now=NOW)
        with pytest.raises(ConcurrentModificationConflict, match="storage unavailable") as excinfo:
            store.compare_and_swap(published, record.status, record.last_update)
        assert excinfo.value.retryable is True

        outcome = service.publish("004", READY, ADMIN)
    finally:
        blocker.execute("ROLLBACK")
        blocker.close()

    try:
        assert outcome.success is False
        assert outcome.code is OutcomeCode.CONFLICT
        assert outcome.retryable is True
        assert service.get_publication_status("004") is PublicationStatus.NOT_PUBLISHED
        assert service.publish("004", READY, ADMIN).success is True
    finally:
        store.close()
