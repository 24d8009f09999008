"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/core/storage.py`.
Frontière de persistance des PublicationRecord. Toute écriture passe par
un compare-and-swap sur (statut, dernière mise à jour) ; l'historique n'est
jamais réécrit, seulement complété.

Composants détectés :
  - PublicationStore
  - InMemoryPublicationStore
  - SQLitePublicationStore

Notes :
- Un record est identifié par (type d'entité, code) : la circonscription
  004 et le département 004 sont deux records distincts.
- Une seule mutation en vol par entité : une lecture périmée ou une base
  verrouillée lève ConcurrentModificationConflict.

======================== ENGLISH ========================
File: `src/scrutin/core/storage.py`.
Persistence boundary for PublicationRecords. Every write goes through a
compare-and-swap on (status, last update); history is never rewritten,
only appended to.

Detected components:
  - PublicationStore
  - InMemoryPublicationStore
  - SQLitePublicationStore

Notes:
- A record is keyed by (entity type, code): circonscription 004 and
  department 004 are two distinct records.
- At most one in-flight mutation per entity: a stale read or a locked
  database raises ConcurrentModificationConflict.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple

from scrutin.core.errors import ConcurrentModificationConflict
from scrutin.core.models import EntityType, HistoryEntry, PublicationRecord, PublicationStatus

logger = logging.getLogger(__name__)


class PublicationStore(Protocol):
    """Contrat attendu du collaborateur de persistance.

    English: Contract expected from the persistence collaborator.
    """

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[PublicationRecord]:
        ...

    def create(self, record: PublicationRecord) -> PublicationRecord:
        ...

    def compare_and_swap(
        self,
        record: PublicationRecord,
        expected_status: PublicationStatus,
        expected_last_update: Optional[datetime],
    ) -> PublicationRecord:
        ...

    def list_records(self) -> List[PublicationRecord]:
        ...


def _new_entries(stored: PublicationRecord, updated: PublicationRecord) -> tuple[HistoryEntry, ...]:
    if updated.history[: len(stored.history)] != stored.history:
        raise ValueError(f"history of {stored.entity_type.value} {stored.entity_id} can only be appended to")
    return updated.history[len(stored.history):]


class InMemoryPublicationStore:
    """Stockage en mémoire, protégé par un verrou.

    English:
        In-memory store guarded by a lock.
    """

    def __init__(self) -> None:
        self._records: Dict[Tuple[EntityType, str], PublicationRecord] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(record: PublicationRecord) -> Tuple[EntityType, str]:
        return record.entity_type, record.entity_id

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[PublicationRecord]:
        with self._lock:
            return self._records.get((entity_type, entity_id))

    def create(self, record: PublicationRecord) -> PublicationRecord:
        """Crée l'enregistrement s'il n'existe pas ; renvoie l'existant sinon.

        English: Create the record if absent; return the existing one otherwise.
        """
        with self._lock:
            existing = self._records.get(self._key(record))
            if existing is not None:
                return existing
            self._records[self._key(record)] = record
            return record

    def compare_and_swap(
        self,
        record: PublicationRecord,
        expected_status: PublicationStatus,
        expected_last_update: Optional[datetime],
    ) -> PublicationRecord:
        with self._lock:
            stored = self._records.get(self._key(record))
            if (
                stored is None
                or stored.status is not expected_status
                or stored.last_update != expected_last_update
            ):
                raise ConcurrentModificationConflict(record.entity_id)
            _new_entries(stored, record)
            self._records[self._key(record)] = record
            return record

    def list_records(self) -> List[PublicationRecord]:
        with self._lock:
            keys = sorted(self._records, key=lambda key: (key[1], key[0].value))
            return [self._records[key] for key in keys]


class SQLitePublicationStore:
    """Gère le stockage SQLite des statuts de publication et de l'historique.

    English:
        Manages SQLite storage for publication statuses and history.
    """

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        """Initialise la connexion SQLite et les tables.

        Args:
            db_path (str): Chemin du fichier SQLite.
            timeout (float): Attente maximale (s) d'un verrou d'écriture.

        English:
            Initializes the SQLite connection and tables.
        """
        self.db_path = db_path
        self._connection = sqlite3.connect(db_path, timeout=timeout)
        self._connection.row_factory = sqlite3.Row
        self._ensure_tables()

    def close(self) -> None:
        """Ferme la connexion. / Closes the database connection."""
        self._connection.close()

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[PublicationRecord]:
        row = self._connection.execute(
            """
            SELECT entity_type, entity_id, status, last_update
            FROM publication_records
            WHERE entity_type = ? AND entity_id = ?
            """,
            (entity_type.value, entity_id),
        ).fetchone()
        if row is None:
            return None
        return self._record_from_row(row)

    def create(self, record: PublicationRecord) -> PublicationRecord:
        """Insère l'enregistrement initial ; sans effet s'il existe déjà.

        English: Insert the initial record; no effect when it already exists.
        """
        with self._connection:
            self._connection.execute(
                """
                INSERT OR IGNORE INTO publication_records (entity_type, entity_id, status, last_update)
                VALUES (?, ?, ?, ?)
                """,
                (
                    record.entity_type.value,
                    record.entity_id,
                    record.status.value,
                    self._format_ts(record.last_update),
                ),
            )
        return self._require(record.entity_type, record.entity_id)

    def compare_and_swap(
        self,
        record: PublicationRecord,
        expected_status: PublicationStatus,
        expected_last_update: Optional[datetime],
    ) -> PublicationRecord:
        """Écrit le nouveau statut si la ligne n'a pas changé depuis la lecture.

        La mise à jour conditionnelle et l'ajout d'historique partagent une
        même transaction ; un conflit annule les deux. Une base verrouillée
        par un autre processus est aussi signalée comme conflit.

        English:
            Write the new status if the row has not changed since it was read.

            The conditional update and the history append share a single
            transaction; a conflict rolls both back. A database locked by
            another process is reported as a conflict too.
        """
        stored = self.get(record.entity_type, record.entity_id)
        if stored is None:
            raise ConcurrentModificationConflict(record.entity_id, "unknown entity")
        new_entries = _new_entries(stored, record)
        try:
            with self._connection:
                cursor = self._connection.execute(
                    """
                    UPDATE publication_records
                    SET status = ?, last_update = ?
                    WHERE entity_type = ? AND entity_id = ? AND status = ? AND last_update IS ?
                    """,
                    (
                        record.status.value,
                        self._format_ts(record.last_update),
                        record.entity_type.value,
                        record.entity_id,
                        expected_status.value,
                        self._format_ts(expected_last_update),
                    ),
                )
                if cursor.rowcount != 1:
                    logger.warning(
                        "publication_cas_conflict entity_type=%s entity=%s",
                        record.entity_type.value,
                        record.entity_id,
                    )
                    raise ConcurrentModificationConflict(record.entity_id)
                self._connection.executemany(
                    """
                    INSERT INTO publication_history (
                        entity_type, entity_id, actor, timestamp, from_status, to_status, action, details
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            record.entity_type.value,
                            record.entity_id,
                            entry.actor,
                            self._format_ts(entry.timestamp),
                            entry.from_status.value,
                            entry.to_status.value,
                            entry.action,
                            entry.details,
                        )
                        for entry in new_entries
                    ],
                )
        except sqlite3.Error as exc:
            logger.warning(
                "publication_store_unavailable entity_type=%s entity=%s error=%s",
                record.entity_type.value,
                record.entity_id,
                exc,
            )
            raise ConcurrentModificationConflict(record.entity_id, f"storage unavailable: {exc}") from exc
        return self._require(record.entity_type, record.entity_id)

    def _require(self, entity_type: EntityType, entity_id: str) -> PublicationRecord:
        record = self.get(entity_type, entity_id)
        if record is None:
            raise ConcurrentModificationConflict(entity_id, "record disappeared during write")
        return record

    def list_records(self) -> List[PublicationRecord]:
        rows = self._connection.execute(
            """
            SELECT entity_type, entity_id, status, last_update
            FROM publication_records
            ORDER BY entity_id, entity_type
            """
        ).fetchall()
        return [self._record_from_row(row) for row in rows]

    def _record_from_row(self, row: sqlite3.Row) -> PublicationRecord:
        history_rows = self._connection.execute(
            """
            SELECT actor, timestamp, from_status, to_status, action, details
            FROM publication_history
            WHERE entity_type = ? AND entity_id = ?
            ORDER BY id
            """,
            (row["entity_type"], row["entity_id"]),
        ).fetchall()
        history = tuple(
            HistoryEntry(
                actor=entry["actor"],
                timestamp=datetime.fromisoformat(entry["timestamp"]),
                from_status=PublicationStatus(entry["from_status"]),
                to_status=PublicationStatus(entry["to_status"]),
                action=entry["action"],
                details=entry["details"],
            )
            for entry in history_rows
        )
        return PublicationRecord(
            entity_id=row["entity_id"],
            entity_type=EntityType(row["entity_type"]),
            status=PublicationStatus(row["status"]),
            last_update=self._parse_ts(row["last_update"]),
            history=history,
        )

    @staticmethod
    def _format_ts(value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value is not None else None

    @staticmethod
    def _parse_ts(value: Optional[str]) -> Optional[datetime]:
        return datetime.fromisoformat(value) if value else None

    def _ensure_tables(self) -> None:
        """Garantit l'existence des tables et de l'index d'historique.

        English:
            Ensure the tables and the history index exist.
        """
        with self._connection:
            self._connection.execute(
                """
                CREATE TABLE IF NOT EXISTS publication_records (
                    entity_type TEXT NOT NULL,
                    entity_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    last_update TEXT,
                    PRIMARY KEY (entity_type, entity_id)
                )
                """
            )
            self._connection.execute(
                """
                CREATE TABLE IF NOT EXISTS publication_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    entity_type TEXT NOT NULL,
                    entity_id TEXT NOT NULL,
                    actor TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    from_status TEXT NOT NULL,
                    to_status TEXT NOT NULL,
                    action TEXT NOT NULL,
                    details TEXT,
                    FOREIGN KEY (entity_type, entity_id)
                        REFERENCES publication_records(entity_type, entity_id)
                )
                """
            )
            self._connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_publication_history_entity "
                "ON publication_history(entity_type, entity_id)"
            )
