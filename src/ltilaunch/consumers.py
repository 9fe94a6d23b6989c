# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

import sqlite3
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class Consumer:
    """ A trusted LMS, identified by its OAuth consumer key. """
    key: str
    secret: str = field(repr=False)
    active: bool = True


class ConsumerStore(Protocol):
    """ Trust and replay data needed to validate launches.

    validate_nonce() must not change any state.  create_nonce() is the
    authority on nonce exclusivity: of two concurrent calls recording the same
    (consumer, nonce), at most one may return True.
    """

    def find_by_key(self, key: str) -> Consumer | None: ...

    def validate_nonce(self, consumer: Consumer, nonce: str, timestamp: int) -> bool: ...

    def create_nonce(self, consumer: Consumer, nonce: str, timestamp: int) -> bool: ...


class MemoryConsumerStore:
    """ A process-local store.  Suitable for tests and single-process tools. """

    def __init__(self, consumers: Iterable[Consumer] = ()):
        self._consumers = {c.key: c for c in consumers}
        self._nonces: dict[tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def add_consumer(self, consumer: Consumer) -> None:
        self._consumers[consumer.key] = consumer

    def find_by_key(self, key: str) -> Consumer | None:
        return self._consumers.get(key)

    def validate_nonce(self, consumer: Consumer, nonce: str, timestamp: int) -> bool:  # noqa: ARG002 (timestamp unused, part of the store interface)
        return (consumer.key, nonce) not in self._nonces

    def create_nonce(self, consumer: Consumer, nonce: str, timestamp: int) -> bool:
        with self._lock:
            if (consumer.key, nonce) in self._nonces:
                return False
            self._nonces[(consumer.key, nonce)] = timestamp
            return True

    def prune_nonces(self, older_than: int) -> int:
        """ Forget nonces with timestamps before older_than.  Returns the count removed. """
        with self._lock:
            expired = [k for k, ts in self._nonces.items() if ts < older_than]
            for k in expired:
                del self._nonces[k]
        return len(expired)


class SqliteConsumerStore:
    """ A store backed by the consumers and nonces tables (see schema.sql).

    Nonce exclusivity comes from the UNIQUE(consumer_key, nonce) constraint,
    so it holds across processes sharing the database file.
    """

    def __init__(self, db: sqlite3.Connection):
        self._db = db

    def find_by_key(self, key: str) -> Consumer | None:
        row = self._db.execute("SELECT lti_consumer, lti_secret, active FROM consumers WHERE lti_consumer=?", [key]).fetchone()
        if not row:
            return None
        lti_consumer, lti_secret, active = row
        return Consumer(key=lti_consumer, secret=lti_secret, active=bool(active))

    def validate_nonce(self, consumer: Consumer, nonce: str, timestamp: int) -> bool:  # noqa: ARG002 (timestamp unused, part of the store interface)
        row = self._db.execute("SELECT 1 FROM nonces WHERE consumer_key=? AND nonce=?", [consumer.key, nonce]).fetchone()
        return row is None

    def create_nonce(self, consumer: Consumer, nonce: str, timestamp: int) -> bool:
        cur = self._db.execute("INSERT OR IGNORE INTO nonces(consumer_key, nonce, timestamp) VALUES(?, ?, ?)",
                               [consumer.key, nonce, timestamp])
        self._db.commit()
        return cur.rowcount == 1

    def add_consumer(self, consumer: Consumer) -> None:
        self._db.execute("INSERT INTO consumers(lti_consumer, lti_secret, active) VALUES(?, ?, ?)",
                         [consumer.key, consumer.secret, consumer.active])
        self._db.commit()

    def set_active(self, key: str, *, active: bool) -> bool:
        """ Enable or disable a consumer.  Returns False if no such consumer exists. """
        cur = self._db.execute("UPDATE consumers SET active=? WHERE lti_consumer=?", [active, key])
        self._db.commit()
        return cur.rowcount == 1

    def prune_nonces(self, older_than: int) -> int:
        cur = self._db.execute("DELETE FROM nonces WHERE timestamp < ?", [older_than])
        self._db.commit()
        return cur.rowcount
