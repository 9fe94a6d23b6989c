# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

import sqlite3
from concurrent.futures import ThreadPoolExecutor

import pytest
from flask import Flask

from ltilaunch import Consumer, MemoryConsumerStore, SqliteConsumerStore
from ltilaunch.db import get_consumer_store, get_db

CONSUMER = Consumer('consumer.domain', 'seecrits1')


def test_memory_find_by_key(store: MemoryConsumerStore) -> None:
    consumer = store.find_by_key('lms-1')
    assert consumer == Consumer('lms-1', 's3cret', active=True)
    assert store.find_by_key('nope') is None
    assert store.find_by_key('disabled.domain').active is False  # type: ignore[union-attr]


def test_memory_nonces(store: MemoryConsumerStore) -> None:
    assert store.validate_nonce(CONSUMER, 'n1', 100)
    assert store.create_nonce(CONSUMER, 'n1', 100)
    assert not store.validate_nonce(CONSUMER, 'n1', 100)
    assert not store.create_nonce(CONSUMER, 'n1', 200)


def test_memory_concurrent_create_nonce(store: MemoryConsumerStore) -> None:
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: store.create_nonce(CONSUMER, 'race', 100), range(32)))
    assert results.count(True) == 1


def test_memory_prune_nonces(store: MemoryConsumerStore) -> None:
    store.create_nonce(CONSUMER, 'old', 100)
    store.create_nonce(CONSUMER, 'new', 200)
    assert store.prune_nonces(older_than=150) == 1
    assert store.validate_nonce(CONSUMER, 'old', 100)
    assert not store.validate_nonce(CONSUMER, 'new', 200)


def test_sqlite_find_by_key(app: Flask) -> None:
    with app.app_context():
        store = get_consumer_store()
        assert store.find_by_key('consumer.domain') == CONSUMER
        assert store.find_by_key('disabled.domain') == Consumer('disabled.domain', 'seecrits2', active=False)
        assert store.find_by_key('invalid_consumer.domain') is None


def test_sqlite_nonces(app: Flask) -> None:
    with app.app_context():
        store = get_consumer_store()
        # inserted by test_data.sql
        assert not store.validate_nonce(CONSUMER, 'used-nonce', 1700000000)

        assert store.validate_nonce(CONSUMER, 'n1', 100)
        assert store.create_nonce(CONSUMER, 'n1', 100)
        assert not store.validate_nonce(CONSUMER, 'n1', 100)
        assert not store.create_nonce(CONSUMER, 'n1', 100)

        # same nonce, different consumer
        other = Consumer('lms-1', 's3cret')
        assert store.validate_nonce(other, 'n1', 100)
        assert store.create_nonce(other, 'n1', 100)


def test_sqlite_create_nonce_across_connections(app: Flask) -> None:
    """ Exclusivity holds between independent connections (e.g., separate worker processes). """
    with app.app_context():
        store_a = get_consumer_store()
        db_b = sqlite3.connect(app.config['DATABASE'])
        try:
            store_b = SqliteConsumerStore(db_b)
            assert store_a.validate_nonce(CONSUMER, 'shared', 100)
            assert store_b.validate_nonce(CONSUMER, 'shared', 100)
            assert store_b.create_nonce(CONSUMER, 'shared', 100)
            assert not store_a.create_nonce(CONSUMER, 'shared', 100)
        finally:
            db_b.close()


def test_sqlite_add_and_set_active(app: Flask) -> None:
    with app.app_context():
        store = get_consumer_store()
        store.add_consumer(Consumer('new.domain', 'newsecret'))
        assert store.find_by_key('new.domain') == Consumer('new.domain', 'newsecret', active=True)

        with pytest.raises(sqlite3.IntegrityError):
            store.add_consumer(Consumer('new.domain', 'other'))

        assert store.set_active('new.domain', active=False)
        assert store.find_by_key('new.domain').active is False  # type: ignore[union-attr]
        assert not store.set_active('missing.domain', active=True)


def test_sqlite_prune_nonces(app: Flask) -> None:
    with app.app_context():
        store = get_consumer_store()
        store.create_nonce(CONSUMER, 'recent', 1800000000)
        assert store.prune_nonces(older_than=1750000000) == 1   # only 'used-nonce' from test_data.sql
        count = get_db().execute("SELECT COUNT(*) FROM nonces").fetchone()[0]
        assert count == 1
