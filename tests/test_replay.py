# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

from unittest.mock import Mock

import pytest

from ltilaunch import AuthError, Consumer, MemoryConsumerStore
from ltilaunch.replay import ReplayGuard, ReplayState
from lti_consumer import NOW

CONSUMER = Consumer('lms-1', 's3cret')


@pytest.fixture
def guard(store: MemoryConsumerStore) -> ReplayGuard:
    return ReplayGuard(store, freshness_window=60, clock=lambda: NOW)


def test_accept_and_consume(guard: ReplayGuard, store: MemoryConsumerStore) -> None:
    assert guard.check(CONSUMER, 'n1', NOW) is None
    assert guard.state == ReplayState.NONCE_CHECKED
    # checking does not record the nonce
    assert store.validate_nonce(CONSUMER, 'n1', NOW)

    assert guard.consume(CONSUMER, 'n1', NOW) is None
    assert guard.state == ReplayState.ACCEPTED
    assert not store.validate_nonce(CONSUMER, 'n1', NOW)


@pytest.mark.parametrize('offset', [-60, -1, 0, 1, 60])
def test_timestamp_within_window(guard: ReplayGuard, offset: int) -> None:
    assert guard.check(CONSUMER, 'n1', NOW + offset) is None


@pytest.mark.parametrize('offset', [-61, -3600, 61, 3600])
def test_timestamp_outside_window(guard: ReplayGuard, offset: int) -> None:
    assert guard.check(CONSUMER, 'n1', NOW + offset) == AuthError.STALE_TIMESTAMP
    assert guard.state == ReplayState.REJECTED


def test_stale_timestamp_skips_nonce_lookup() -> None:
    store = Mock()
    guard = ReplayGuard(store, freshness_window=60, clock=lambda: NOW)
    assert guard.check(CONSUMER, 'n1', NOW - 600) == AuthError.STALE_TIMESTAMP
    store.validate_nonce.assert_not_called()
    store.create_nonce.assert_not_called()


def test_used_nonce(guard: ReplayGuard, store: MemoryConsumerStore) -> None:
    store.create_nonce(CONSUMER, 'n1', NOW - 5)
    assert guard.check(CONSUMER, 'n1', NOW) == AuthError.REPLAYED_NONCE
    assert guard.state == ReplayState.REJECTED


def test_nonce_scoped_per_consumer(guard: ReplayGuard, store: MemoryConsumerStore) -> None:
    store.create_nonce(Consumer('other', 'x'), 'n1', NOW)
    assert guard.check(CONSUMER, 'n1', NOW) is None


def test_consume_race_lost(store: MemoryConsumerStore) -> None:
    first = ReplayGuard(store, clock=lambda: NOW)
    second = ReplayGuard(store, clock=lambda: NOW)
    assert first.check(CONSUMER, 'n1', NOW) is None
    assert second.check(CONSUMER, 'n1', NOW) is None

    assert first.consume(CONSUMER, 'n1', NOW) is None
    assert second.consume(CONSUMER, 'n1', NOW) == AuthError.REPLAYED_NONCE
    assert second.state == ReplayState.REJECTED


def test_default_window_is_sixty_seconds(store: MemoryConsumerStore) -> None:
    guard = ReplayGuard(store, clock=lambda: NOW)
    assert guard.check(CONSUMER, 'n1', NOW - 61) == AuthError.STALE_TIMESTAMP
