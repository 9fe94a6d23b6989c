# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

import logging
import time
from collections.abc import Callable
from enum import Enum

from .consumers import Consumer, ConsumerStore
from .errors import AuthError

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_WINDOW = 60  # seconds


class ReplayState(Enum):
    FRESH = 'fresh'
    TIMESTAMP_CHECKED = 'timestamp_checked'
    NONCE_CHECKED = 'nonce_checked'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'


class ReplayGuard:
    """ Timestamp freshness plus single-use nonces for one launch validation.

    The timestamp bounds how long a captured request stays usable; the nonce
    stops reuse inside that window.  check() never consumes the nonce, so a
    request that fails a later check does not burn it.  consume() is the
    last gate.
    """

    def __init__(self, store: ConsumerStore, freshness_window: int = DEFAULT_FRESHNESS_WINDOW, clock: Callable[[], float] = time.time):
        self._store = store
        self._window = freshness_window
        self._clock = clock
        self.state = ReplayState.FRESH

    def _reject(self, error: AuthError) -> AuthError:
        self.state = ReplayState.REJECTED
        return error

    def check(self, consumer: Consumer, nonce: str, timestamp: int) -> AuthError | None:
        assert self.state == ReplayState.FRESH

        now = int(self._clock())
        if abs(now - timestamp) > self._window:
            logger.debug("Stale timestamp from %s: %d (now %d, window %ds)", consumer.key, timestamp, now, self._window)
            return self._reject(AuthError.STALE_TIMESTAMP)
        self.state = ReplayState.TIMESTAMP_CHECKED

        if not self._store.validate_nonce(consumer, nonce, timestamp):
            logger.debug("Nonce already used by %s", consumer.key)
            return self._reject(AuthError.REPLAYED_NONCE)
        self.state = ReplayState.NONCE_CHECKED

        return None

    def consume(self, consumer: Consumer, nonce: str, timestamp: int) -> AuthError | None:
        assert self.state == ReplayState.NONCE_CHECKED

        if not self._store.create_nonce(consumer, nonce, timestamp):
            # another request recorded this nonce between check() and now
            logger.debug("Nonce from %s consumed concurrently", consumer.key)
            return self._reject(AuthError.REPLAYED_NONCE)
        self.state = ReplayState.ACCEPTED

        return None
