# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .launch import LaunchContext


class AuthError(Enum):
    """ Reasons a launch can be refused.  Distinct for logging; every one of
    them is reported to the requester as the same generic rejection.
    """
    UNKNOWN_CONSUMER = 'unknown_consumer'
    INACTIVE_CONSUMER = 'inactive_consumer'
    MALFORMED_REQUEST = 'malformed_request'
    INVALID_SIGNATURE = 'invalid_signature'
    STALE_TIMESTAMP = 'stale_timestamp'
    REPLAYED_NONCE = 'replayed_nonce'


@dataclass(frozen=True)
class LaunchResult:
    context: LaunchContext | None = None
    error: AuthError | None = None
    detail: str = ''  # internal only: never echo to the requester

    def __post_init__(self) -> None:
        if (self.context is None) == (self.error is None):
            raise ValueError("A LaunchResult needs exactly one of context or error.")

    @property
    def ok(self) -> bool:
        return self.context is not None

    @classmethod
    def accepted(cls, context: LaunchContext) -> LaunchResult:
        return cls(context=context)

    @classmethod
    def rejected(cls, error: AuthError, detail: str = '') -> LaunchResult:
        return cls(error=error, detail=detail)
