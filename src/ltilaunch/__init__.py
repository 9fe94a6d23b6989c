# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

from pathlib import Path
from typing import Any

from flask.app import Flask

from .base import LTIAppBuilder
from .consumers import Consumer, ConsumerStore, MemoryConsumerStore, SqliteConsumerStore
from .errors import AuthError, LaunchResult
from .launch import LaunchContext, LaunchRequest, LaunchValidator, validate
from .parameters import ClassifiedParameters, classify

__all__ = [
    'AuthError',
    'ClassifiedParameters',
    'Consumer',
    'ConsumerStore',
    'LaunchContext',
    'LaunchRequest',
    'LaunchResult',
    'LaunchValidator',
    'MemoryConsumerStore',
    'SqliteConsumerStore',
    'classify',
    'create_app',
    'validate',
]


def create_app(test_config: dict[str, Any] | None = None, instance_path: Path | None = None) -> Flask:
    ''' Flask app factory.  Create and configure the application. '''
    app_config: dict[str, Any] = {}

    # load test config if provided, potentially overriding above config
    if test_config is not None:
        app_config = app_config | test_config

    builder = LTIAppBuilder(__name__, app_config, instance_path)
    return builder.build()
