# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest
from flask import Flask
from flask.testing import FlaskClient, FlaskCliRunner

import ltilaunch
from ltilaunch import Consumer, LaunchValidator, MemoryConsumerStore
from ltilaunch.db import get_db, init_db
from lti_consumer import NOW, LTIConsumer

# Load test DB data
test_sql = Path(__file__).parent / 'test_data.sql'
with test_sql.open('rb') as f:
    _test_data_sql = f.read().decode('utf8')


@pytest.fixture
def store() -> MemoryConsumerStore:
    return MemoryConsumerStore([
        Consumer('lms-1', 's3cret'),
        Consumer('disabled.domain', 'seecrits2', active=False),
    ])


@pytest.fixture
def validator(store: MemoryConsumerStore) -> LaunchValidator:
    """ A validator whose clock is fixed at NOW. """
    return LaunchValidator(store, freshness_window=60, clock=lambda: NOW)


@pytest.fixture
def lms() -> LTIConsumer:
    return LTIConsumer('lms-1', 's3cret')


@pytest.fixture
def app() -> Iterator[Flask]:
    # Create a temporary instance directory for the database
    with tempfile.TemporaryDirectory() as temp_dir:
        instance_path = Path(temp_dir)
        db_path = instance_path / 'test.db'

        app = ltilaunch.create_app(
            test_config={
                'TESTING': True,
                'SECRET_KEY': 'testing-secret',
                'DATABASE': str(db_path),
                'SESSION_COOKIE_SECURE': False,
            },
            instance_path=instance_path,
        )

        with app.app_context():
            init_db()
            get_db().executescript(_test_data_sql)

        yield app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    return app.test_client()


@pytest.fixture
def runner(app: Flask) -> FlaskCliRunner:
    return app.test_cli_runner()
