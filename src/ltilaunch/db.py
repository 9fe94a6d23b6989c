# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

import secrets
import sqlite3
import time
from importlib import resources

import click
from flask import current_app, g
from flask.app import Flask
from flask.cli import with_appcontext

from .consumers import Consumer, SqliteConsumerStore


def get_db() -> sqlite3.Connection:
    if 'db' not in g:
        db = sqlite3.connect(
            current_app.config['DATABASE'],
            detect_types=sqlite3.PARSE_DECLTYPES,
        )
        db.row_factory = sqlite3.Row
        db.execute("PRAGMA journal_mode = WAL")
        db.execute("PRAGMA busy_timeout = 5000")   # concurrent launches may briefly block on nonce inserts
        db.execute("PRAGMA foreign_keys = ON")
        g.db = db

    assert isinstance(g.db, sqlite3.Connection)
    return g.db


def get_consumer_store() -> SqliteConsumerStore:
    return SqliteConsumerStore(get_db())


def close_db(_e: BaseException | None = None) -> None:
    db = g.pop('db', None)

    if db is not None:
        db.close()


def init_db() -> None:
    db = get_db()

    schema_res = resources.files('ltilaunch').joinpath('schema.sql')
    with resources.as_file(schema_res) as file_path, file_path.open(encoding="utf-8") as f:
        db.executescript(f.read())

    db.commit()


@click.command('initdb')
def init_db_command() -> None:
    """Clear the existing data and create new tables."""
    init_db()
    click.echo('Initialized the database.')


@click.command('newconsumer')
@click.argument('key')
@click.option('--secret', help="Use this secret instead of generating one.")
@with_appcontext
def newconsumer_command(key: str, secret: str | None = None) -> None:
    """Register a new LTI consumer.  Prints the consumer's shared secret."""
    store = get_consumer_store()

    if store.find_by_key(key):
        click.secho(f"Error: consumer {key} already exists.", fg='red')
        return

    if not secret:
        secret = secrets.token_urlsafe(24)
    store.add_consumer(Consumer(key=key, secret=secret))

    click.secho("Consumer added to the database:", fg='green')
    click.echo(f"  key:    {key}\n  secret: {secret}")


@click.command('setconsumer')
@click.argument('key')
@click.option('--active/--inactive', required=True, help="Allow or refuse launches from this consumer.")
@with_appcontext
def setconsumer_command(key: str, *, active: bool) -> None:
    """Enable or disable an existing LTI consumer."""
    if not get_consumer_store().set_active(key, active=active):
        click.secho(f"Error: consumer {key} does not exist.", fg='red')
        return

    click.secho(f"Consumer {key} {'enabled' if active else 'disabled'}.", fg='green')


@click.command('prunenonces')
@with_appcontext
def prunenonces_command() -> None:
    """Delete recorded nonces that are older than the timestamp window."""
    cutoff = int(time.time()) - current_app.config['LTI_TIMESTAMP_WINDOW']
    count = get_consumer_store().prune_nonces(cutoff)
    click.echo(f"Pruned {count} nonce(s).")


def init_app(app: Flask) -> None:
    app.teardown_appcontext(close_db)
    app.cli.add_command(init_db_command)
    app.cli.add_command(newconsumer_command)
    app.cli.add_command(setconsumer_command)
    app.cli.add_command(prunenonces_command)
