# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

import logging
import logging.config
import os
import sqlite3
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from . import db, lti
from .db import get_db
from .replay import DEFAULT_FRESHNESS_WINDOW


class MissingEnvVarError(Exception):
    def __init__(self, varname: str):
        super().__init__(f"Required environment variable not set: {varname}")


class InvalidConfigError(Exception):
    def __init__(self, varname: str, value: Any):
        super().__init__(f"Invalid value for {varname}: {value!r}")


class LTIAppBuilder:
    ''' Sets up and builds a Flask application that accepts LTI launches. '''

    def __init__(self, import_name: str, app_config: dict[str, Any], instance_path: Path | None):
        '''
        Args:
            import_name: The name of the application's package or module.
            app_config: Application-specific configuration for the Flask object (w/ CAPITALIZED keys)
            instance_path: A path to the instance folder (for the database file)
        '''
        # load config values from .env file
        load_dotenv()

        if instance_path is None:
            try:
                instance_path = Path(os.environ["FLASK_INSTANCE_PATH"])
            except KeyError:
                print("Instance path not set and FLASK_INSTANCE_PATH environment variable not found.")
                sys.exit(1)
        # Flask() requires an absolute instance path
        instance_path = instance_path.resolve()
        instance_path.mkdir(parents=True, exist_ok=True)

        self._app = Flask(import_name, instance_path=str(instance_path), instance_relative_config=True)
        app = self._app

        testing = app.debug or app_config.get("TESTING", False)
        self._init_logging(testing=testing)

        self._config_app(app_config)

        # set up middleware to fix headers from a proxy if configured as such
        # (the signature covers the URL the consumer used, so scheme and host must be right)
        if os.environ.get("FLASK_APP_BEHIND_PROXY", "").lower() in ("yes", "true", "1"):
            app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore[method-assign]

    def _init_logging(self, *, testing: bool) -> None:
        """ Configure logging before Flask or a WSGI server set up their own
        handlers, to avoid missing or doubled log output.
        """
        if not testing:
            logging.config.dictConfig({
                'version': 1,
                'formatters': {'default': {
                    'format': '[%(asctime)s] %(levelname)s in %(module)s: %(message)s',
                }},
                'handlers': {'wsgi': {
                    'class': 'logging.StreamHandler',
                    'stream': 'ext://flask.logging.wsgi_errors_stream',
                    'formatter': 'default'
                }},
                'root': {
                    'level': 'INFO',
                    'handlers': ['wsgi']
                },
            })
        else:
            logging.getLogger().setLevel(logging.DEBUG)
            logging.debug("DEBUG logging enabled.")

    def _config_app(self, app_config: dict[str, Any]) -> None:
        app = self._app

        base_config = dict(
            SESSION_COOKIE_SECURE=True,
            SESSION_COOKIE_HTTPONLY=True,
            # launches arrive in iframes from the LMS origin
            SESSION_COOKIE_SAMESITE='None',
            DATABASE_NAME='ltilaunch.db',
            LTI_TIMESTAMP_WINDOW=DEFAULT_FRESHNESS_WINDOW,
        )

        # Required variables:
        #  - SECRET_KEY: used by Flask to sign session cookies
        varname = "SECRET_KEY"
        try:
            base_config[varname] = os.environ[varname]
        except KeyError as e:
            if "SECRET_KEY" not in app_config:
                raise MissingEnvVarError(varname) from e

        # Optional variables:
        #  - LTI_TIMESTAMP_WINDOW: seconds of clock skew allowed on launch timestamps
        varname = "LTI_TIMESTAMP_WINDOW"
        if varname in os.environ:
            base_config[varname] = os.environ[varname]

        total_config = base_config | app_config

        try:
            window = int(total_config['LTI_TIMESTAMP_WINDOW'])
        except ValueError as e:
            raise InvalidConfigError('LTI_TIMESTAMP_WINDOW', total_config['LTI_TIMESTAMP_WINDOW']) from e
        if window <= 0:
            raise InvalidConfigError('LTI_TIMESTAMP_WINDOW', window)
        total_config['LTI_TIMESTAMP_WINDOW'] = window

        # finalize the database path now that we have an instance_path
        # (a test config may set DATABASE directly)
        if 'DATABASE' not in total_config:
            total_config['DATABASE'] = os.path.join(app.instance_path, total_config['DATABASE_NAME'])

        app.config.from_mapping(total_config)

    def build(self) -> Flask:
        """ Register blueprints and commands and return the finished app. """
        app = self._app

        app.register_blueprint(lti.bp)
        db.init_app(app)

        with app.app_context():
            try:
                get_db().execute("SELECT 1 FROM consumers LIMIT 1")
            except sqlite3.OperationalError:
                # not initialized yet; 'flask initdb' may be about to run
                app.logger.warning("Database not initialized.  Run 'flask --app ltilaunch initdb'.")

        return app
