# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

from collections.abc import Callable
from functools import wraps
from typing import Any, Concatenate, ParamSpec, TypeVar

from flask import (
    Blueprint,
    abort,
    current_app,
    jsonify,
    request,
    session,
)
from flask.wrappers import Response

from .db import get_consumer_store
from .launch import LaunchContext, LaunchRequest, LaunchValidator

LTI_SESSION_KEY = "lti_launch"

bp = Blueprint('lti', __name__, url_prefix="/lti")

P = ParamSpec('P')
R = TypeVar('R')


def lti_launch(f: Callable[Concatenate[LaunchContext, P], R]) -> Callable[P, R]:
    """ Decorator for a view that receives an LTI launch.

    Validates the current request and calls the view with the accepted
    LaunchContext as its first argument.  Every rejection gets the same 403,
    whatever the reason; the reason itself is only logged.
    """
    @wraps(f)
    def decorated_function(*args: P.args, **kwargs: P.kwargs) -> R:
        launch_request = LaunchRequest(request.form.to_dict(), uri=request.url, http_method=request.method)
        validator = LaunchValidator(get_consumer_store(), current_app.config['LTI_TIMESTAMP_WINDOW'])
        result = validator.validate(launch_request)

        if result.context is None:
            assert result.error is not None
            # the reason itself is logged by the validator
            current_app.logger.debug(f"LTI launch refused ({result.error.value}) from {request.remote_addr}")
            session.pop(LTI_SESSION_KEY, None)
            abort(403, "unauthorized")

        return f(result.context, *args, **kwargs)

    return decorated_function


def launch_summary(launch: LaunchContext) -> dict[str, Any]:
    return {
        'consumer': launch.consumer.key,
        'launch_request': launch.is_launch_request(),
        'user': launch.user_parameters(),
        'context': launch.context_parameters(),
        'resource': launch.resource_parameters(),
        'tool_consumer': launch.consumer_parameters(),
        'custom': launch.custom_parameters(),
        'roles': sorted(launch.get_roles()),
        'is_instructor': launch.is_instructor(),
        'is_student': launch.is_student(),
        'is_content_developer': launch.is_content_developer(),
    }


# Handles LTI 1.0/1.1 launch requests
@bp.route("/", methods=['POST'])
@lti_launch
def launch(lti: LaunchContext) -> Response:
    summary = launch_summary(lti)

    current_app.logger.debug(f"LTI launch: {summary['consumer']=} {summary['user']=} {summary['roles']=}")

    session[LTI_SESSION_KEY] = {
        'consumer': lti.consumer.key,
        'user_id': lti.get_parameter('user_id'),
        'context_id': lti.get_parameter('context_id'),
        'roles': summary['roles'],
    }

    return jsonify(summary)
