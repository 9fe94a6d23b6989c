# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

import logging
import time
from collections.abc import Callable, Iterable, Mapping

from . import parameters as lp
from .consumers import Consumer, ConsumerStore
from .errors import AuthError, LaunchResult
from .replay import DEFAULT_FRESHNESS_WINDOW, ReplayGuard
from .signature import HMAC_SHA1, check_uri, verify_hmac_sha1

logger = logging.getLogger(__name__)

REQUIRED_OAUTH_PARAMETERS = (
    'oauth_consumer_key',
    'oauth_signature_method',
    'oauth_signature',
    'oauth_timestamp',
    'oauth_nonce',
)
REQUIRED_LTI_PARAMETERS = (lp.LTI_MESSAGE_TYPE, lp.LTI_VERSION)
OAUTH_VERSION = '1.0'


class LaunchRequest:
    """ One incoming launch: the form parameters as received, plus the method
    and full URI needed to check the signature.  Parameters are classified
    once, here.
    """

    def __init__(self, parameters: Mapping[str, str], uri: str, http_method: str = 'POST'):
        self.parameters = dict(parameters)
        self.uri = uri
        self.http_method = http_method
        self.classified = lp.classify(self.parameters)

    @property
    def oauth(self) -> dict[str, str]:
        return self.classified.oauth

    @property
    def lti(self) -> dict[str, str]:
        return self.classified.lti

    def __repr__(self) -> str:
        consumer_key = self.oauth.get('oauth_consumer_key')
        return f"LaunchRequest({self.http_method} {self.uri} {consumer_key=})"


class LaunchContext:
    """ The classified view of an accepted launch.  Only built by
    LaunchValidator after every check passes.
    """

    def __init__(self, request: LaunchRequest, consumer: Consumer):
        self._request = request
        self.consumer = consumer
        self._roles: frozenset[str] | None = None

    def get_parameters(self, category: str = 'lti', keys: Iterable[str] | None = None) -> dict[str, str]:
        """ Return all parameters in a category ('oauth', 'lti', 'custom', or
        'ext'), or only the given keys.  Keys not present are left out.
        """
        params = self._request.classified.category(category)
        if not keys:
            return dict(params)
        return {key: params[key] for key in keys if key in params}

    def get_parameter(self, key: str, category: str = 'lti') -> str | None:
        return self._request.classified.category(category).get(key)

    def lti_parameters(self, keys: Iterable[str] | None = None) -> dict[str, str]:
        return self.get_parameters('lti', keys)

    def custom_parameters(self, keys: Iterable[str] | None = None) -> dict[str, str]:
        return self.get_parameters('custom', keys)

    def ext_parameters(self, keys: Iterable[str] | None = None) -> dict[str, str]:
        return self.get_parameters('ext', keys)

    def user_parameters(self) -> dict[str, str]:
        return self.lti_parameters(lp.USER_PARAMETERS)

    def resource_parameters(self) -> dict[str, str]:
        return self.lti_parameters(lp.RESOURCE_PARAMETERS)

    def context_parameters(self) -> dict[str, str]:
        return self.lti_parameters(lp.CONTEXT_PARAMETERS)

    def consumer_parameters(self) -> dict[str, str]:
        return self.lti_parameters(lp.CONSUMER_PARAMETERS)

    def is_launch_request(self) -> bool:
        return self.get_parameter(lp.LTI_MESSAGE_TYPE) == lp.BASIC_LAUNCH_REQUEST

    def get_roles(self) -> frozenset[str]:
        """ Lowercased, trimmed roles from the comma-separated 'roles'
        parameter.  Parsed on first use and fixed from then on.
        """
        if self._roles is None:
            raw = self.get_parameter(lp.ROLES) or ''
            self._roles = frozenset(
                role for role in (r.strip().lower() for r in raw.split(',')) if role
            )
        return self._roles

    def has_role(self, role: str) -> bool:
        return role.lower() in self.get_roles()

    def is_student(self) -> bool:
        return self.has_role('learner') or self.has_role('student')

    def is_instructor(self) -> bool:
        return self.has_role('instructor') or self.has_role('faculty') or self.has_role('staff')

    def is_content_developer(self) -> bool:
        return self.has_role('contentdeveloper')


def _check_well_formed(request: LaunchRequest) -> str | None:
    """ Return a description of the first structural problem, if any. """
    oauth = request.oauth
    missing = [key for key in REQUIRED_OAUTH_PARAMETERS if not oauth.get(key)]
    missing += [key for key in REQUIRED_LTI_PARAMETERS if not request.lti.get(key)]
    if missing:
        return f"missing parameters: {', '.join(missing)}"

    if oauth['oauth_signature_method'] != HMAC_SHA1:
        return f"unsupported signature method: {oauth['oauth_signature_method']}"

    if oauth.get('oauth_version', OAUTH_VERSION) != OAUTH_VERSION:
        return f"unsupported oauth version: {oauth['oauth_version']}"

    try:
        int(oauth['oauth_timestamp'])
    except ValueError:
        return f"invalid timestamp: {oauth['oauth_timestamp']}"

    try:
        check_uri(request.uri)
    except ValueError as e:
        return f"invalid request uri: {e}"

    return None


class LaunchValidator:
    """ Authenticates launch requests against a ConsumerStore.

    Checks run in a fixed order and the first failure is returned:
    well-formedness, consumer lookup, signature, timestamp, nonce.  The nonce
    is recorded only once every other check has passed.
    """

    def __init__(self, store: ConsumerStore, freshness_window: int = DEFAULT_FRESHNESS_WINDOW, clock: Callable[[], float] = time.time):
        self.store = store
        self.freshness_window = freshness_window
        self.clock = clock

    def _reject(self, request: LaunchRequest, error: AuthError, detail: str) -> LaunchResult:
        logger.info("LTI launch rejected (%s): %s %r", error.value, detail, request)
        return LaunchResult.rejected(error, detail)

    def validate(self, request: LaunchRequest) -> LaunchResult:
        if problem := _check_well_formed(request):
            return self._reject(request, AuthError.MALFORMED_REQUEST, problem)

        oauth = request.oauth
        key = oauth['oauth_consumer_key']
        nonce = oauth['oauth_nonce']
        timestamp = int(oauth['oauth_timestamp'])

        consumer = self.store.find_by_key(key)
        if consumer is None:
            return self._reject(request, AuthError.UNKNOWN_CONSUMER, f"consumer not found: {key}")
        if not consumer.active:
            return self._reject(request, AuthError.INACTIVE_CONSUMER, f"consumer inactive: {key}")

        # the signature covers the whole payload, including parameters the classifier drops
        if not verify_hmac_sha1(request.http_method, request.uri, request.parameters, consumer.secret):
            return self._reject(request, AuthError.INVALID_SIGNATURE, "signature mismatch")

        guard = ReplayGuard(self.store, self.freshness_window, self.clock)
        if error := guard.check(consumer, nonce, timestamp):
            return self._reject(request, error, f"replay check failed at timestamp {timestamp}")
        if error := guard.consume(consumer, nonce, timestamp):
            return self._reject(request, error, "nonce recorded by a concurrent request")

        logger.debug("LTI launch accepted: %r", request)
        return LaunchResult.accepted(LaunchContext(request, consumer))


def validate(request: LaunchRequest, store: ConsumerStore, freshness_window: int = DEFAULT_FRESHNESS_WINDOW, clock: Callable[[], float] = time.time) -> LaunchResult:
    return LaunchValidator(store, freshness_window, clock).validate(request)
