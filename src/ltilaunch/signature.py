# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

"""
OAuth 1.0a request signing (RFC 5849 section 3.4), HMAC-SHA1 only.

LTI 1.x launches are signed "two-legged": there is no token, so the token
secret half of the signing key is always empty.

The canonicalization is oauthlib's, the same code a consumer signing with
oauthlib uses.  Functions taking a uri raise ValueError if it cannot be parsed;
check_uri() lets callers test for that up front.
"""

import hmac
from collections.abc import Iterable
from urllib.parse import urlsplit

from oauthlib.oauth1.rfc5849 import signature as oauth_signature  # type: ignore [import-untyped]
from oauthlib.oauth1.rfc5849 import utils as oauth_utils  # type: ignore [import-untyped]

HMAC_SHA1 = 'HMAC-SHA1'


def percent_encode(value: str) -> str:
    """ RFC 5849 3.6 encoding: a space becomes '%20', never '+'. """
    encoded: str = oauth_utils.escape(value)
    return encoded


def base_string_uri(uri: str) -> str:
    """ Scheme and host lowercased, default port dropped, query and fragment removed. """
    normalized: str = oauth_signature.base_string_uri(uri)
    return normalized


def collect_parameters(uri: str, params: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    """ The signed parameter set: the body parameters plus any in the uri's
    query string, without oauth_signature.
    """
    collected: list[tuple[str, str]] = oauth_signature.collect_parameters(
        uri_query=urlsplit(uri).query,
        body=list(params),
        exclude_oauth_signature=True,
    )
    return collected


def check_uri(uri: str) -> None:
    """ Raise ValueError if uri can't be used in a base string (bad port,
    missing scheme or host, a query string that is not urlencoded, ...).
    """
    base_string_uri(uri)
    collect_parameters(uri, [])


def normalize_parameters(params: Iterable[tuple[str, str]]) -> str:
    """ Encode, sort (by encoded key, then encoded value), and join with '&'. """
    normalized: str = oauth_signature.normalize_parameters(list(params))
    return normalized


def signature_base_string(http_method: str, uri: str, params: Iterable[tuple[str, str]]) -> str:
    """ METHOD&base-uri&parameters, each component percent-encoded. """
    base_string: str = oauth_signature.signature_base_string(
        http_method.upper(),
        base_string_uri(uri),
        normalize_parameters(collect_parameters(uri, params)),
    )
    return base_string


def sign_hmac_sha1(base_string: str, consumer_secret: str, token_secret: str = '') -> str:
    signature: str = oauth_signature.sign_hmac_sha1(base_string, consumer_secret, token_secret)
    return signature


def verify_hmac_sha1(http_method: str, uri: str, parameters: dict[str, str], consumer_secret: str) -> bool:
    """ Recompute the signature over parameters and compare it, in constant
    time, against the supplied oauth_signature.
    """
    supplied = parameters.get('oauth_signature', '')
    base_string = signature_base_string(http_method, uri, parameters.items())
    expected = sign_hmac_sha1(base_string, consumer_secret)
    return hmac.compare_digest(expected.encode('utf-8'), supplied.encode('utf-8'))
