"""
IndieAuth authorization request validation
------------------------------------------
Turns the raw query parameters of an authorization request into one of:

- BadRequestPage: client_id / redirect_uri can't be trusted, so the problem is
  shown to the user directly and never redirected (RFC 6749 section 4.1.2.1)
- ErrorRedirect: a protocol error sent back to the client's redirect_uri
- ConsentContext: a valid request, ready to pre-fill the consent form

Checks run in a fixed order. State is checked right after the redirect target
is trusted so that it can be echoed back with every later error.

References:
- https://tools.ietf.org/html/rfc6749#section-4.1.1
- https://tools.ietf.org/html/rfc7636#section-4.4.1
- https://indieauth.spec.indieweb.org/#authorization-request
"""
from __future__ import annotations
import base64
from dataclasses import dataclass, field
import logging
import os
import re
from typing import Mapping, Optional, Union

from authlib.oauth2 import OAuth2Error
from authlib.oauth2.rfc6749.errors import InvalidRequestError, InvalidScopeError
from authlib.oauth2.rfc6749.util import scope_to_list
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from urltools import add_to_query, canonicalise_url, is_client_identifier, is_profile_url, is_valid_url

logger = logging.getLogger(__name__)

APP_NAME = os.environ.get('APP_NAME', 'MinDee')

# RFC 6749 appendix A.5
STATE_PATTERN = re.compile(r'[\x20-\x7E]*')
# RFC 6749 section 3.3: scope-token *( SP scope-token )
SCOPE_PATTERN = re.compile(r'([\x21\x23-\x5B\x5D-\x7E]+( [\x21\x23-\x5B\x5D-\x7E]+)*)?')
# base64url alphabet, which is what an S256 challenge is encoded with
CODE_CHALLENGE_PATTERN = re.compile(r'[A-Za-z0-9_-]+')


# ----------------------
# Outcomes
# ----------------------
@dataclass(frozen=True)
class BadRequestPage:
    """Raw client_id and redirect_uri as given, None when they were absent."""
    client_id: Optional[str]
    redirect_uri: Optional[str]


@dataclass(frozen=True)
class ErrorRedirect:
    location: str


@dataclass(frozen=True)
class ConsentContext:
    client_id: str
    redirect_uri: str
    state: str
    scopes: list[str] = field(default_factory=list)
    me: str = ''


Outcome = Union[BadRequestPage, ErrorRedirect, ConsentContext]


# ----------------------
# Error responses (RFC 6749 section 4.1.2.1)
# ----------------------
def error_response(redirect_uri: str, error_code: str, error_description: str,
                   state: str | None = None) -> ErrorRedirect:
    """Build the redirect that carries an OAuth error back to the client."""
    error_query = {'error': error_code, 'error_description': error_description}
    if state is not None:
        error_query['state'] = state
    return ErrorRedirect(location=add_to_query(redirect_uri, error_query))


# ----------------------
# PKCE
# ----------------------
def generate_pkce_pair() -> tuple[str, str]:
    """Fresh code_verifier and its S256 code_challenge, for test clients."""
    verifier = base64.urlsafe_b64encode(os.urandom(40)).decode().rstrip('=')
    return verifier, create_s256_code_challenge(verifier)


# ----------------------
# Pipeline steps
# ----------------------
def _parse_state(params: Mapping[str, str]) -> str | None:
    state = params.get('state')
    if state is not None and not STATE_PATTERN.fullmatch(state):
        # the state itself is the bad value, so it is not echoed back
        raise InvalidRequestError(
            description='OAuth allows a limited set of characters within state, '
                        'symbols outside of this range were used.')
    return state


def _parse_response_type(params: Mapping[str, str], state: str | None) -> str:
    response_type = params.get('response_type')
    if response_type is None:
        raise InvalidRequestError(
            description='OAuth requires a response type, but none was provided.',
            state=state)
    if response_type != 'code':
        raise OAuth2Error(
            error='unsupported_response_type',
            description='IndieAuth requires a response type value of `code`.',
            state=state)
    return response_type


def _parse_code_challenge(params: Mapping[str, str], state: str | None) -> tuple[str, str]:
    code_challenge_method = params.get('code_challenge_method')
    if code_challenge_method != 'S256':
        raise InvalidRequestError(
            description='IndieAuth requires PKCE, but no valid code challenge method was provided. '
                        f'{APP_NAME} only supports S256.',
            state=state)
    code_challenge = params.get('code_challenge')
    if code_challenge is None or not CODE_CHALLENGE_PATTERN.fullmatch(code_challenge):
        raise InvalidRequestError(
            description='IndieAuth requires PKCE, but no valid code challenge was provided.',
            state=state)
    return code_challenge, code_challenge_method


def _parse_scopes(params: Mapping[str, str], state: str | None) -> list[str]:
    scope = params.get('scope')
    if scope is not None and not SCOPE_PATTERN.fullmatch(scope):
        raise InvalidScopeError(
            description='OAuth requires scopes to follow a specific syntax, '
                        'the provided scopes did not comply.',
            state=state)
    if not scope:
        return []
    # the grammar allows single spaces only, so a plain split keeps order and duplicates
    return scope_to_list(scope)


def _parse_me(params: Mapping[str, str]) -> str:
    me = params.get('me')
    if me is None:
        return ''
    me = canonicalise_url(me)
    return me if is_profile_url(me) else ''


# ----------------------
# Validator
# ----------------------
def validate_authorization_request(params: Mapping[str, str]) -> Outcome:
    """Validate the query parameters of an authorization request.

    `params` maps parameter names to raw string values; missing parameters are
    simply absent. Never raises for bad input, the outcome says what to send.
    """
    raw_client_id = params.get('client_id')
    raw_redirect_uri = params.get('redirect_uri')
    # TODO: validate redirect_uri against the client_id host once discovery is in place
    if not (is_valid_url(raw_client_id) and is_client_identifier(raw_client_id)
            and is_valid_url(raw_redirect_uri)):
        logger.info('Bad request from client, untrusted client_id or redirect_uri')
        logger.debug('client_id=%r redirect_uri=%r', raw_client_id, raw_redirect_uri)
        return BadRequestPage(client_id=raw_client_id, redirect_uri=raw_redirect_uri)

    try:
        state = _parse_state(params)
        _parse_response_type(params, state)
        _parse_code_challenge(params, state)
        scopes = _parse_scopes(params, state)
    except OAuth2Error as e:
        logger.debug('Rejected authorization request: %s (%s)', e.error, e.description)
        return error_response(raw_redirect_uri, e.error, e.description, e.state)

    return ConsentContext(
        client_id=raw_client_id,
        redirect_uri=raw_redirect_uri,
        state=state or '',
        scopes=scopes,
        me=_parse_me(params),
    )
