"""Tests for the authorization request validator and error responses."""
from urllib.parse import parse_qs, urlsplit

import pytest
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from authorization import (
    BadRequestPage, ConsentContext, ErrorRedirect, error_response, generate_pkce_pair, validate_authorization_request,
)

CHALLENGE = 'E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM'


def valid_params(**overrides):
    params = {
        'client_id': 'https://app.example.com/',
        'redirect_uri': 'https://app.example.com/callback',
        'state': 'xyz 123',
        'response_type': 'code',
        'code_challenge': CHALLENGE,
        'code_challenge_method': 'S256',
        'scope': 'profile email',
    }
    params.update(overrides)
    return {k: v for k, v in params.items() if v is not None}


def error_query(outcome):
    assert isinstance(outcome, ErrorRedirect)
    return parse_qs(urlsplit(outcome.location).query, keep_blank_values=True)


class TestErrorResponse:
    def test_without_state(self):
        outcome = error_response('https://x/cb', 'invalid_request', 'Bad things')
        assert outcome == ErrorRedirect('https://x/cb?error=invalid_request&error_description=Bad+things')

    def test_with_state(self):
        outcome = error_response('https://x/cb?a=1#frag', 'invalid_scope', 'nope', state='s1')
        assert outcome.location == 'https://x/cb?a=1&error=invalid_scope&error_description=nope&state=s1#frag'

    def test_empty_state_is_echoed(self):
        outcome = error_response('https://x/cb', 'invalid_request', 'nope', state='')
        assert outcome.location.endswith('&state=')


class TestClientAndRedirect:
    def test_invalid_client_id_is_not_redirected(self):
        outcome = validate_authorization_request(valid_params(client_id='https://host'))
        assert outcome == BadRequestPage(client_id='https://host', redirect_uri='https://app.example.com/callback')

    def test_missing_values(self):
        outcome = validate_authorization_request({})
        assert outcome == BadRequestPage(client_id=None, redirect_uri=None)

    @pytest.mark.parametrize('client_id', [
        'app.example.com', 'ftp://app.example.com/', 'https://app.example.com/#f', 'https://me@app.example.com/',
    ])
    def test_client_id_rules(self, client_id):
        assert isinstance(validate_authorization_request(valid_params(client_id=client_id)), BadRequestPage)

    @pytest.mark.parametrize('redirect_uri', [None, '', 'callback', '/callback'])
    def test_bad_redirect_uri(self, redirect_uri):
        outcome = validate_authorization_request(valid_params(redirect_uri=redirect_uri))
        assert outcome == BadRequestPage(client_id='https://app.example.com/', redirect_uri=redirect_uri)

    def test_bad_request_wins_over_other_errors(self):
        outcome = validate_authorization_request(
            valid_params(client_id='https://host', state='\x01', response_type=None))
        assert isinstance(outcome, BadRequestPage)


class TestState:
    def test_invalid_state_not_echoed(self):
        query = error_query(validate_authorization_request(valid_params(state='café')))
        assert query['error'] == ['invalid_request']
        assert 'state' not in query

    def test_missing_state_and_response_type(self):
        query = error_query(validate_authorization_request(valid_params(state=None, response_type=None)))
        assert query['error'] == ['invalid_request']
        assert 'state' not in query

    def test_state_echoed_in_later_errors(self):
        query = error_query(validate_authorization_request(valid_params(response_type=None)))
        assert query['state'] == ['xyz 123']

    def test_newline_not_allowed(self):
        query = error_query(validate_authorization_request(valid_params(state='abc\n')))
        assert query['error'] == ['invalid_request']


class TestResponseType:
    def test_missing(self):
        query = error_query(validate_authorization_request(valid_params(response_type=None)))
        assert query['error'] == ['invalid_request']
        assert query['error_description'] == ['OAuth requires a response type, but none was provided.']

    @pytest.mark.parametrize('response_type', ['token', 'code id_token', 'CODE', ''])
    def test_unsupported(self, response_type):
        query = error_query(validate_authorization_request(valid_params(response_type=response_type)))
        assert query['error'] == ['unsupported_response_type']
        assert query['state'] == ['xyz 123']


class TestPKCE:
    @pytest.mark.parametrize('method', ['plain', 's256', '', None])
    def test_method_must_be_s256(self, method):
        query = error_query(validate_authorization_request(valid_params(code_challenge_method=method)))
        assert query['error'] == ['invalid_request']
        assert 'code challenge method' in query['error_description'][0]

    def test_plain_rejected_even_with_missing_challenge(self):
        query = error_query(validate_authorization_request(
            valid_params(code_challenge_method='plain', code_challenge=None)))
        assert 'code challenge method' in query['error_description'][0]

    @pytest.mark.parametrize('challenge', [None, '', 'abc+def', 'abc=', 'abc.def'])
    def test_bad_challenge(self, challenge):
        query = error_query(validate_authorization_request(valid_params(code_challenge=challenge)))
        assert query['error'] == ['invalid_request']
        assert query['error_description'] == ['IndieAuth requires PKCE, but no valid code challenge was provided.']
        assert query['state'] == ['xyz 123']


class TestScope:
    def test_ordered_scopes(self):
        outcome = validate_authorization_request(valid_params(scope='profile email'))
        assert outcome.scopes == ['profile', 'email']

    def test_duplicates_kept(self):
        outcome = validate_authorization_request(valid_params(scope='read profile read'))
        assert outcome.scopes == ['read', 'profile', 'read']

    @pytest.mark.parametrize('scope', [None, ''])
    def test_no_scopes(self, scope):
        assert validate_authorization_request(valid_params(scope=scope)).scopes == []

    @pytest.mark.parametrize('scope', ['profile  email', ' profile', 'profile ', 'say"hi"', 'back\\slash', 'tab\tsep'])
    def test_malformed(self, scope):
        query = error_query(validate_authorization_request(valid_params(scope=scope)))
        assert query['error'] == ['invalid_scope']
        assert query['state'] == ['xyz 123']


class TestMe:
    @pytest.mark.parametrize('me,expected', [
        ('example.com', 'https://example.com/'),
        ('https://example.com', 'https://example.com/'),
        ('http://example.com/user', 'http://example.com/user'),
        ('https://example.com:8080/', ''),
        ('https://example.com/#me', ''),
        ('mailto:me@example.com', ''),
        (None, ''),
        ('', ''),
        ('/alice', ''),
    ])
    def test_soft_fail(self, me, expected):
        outcome = validate_authorization_request(valid_params(me=me))
        assert isinstance(outcome, ConsentContext)
        assert outcome.me == expected


class TestSuccess:
    def test_context(self):
        outcome = validate_authorization_request(valid_params(me='example.com'))
        assert outcome == ConsentContext(
            client_id='https://app.example.com/',
            redirect_uri='https://app.example.com/callback',
            state='xyz 123',
            scopes=['profile', 'email'],
            me='https://example.com/',
        )

    def test_missing_state_is_empty(self):
        assert validate_authorization_request(valid_params(state=None)).state == ''

    def test_idempotent(self):
        params = valid_params(me='example.com', scope='a b a')
        assert validate_authorization_request(params) == validate_authorization_request(params)
        assert params == valid_params(me='example.com', scope='a b a')


def test_generate_pkce_pair():
    verifier, challenge = generate_pkce_pair()
    assert 43 <= len(verifier) <= 128
    assert create_s256_code_challenge(verifier) == challenge
    assert isinstance(validate_authorization_request(valid_params(code_challenge=challenge)), ConsentContext)
