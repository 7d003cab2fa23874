#!/usr/bin/env python3
"""Print a ready-to-open /authorize URL for a local test client, plus its PKCE verifier."""
from __future__ import annotations
import argparse
import secrets

from authorization import generate_pkce_pair
from urltools import add_to_query


def build_authorization_url(server: str, client_id: str, redirect_uri: str, challenge: str,
                            scope: str = '', state: str | None = None, me: str | None = None) -> str:
    query = {
        'response_type': 'code',
        'client_id': client_id,
        'redirect_uri': redirect_uri,
        'state': state if state is not None else secrets.token_urlsafe(16),
        'code_challenge': challenge,
        'code_challenge_method': 'S256',
    }
    if scope:
        query['scope'] = scope
    if me:
        query['me'] = me
    return add_to_query(server.rstrip('/') + '/authorize', query)


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument('--server', default='http://127.0.0.1:8000')
    parser.add_argument('--client-id', default='http://localhost:3000/')
    parser.add_argument('--redirect-uri', default='http://localhost:3000/callback')
    parser.add_argument('--scope', default='profile email')
    parser.add_argument('--me', default=None)
    args = parser.parse_args(argv)

    verifier, challenge = generate_pkce_pair()
    url = build_authorization_url(args.server, args.client_id, args.redirect_uri, challenge,
                                  scope=args.scope, me=args.me)
    print("Authorization request:")
    print(f"  {url}")
    print(f"  Code verifier: {verifier}")


if __name__ == '__main__':
    main()
