"""
URL helpers for the IndieAuth authorization endpoint
----------------------------------------------------
- parse_url: split a string into URL components, None when it can't be parsed
- is_client_identifier / is_profile_url: IndieAuth URL rules
  https://indieauth.spec.indieweb.org/#client-identifier
  https://indieauth.spec.indieweb.org/#user-profile-url
- canonicalise_url: add a missing scheme (https) and path (/)
  https://indieauth.spec.indieweb.org/#url-canonicalization
- add_to_query: add (or overwrite) query data on a redirect URI

None of these raise on bad input; malformed values simply fail the check.
Hostname restrictions are not checked yet.
"""
from __future__ import annotations
from typing import Mapping, NamedTuple, Optional
from urllib.parse import urlsplit, parse_qsl, urlencode


class URLComponents(NamedTuple):
    scheme: Optional[str]
    user: Optional[str]
    password: Optional[str]
    host: Optional[str]
    port: Optional[int]
    path: Optional[str]
    query: Optional[str]
    fragment: Optional[str]


# Schemes that are valid URLs without a host part
HOSTLESS_SCHEMES = ('mailto', 'news', 'file')


def parse_url(url: str) -> URLComponents | None:
    """Parse `url`; absent components are None, an empty-but-present one is ''."""
    if not isinstance(url, str):
        return None
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        # bad IPv6 brackets or a port that isn't a number in range
        return None
    if parts.scheme and url.strip()[len(parts.scheme) + 1:].startswith('//') and not parts.netloc:
        # an authority marker with nothing in it, e.g. https:///path
        return None
    before_fragment = url.split('#', 1)[0]
    return URLComponents(
        scheme=parts.scheme or None,
        user=parts.username,
        password=parts.password,
        host=parts.hostname,
        port=port,
        path=parts.path or None,
        query=parts.query if '?' in before_fragment else None,
        fragment=parts.fragment if '#' in url else None,
    )


def is_valid_url(url: str | None) -> bool:
    """Syntactic check for an absolute URL (scheme, and a host where one is needed)."""
    if not url or any(ord(ch) <= 0x20 or ord(ch) >= 0x7F for ch in url):
        return False
    components = parse_url(url)
    if components is None or components.scheme is None:
        return False
    if components.scheme.lower() in HOSTLESS_SCHEMES:
        return True
    return bool(components.host)


def _follows_url_rules(components: URLComponents | None) -> bool:
    return (
        components is not None
        # Must use an http or https scheme
        and components.scheme in ('http', 'https')
        # must contain a path component
        and bool(components.path)
        # must not contain single-dot or double-dot path segments
        and '/./' not in components.path
        and '/../' not in components.path
        # must not contain a fragment, username or password
        and components.fragment is None
        and components.user is None
        and components.password is None
    )


def is_client_identifier(client_id: str) -> bool:
    """True if `client_id` is an acceptable IndieAuth Client Identifier."""
    return _follows_url_rules(parse_url(client_id))


def is_profile_url(profile_url: str) -> bool:
    """True if `profile_url` is an acceptable IndieAuth User Profile URL.

    Same rules as a client identifier, and a port is not allowed either.
    """
    components = parse_url(profile_url)
    return _follows_url_rules(components) and components.port is None


def canonicalise_url(url: str) -> str:
    """Add a scheme (https) and path (/) to `url` where they are missing.

    The result is not guaranteed to be a valid URL; check it before use.
    """
    components = parse_url(url)
    if components is None or components.scheme is None:
        url = 'https://' + url
    components = parse_url(url)
    if components is None or components.path is None:
        url = url + '/'
    return url


def add_to_query(uri: str, query_data: Mapping[str, str]) -> str:
    """Add (or overwrite) `query_data` in the query part of `uri`.

    Existing parameters keep their position, new ones are appended, and any
    fragment is carried over unchanged.
    """
    uri, hash_mark, fragment = uri.partition('#')
    uri, question_mark, query = uri.partition('?')
    merged: dict[str, str] = {}
    if question_mark:
        merged.update(parse_qsl(query, keep_blank_values=True))
    merged.update(query_data)
    return uri + '?' + urlencode(merged) + ('#' + fragment if hash_mark else '')
