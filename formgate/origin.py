"""Origin policy for public form endpoints.

Decides whether a request's declared ``Origin`` may use a form. Comparison is
purely on hostnames: no network calls, no side effects. A domain and its
``www.`` variant are interchangeable in either direction.
"""

from typing import Iterable, Optional, Union
from urllib.parse import urlsplit

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def origin_hostname(origin: Optional[str]) -> Optional[str]:
    """Return the lower-cased hostname of an origin, or None if unparseable.

    Examples:
        >>> origin_hostname("https://WWW.Example.com:8443")
        'www.example.com'
        >>> origin_hostname("null") is None
        True
    """
    if not origin:
        return None
    try:
        parts = urlsplit(origin.strip())
        hostname = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not hostname:
        return None
    return hostname.lower()


def _entry_hostname(entry: str) -> str:
    entry = entry.strip().lower()
    if "://" in entry:
        return origin_hostname(entry) or ""
    # Bare domains may still carry a port or path.
    return entry.split("/", 1)[0].split(":", 1)[0]


def _strip_www(hostname: str) -> str:
    return hostname[4:] if hostname.startswith("www.") else hostname


def hostname_matches(hostname: str, allowed: str) -> bool:
    """Match a hostname against an allowed domain, treating www and apex alike.

    Examples:
        >>> hostname_matches("www.acme.com", "acme.com")
        True
        >>> hostname_matches("acme.com", "www.acme.com")
        True
        >>> hostname_matches("shop.acme.com", "acme.com")
        False
    """
    allowed_host = _entry_hostname(allowed)
    if not allowed_host:
        return False
    return _strip_www(hostname.lower()) == _strip_www(allowed_host)


def is_origin_allowed(
    origin: Optional[str],
    allowed: Union[str, Iterable[str], None],
    referer: Optional[str] = None,
) -> bool:
    """Decide whether a request origin may use a form.

    Args:
        origin: The request's Origin header
        allowed: A site's single domain, or a form's allow-list of domains
        referer: Accepted for interface parity; not consulted

    Returns:
        True if the origin is allowed. Missing or unparseable origins are
        rejected. With an allow-list, loopback origins are always allowed so
        forms can be developed locally.

    Examples:
        >>> is_origin_allowed("https://www.acme.com", "acme.com")
        True
        >>> is_origin_allowed("https://evil.com", "acme.com")
        False
        >>> is_origin_allowed("http://localhost:3000", ["acme.com"])
        True
    """
    hostname = origin_hostname(origin)
    if hostname is None:
        return False

    if allowed is None:
        return False
    if isinstance(allowed, str):
        return hostname_matches(hostname, allowed)

    if hostname in LOOPBACK_HOSTS:
        return True
    return any(hostname_matches(hostname, entry) for entry in allowed if entry)


__all__ = [
    "LOOPBACK_HOSTS",
    "origin_hostname",
    "hostname_matches",
    "is_origin_allowed",
]
