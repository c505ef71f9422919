"""URL helpers: probe-target validation and query-parameter forwarding."""

import ipaddress
import re
import socket
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

ALLOWED_SCHEMES = {"http", "https"}

BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}
BLOCKED_SUFFIXES = (".localhost", ".local", ".internal")

# Hosts the C resolver reads as IPv4 in shorthand: 127.1, 2130706433, 0x7f000001, 0177.0.0.1
NUMERIC_HOST_RE = re.compile(r"^[0-9a-fx.]+$")


def is_private_host(host: str) -> bool:
    """True for loopback/private/link-local/reserved IP literals and local names.

    Only the literal host is inspected; no DNS lookup is made.
    """
    host = (host or "").strip().strip("[]").rstrip(".").lower()
    if not host:
        return True
    if host in BLOCKED_HOSTNAMES or host.endswith(BLOCKED_SUFFIXES):
        return True

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        ip = _parse_inet_aton(host)
        if ip is None:
            return False

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def _parse_inet_aton(host: str) -> Optional[ipaddress.IPv4Address]:
    if not NUMERIC_HOST_RE.match(host):
        return None
    try:
        return ipaddress.IPv4Address(socket.inet_aton(host))
    except OSError:
        return None


def validate_probe_url(url: str) -> Optional[str]:
    """Return an error message if the URL must not be probed, else None."""
    if not url or not isinstance(url, str) or not url.strip():
        return "URL is empty"

    try:
        parsed = urlsplit(url.strip())
        host = parsed.hostname
        parsed.port  # raises on a non-numeric port
    except ValueError as e:
        return f"Malformed URL: {e}"

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return f"Unsupported scheme: {parsed.scheme or '(none)'}"
    if not host:
        return "URL has no host"
    if is_private_host(host):
        return f"Private or loopback host not allowed: {host}"
    return None


def merge_query_params(url: str, params: Optional[Mapping[str, str]]) -> str:
    """Forward caller query params onto a destination URL.

    Existing params are kept, same-named ones are overwritten by the caller's
    value. A URL that cannot be parsed gets the params appended literally.
    """
    if not params:
        return url

    try:
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"not an absolute URL: {url!r}")
        existing = parse_qsl(parts.query, keep_blank_values=True)
    except ValueError:
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{urlencode(dict(params))}"

    merged = []
    seen = set()
    for key, value in existing:
        if key in params:
            if key in seen:
                continue
            value = params[key]
        seen.add(key)
        merged.append((key, value))
    for key, value in params.items():
        if key not in seen:
            merged.append((key, value))

    return urlunsplit(parts._replace(query=urlencode(merged)))
