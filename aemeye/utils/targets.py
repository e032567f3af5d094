import re
from urllib.parse import urlsplit

from ..exceptions import InvalidTargetError

# DNS label (underscores tolerated: they show up in real host lists)
_LABEL = r"[a-z0-9_](?:[a-z0-9_-]{0,61}[a-z0-9_])?"
HOSTNAME_RE = re.compile(rf"^{_LABEL}(?:\.{_LABEL})*$")
IPV4_RE = re.compile(r"^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$")
IPV6_RE = re.compile(r"^[0-9a-f:.]+(?:%[0-9a-z]+)?$")

ALLOWED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}


def _normalize_host(host: str, raw: str) -> str:
    host = host.rstrip(".")
    if not host:
        raise InvalidTargetError(raw, "missing host")
    if len(host) > 253:
        raise InvalidTargetError(raw, "host too long (max 253 chars)")
    if ":" in host:
        if IPV6_RE.match(host):
            return f"[{host}]"
        raise InvalidTargetError(raw, "invalid IPv6 address")
    if IPV4_RE.match(host) or HOSTNAME_RE.match(host):
        return host
    # Try IDNA (unicode hosts)
    try:
        ascii_host = host.encode("idna").decode("ascii")
    except UnicodeError:
        raise InvalidTargetError(raw, "invalid host") from None
    if not HOSTNAME_RE.match(ascii_host):
        raise InvalidTargetError(raw, "invalid host")
    return ascii_host


def normalize_target(value: str, default_scheme: str = "https") -> str:
    """Normalize a host line into a ``scheme://host[:port]`` probe target.

    - Bare hosts and ``//host`` get ``default_scheme``
    - Only http/https are accepted
    - Credentials, path, query and fragment are removed
    - Host is lowercased, IDNA encoded and validated
    - Default ports are dropped

    Raises InvalidTargetError when the line cannot be probed.
    """
    raw = value
    v = (value or "").strip()
    if not v:
        raise InvalidTargetError(raw, "empty target")
    if any(c.isspace() for c in v):
        raise InvalidTargetError(raw, "target contains whitespace")
    if v.startswith("//"):
        v = f"{default_scheme}:{v}"
    elif "://" not in v:
        v = f"{default_scheme}://{v}"
    try:
        parts = urlsplit(v)
        port = parts.port
    except ValueError as exc:
        raise InvalidTargetError(raw, f"unparseable URL ({exc})") from None
    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise InvalidTargetError(raw, f"unsupported scheme {scheme!r}")
    host = _normalize_host((parts.hostname or "").lower(), raw)
    if port is not None:
        if port == 0:
            raise InvalidTargetError(raw, "invalid port")
        if port != DEFAULT_PORTS[scheme]:
            return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"
