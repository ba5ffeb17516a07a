"""Static file serving with autoreload hooks, HTML injection and listening addresses."""

from __future__ import annotations

import base64
import ipaddress
import logging
import mimetypes
import re
import secrets
import ssl
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, Mapping, NamedTuple, Optional, Sequence, Union
from urllib.parse import unquote

_log = logging.getLogger(__name__)

INDEX_HTML = "index.html"
WS_PATH = "/.well-known/trunk/ws"
MAX_INTERCEPT_BYTES = 100 * 1024 * 1024

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
AddressLike = Union[str, IpAddress]

_HEADER_NAME = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


def _valid_header_value(value: str) -> bool:
    return all(ch == "\t" or 32 <= ord(ch) < 127 or ord(ch) > 127 for ch in value)


def _visible_ascii(value: str) -> bool:
    return all(ch == "\t" or 32 <= ord(ch) < 127 for ch in value)


@dataclass(frozen=True)
class TlsConfig:
    """Certificate and private key used to serve over HTTPS."""

    cert_path: Path
    key_path: Path

    def ssl_context(self) -> ssl.SSLContext:
        """Build a server-side TLS context from the certificate and key."""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(str(self.cert_path), str(self.key_path))
        return context


class InjectedHtml(NamedTuple):
    """An HTML body after variable injection, and the CSP header to send with it."""

    body: bytes
    content_security_policy: Optional[str]


@dataclass
class Response:
    """A response produced by the static server."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


def normalize_ws_base(ws_base: str) -> str:
    """Make sure the websocket base ends with a slash."""
    return ws_base if ws_base.endswith("/") else ws_base + "/"


def make_nonce() -> str:
    """Create a fresh random nonce for a content security policy."""
    return base64.b64encode(secrets.token_bytes(16)).decode("ascii")


def inject_html(
    body: bytes,
    host: Optional[str],
    ws_base: str,
    nonce_var: Optional[str] = None,
    nonce: Optional[str] = None,
    csp: Optional[Sequence[str]] = None,
) -> InjectedHtml:
    """Replace the address, websocket base and nonce placeholders in an HTML page."""
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as err:
        _log.debug("Unable to parse for injecting: %s", err)
        return InjectedHtml(body, None)

    _log.debug("Replacing variable")
    if host is not None and _visible_ascii(host):
        address = f"'{host}'"
    else:
        address = "window.location.host"

    # Minification turns quotes into backticks, so both forms are replaced.
    text = (
        text.replace("'{{__TRUNK_ADDRESS__}}'", address)
        .replace("`{{__TRUNK_ADDRESS__}}`", address)
        .replace("{{__TRUNK_WS_BASE__}}", ws_base)
    )

    policy: Optional[str] = None
    if nonce_var is not None and nonce is not None:
        text = text.replace(nonce_var, nonce)
        if csp is not None:
            candidate = ";".join(csp).replace("{{NONCE}}", nonce)
            if _valid_header_value(candidate):
                policy = candidate
            else:
                _log.error("failed to encode csp header: %r", candidate)

    return InjectedHtml(text.encode("utf-8"), policy)


def _ip(address: AddressLike) -> IpAddress:
    if isinstance(address, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return address
    return ipaddress.ip_address(address)


def is_loopback(address: AddressLike) -> bool:
    """True if ``address`` is a loopback address."""
    return _ip(address).is_loopback


def _format_socket(ip: IpAddress, port: int) -> str:
    if ip.version == 6:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


def listening_addresses(
    addresses: Iterable[AddressLike], port: int, interfaces: Iterable[AddressLike]
) -> list[tuple[IpAddress, int]]:
    """Expand bind addresses into the concrete addresses a server is reachable at.

    An unspecified address stands for every interface address of its family.
    The result is de-duplicated and ordered IPv4 first.
    """
    interface_ips = [_ip(address) for address in interfaces]
    found: set[tuple[IpAddress, int]] = set()
    for raw in addresses:
        ip = _ip(raw)
        if ip.is_unspecified:
            found.update((iface, port) for iface in interface_ips if iface.version == ip.version)
        else:
            found.add((ip, port))
    return sorted(found, key=lambda item: (item[0].version, item[0], item[1]))


def open_address(
    tls: Union[bool, TlsConfig, None],
    addresses: Sequence[AddressLike],
    port: int,
    base: str,
) -> str:
    """The URL to open in a browser once the server runs."""
    prefix = "https" if tls else "http"
    ip = _ip(addresses[0]) if addresses else ipaddress.IPv4Address("127.0.0.1")
    return f"{prefix}://{_format_socket(ip, port)}{base}"


def _checked_headers(headers: Mapping[str, str]) -> dict[str, str]:
    checked = {}
    for name, value in headers.items():
        if not _HEADER_NAME.fullmatch(name):
            raise ValueError(f"invalid header {name!r}")
        if not _valid_header_value(value):
            raise ValueError(f"invalid header value {value!r} for header {name.lower()}")
        checked[name.lower()] = value
    return checked


def _content_type(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


class StaticServer:
    """Serves the dist directory under a base path, injecting values into HTML."""

    def __init__(
        self,
        dist_dir: Union[str, Path],
        serve_base: str = "/",
        ws_base: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        no_spa: bool = False,
        create_nonce: Optional[str] = None,
        csp: Optional[Sequence[str]] = None,
    ) -> None:
        self.dist_dir = Path(dist_dir)
        self.serve_base = serve_base
        self.ws_base = normalize_ws_base(ws_base if ws_base is not None else serve_base)
        self.headers = _checked_headers(headers or {})
        self.no_spa = no_spa
        self.create_nonce = create_nonce
        self.csp = list(csp) if csp is not None else None

    def _relative(self, path: str) -> Optional[str]:
        path = path.split("?", 1)[0].split("#", 1)[0]
        if self.serve_base == "/":
            return path
        base = self.serve_base.rstrip("/")
        if path == base:
            return "/"
        if path.startswith(base + "/"):
            return path[len(base):]
        return None

    def _locate(self, path: str) -> tuple[Optional[Path], bool]:
        """Find the file for ``path``; the flag tells whether a slash redirect is due."""
        relative = self._relative(path)
        if relative is None:
            return None, False
        parts = PurePosixPath(unquote(relative)).parts
        segments = [part for part in parts if part not in ("/", ".", "")]
        if any(part == ".." or "\\" in part or "\x00" in part for part in segments):
            return None, False
        candidate = self.dist_dir.joinpath(*segments)
        if candidate.is_dir():
            index = candidate / INDEX_HTML
            if index.is_file():
                return index, not relative.endswith("/")
        elif candidate.is_file():
            return candidate, False
        if not self.no_spa:
            fallback = self.dist_dir / INDEX_HTML
            if fallback.is_file():
                return fallback, False
        return None, False

    def resolve(self, path: str) -> Optional[Path]:
        """The file served for a request path, or None if there is none."""
        found, _redirect = self._locate(path)
        return found

    def handle(self, path: str, host: Optional[str] = None) -> Response:
        """Answer a GET request for ``path`` with the given Host header."""
        found, redirect = self._locate(path)
        if found is None:
            return Response(404)
        if redirect:
            location = path.split("?", 1)[0] + "/"
            return Response(307, {"location": location})

        try:
            body = found.read_bytes()
        except OSError as err:
            _log.error("failed serving static file: %s", err)
            return Response(500)

        headers = {"content-type": _content_type(found)}
        headers.update(self.headers)

        if headers.get("content-type") == "text/html":
            if len(body) > MAX_INTERCEPT_BYTES:
                _log.debug("Unable to intercept: body too large")
                return Response(200, headers, b"")
            nonce = make_nonce() if self.create_nonce is not None else None
            injected = inject_html(
                body, host, self.ws_base, self.create_nonce, nonce, self.csp
            )
            body = injected.body
            if injected.content_security_policy is not None:
                headers["content-security-policy"] = injected.content_security_policy

        headers["content-length"] = str(len(body))
        return Response(200, headers, body)