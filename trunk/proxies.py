"""HTTP clients for proxied backends and the description of configured proxies."""

from __future__ import annotations

import logging
import ssl
import urllib.request
from dataclasses import dataclass
from typing import Iterable, Mapping, Union

_log = logging.getLogger(__name__)

DANGER = "\u26a0\ufe0f"

Headers = Union[Mapping[str, str], Iterable[tuple[str, str]]]


@dataclass(frozen=True)
class ProxyClientOptions:
    """Settings that decide which HTTP client a proxy uses."""

    insecure: bool = False
    no_system_proxy: bool = False
    redirect: bool = True


class _NoRedirect(urllib.request.HTTPErrorProcessor):
    """Hands redirect responses back to the caller instead of following them."""

    def http_response(self, request, response):
        if 300 <= response.getcode() < 400:
            return response
        return super().http_response(request, response)

    https_response = http_response


def _create_client(opts: ProxyClientOptions) -> urllib.request.OpenerDirector:
    handlers: list[urllib.request.BaseHandler] = [
        urllib.request.HTTPRedirectHandler() if opts.redirect else _NoRedirect()
    ]
    if opts.insecure:
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        handlers.append(urllib.request.HTTPSHandler(context=context))
    if opts.no_system_proxy:
        handlers.append(urllib.request.ProxyHandler({}))
    return urllib.request.build_opener(*handlers)


class ProxyClients:
    """Shares one HTTP client between all proxies with the same options."""

    def __init__(self) -> None:
        self._clients: dict[ProxyClientOptions, urllib.request.OpenerDirector] = {}

    def get_client(self, opts: ProxyClientOptions) -> urllib.request.OpenerDirector:
        """Return the client for ``opts``, creating it on first use."""
        client = self._clients.get(opts)
        if client is None:
            client = _create_client(opts)
            self._clients[opts] = client
        return client

    def __len__(self) -> int:
        return len(self._clients)


def _debug_quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def describe_proxy(
    path: str,
    backend: str,
    request_headers: Headers = (),
    no_system_proxy: bool = False,
    insecure: bool = False,
) -> str:
    """Describe an HTTP proxy route the way it is announced on start-up."""
    items = request_headers.items() if isinstance(request_headers, Mapping) else request_headers
    headers = ";".join(f"{name.lower()}={_debug_quote(value)}" for name, value in items)
    system_proxy = "; ignoring system proxy" if no_system_proxy else ""
    danger = f"; {DANGER} insecure TLS" if insecure else ""
    message = f"proxying {path} -> {backend} {headers} {system_proxy}{danger}"
    _log.info(message)
    return message