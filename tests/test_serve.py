import ipaddress
from pathlib import Path

import pytest

from trunk.serve import (
    StaticServer,
    TlsConfig,
    inject_html,
    is_loopback,
    listening_addresses,
    make_nonce,
    normalize_ws_base,
    open_address,
)


@pytest.fixture
def dist(tmp_path: Path) -> Path:
    (tmp_path / "index.html").write_text(
        "<script>let a = '{{__TRUNK_ADDRESS__}}'; let b = '{{__TRUNK_WS_BASE__}}';</script>",
        encoding="utf-8",
    )
    (tmp_path / "app.js").write_text("console.log(1);", encoding="utf-8")
    sub = tmp_path / "docs"
    sub.mkdir()
    (sub / "index.html").write_text("<p>docs</p>", encoding="utf-8")
    return tmp_path


def test_normalize_ws_base():
    assert normalize_ws_base("/app") == "/app/"
    assert normalize_ws_base("/app/") == "/app/"


def test_make_nonce_is_random():
    first, second = make_nonce(), make_nonce()
    assert first
    assert first != second


def test_inject_html_with_host():
    body = b"x = '{{__TRUNK_ADDRESS__}}'; y = `{{__TRUNK_ADDRESS__}}`; z = '{{__TRUNK_WS_BASE__}}'"
    result = inject_html(body, "example.com:8080", "/ws/")
    assert result.body == b"x = 'example.com:8080'; y = 'example.com:8080'; z = '/ws/'"
    assert result.content_security_policy is None


def test_inject_html_without_host_uses_client_location():
    result = inject_html(b"h = '{{__TRUNK_ADDRESS__}}'", None, "/")
    assert result.body == b"h = window.location.host"


def test_inject_html_nonce_and_csp():
    result = inject_html(
        b"<script nonce='NONCE_VAR'></script>",
        None,
        "/",
        nonce_var="NONCE_VAR",
        nonce="abc",
        csp=["default-src 'self'", "script-src 'nonce-{{NONCE}}'"],
    )
    assert result.body == b"<script nonce='abc'></script>"
    assert result.content_security_policy == "default-src 'self';script-src 'nonce-abc'"


def test_inject_html_leaves_invalid_utf8_alone():
    body = b"\xff\xfe{{__TRUNK_WS_BASE__}}"
    result = inject_html(body, "example.com", "/")
    assert result.body == body


def test_is_loopback():
    assert is_loopback("127.0.0.1")
    assert is_loopback("::1")
    assert not is_loopback("192.168.1.10")


def test_listening_addresses_expands_unspecified():
    result = listening_addresses(
        ["0.0.0.0"], 8080, ["127.0.0.1", "192.168.1.10", "::1"]
    )
    assert result == [
        (ipaddress.ip_address("127.0.0.1"), 8080),
        (ipaddress.ip_address("192.168.1.10"), 8080),
    ]


def test_listening_addresses_keeps_specific_and_dedupes():
    result = listening_addresses(["::1", "127.0.0.1", "127.0.0.1"], 9000, [])
    assert [ip.version for ip, _ in result] == [4, 6]
    assert all(port == 9000 for _, port in result)


def test_open_address():
    assert open_address(False, [], 8080, "/") == "http://127.0.0.1:8080/"
    assert open_address(True, ["::1"], 8443, "/app/") == "https://[::1]:8443/app/"


def test_tls_config_missing_files(tmp_path):
    config = TlsConfig(tmp_path / "cert.pem", tmp_path / "key.pem")
    with pytest.raises(FileNotFoundError):
        config.ssl_context()


def test_serves_index_with_injection(dist):
    server = StaticServer(dist, "/", "/ws")
    response = server.handle("/", host="example.com")
    assert response.status == 200
    assert response.headers["content-type"] == "text/html"
    assert response.body == b"<script>let a = 'example.com'; let b = '/ws/';</script>"
    assert response.headers["content-length"] == str(len(response.body))


def test_serves_plain_files_untouched(dist):
    server = StaticServer(dist)
    response = server.handle("/app.js")
    assert response.status == 200
    assert response.body == b"console.log(1);"


def test_spa_fallback_and_no_spa(dist):
    assert StaticServer(dist).resolve("/some/route") == dist / "index.html"
    assert StaticServer(dist, no_spa=True).resolve("/some/route") is None
    assert StaticServer(dist, no_spa=True).handle("/some/route").status == 404


def test_directory_redirect(dist):
    server = StaticServer(dist, no_spa=True)
    response = server.handle("/docs")
    assert response.status == 307
    assert response.headers["location"] == "/docs/"
    assert server.handle("/docs/").body == b"<p>docs</p>"


def test_serve_base_prefix(dist):
    server = StaticServer(dist, "/app/")
    assert server.resolve("/app/app.js") == dist / "app.js"
    assert server.resolve("/other/app.js") is None
    assert server.handle("/other/app.js").status == 404


def test_path_traversal_rejected(dist):
    server = StaticServer(dist / "docs", no_spa=True)
    assert server.resolve("/../app.js") is None


def test_custom_headers_and_validation(dist):
    server = StaticServer(dist, headers={"X-Test": "value"})
    assert server.handle("/app.js").headers["x-test"] == "value"
    with pytest.raises(ValueError):
        StaticServer(dist, headers={"bad header": "value"})
    with pytest.raises(ValueError):
        StaticServer(dist, headers={"X-Test": "a\r\nb"})


def test_nonce_and_csp_on_html(dist):
    (dist / "index.html").write_text("<script nonce='NV'></script>", encoding="utf-8")
    server = StaticServer(dist, create_nonce="NV", csp=["script-src 'nonce-{{NONCE}}'"])
    response = server.handle("/")
    text = response.body.decode()
    nonce = text.split("'")[1]
    assert nonce != "NV"
    assert response.headers["content-security-policy"] == f"script-src 'nonce-{nonce}'"