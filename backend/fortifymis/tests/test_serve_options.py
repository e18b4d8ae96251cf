from __future__ import annotations

import pytest

from fortifymis import serve


def test_defaults(monkeypatch):
    for name in ("HOST", "PORT", "RELOAD", "WEB_CONCURRENCY", "SSL_CERTFILE", "SSL_KEYFILE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    options = serve.server_options()

    assert options["host"] == "0.0.0.0"
    assert options["port"] == 8000
    assert options["workers"] == 1
    assert options["reload"] is False
    assert "ssl_certfile" not in options


def test_reload_forces_a_single_worker(monkeypatch):
    monkeypatch.setenv("RELOAD", "yes")
    monkeypatch.setenv("WEB_CONCURRENCY", "4")

    options = serve.server_options()

    assert options["reload"] is True
    assert options["workers"] == 1


def test_tls_needs_both_files(monkeypatch):
    monkeypatch.setenv("SSL_CERTFILE", "/etc/ssl/fortifymis.pem")
    monkeypatch.delenv("SSL_KEYFILE", raising=False)

    with pytest.raises(RuntimeError):
        serve.server_options()

    monkeypatch.setenv("SSL_KEYFILE", "/etc/ssl/fortifymis.key")
    options = serve.server_options()
    assert options["ssl_keyfile"] == "/etc/ssl/fortifymis.key"
