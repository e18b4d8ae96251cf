"""Production entry point: `fortifymis-serve` or `python -m fortifymis.serve`."""

import logging
import os
from typing import Any, Dict

import uvicorn

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


def server_options() -> Dict[str, Any]:
    """Collect uvicorn keyword arguments from the environment."""
    reload_enabled = _flag("RELOAD")
    workers = int(os.getenv("WEB_CONCURRENCY", "1"))
    if reload_enabled and workers > 1:
        # uvicorn ignores workers under --reload; make it explicit.
        logger.warning("RELOAD is on; ignoring WEB_CONCURRENCY=%s", workers)
        workers = 1

    options: Dict[str, Any] = {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", "8000")),
        "reload": reload_enabled,
        "workers": workers,
        "log_level": os.getenv("LOG_LEVEL", "info").lower(),
        "access_log": _flag("ACCESS_LOG", "true"),
        "proxy_headers": True,
        "forwarded_allow_ips": os.getenv("FORWARDED_ALLOW_IPS", "*"),
        "timeout_keep_alive": int(os.getenv("KEEP_ALIVE_SEC", "5")),
    }

    certfile = os.getenv("SSL_CERTFILE")
    keyfile = os.getenv("SSL_KEYFILE")
    if bool(certfile) != bool(keyfile):
        raise RuntimeError("SSL_CERTFILE and SSL_KEYFILE must be set together.")
    if certfile:
        options["ssl_certfile"] = certfile
        options["ssl_keyfile"] = keyfile
    return options


def main() -> None:
    options = server_options()
    logger.info("Starting FortifyMIS API on %s:%s", options["host"], options["port"])
    uvicorn.run("fortifymis.main:app", **options)


if __name__ == "__main__":
    main()
