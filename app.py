from __future__ import annotations

import argparse
import os
import threading
from typing import Optional

import uvicorn

from gatekeeper import __version__
from gatekeeper.core.commands import CommandSource
from gatekeeper.core.logger import setup_logging
from gatekeeper.core.runtime import GatekeeperRuntime
from gatekeeper.web.api import create_app


class WebServerHandle:
    def __init__(self, *, app, host: str, port: int, logger):  # noqa: ANN001
        self.app = app
        self.host = host
        self.port = port
        self.logger = logger
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        cfg = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="info")
        self._server = uvicorn.Server(cfg)

        def run() -> None:
            assert self._server is not None
            self._server.run()

        self._thread = threading.Thread(target=run, name="gatekeeper-web", daemon=True)
        self._thread.start()
        self.logger.info(f"Web server started on http://{self.host}:{self.port}")

    def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=3.0)


def main() -> None:
    ap = argparse.ArgumentParser(description=f"Gatekeeper whitelist service {__version__}")
    ap.add_argument("--root", default=".", help="Directory holding config/, data/, locales/ and logs/.")
    ap.add_argument("--web", action="store_true", help="Serve the admin API even if web.enabled is false.")
    args = ap.parse_args()

    logger = setup_logging(os.path.join(args.root, "logs"))
    runtime = GatekeeperRuntime(args.root, logger=logger, configure_logging=True)
    runtime.set_eviction_handler(lambda name, reason: logger.info(f"Kick {name}: {reason}"))
    runtime.start()

    web: Optional[WebServerHandle] = None
    web_cfg = runtime.config.web
    if args.web or web_cfg.enabled:
        if not web_cfg.api_key_hashes:
            logger.warning("Admin API has no api_key_hashes configured; every /v1 request will be rejected.")
        web = WebServerHandle(app=create_app(runtime, logger=logger), host=web_cfg.bind_host, port=web_cfg.port, logger=logger)
        web.start()

    console = CommandSource.console()
    logger.info("Gatekeeper console ready. Commands: whitelist <add|remove|extend|list|reload> ..., check <player>, stop")
    try:
        while True:
            try:
                text = input("> ").strip()
            except EOFError:
                print()
                break
            except KeyboardInterrupt:
                print()
                break
            if not text:
                continue
            if text in {"stop", "exit", "/stop"}:
                break
            parts = text.split(None, 1)
            head = parts[0].lower().lstrip("/")
            rest = parts[1] if len(parts) > 1 else ""
            if head == "whitelist":
                runtime.commands.execute(console, rest)
                continue
            if head == "check":
                if not rest.strip():
                    print("Usage: check <player>")
                    continue
                decision = runtime.gate.check(rest.strip())
                print(f"{rest.strip()}: {'allowed' if decision.allowed else 'denied'} ({decision.reason})")
                continue
            print("Unknown command. Use: whitelist ..., check <player>, stop")
    finally:
        if web is not None:
            web.stop()
        runtime.shutdown()


if __name__ == "__main__":
    main()
