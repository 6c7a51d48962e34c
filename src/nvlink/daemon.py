"""nvlink daemon -- headless host with editor messaging.

Runs a HeadlessHost update loop with a messaging session attached, so
an nvim client can ping, query the project path and drive play state
without the full IDE.  Foreground loop driven by a TOML config file.
Shuts down cleanly on SIGINT or SIGTERM.

Example:
    Run from the command line::

        nvlink nvlink.toml -v
"""

import argparse
import logging
import signal
import threading

from nvlink.config import load_config
from nvlink.host import HeadlessHost, Preferences, is_active_editor
from nvlink.paths import resolve_config
from nvlink.session import SessionController, debugging_port
from nvlink.status import create_app, serve

log = logging.getLogger(__name__)

_shutdown = threading.Event()


def _on_signal(signum: int, frame) -> None:
    """Set the module-level shutdown event on SIGINT/SIGTERM."""
    _shutdown.set()


def build_session(cfg: dict, host: HeadlessHost) -> SessionController:
    """Create the messaging session described by *cfg* for *host*.

    The session stays inert unless the config enables it and the
    host's preferred external editor is nvim.
    """
    enabled = cfg["enabled"] and is_active_editor(host.prefs)
    return SessionController(
        host,
        host.prefs,
        enabled=enabled,
        pid=cfg["pid"],
        timeout=cfg["timeout"],
    )


def run(cfg: dict, host: HeadlessHost, shutdown: threading.Event) -> int:
    """Start the session, tick the host until *shutdown*, tear down.

    Returns the number of host ticks run.

    Example:
        >>> run(cfg, HeadlessHost(cfg["project"], Preferences()), ev)
        120
    """
    session = build_session(cfg, host)
    session.start()

    server = None
    if cfg["status_port"]:
        try:
            server = serve(create_app(session), cfg["status_host"], cfg["status_port"])
        except OSError as exc:
            log.warning("status panel disabled: %s", exc)

    try:
        return host.run(shutdown, cfg["tick"])
    finally:
        if server is not None:
            server.shutdown()
        session.shutdown()


def main() -> None:
    """CLI entry point -- parse args, load config, run the daemon.

    Example:
        From the shell::

            nvlink nvlink.toml
            nvlink nvlink.toml -v
    """
    _shutdown.clear()

    parser = argparse.ArgumentParser(description="nvlink editor messaging daemon")
    parser.add_argument("config", help="path to TOML config file")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    cfg = load_config(resolve_config(args.config))
    host = HeadlessHost(cfg["project"], Preferences(cfg["prefs"]))

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    log.info(
        "starting: project=%s debugging_port=%d tick=%.2fs timeout=%.1fs",
        host.absolute_project_root(), debugging_port(cfg["pid"]),
        cfg["tick"], cfg["timeout"],
    )
    try:
        run(cfg, host, _shutdown)
    finally:
        log.info("shutting down")


if __name__ == "__main__":
    main()
