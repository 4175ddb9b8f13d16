"""
Command-line interface for opshell.

``opshell [--http-port N] [--log-level L] [<cmdport>] [<controlFile> [<action>] [<var>=<value> ...]]``
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, TextIO

from .config import ShellConfig, load_config
from .observability.logging_utils import configure_logging
from .runtime.application import Application
from .version import __version__

log = logging.getLogger(__name__)

USAGE = "[<cmdport>] [<controlFile> [<action>] [<var>=<value> ...]]"


def build_cli_parser() -> argparse.ArgumentParser:
    cli = argparse.ArgumentParser(
        prog="opshell",
        description="Run control-file actions and serve the command shell",
        usage=f"%(prog)s [--http-port N] [--log-level L] {USAGE}",
    )
    cli.add_argument("--version", action="version", version=f"opshell {__version__} (Python {sys.version.split()[0]})")
    cli.add_argument("--http-port", type=int, default=None, help="Serve the HTTP API on this port")
    cli.add_argument("--log-level", default=None, help="Initial logging level (defaults to OPSHELL_LOG_LEVEL)")
    cli.add_argument("arguments", nargs="*", help="Optional command port, then control file, action and variables")
    return cli


def split_arguments(arguments: List[str]) -> tuple[Optional[int], List[str]]:
    """Separate the optional leading command port from the control-file arguments."""

    if arguments:
        try:
            return int(arguments[0]), list(arguments[1:])
        except ValueError:
            pass
    return None, list(arguments)


def _serve_http(application: Application, app, config: ShellConfig, port: int, log_level: str) -> None:
    import uvicorn

    server = uvicorn.Server(uvicorn.Config(app, host=config.http_host, port=port, log_level=log_level.lower()))
    application.on_quit(lambda: setattr(server, "should_exit", True))
    server.run()


def _wait_for_quit(application: Application) -> None:
    while not application.stop_event.wait(0.5):
        pass


def main(argv: Optional[List[str]] = None, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    cli = build_cli_parser()
    args = cli.parse_args(argv)
    cmdport, control_arguments = split_arguments(args.arguments)
    if cmdport is None and not control_arguments and args.http_port is None:
        cli.print_usage(sys.stderr)
        return 2

    config = load_config()
    log_level = args.log_level or config.log_level
    configure_logging(log_level, config.log_format)
    application = Application(config)

    app = None
    if args.http_port is not None:
        from .server import create_app

        app = create_app(application)

    shell = None
    try:
        if control_arguments:
            ok = application.run_control_file(out, control_arguments)
            out.flush()
            if cmdport is None and app is None:
                application.engine.join_repeats()
                return 0 if ok else 1

        if cmdport is not None:
            from .shell import ShellServer

            shell = ShellServer(application, config.shell_host, cmdport)
            shell.start()

        if app is not None:
            _serve_http(application, app, config, args.http_port, log_level)
        else:
            _wait_for_quit(application)
    except KeyboardInterrupt:
        log.info("Interrupted")
    finally:
        application.stop_event.set()
        if shell is not None:
            shell.stop()
        for engine in list(application.algorithms):
            application.remove_algorithm(engine)
    return 0


__all__ = ["main", "build_cli_parser", "split_arguments"]
