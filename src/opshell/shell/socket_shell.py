"""
TCP command shell: every connection reads primitive invocations line by line
and writes their output back, prompting before each line.
"""

from __future__ import annotations

import io
import logging
import socketserver
import threading
from typing import TYPE_CHECKING, Optional, TextIO

from ..controlfile.variables import split_by_space_with_quotes
from ..errors import NoSuchPrimitiveError, describe_exception

if TYPE_CHECKING:  # pragma: no cover
    from ..runtime.application import Application

log = logging.getLogger(__name__)

CLOSE_COMMAND = "close"


def run_shell_line(application: "Application", out: TextIO, line: str) -> bool:
    """Execute one shell line; return False when the session should end."""

    line = line.replace("\b", "").strip()
    if not line:
        return True
    try:
        arguments = split_by_space_with_quotes(line)
    except ValueError as exc:
        out.write(f"{exc}\n")
        return True
    if arguments[0].lower() == CLOSE_COMMAND:
        return False
    try:
        application.execute(out, arguments)
    except NoSuchPrimitiveError:
        out.write(f"Unknown command: {line}\n")
        out.write("Use 'help' to see all available commands\n")
    except Exception as exc:
        log.error("Command '%s' failed: %s", line, describe_exception(exc), exc_info=exc)
        out.write(f"{describe_exception(exc)}\n")
    return True


class ShellHandler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        server: ShellServer = self.server  # type: ignore[assignment]
        application = server.application
        out = io.TextIOWrapper(self.wfile, encoding="utf-8", newline="\n", write_through=True)
        log.info("Shell connection from %s:%s", *self.client_address[:2])
        try:
            while not application.stop_event.is_set():
                out.write(server.prompt)
                out.flush()
                raw = self.rfile.readline()
                if not raw:
                    break
                if not run_shell_line(application, out, raw.decode("utf-8", errors="replace")):
                    break
            out.flush()
        except (ConnectionError, OSError) as exc:
            log.info("Shell connection %s:%s closed: %s", self.client_address[0], self.client_address[1], exc)
        finally:
            try:
                out.detach()
            except ValueError:
                pass


class ShellServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, application: "Application", host: str = "0.0.0.0", port: int = 0, prompt: Optional[str] = None) -> None:
        super().__init__((host, port), ShellHandler)
        self.application = application
        self.prompt = prompt if prompt is not None else application.config.prompt
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server_address[1]

    def start(self) -> threading.Thread:
        """Serve connections on a daemon thread."""

        self._thread = threading.Thread(target=self.serve_forever, name=f"Shell on port {self.port}", daemon=True)
        self._thread.start()
        log.info("Command shell listening on port %d", self.port)
        return self._thread

    def stop(self) -> None:
        self.shutdown()
        self.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
