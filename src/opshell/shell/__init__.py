"""
Line-oriented command shell served over TCP.
"""

from .socket_shell import ShellServer, run_shell_line

__all__ = ["ShellServer", "run_shell_line"]
