"""Shell tool: runs a command through the platform shell.

The shell tool runs arbitrary commands as the current user. Any
narrowing happens in ShellPolicy, configured through settings.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import shlex

from deskhand.config import Settings
from deskhand.errors import ShellExecutionError, ShellPolicyError
from deskhand.process import CancelToken, run_process

logger = logging.getLogger(__name__)

EMPTY_OUTPUT = "Command executed successfully"

# Anything that lets one allow-listed command start another
_CHAINING = re.compile(r"[;&|`<>\n\r]|\$\(")


def default_shell_argv(command: str) -> list[str]:
    if platform.system() == "Windows":
        return ["powershell.exe", "-NoProfile", "-NonInteractive", "-Command", command]
    return ["/bin/bash", "-c", command]


class ShellPolicy:
    """Decides whether a command may run.

    Modes:
      unrestricted - everything runs (logged once at startup)
      allowlist    - the first word must name an allow-listed executable,
                     and the command may not chain further commands
      disabled     - nothing runs
    """

    def __init__(self, mode: str = "unrestricted", allowlist: list[str] | None = None) -> None:
        if mode not in ("unrestricted", "allowlist", "disabled"):
            raise ValueError(f"Unknown shell policy: {mode}")
        self.mode = mode
        self.allowlist = frozenset(a.lower() for a in (allowlist or []))

    @classmethod
    def from_settings(cls, settings: Settings) -> ShellPolicy:
        policy = cls(settings.shell_policy, settings.shell_allowlist)
        if policy.mode == "unrestricted":
            logger.warning(
                "Shell policy is UNRESTRICTED: the model can run any command as this user"
            )
        else:
            logger.info("Shell policy: %s (%d allowed executables)", policy.mode, len(policy.allowlist))
        return policy

    def check(self, command: str) -> None:
        """Raise ShellPolicyError if the command is not permitted."""
        if self.mode == "unrestricted":
            return
        if self.mode == "disabled":
            raise ShellPolicyError("Shell commands are disabled by policy")

        if _CHAINING.search(command):
            raise ShellPolicyError("Command chaining, redirection and substitution are not allowed by policy")
        try:
            words = shlex.split(command, posix=platform.system() != "Windows")
        except ValueError as e:
            raise ShellPolicyError(f"Could not parse command: {e}") from None
        if not words:
            raise ShellPolicyError("Empty command")
        executable = os.path.basename(words[0].strip("\"'")).lower()
        if executable.endswith(".exe"):
            executable = executable[:-4]
        if executable not in self.allowlist:
            raise ShellPolicyError(f"'{executable}' is not in the shell allowlist")


class ShellExecutor:
    """Runs commands in the platform shell and captures their output."""

    def __init__(self, policy: ShellPolicy | None = None, argv_for=default_shell_argv) -> None:
        self._policy = policy or ShellPolicy()
        self._argv_for = argv_for

    @property
    def policy(self) -> ShellPolicy:
        return self._policy

    async def run(self, command: str, cancel: CancelToken | None = None) -> str:
        """Run a command; return stdout or raise ShellExecutionError with stderr.

        No timeout is applied: the run's iteration budget and cancel token
        are the only bounds.
        """
        self._policy.check(command)
        logger.info("Executing shell command: %s", command)
        argv = self._argv_for(command)
        try:
            result = await run_process(argv, cancel=cancel)
        except OSError as e:
            raise ShellExecutionError(f"Command failed: could not start {argv[0]}: {e}") from e

        if result.returncode != 0:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise ShellExecutionError(f"Command failed: {detail}")
        return result.stdout or EMPTY_OUTPUT
