"""External MTA tools — config check, reload, map compiler, status."""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import BaseModel

from relayctl.core.config import PostfixConfig
from relayctl.core.exceptions import ExternalToolError, ValidationError

logger = structlog.stdlib.get_logger()

# Printed by ``postfix reload`` when the master process lives elsewhere.
NOT_RUNNING_MARKER = "mail system is not running"


class CommandResult(BaseModel):
    """Outcome of one external command (stdout and stderr combined)."""

    argv: list[str]
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Runs an argv list; never through a shell."""

    def run(self, argv: Sequence[str]) -> CommandResult: ...


class SubprocessRunner:
    """Default runner backed by :func:`subprocess.run`."""

    def __init__(self, timeout_secs: float = 30.0) -> None:
        self._timeout = timeout_secs

    def run(self, argv: Sequence[str]) -> CommandResult:
        args = list(argv)
        try:
            proc = subprocess.run(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            return CommandResult(argv=args, returncode=127, output=str(exc))
        except subprocess.TimeoutExpired as exc:
            output = exc.output if isinstance(exc.output, str) else ""
            return CommandResult(
                argv=args,
                returncode=124,
                output=f"{output}\ntimed out after {self._timeout}s".strip(),
            )
        return CommandResult(argv=args, returncode=proc.returncode, output=proc.stdout or "")


class PostfixTools:
    """Validator, reloader and map compiler for one config directory.

    Every invocation is a fixed argv list, optionally prefixed with ``sudo``.
    """

    def __init__(
        self,
        config: PostfixConfig | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        from relayctl.core.config import get_settings

        self._config = config or get_settings().postfix
        self._runner = runner or SubprocessRunner(self._config.command_timeout_secs)

    @property
    def runner(self) -> CommandRunner:
        return self._runner

    def _argv(self, *args: str) -> list[str]:
        prefix = ["sudo"] if self._config.use_sudo else []
        return [*prefix, *args]

    def run(self, *args: str) -> CommandResult:
        argv = self._argv(*args)
        result = self._runner.run(argv)
        logger.debug(
            "external_command",
            argv=argv,
            returncode=result.returncode,
        )
        return result

    def check(self) -> list[str]:
        """Run both config checks and return every diagnostic (empty = pass)."""
        errors: list[str] = []

        result = self.run("postfix", "check")
        if not result.ok:
            errors.append(f"postfix check failed: {result.output.strip()}")

        result = self.run("postconf", "-c", str(self._config.config_dir), "-n")
        if not result.ok:
            errors.append(f"postconf check failed: {result.output.strip()}")

        return errors

    def validate(self) -> None:
        """Raise :class:`ValidationError` carrying all check diagnostics."""
        errors = self.check()
        if errors:
            logger.warning("config_validation_failed", errors=errors)
            raise ValidationError(errors)

    def reload(self) -> None:
        """Ask the MTA to reread its configuration.

        A "not running" answer counts as success: in split deployments a
        watcher next to the MTA performs the reload.
        """
        result = self.run("postfix", "reload")
        if result.ok:
            logger.info("postfix_reloaded")
            return
        output = result.output.strip()
        if NOT_RUNNING_MARKER in output:
            logger.info("postfix_reload_deferred_to_watcher")
            return
        raise ExternalToolError(result.argv, output, result.returncode)

    def compile_map(self, map_type: str, path: Path) -> None:
        """Regenerate the indexed lookup form of a flat map file."""
        result = self.run("postmap", f"{map_type}:{path}")
        if not result.ok:
            raise ExternalToolError(result.argv, result.output, result.returncode)

    def is_running(self) -> bool:
        return self.run("postfix", "status").ok

    def mail_version(self) -> str:
        result = self.run("postconf", "-d", "mail_version")
        if not result.ok:
            return "unknown"
        _, sep, value = result.output.strip().partition("=")
        return value.strip() if sep else "unknown"
