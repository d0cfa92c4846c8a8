"""Runs rendered firewall scripts with elevated privileges.

The engine only depends on the success flag and the combined output text
of a run. Timeouts are the executor's own (`command_timeout`); callers do
not add another layer.
"""

import asyncio
import logging
import os
import platform
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from domainguard.firewall.rules import BACKEND_NETSH, RuleScript

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 60.0


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    output: str
    exit_code: Optional[int] = None


class RuleExecutor(Protocol):
    async def run(self, script: RuleScript) -> ExecutionResult: ...


def is_elevated() -> bool:
    """Check whether the current process already has admin/root rights."""
    if platform.system() == "Windows":
        try:
            import ctypes

            return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
        except (AttributeError, OSError):
            return False
    return os.geteuid() == 0


class ShellRuleExecutor:
    """Executes scripts through PowerShell (netsh) or sh (iptables).

    The script is written to a temp file under `work_dir`, run once, and
    removed afterwards. When the process is not elevated, PowerShell scripts
    go through `Start-Process -Verb RunAs` (one UAC prompt per batch) and
    shell scripts through `sudo -n`.
    """

    def __init__(
        self,
        work_dir: Path,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        elevate: bool = True,
    ) -> None:
        self.work_dir = Path(work_dir).expanduser()
        self.command_timeout = command_timeout
        self.elevate = elevate

    async def run(self, script: RuleScript) -> ExecutionResult:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(
            prefix=f"firewall_{script.action}_", suffix=script.suffix, dir=self.work_dir
        )
        script_path = Path(name)
        log_path = script_path.with_suffix(".log")

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(script.text)

            args = self._build_command(script, script_path, log_path)
            logger.debug(f"Running {script.action} script for {script.domain}: {' '.join(args)}")
            result = await self._run_process(args)

            # Elevated PowerShell runs in a separate window; its output is in the transcript
            if log_path.exists():
                transcript = log_path.read_text(encoding="utf-8", errors="replace")
                result = ExecutionResult(
                    success=result.success,
                    output=f"{result.output}{transcript}",
                    exit_code=result.exit_code,
                )
            return result
        finally:
            for path in (script_path, log_path):
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.warning(f"Failed to remove {path}: {e}")

    def _build_command(self, script: RuleScript, script_path: Path, log_path: Path) -> list[str]:
        if script.backend == BACKEND_NETSH:
            if not self.elevate or is_elevated():
                return [
                    "powershell", "-NoLogo", "-NoProfile", "-NonInteractive",
                    "-ExecutionPolicy", "Bypass", "-File", str(script_path),
                ]
            inner = (
                f"-NoProfile -ExecutionPolicy Bypass -WindowStyle Hidden -Command "
                f"\"& '{script_path}' *> '{log_path}'; exit $LASTEXITCODE\""
            )
            command = (
                f"$p = Start-Process PowerShell -ArgumentList '{inner.replace(chr(39), chr(39) * 2)}' "
                f"-Verb RunAs -Wait -PassThru -WindowStyle Hidden; exit $p.ExitCode"
            )
            return ["powershell", "-NoLogo", "-NoProfile", "-WindowStyle", "Hidden", "-Command", command]

        if not self.elevate or is_elevated():
            return ["sh", str(script_path)]
        return ["sudo", "-n", "sh", str(script_path)]

    async def _run_process(self, args: list[str]) -> ExecutionResult:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            return ExecutionResult(success=False, output=f"Command execution failed: {e}")

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.command_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return ExecutionResult(
                success=False,
                output=f"Command timed out after {self.command_timeout:.0f}s",
                exit_code=proc.returncode,
            )

        output = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            logger.debug(f"Command exit code: {proc.returncode}, output: {output.strip()}")
        return ExecutionResult(success=proc.returncode == 0, output=output, exit_code=proc.returncode)


class DryRunRuleExecutor:
    """Logs scripts instead of running them."""

    def __init__(self) -> None:
        self.scripts: list[RuleScript] = []

    async def run(self, script: RuleScript) -> ExecutionResult:
        self.scripts.append(script)
        logger.info(f"[dry-run] {script.action} {script.domain} ({len(script.rule_ids)} rule ids)")
        logger.debug(f"[dry-run] script:\n{script.text}")
        marker = "Removed 0 rules" if script.action == "unblock" else f"Added {len(script.rule_ids)} rules"
        return ExecutionResult(success=True, output=marker, exit_code=0)
