from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol

from secureupdate.core.config import RunConfig
from secureupdate.core.models import PackageTask, SystemState, UpdateOutcome
from secureupdate.core.utils import CommandError, CommandTimeout, run_cmd

logger = logging.getLogger(__name__)

SECURITY_PROMPT_TEMPLATE = """You are reviewing a package build recipe for malicious behaviour.

Package: {package}
Source: {origin}

Review every file in this directory. Look in particular for:
- remote scripts downloaded and executed (curl/wget piped to a shell)
- interpreter one-liners running encoded or obfuscated payloads
- persistence through systemd units, cron jobs or shell profile edits
- changes to PATH or system configuration outside the package
- download URLs on paste sites, URL shorteners or throwaway domains
- prebuilt binaries fetched from untrusted locations

Answer in exactly this format:
VERDICT: [SAFE/THREAT DETECTED]
RISK: [NONE/LOW/MEDIUM/HIGH/CRITICAL]
SUMMARY: [one line]
DETAILS:
[findings with file names and line numbers]
REMEDIATION:
[what the user should do, only if a threat was found]
"""

POST_UPDATE_PROMPT_TEMPLATE = """A system update just finished. Identify anything it broke and how to fix it.

Update exit code: {exit_code}
Updated packages: {packages}

Failed systemd units: {failed_services}
Pending .pacnew/.pacsave files: {pending_configs}
Broken dependencies:
{broken_deps}
Orphaned packages: {orphans}
Recent kernel errors:
{kernel_log}

Update log (tail):
{update_log}

Report each problem as a block in exactly this format, and nothing else:
SEVERITY: [CRITICAL/HIGH/MEDIUM/LOW]
PROBLEM: [one line]
IMPACT: [one line]
FIX_COMMANDS:
[one shell command per line]
END_ISSUE
"""

UPDATE_LOG_TAIL = 200


class OracleError(CommandError):
    pass


class OracleClient(Protocol):
    def analyze(self, directory: Path, prompt: str, model: str) -> str:
        ...


class ClaudeCliOracle:
    """Runs the ``claude`` CLI in print mode inside the directory under review."""

    def __init__(self, command: str = "claude", timeout: int = 600):
        self.command = command
        self.timeout = timeout

    def build_command(self, prompt: str, model: str) -> list[str]:
        return [self.command, "--model", model, "--print", prompt, "."]

    def analyze(self, directory: Path, prompt: str, model: str) -> str:
        cmd = self.build_command(prompt, model)
        try:
            cp = run_cmd(cmd, timeout=self.timeout, cwd=directory, check=False)
        except CommandTimeout as exc:
            raise OracleError(str(exc)) from exc
        except FileNotFoundError as exc:
            raise OracleError(f"{self.command} not available") from exc
        if cp.returncode != 0:
            raise OracleError(f"{self.command} exited with {cp.returncode}:\n{cp.stdout}")
        return cp.stdout


def load_template(path: Optional[Path], default: str) -> str:
    if path is None:
        return default
    return Path(path).read_text(encoding="utf-8")


def build_security_prompt(task: PackageTask, template: str = SECURITY_PROMPT_TEMPLATE) -> str:
    return template.format(package=task.name, origin=task.origin)


def build_post_update_prompt(update: UpdateOutcome, state: SystemState) -> str:
    log_tail = "\n".join(update.log.splitlines()[-UPDATE_LOG_TAIL:])
    return POST_UPDATE_PROMPT_TEMPLATE.format(
        exit_code=update.exit_code,
        packages=", ".join(update.packages) or "(all pending)",
        failed_services=state.failed_service_count,
        pending_configs=state.pending_config_conflict_count,
        broken_deps=state.broken_dependency_summary or "(none)",
        orphans=", ".join(state.orphaned_packages) or "(none)",
        kernel_log=state.recent_kernel_log or "(none)",
        update_log=log_tail or "(empty)",
    )


def make_oracle(config: RunConfig) -> OracleClient:
    return ClaudeCliOracle(config.oracle_command, timeout=config.oracle_timeout)
