from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

from secureupdate.core.models import HealthSnapshot, SystemState
from secureupdate.core.utils import CommandError, run_cmd

logger = logging.getLogger(__name__)

CONFIG_CONFLICT_SUFFIXES = (".pacnew", ".pacsave")
KERNEL_LOG_LINES = 50


class StateCollector(Protocol):
    def collect(self) -> SystemState:
        ...

    def health_snapshot(self) -> HealthSnapshot:
        ...


def _output(cmd: list[str], timeout: int = 60) -> str:
    """Command output, or an empty string when the probe cannot run."""
    try:
        return run_cmd(cmd, timeout=timeout, check=False).stdout
    except (CommandError, FileNotFoundError) as exc:
        logger.warning("System probe %s failed: %s", cmd[0], exc)
        return ""


class ArchStateCollector:
    """Reads service, config and package database health from the running system."""

    def __init__(self, etc_dir: Path = Path("/etc")):
        self.etc_dir = etc_dir

    def failed_service_count(self) -> int:
        out = _output(["systemctl", "--failed", "--no-legend", "--plain"])
        return len([line for line in out.splitlines() if line.strip()])

    def pending_config_conflicts(self) -> list[str]:
        found = []
        for dirpath, _dirnames, filenames in os.walk(self.etc_dir):
            for name in filenames:
                if name.endswith(CONFIG_CONFLICT_SUFFIXES):
                    found.append(os.path.join(dirpath, name))
        return sorted(found)

    def broken_dependencies(self) -> str:
        try:
            cp = run_cmd(["pacman", "-Dk"], timeout=120, check=False)
        except (CommandError, FileNotFoundError) as exc:
            logger.warning("Dependency check failed: %s", exc)
            return ""
        return "" if cp.returncode == 0 else cp.stdout.strip()

    def orphaned_packages(self) -> list[str]:
        out = _output(["pacman", "-Qdtq"])
        return [line.strip() for line in out.splitlines() if line.strip()]

    def recent_kernel_log(self) -> str:
        out = _output(["journalctl", "-k", "-p", "err", "-b", "--no-pager", "-q", "-n", str(KERNEL_LOG_LINES)])
        return out.strip()

    def collect(self) -> SystemState:
        return SystemState(
            failed_service_count=self.failed_service_count(),
            pending_config_conflict_count=len(self.pending_config_conflicts()),
            broken_dependency_summary=self.broken_dependencies(),
            orphaned_packages=self.orphaned_packages(),
            recent_kernel_log=self.recent_kernel_log(),
        )

    def health_snapshot(self) -> HealthSnapshot:
        return HealthSnapshot(
            failed_service_count=self.failed_service_count(),
            pending_config_conflict_count=len(self.pending_config_conflicts()),
        )
