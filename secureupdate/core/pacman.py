from __future__ import annotations

import logging
from typing import List

from secureupdate.core.config import RunConfig
from secureupdate.core.models import InventoryEntry
from secureupdate.core.utils import CommandError, run_cmd

logger = logging.getLogger(__name__)

AUR = "aur"


def _run(cmd: list[str], timeout: int = 120) -> str:
    # pacman and yay exit 1 when there is nothing to report, so the exit code
    # is not treated as failure here.
    try:
        return run_cmd(cmd, timeout=timeout, check=False).stdout
    except FileNotFoundError as exc:
        raise CommandError(f"{cmd[0]} not available") from exc


def _is_noise(line: str) -> bool:
    return not line.strip() or line.startswith(("::", "warning:", "error:"))


def list_repo_updates() -> List[InventoryEntry]:
    """Pending updates from sync repositories (official and prebuilt community ones)."""
    out = _run(["pacman", "-Sup", "--print-format", "%r %n %v"])
    entries = []
    for line in out.splitlines():
        if _is_noise(line):
            continue
        parts = line.split()
        if len(parts) != 3:
            logger.debug("Skipping unparseable pacman line: %r", line)
            continue
        repo, name, version = parts
        entries.append(InventoryEntry(name=name, repository=repo, new_version=version))
    return entries


def parse_update_lines(out: str, repository: str) -> List[InventoryEntry]:
    """Parse ``name old -> new`` lines as printed by ``pacman -Qu``/``yay -Qua``."""
    entries = []
    for line in out.splitlines():
        if _is_noise(line):
            continue
        parts = line.split()
        if len(parts) >= 4 and parts[2] == "->":
            entries.append(
                InventoryEntry(name=parts[0], repository=repository, version=parts[1], new_version=parts[3])
            )
        elif parts:
            entries.append(InventoryEntry(name=parts[0], repository=repository))
    return entries


def list_aur_updates() -> List[InventoryEntry]:
    try:
        out = _run(["yay", "-Qua"])
    except CommandError as exc:
        logger.warning("AUR helper unavailable, skipping AUR updates: %s", exc)
        return []
    return parse_update_lines(out, AUR)


def list_installed_from_repo(repository: str) -> List[InventoryEntry]:
    out = _run(["pacman", "-Sl", repository])
    entries = []
    for line in out.splitlines():
        if "[installed" not in line:
            continue
        parts = line.split()
        if len(parts) < 3:
            continue
        entries.append(InventoryEntry(name=parts[1], repository=parts[0], version=parts[2]))
    return entries


def list_foreign_packages() -> List[InventoryEntry]:
    out = _run(["pacman", "-Qm"])
    entries = []
    for line in out.splitlines():
        if _is_noise(line):
            continue
        parts = line.split()
        entries.append(InventoryEntry(name=parts[0], repository=AUR, version=parts[1] if len(parts) > 1 else None))
    return entries


def collect_inventory(config: RunConfig) -> List[InventoryEntry]:
    """Snapshot the candidate packages for this run."""
    if config.full_scan:
        entries: List[InventoryEntry] = []
        repos = [r for r in config.scan_repositories if r != AUR]
        if config.scan_official:
            repos.extend(config.trusted_repositories)
        for repo in repos:
            entries.extend(list_installed_from_repo(repo))
        if AUR in config.scan_repositories:
            entries.extend(list_foreign_packages())
        return entries

    entries = list_repo_updates()
    if AUR in config.scan_repositories:
        entries.extend(list_aur_updates())
    return entries
