from __future__ import annotations

import logging
from typing import Iterable, List

from secureupdate.core.config import RunConfig
from secureupdate.core.models import InventoryEntry, OriginTier, PackageTask

logger = logging.getLogger(__name__)

VARIANT_REPOSITORIES = {"chaotic-aur"}


def _strip_suffix(name: str, suffix: str) -> str:
    return name[: -len(suffix)] if name.endswith(suffix) else name


def source_variants(name: str, origin: str) -> tuple[str, ...]:
    """Candidate names to try when fetching a package's build recipe.

    Prebuilt repositories publish names that don't always match the AUR
    package they were built from, so the -git/-bin forms are tried too.
    """
    if origin not in VARIANT_REPOSITORIES:
        return (name,)
    base = _strip_suffix(_strip_suffix(name, "-git"), "-bin")
    candidates = [name, base, f"{base}-git", f"{base}-bin"]
    seen = []
    for c in candidates:
        if c and c not in seen:
            seen.append(c)
    return tuple(seen)


def classify_origin(repository: str, config: RunConfig) -> OriginTier:
    if repository in config.trusted_repositories:
        return OriginTier.OFFICIAL_OPT_IN if config.scan_official else OriginTier.TRUSTED
    if repository not in config.scan_repositories:
        logger.warning("Unrecognised repository %r, package will be scanned", repository)
    return OriginTier.SCAN_REQUIRED


def resolve_inventory(entries: Iterable[InventoryEntry], config: RunConfig) -> List[PackageTask]:
    """Tag every candidate package with its trust tier."""
    tasks: List[PackageTask] = []
    seen = set()
    for entry in entries:
        if entry.name in seen:
            logger.debug("Duplicate inventory entry for %s ignored", entry.name)
            continue
        seen.add(entry.name)
        tasks.append(
            PackageTask(
                name=entry.name,
                origin=entry.repository,
                tier=classify_origin(entry.repository, config),
                source_variants=source_variants(entry.name, entry.repository),
            )
        )
    return tasks


def scan_targets(tasks: Iterable[PackageTask]) -> List[PackageTask]:
    return [t for t in tasks if t.tier != OriginTier.TRUSTED]
