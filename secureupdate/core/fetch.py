from __future__ import annotations

import io
import logging
import re
import shutil
import tarfile
import tempfile
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Protocol

import requests

from secureupdate.core.config import RunConfig
from secureupdate.core.models import PackageTask
from secureupdate.core.utils import CommandError, CommandTimeout, run_cmd

logger = logging.getLogger(__name__)


class FetchErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    NO_DIRECTORY = "no_directory"


class FetchError(CommandError):
    def __init__(self, kind: FetchErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class SourceProvider(Protocol):
    def fetch(self, task: PackageTask, dest: Path) -> Path:
        """Place the package's build files under ``dest`` and return their directory."""
        ...


@contextmanager
def workspace(name: str, base_dir: Optional[Path] = None) -> Iterator[Path]:
    """Unique scratch directory for one package, removed on exit."""
    safe = re.sub(r"[^A-Za-z0-9._+-]", "_", name)
    path = Path(tempfile.mkdtemp(prefix=f"secure-update-{safe}-", dir=base_dir))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


def _first_subdir(path: Path) -> Optional[Path]:
    for child in sorted(path.iterdir()):
        if child.is_dir():
            return child
    return None


def _timeout_or_not_found(task: PackageTask, timed_out: bool) -> FetchError:
    tried = ", ".join(task.source_variants)
    if timed_out:
        return FetchError(FetchErrorKind.TIMEOUT, f"Timed out fetching {task.name} (tried: {tried})")
    return FetchError(FetchErrorKind.NOT_FOUND, f"Could not fetch {task.name} (tried: {tried})")


class YaySourceProvider:
    """Fetches build files with ``yay -G``."""

    def __init__(self, timeout: int = 60, command: str = "yay"):
        self.timeout = timeout
        self.command = command

    def fetch(self, task: PackageTask, dest: Path) -> Path:
        timed_out = False
        for variant in task.source_variants or (task.name,):
            try:
                cp = run_cmd([self.command, "-G", variant], timeout=self.timeout, cwd=dest, check=False)
            except CommandTimeout:
                logger.warning("Fetching %s as %s timed out", task.name, variant)
                timed_out = True
                continue
            except FileNotFoundError as exc:
                raise FetchError(FetchErrorKind.NOT_FOUND, f"{self.command} not available") from exc
            if cp.returncode == 0:
                pkg_dir = _first_subdir(dest)
                if pkg_dir is None:
                    raise FetchError(FetchErrorKind.NO_DIRECTORY, f"No package directory for {task.name}")
                return pkg_dir
            logger.debug("Variant %s of %s not found", variant, task.name)
        raise _timeout_or_not_found(task, timed_out)


class AurHttpSourceProvider:
    """Downloads the AUR cgit snapshot tarball over HTTPS."""

    def __init__(self, base_url: str = "https://aur.archlinux.org", timeout: int = 60):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def snapshot_url(self, name: str) -> str:
        return f"{self.base_url}/cgit/aur.git/snapshot/{name}.tar.gz"

    def fetch(self, task: PackageTask, dest: Path) -> Path:
        timed_out = False
        for variant in task.source_variants or (task.name,):
            url = self.snapshot_url(variant)
            try:
                response = requests.get(url, timeout=self.timeout)
            except requests.Timeout:
                logger.warning("Fetching %s timed out", url)
                timed_out = True
                continue
            except requests.RequestException as exc:
                logger.warning("Fetching %s failed: %s", url, exc)
                continue
            if response.status_code != 200 or not response.content:
                logger.debug("Snapshot %s returned HTTP %s", url, response.status_code)
                continue
            try:
                _extract_snapshot(response.content, dest)
            except tarfile.TarError as exc:
                logger.warning("Snapshot for %s is not a valid archive: %s", variant, exc)
                continue
            pkg_dir = dest / variant
            if not pkg_dir.is_dir():
                pkg_dir = _first_subdir(dest)
            if pkg_dir is None:
                raise FetchError(FetchErrorKind.NO_DIRECTORY, f"No package directory for {task.name}")
            return pkg_dir
        raise _timeout_or_not_found(task, timed_out)


def _extract_snapshot(data: bytes, dest: Path) -> None:
    root = dest.resolve()
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
        members = []
        for member in tar.getmembers():
            target = (root / member.name).resolve()
            if root not in target.parents or member.issym() or member.islnk():
                logger.warning("Skipping unsafe archive member %s", member.name)
                continue
            if member.isdev():
                continue
            members.append(member)
        tar.extractall(root, members=members)


def make_provider(config: RunConfig) -> SourceProvider:
    if config.fetch_backend == "aur-http":
        return AurHttpSourceProvider(config.aur_base_url, timeout=config.fetch_timeout)
    return YaySourceProvider(timeout=config.fetch_timeout)
