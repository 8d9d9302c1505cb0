from __future__ import annotations

import json
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable


class CommandError(RuntimeError):
    pass


class CommandTimeout(CommandError):
    pass


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def write_json(path: Path, data: dict) -> None:
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def run_cmd(
    cmd: Iterable[str],
    timeout: int = 600,
    cwd: str | Path | None = None,
    env: dict | None = None,
    log_file: Path | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run a command with stdout and stderr merged.

    Raises CommandTimeout when the timeout expires and, with ``check``, a
    CommandError on a non-zero exit. A missing executable surfaces as
    FileNotFoundError so callers can tell "not installed" from "failed".
    """
    cmd = list(cmd)
    process = subprocess.Popen(
        cmd,
        cwd=str(cwd) if cwd else None,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        stdin=subprocess.DEVNULL,
        text=True,
    )
    try:
        output, _ = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        process.kill()
        process.communicate()
        raise CommandTimeout(f"Command timed out after {timeout}s: {' '.join(cmd)}") from exc

    output = output or ""
    if log_file:
        with log_file.open("a", encoding="utf-8") as f:
            f.write(output)

    if check and process.returncode != 0:
        raise CommandError(f"Command failed ({process.returncode}): {' '.join(cmd)}\n{output}")

    return subprocess.CompletedProcess(args=cmd, returncode=process.returncode, stdout=output, stderr=None)


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
