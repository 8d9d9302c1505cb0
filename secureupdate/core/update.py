from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from secureupdate.core.config import RunConfig
from secureupdate.core.models import UpdateOutcome
from secureupdate.core.utils import CommandError, run_cmd

logger = logging.getLogger(__name__)


def apply_update(
    packages: Iterable[str],
    config: RunConfig,
    log_file: Optional[Path] = None,
) -> UpdateOutcome:
    """Run the system update and capture its exit code and combined output.

    The configured command performs a full upgrade; ``packages`` only records
    what the gate approved. A non-zero exit is returned, not raised, so the
    post-update pass can still look at what happened.
    """
    packages = list(packages)
    cmd = list(config.update_command)
    logger.info("Running update: %s", " ".join(cmd))
    try:
        cp = run_cmd(cmd, timeout=config.update_timeout, log_file=log_file, check=False)
    except FileNotFoundError as exc:
        raise CommandError(f"{cmd[0]} not available") from exc
    except CommandError as exc:
        logger.error("Update did not finish: %s", exc)
        return UpdateOutcome(exit_code=124, log=str(exc), packages=packages)
    if cp.returncode != 0:
        logger.error("Update exited with %s", cp.returncode)
    return UpdateOutcome(exit_code=cp.returncode, log=cp.stdout, packages=packages)
