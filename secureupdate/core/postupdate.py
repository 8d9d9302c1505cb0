"""Post-update analysis: ask the oracle what broke and extract fix issues."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Iterable, List, Optional

from secureupdate.core.config import RunConfig
from secureupdate.core.fetch import workspace
from secureupdate.core.models import Issue, IssueSeverity, SystemState, UpdateOutcome
from secureupdate.core.oracle import OracleClient, build_post_update_prompt
from secureupdate.core.parser import LineKind, TaggedLine, is_header, tokenize

logger = logging.getLogger(__name__)

_LIST_NUMBER_RE = re.compile(r"^\d+[.)]\s+")


class _State(Enum):
    IDLE = "idle"
    IN_ISSUE = "in_issue"


def parse_severity(value: str) -> IssueSeverity:
    word = value.strip(" []()").upper().split("/")[0].split(" ")[0] if value else ""
    try:
        return IssueSeverity(word)
    except ValueError:
        logger.debug("Unrecognised issue severity %r, using MEDIUM", value)
        return IssueSeverity.MEDIUM


def clean_command(raw: str) -> Optional[str]:
    line = raw.strip()
    if not line or line.startswith("```") or line.startswith("#"):
        return None
    if line.startswith("$ "):
        line = line[2:].strip()
    elif line.startswith("- "):
        line = line[2:].strip()
    else:
        line = _LIST_NUMBER_RE.sub("", line, count=1)
    if line.startswith("`") and line.endswith("`") and len(line) > 1:
        line = line.strip("`").strip()
    return line or None


class IssueExtractor:
    """Line-driven state machine turning an oracle response into Issues."""

    def __init__(self):
        self.issues: List[Issue] = []
        self._state = _State.IDLE
        self._reset(IssueSeverity.MEDIUM)

    def _reset(self, severity: IssueSeverity) -> None:
        self._severity = severity
        self._problem = ""
        self._impact = ""
        self._capturing = False
        self._commands: List[str] = []

    def _close(self) -> None:
        if self._state == _State.IN_ISSUE:
            if self._problem and self._commands:
                self.issues.append(
                    Issue(
                        severity=self._severity,
                        problem=self._problem,
                        impact=self._impact,
                        fix_commands=list(self._commands),
                    )
                )
            else:
                logger.debug("Dropping issue block without problem or commands: %r", self._problem)
        self._state = _State.IDLE

    def feed(self, line: TaggedLine) -> None:
        if line.kind == LineKind.SEVERITY:
            self._close()
            self._reset(parse_severity(line.value))
            self._state = _State.IN_ISSUE
            return
        if self._state == _State.IDLE:
            return
        if line.kind == LineKind.END_ISSUE:
            self._close()
        elif line.kind == LineKind.PROBLEM:
            self._problem = line.value
        elif line.kind == LineKind.IMPACT:
            self._impact = line.value
        elif line.kind == LineKind.FIX_COMMANDS:
            self._capturing = True
            if line.value:
                command = clean_command(line.value)
                if command:
                    self._commands.append(command)
        elif not is_header(line.kind) and self._capturing:
            command = clean_command(line.raw)
            if command:
                self._commands.append(command)

    def finish(self) -> List[Issue]:
        self._close()
        return self.issues


def extract_issues(text: str) -> List[Issue]:
    extractor = IssueExtractor()
    for line in tokenize(text):
        extractor.feed(line)
    return extractor.finish()


def analyze_post_update(
    update: UpdateOutcome,
    state: SystemState,
    oracle: OracleClient,
    config: RunConfig,
) -> str:
    """Run the second oracle pass with the full update log available on disk."""
    prompt = build_post_update_prompt(update, state)
    with workspace("post-update") as ws:
        (ws / "update.log").write_text(update.log, encoding="utf-8")
        (ws / "system-state.json").write_text(state.model_dump_json(indent=2), encoding="utf-8")
        return oracle.analyze(ws, prompt, config.post_update_model)


def summarize_issues(issues: Iterable[Issue]) -> dict:
    counts = {s.value: 0 for s in IssueSeverity}
    for issue in issues:
        counts[issue.severity.value] += 1
    return counts
