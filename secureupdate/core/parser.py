"""Tagged-line tokenizer and verdict parser for oracle responses.

The oracle is free text. Every line is tagged by what it looks like, and
field extraction only ever looks at tags, so a broken or missing field
never stops the others from being read.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Iterator, List, NamedTuple, Optional

from pydantic import BaseModel

from secureupdate.core.models import RiskLevel, Verdict


class LineKind(str, Enum):
    VERDICT = "VERDICT"
    RISK = "RISK"
    SUMMARY = "SUMMARY"
    DETAILS = "DETAILS"
    REMEDIATION = "REMEDIATION"
    SEVERITY = "SEVERITY"
    PROBLEM = "PROBLEM"
    IMPACT = "IMPACT"
    FIX_COMMANDS = "FIX_COMMANDS"
    END_ISSUE = "END_ISSUE"
    HEADER = "HEADER"
    TEXT = "TEXT"
    BLANK = "BLANK"


class TaggedLine(NamedTuple):
    kind: LineKind
    value: str
    raw: str


KNOWN_KEYS = {
    "VERDICT": LineKind.VERDICT,
    "RISK": LineKind.RISK,
    "RISK LEVEL": LineKind.RISK,
    "SUMMARY": LineKind.SUMMARY,
    "DETAILS": LineKind.DETAILS,
    "REMEDIATION": LineKind.REMEDIATION,
    "SEVERITY": LineKind.SEVERITY,
    "PROBLEM": LineKind.PROBLEM,
    "IMPACT": LineKind.IMPACT,
    "FIX_COMMANDS": LineKind.FIX_COMMANDS,
    "FIX COMMANDS": LineKind.FIX_COMMANDS,
}

# Optional markdown decoration (``**VERDICT:**``, ``## RISK:``) around a key.
_KEY_RE = re.compile(r"^[\s#>*_`]*([A-Za-z][A-Za-z_ ]*?)[*_`]*\s*:[*_`]*\s?(.*)$")
_END_ISSUE_RE = re.compile(r"^[\s#>*_`]*END[_ ]ISSUE[*_`]*\s*$", re.IGNORECASE)
_HEADER_RE = re.compile(r"^[\s#>*_`]*[A-Z][A-Z0-9_ ]*[*_`]*\s*:")


def tag_line(line: str) -> TaggedLine:
    """Tag a single line. Known keys match case-insensitively."""
    raw = line.rstrip("\r\n")
    if not raw.strip():
        return TaggedLine(LineKind.BLANK, "", raw)
    if _END_ISSUE_RE.match(raw):
        return TaggedLine(LineKind.END_ISSUE, "", raw)
    m = _KEY_RE.match(raw)
    if m:
        key = m.group(1).strip().upper()
        kind = KNOWN_KEYS.get(key)
        if kind is not None:
            return TaggedLine(kind, m.group(2).strip().strip("*_`").strip(), raw)
    if _HEADER_RE.match(raw):
        return TaggedLine(LineKind.HEADER, raw.split(":", 1)[1].strip(), raw)
    return TaggedLine(LineKind.TEXT, raw.strip(), raw)


def tokenize(text: str) -> Iterator[TaggedLine]:
    for line in (text or "").splitlines():
        yield tag_line(line)


def is_header(kind: LineKind) -> bool:
    return kind not in (LineKind.TEXT, LineKind.BLANK)


class ParsedResponse(BaseModel):
    verdict: Verdict = Verdict.UNKNOWN
    risk: RiskLevel = RiskLevel.UNKNOWN
    summary: str = ""
    remediation: Optional[str] = None


def _first(lines: Iterable[TaggedLine], kind: LineKind) -> Optional[str]:
    for line in lines:
        if line.kind == kind:
            return line.value
    return None


def parse_verdict_value(value: Optional[str]) -> Verdict:
    if not value:
        return Verdict.UNKNOWN
    text = value.strip(" []()\"'").upper()
    if "/" in text:
        # Echo of the prompt's "[SAFE/THREAT DETECTED]" placeholder.
        return Verdict.UNKNOWN
    if text.startswith(("NOT SAFE", "UNSAFE", "THREAT")):
        return Verdict.THREAT_DETECTED
    if re.match(r"SAFE\b", text):
        return Verdict.SAFE
    if "THREAT" in text or "MALICIOUS" in text or "UNSAFE" in text or "NOT SAFE" in text:
        return Verdict.THREAT_DETECTED
    return Verdict.UNKNOWN


def parse_risk_value(value: Optional[str]) -> RiskLevel:
    if not value:
        return RiskLevel.UNKNOWN
    text = value.strip(" []()\"'").upper()
    if "/" in text:
        return RiskLevel.UNKNOWN
    m = re.match(r"[A-Z]+", text)
    if not m:
        return RiskLevel.UNKNOWN
    word = m.group(0)
    if word == "UNKNOWN":
        return RiskLevel.UNKNOWN
    try:
        return RiskLevel(word)
    except ValueError:
        return RiskLevel.UNKNOWN


def extract_remediation(lines: List[TaggedLine]) -> Optional[str]:
    """Text between a REMEDIATION header and the next all-caps header."""
    collected: List[str] = []
    inside = False
    for line in lines:
        if not inside:
            if line.kind == LineKind.REMEDIATION:
                inside = True
                if line.value:
                    collected.append(line.value)
            continue
        if is_header(line.kind) and _HEADER_RE.match(line.raw):
            break
        collected.append(line.raw.rstrip())
    text = "\n".join(collected).strip()
    return text or None


def parse_response(text: str) -> ParsedResponse:
    lines = list(tokenize(text))
    return ParsedResponse(
        verdict=parse_verdict_value(_first(lines, LineKind.VERDICT)),
        risk=parse_risk_value(_first(lines, LineKind.RISK)),
        summary=_first(lines, LineKind.SUMMARY) or "",
        remediation=extract_remediation(lines),
    )
