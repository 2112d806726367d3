"""TAP-like log parser for extracting sub-test failures from CI job logs.

Handles the formats emitted by bats and plain TAP producers:

    not ok 1 - Test name # comment
    not ok 1 Test name in 12345ms
    2025-11-27T00:53:00.5185123Z not ok 1 Test name in 12345ms

The grammar is deliberately permissive; the harness output differs between
runners and a missed failure is worse than an occasional false match.
"""

import logging
import re
from typing import Iterable, Optional

from .models import ParsedLog, SubTestFailure, TestStats

logger = logging.getLogger(__name__)

# Result lines are matched anywhere in the line: runner timestamps, `##[error]`
# annotations and runner tags may precede them.
_TRAILER = r"\s+(?:-\s+)?(.+?)(?:\s+in \d+ms)?(?:\s*#\s*(.*))?$"

NOT_OK_RE = re.compile(r"\bnot ok (\d+)" + _TRAILER, re.IGNORECASE)
OK_RE = re.compile(r"\bok (\d+)" + _TRAILER, re.IGNORECASE)
TIMING_SUFFIX_RE = re.compile(r"\s+in \d+ms$")
GROUP_MARKER_RE = re.compile(r"^##\[group\]")

DEFAULT_FILE_EXTENSIONS = ("bats",)


def _file_patterns(extensions: Iterable[str]) -> tuple[re.Pattern, re.Pattern, re.Pattern]:
    ext = "|".join(re.escape(e) for e in extensions)
    return (
        re.compile(rf"Running\s+(\S+\.(?:{ext}))", re.IGNORECASE),
        re.compile(rf"(\S+\.(?:{ext}))\b"),
        re.compile(rf"^\s*(\S+\.(?:{ext}))\s*$"),
    )


def clean_file_name(name: Optional[str]) -> Optional[str]:
    """Strip GitHub Actions group markers from a detected file name."""
    if not name:
        return None
    return GROUP_MARKER_RE.sub("", name).strip() or None


def _is_skip(comment: str) -> bool:
    lowered = comment.lower()
    return "skip" in lowered or "todo" in lowered


def parse_test_failures(
    log_text: Optional[str],
    file_extensions: Iterable[str] = DEFAULT_FILE_EXTENSIONS,
) -> Optional[ParsedLog]:
    """Parse a job log into failures and pass/fail/skip counts.

    Returns None when the log contains no test result lines at all
    (e.g. the job died before any test ran).
    """
    if not log_text:
        return None

    running_re, inline_re, standalone_re = _file_patterns(file_extensions)
    failures: list[SubTestFailure] = []
    total = passed = failed = skipped = 0
    current_file = None

    for line in log_text.splitlines():
        file_match = running_re.search(line) or inline_re.search(line)
        if file_match:
            current_file = file_match.group(1)

        not_ok = NOT_OK_RE.search(line)
        if not_ok:
            failed += 1
            total += 1
            name = TIMING_SUFFIX_RE.sub("", not_ok.group(2).strip())
            comment = (not_ok.group(3) or "").strip()
            if _is_skip(comment):
                # counted optimistically as a failure above
                skipped += 1
                failed -= 1
            else:
                failures.append(SubTestFailure(
                    number=int(not_ok.group(1)),
                    name=name,
                    comment=comment,
                    file=current_file,
                ))
            continue

        if OK_RE.search(line):
            passed += 1
            total += 1
            continue

        standalone = standalone_re.match(line)
        if standalone:
            current_file = standalone.group(1)

    if total == 0:
        return None

    source_files: list[str] = []
    for failure in failures:
        cleaned = clean_file_name(failure.file)
        if cleaned and cleaned not in source_files:
            source_files.append(cleaned)

    if failures:
        logger.debug(f"Parsed {len(failures)} failures of {total} results")

    return ParsedLog(
        failures=failures,
        stats=TestStats(total=total, passed=passed, failed=failed, skipped=skipped),
        source_files=source_files,
    )
