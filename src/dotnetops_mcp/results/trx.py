"""Visual Studio test results (.trx) parsing."""

from __future__ import annotations

import logging
import os
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from .state import OperationLog

logger = logging.getLogger(__name__)

DEFAULT_TEST_GROUP = "Unit Tests"

DURATION_PATTERN = re.compile(r"^(\d+):(\d+):(\d+)(\.(\d+))?$")
_TIMESTAMP_FRACTION = re.compile(r"\.(\d+)")


class UnitTestStatus(str, Enum):
    """Recorded test status."""

    PASSED = "passed"
    FAILED = "failed"
    INCONCLUSIVE = "inconclusive"


@dataclass
class UnitTestResult:
    """Single test outcome read from a .trx file."""

    test_name: str
    status: UnitTestStatus
    text: str
    group: str = DEFAULT_TEST_GROUP
    outcome: str = ""
    start_time: datetime | None = None
    duration: timedelta = timedelta()

    @property
    def end_time(self) -> datetime | None:
        if self.start_time is None:
            return None
        return self.start_time + self.duration

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "name": self.test_name,
            "group": self.group,
            "status": self.status.value,
            "outcome": self.outcome,
            "durationMs": round(self.duration.total_seconds() * 1000, 3),
            "text": self.text,
        }
        if self.start_time is not None:
            result["startTime"] = self.start_time.isoformat()
            result["endTime"] = self.end_time.isoformat()
        return result


@dataclass
class TestRunSummary:
    """Counts of test outcomes."""

    __test__ = False  # not a pytest test class

    total: int = 0
    passed: int = 0
    failed: int = 0
    inconclusive: int = 0

    @classmethod
    def from_results(cls, results: list[UnitTestResult]) -> TestRunSummary:
        summary = cls(total=len(results))
        for result in results:
            if result.status == UnitTestStatus.PASSED:
                summary.passed += 1
            elif result.status == UnitTestStatus.FAILED:
                summary.failed += 1
            else:
                summary.inconclusive += 1
        return summary

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "inconclusive": self.inconclusive,
        }

    def __str__(self) -> str:
        return (
            f"{self.total} total, {self.passed} passed, "
            f"{self.failed} failed, {self.inconclusive} inconclusive"
        )


def parse_duration(text: str | None) -> timedelta:
    """Parse a .trx duration (``hh:mm:ss.fffffff``).

    The fractional part is read as a decimal fraction of a second. Anything
    that does not match yields zero.
    """
    if not text:
        return timedelta()
    match = DURATION_PATTERN.match(text.strip())
    if not match:
        return timedelta()
    hours, minutes, seconds = (int(match.group(i)) for i in (1, 2, 3))
    fraction = float("0." + match.group(5)) if match.group(5) else 0.0
    return timedelta(hours=hours, minutes=minutes, seconds=seconds + fraction)


def parse_timestamp(text: str | None) -> datetime | None:
    """Parse a .trx timestamp (ISO-8601, up to 7 fractional digits)."""
    if not text or not text.strip():
        return None
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    # datetime only accepts microseconds
    value = _TIMESTAMP_FRACTION.sub(
        lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1
    )
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug(f"Unparseable test start time: {text}")
        return None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _strip_namespaces(root: ET.Element) -> ET.Element:
    for element in root.iter():
        element.tag = _local_name(element.tag)
    return root


def _error_text(output: ET.Element | None) -> str:
    if output is None:
        return ""
    error_info = output.find("ErrorInfo")
    if error_info is None:
        return ""
    message = error_info.findtext("Message") or ""
    stack_trace = error_info.findtext("StackTrace") or ""
    if stack_trace:
        return f"{message}\n{stack_trace}"
    return message


def _output_element(result: ET.Element) -> ET.Element | None:
    output = result.find("Output")
    if output is None:
        # Data-driven and ordered tests nest output under InnerResults
        output = result.find(".//Output")
    return output


def parse_trx(source: str | os.PathLike[str], group: str = DEFAULT_TEST_GROUP) -> list[UnitTestResult]:
    """Parse unit test results from a .trx file or XML text.

    Args:
        source: Path to a .trx file, or the XML itself
        group: Test group recorded on every result

    Returns:
        Results in document order

    Raises:
        ET.ParseError: If the XML is malformed
    """
    text = os.fspath(source)
    if text.lstrip().startswith("<"):
        root = ET.fromstring(text)
    else:
        root = ET.parse(text).getroot()
    _strip_namespaces(root)

    if root.tag == "TestRun":
        elements = root.findall("Results/UnitTestResult")
    else:
        elements = root.findall(".//TestRun/Results/UnitTestResult")

    results: list[UnitTestResult] = []
    for element in elements:
        outcome = element.get("outcome", "")
        output = _output_element(element)

        if outcome.lower() == "passed":
            status = UnitTestStatus.PASSED
            result_text = "Passed"
        elif outcome.lower() == "notexecuted":
            status = UnitTestStatus.INCONCLUSIVE
            result_text = "Ignored" if output is None else _error_text(output)
        else:
            status = UnitTestStatus.FAILED
            result_text = "No output found" if output is None else _error_text(output)

        results.append(
            UnitTestResult(
                test_name=element.get("testName", ""),
                status=status,
                text=result_text,
                group=group,
                outcome=outcome,
                start_time=parse_timestamp(element.get("startTime")),
                duration=parse_duration(element.get("duration")),
            )
        )

    return results


def record_unit_test_results(
    log: OperationLog,
    trx_path: str,
    test_group: str | None = None,
) -> list[UnitTestResult]:
    """Read a .trx file and log the overall outcome.

    Returns:
        Parsed results, empty when the file is missing
    """
    if not os.path.isfile(trx_path):
        log.error(f"Test output file {trx_path} does not exist.")
        return []

    group = test_group if test_group and test_group.strip() else DEFAULT_TEST_GROUP
    try:
        results = parse_trx(trx_path, group=group)
    except ET.ParseError as e:
        log.error(f"Could not parse test output file {trx_path}: {e}")
        return []

    log.debug(f"Read {len(results)} test results from {trx_path}")
    if any(r.status == UnitTestStatus.FAILED for r in results):
        log.error("One or more unit tests failed.")
    else:
        log.info("Tests completed with no failures.")
    return results
