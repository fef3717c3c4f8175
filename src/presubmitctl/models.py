#!/usr/bin/env python3
"""Data model shared by the parser, resolver, classifier and renderer."""

from dataclasses import dataclass, field
from enum import Enum

UNKNOWN_RESULT = "UNKNOWN"


class TestStatus(str, Enum):
    """Overall outcome of one shard execution."""

    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    TIMED_OUT = "timed-out"
    SKIPPED = "skipped"
    MERGE_CONFLICT = "merge-conflict"


class FailureType(Enum):
    """Classification group of a failing (or previously failing) test case."""

    NEW = "NEW FAILURE"
    KNOWN = "KNOWN FAILURE"
    FIXED = "FIXED FAILURE"

    def header(self, count: int) -> str:
        """Group header, pluralized when the group has more than one entry."""
        return self.value + "S" if count > 1 else self.value


# Output order of the classification groups.
FAILURE_TYPE_ORDER = (FailureType.NEW, FailureType.KNOWN, FailureType.FIXED)


@dataclass(frozen=True)
class TestCase:
    """One test case parsed from an xUnit report or a CI test report."""

    __test__ = False

    class_name: str
    name: str
    failure: str = ""
    skipped: bool = False
    suite: str = ""
    label: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.class_name, self.name)

    @property
    def failed(self) -> bool:
        return bool(self.failure) and not self.skipped


@dataclass(frozen=True)
class TestRunResult:
    """Status record of one shard, read from its status_<test>.json file.

    ``timestamp`` is the submission time in epoch milliseconds, the same
    unit the CI server reports build timestamps in.
    """

    __test__ = False

    status: TestStatus
    test_name: str
    label: str = ""
    timestamp: int = 0
    timeout: int = 0
    merge_conflict_cl: str = ""

    @property
    def shard(self) -> tuple[str, str]:
        return (self.test_name, self.label)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "test_name": self.test_name,
            "label": self.label,
            "timestamp": self.timestamp,
            "timeout": self.timeout,
            "merge_conflict_cl": self.merge_conflict_cl,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TestRunResult":
        """Build a result from decoded status JSON.

        Raises KeyError/ValueError/TypeError on records that do not match
        the status file schema.
        """
        return cls(
            status=TestStatus(data["status"]),
            test_name=str(data["test_name"]),
            label=str(data.get("label") or ""),
            timestamp=int(data.get("timestamp") or 0),
            timeout=int(data.get("timeout") or 0),
            merge_conflict_cl=str(data.get("merge_conflict_cl") or ""),
        )


@dataclass(frozen=True)
class BaselineSnapshot:
    """Failing cases of the postsubmit build a presubmit shard is compared to.

    ``build_number`` is None when no baseline could be resolved; such a
    snapshot has no failures, so every current failure classifies as NEW.
    """

    test_name: str
    label: str = ""
    build_number: int | None = None
    result: str = UNKNOWN_RESULT
    failures: tuple[TestCase, ...] = ()

    @property
    def known(self) -> bool:
        return self.build_number is not None

    @classmethod
    def unknown(cls, test_name: str, label: str = "") -> "BaselineSnapshot":
        return cls(test_name=test_name, label=label)


@dataclass(frozen=True)
class FailedTestCase:
    """A classified test case together with how it is displayed."""

    case: TestCase
    identity: str
    occurrence: int = 1
    test_name: str = ""
    label: str = ""
    link: str = ""


@dataclass
class ClassificationGroups:
    """NEW / KNOWN / FIXED groups, each kept in encounter order."""

    groups: dict[FailureType, list[FailedTestCase]] = field(
        default_factory=lambda: {t: [] for t in FAILURE_TYPE_ORDER}
    )

    def __getitem__(self, failure_type: FailureType) -> list[FailedTestCase]:
        return self.groups[failure_type]

    def add(self, failure_type: FailureType, item: FailedTestCase) -> None:
        self.groups[failure_type].append(item)

    def extend(self, other: "ClassificationGroups") -> None:
        for failure_type in FAILURE_TYPE_ORDER:
            self.groups[failure_type].extend(other[failure_type])

    def items(self):
        """Yield (failure_type, entries) in output order."""
        for failure_type in FAILURE_TYPE_ORDER:
            yield failure_type, self.groups[failure_type]

    def __len__(self) -> int:
        return sum(len(v) for v in self.groups.values())
