#!/usr/bin/env python3
"""Display identities and report-page links for test cases.

Links point at the per-shard test report pages of the CI server, whose
URL scheme is fixed by its JUnit plugin:

    <base>/<build>/L=<label>,TEST=<test>/testReport/<package>/<class>/<case>

The plugin sanitizes package/class segments and case segments with two
different rules, and disambiguates a case seen several times in one build
by appending _2, _3, ... to the case segment. Both rules are reproduced
here and must stay separate.
"""

import re
from collections import Counter
from urllib.parse import quote

ROOT_PACKAGE = "(root)"

# Characters the report host replaces in package and class names.
_URL_UNSAFE_CHARS_RE = re.compile(r'[\\/:*?"<>|]')
# Characters the report host replaces in test case names: anything that is
# not a Java identifier character.
_NOT_IDENTIFIER_CHARS_RE = re.compile(r"[^0-9A-Za-z_$]")
# Left unescaped in link path segments, as the report host writes them.
_SAFE_PATH_CHARS = "()$,="


def full_test_name(class_name: str, name: str) -> str:
    """Return "class.name" with every "." replaced by "::".

    Mail and review front ends autolink dotted names as hostnames; "::"
    keeps them plain text. Only for display, never for matching.
    """
    return f"{class_name}.{name}".replace(".", "::")


def split_class_name(class_name: str) -> tuple[str, str]:
    """Split a JUnit class name into (package, class) at the last ".".

    Class names without a "." live in the "(root)" package.
    """
    package, dot, cls = class_name.rpartition(".")
    if not dot:
        return ROOT_PACKAGE, class_name
    return package, cls


def safe_package_or_class_name(name: str) -> str:
    return _URL_UNSAFE_CHARS_RE.sub("_", name)


def safe_test_name(name: str) -> str:
    return _NOT_IDENTIFIER_CHARS_RE.sub("_", name)


def _segment(value: str) -> str:
    return quote(value, safe=_SAFE_PATH_CHARS)


def _suffix(occurrence: int) -> str:
    return f"_{occurrence}" if occurrence > 1 else ""


def identity(class_name: str, name: str, occurrence: int = 1) -> str:
    """Display identity of a case; repeated occurrences gain a _<n> suffix."""
    return full_test_name(class_name, name) + _suffix(occurrence)


def result_url(
    base_url: str,
    build_number: int,
    class_name: str,
    name: str,
    occurrence: int,
    test_name: str,
    label: str,
) -> str:
    """URL of a case's result page on the report host."""
    package, cls = split_class_name(class_name)
    return (
        f"{base_url.rstrip('/')}/{build_number}"
        f"/{_segment(f'L={label},TEST={test_name}')}"
        f"/testReport/{_segment(safe_package_or_class_name(package))}"
        f"/{_segment(safe_package_or_class_name(cls))}"
        f"/{_segment(safe_test_name(name) + _suffix(occurrence))}"
    )


class SeenTestCounter:
    """Counts how often each test identity has been seen in one report pass.

    Keyed by the full test name and the executor label, since the report
    host numbers repeated cases per shard configuration. Create one per
    pass; counts are meaningless across passes.
    """

    def __init__(self):
        self._counts: Counter = Counter()

    @staticmethod
    def _key(class_name: str, name: str, label: str) -> str:
        key = full_test_name(class_name, name)
        return f"{key}-{label}" if label else key

    def see(self, class_name: str, name: str, label: str = "") -> int:
        """Record one encounter and return the occurrence count so far."""
        key = self._key(class_name, name, label)
        self._counts[key] += 1
        return self._counts[key]

    def count(self, class_name: str, name: str, label: str = "") -> int:
        return self._counts[self._key(class_name, name, label)]
