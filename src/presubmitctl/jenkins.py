#!/usr/bin/env python3
"""Minimal Jenkins JSON API client.

Only the lookups the presubmit report needs: build metadata for a build
spec and the failing cases of a build's test report. A build spec is the
job path below /job/, e.g. "vanadium-go-test/L=linux-slave/42" or
"vanadium-go-test/lastCompletedBuild".
"""

import logging
from dataclasses import dataclass

import requests

from presubmitctl.models import TestCase

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30

# Case statuses in a Jenkins test report that count as failing.
FAILED_CASE_STATUSES = ("FAILED", "REGRESSION")


class JenkinsError(RuntimeError):
    """A Jenkins request failed or returned an unexpected document."""


@dataclass(frozen=True)
class BuildInfo:
    number: int
    timestamp: int
    result: str
    building: bool = False


def build_spec(job_name: str, build: str | int, label: str = "",
               multi_configuration: bool = False) -> str:
    """Compose the build spec for a build of job_name.

    Builds of multi-configuration jobs are addressed per label, since the
    same test passes or fails independently on each executor.
    """
    if multi_configuration:
        return f"{job_name}/L={label}/{build}"
    return f"{job_name}/{build}"


class JenkinsClient:
    def __init__(self, host: str, user: str = "", token: str = "",
                 timeout: int = REQUEST_TIMEOUT):
        if not host:
            raise ValueError("Jenkins host is not set")
        self.host = host.rstrip("/")
        self.auth = (user, token) if user and token else None
        self.timeout = timeout

    def _get_json(self, path: str):
        url = f"{self.host}/job/{path}/api/json"
        try:
            resp = requests.get(
                url, auth=self.auth, headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise JenkinsError(f"GET {url} failed: {e}") from e
        try:
            return resp.json()
        except ValueError as e:
            raise JenkinsError(f"GET {url} returned invalid JSON: {e}") from e

    def build_info(self, spec: str) -> BuildInfo:
        """Fetch number, timestamp (epoch ms) and result of a build."""
        data = self._get_json(spec)
        try:
            return BuildInfo(
                number=int(data["number"]),
                timestamp=int(data["timestamp"]),
                result=data.get("result") or "",
                building=bool(data.get("building", False)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise JenkinsError(f"unexpected build info for {spec}: {e!r}") from e

    def failed_test_cases(self, spec: str) -> list[TestCase]:
        """Return the failing cases of the build's test report, in report order."""
        data = self._get_json(f"{spec}/testReport")
        failed = []
        try:
            for suite in data.get("suites") or []:
                for case in suite.get("cases") or []:
                    if case.get("status") in FAILED_CASE_STATUSES:
                        failed.append(TestCase(
                            class_name=case.get("className", ""),
                            name=case.get("name", ""),
                            failure=case.get("errorDetails") or case["status"],
                            suite=suite.get("name", ""),
                        ))
        except (KeyError, TypeError, AttributeError) as e:
            raise JenkinsError(f"unexpected test report for {spec}: {e!r}") from e
        return failed
