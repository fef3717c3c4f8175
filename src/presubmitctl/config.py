#!/usr/bin/env python3
"""Run configuration threaded through every presubmitctl pass.

Values come from command-line flags with environment fallbacks. Nothing in
the package reads flags or environment variables after a Config is built.
"""

import logging
import netrc
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_PRESUBMIT_JOB = "vanadium-presubmit-test"
DEFAULT_REPORT_BASE_URL = "http://goto.google.com/vpst"
DEFAULT_QUERY = "status:open"
DEFAULT_VOTE_LABEL = "Verified"
DEFAULT_MAX_LOOKBACK = 100
DEFAULT_TEST_TIMEOUT = 10 * 60

# Jenkins jobs sharded across executor labels (OS/arch matrices).
MULTI_CONFIGURATION_JOBS = frozenset({
    "third_party-go-test",
    "vanadium-go-build",
    "vanadium-go-test",
    "vanadium-integration-test",
})


@dataclass(frozen=True)
class Credential:
    username: str
    password: str


@dataclass
class Config:
    """Settings for one presubmitctl invocation.

    Attributes:
        workspace: CI workspace; shard files live under
            <workspace>/test_results/<build_number>/.
        build_number: Build number of the presubmit master job.
        presubmit_job: Name of the presubmit master job.
        jenkins_host: Base URL of the CI server (".../jenkins").
        jenkins_user: CI login; with jenkins_token enables basic auth.
        jenkins_token: API token of jenkins_user.
        report_base_url: Base URL of per-shard test report pages.
        gerrit_url: Base URL of the review server.
        gerrit_credential: Review server login, None for anonymous access.
        refs: Review refs ("refs/changes/xx/N/P") being tested.
        projects: Projects the refs belong to, passed back in rerun links.
        tests: All tests of this presubmit run, passed back in rerun links.
        vote_label: Review label voted on when a change accepts it.
        query: Review query selecting open changes.
        multi_configuration_jobs: Jobs whose builds are scoped by label.
        max_lookback: Upper bound on builds walked by the baseline resolver.
        parallel_baselines: Resolve shard baselines concurrently.
        rotation_file: Build cop rotation XML, None to skip the notice.
        dry_run: Render but do not post.
    """

    workspace: str = ""
    build_number: int = 0
    presubmit_job: str = DEFAULT_PRESUBMIT_JOB
    jenkins_host: str = ""
    jenkins_user: str = ""
    jenkins_token: str = ""
    report_base_url: str = DEFAULT_REPORT_BASE_URL
    gerrit_url: str = ""
    gerrit_credential: Credential | None = None
    refs: list[str] = field(default_factory=list)
    projects: list[str] = field(default_factory=list)
    tests: list[str] = field(default_factory=list)
    vote_label: str = DEFAULT_VOTE_LABEL
    query: str = DEFAULT_QUERY
    multi_configuration_jobs: frozenset[str] = MULTI_CONFIGURATION_JOBS
    max_lookback: int = DEFAULT_MAX_LOOKBACK
    parallel_baselines: bool = False
    rotation_file: str | None = None
    dry_run: bool = False

    @property
    def results_dir(self) -> str:
        """Directory holding the shard directories of this master build."""
        return os.path.join(self.workspace, "test_results", str(self.build_number))

    @property
    def master_job_url(self) -> str:
        return f"{self.jenkins_host.rstrip('/')}/job/{self.presubmit_job}"

    def is_multi_configuration_job(self, job_name: str) -> bool:
        return job_name in self.multi_configuration_jobs


def split_list(value: str | None, sep: str = ":") -> list[str]:
    """Split a separator-joined flag value, dropping empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(sep) if item.strip()]


def gerrit_credential(gerrit_url: str, netrc_path: str | None = None) -> Credential | None:
    """Look up review server credentials.

    GERRIT_USER/GERRIT_PASSWORD take precedence over a .netrc entry for the
    review server host. Returns None when neither is available.
    """
    user = os.environ.get("GERRIT_USER")
    password = os.environ.get("GERRIT_PASSWORD")
    if user and password:
        return Credential(user, password)

    host = urlparse(gerrit_url).hostname
    if not host:
        return None
    try:
        auth = netrc.netrc(netrc_path).authenticators(host)
    except FileNotFoundError:
        return None
    except netrc.NetrcParseError as e:
        logger.warning("Could not parse .netrc: %s", e)
        return None
    if not auth:
        return None
    login, _, password = auth
    return Credential(login or "", password or "")


def from_args(args) -> Config:
    """Build a Config from parsed argparse arguments and the environment."""
    gerrit_url = getattr(args, "gerrit", "") or os.environ.get("GERRIT_URL", "")
    tests = getattr(args, "tests", "") or os.environ.get("TESTS", "")
    return Config(
        workspace=getattr(args, "workspace", "") or os.environ.get("WORKSPACE", ""),
        build_number=getattr(args, "build_number", 0) or 0,
        presubmit_job=getattr(args, "presubmit_job", "") or DEFAULT_PRESUBMIT_JOB,
        jenkins_host=(
            getattr(args, "jenkins", "") or os.environ.get("JENKINS_HOST", "")
        ),
        jenkins_user=os.environ.get("JENKINS_USER", ""),
        jenkins_token=os.environ.get("JENKINS_TOKEN", ""),
        report_base_url=(
            getattr(args, "report_url", "") or DEFAULT_REPORT_BASE_URL
        ),
        gerrit_url=gerrit_url,
        gerrit_credential=gerrit_credential(gerrit_url) if gerrit_url else None,
        refs=split_list(getattr(args, "refs", "")),
        projects=split_list(getattr(args, "projects", "")),
        tests=split_list(tests, sep=" "),
        vote_label=getattr(args, "vote_label", "") or DEFAULT_VOTE_LABEL,
        max_lookback=getattr(args, "max_lookback", DEFAULT_MAX_LOOKBACK),
        parallel_baselines=bool(getattr(args, "parallel", False)),
        rotation_file=getattr(args, "rotation", None),
        dry_run=bool(getattr(args, "dry_run", False)),
    )
