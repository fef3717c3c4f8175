#!/usr/bin/env python3
"""Gerrit REST client: query open changes and post reviews.

Changes are addressed by their review ref, refs/changes/<xx>/<change>/<patchset>.
"""

import json
import logging
import re
from dataclasses import dataclass, field

import requests

from presubmitctl.config import Credential

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30

# Gerrit prefixes JSON responses with this line to defeat XSSI.
_XSSI_PREFIX = ")]}'"

_REF_RE = re.compile(r"^refs/changes/\d+/(\d+)/(\d+)$")


class GerritError(RuntimeError):
    """A Gerrit request failed or returned an unexpected document."""


@dataclass(frozen=True)
class Change:
    number: int
    patchset: int
    project: str = ""
    labels: dict = field(default_factory=dict, hash=False)

    @property
    def reference(self) -> str:
        return f"refs/changes/{self.number % 100:02d}/{self.number}/{self.patchset}"


def parse_ref(ref: str) -> tuple[int, int]:
    """Return (change number, patchset) of a review ref."""
    m = _REF_RE.match(ref)
    if not m:
        raise ValueError(
            f"Invalid ref format: '{ref}'. Expected 'refs/changes/<xx>/<change>/<patchset>'."
        )
    return int(m.group(1)), int(m.group(2))


def _decode(text: str):
    if text.startswith(_XSSI_PREFIX):
        text = text[len(_XSSI_PREFIX):]
    return json.loads(text)


class GerritClient:
    def __init__(self, base_url: str, credential: Credential | None = None,
                 timeout: int = REQUEST_TIMEOUT):
        if not base_url:
            raise ValueError("Gerrit URL is not set")
        self.base_url = base_url.rstrip("/")
        self.auth = (credential.username, credential.password) if credential else None
        self.timeout = timeout

    def _url(self, path: str) -> str:
        # Authenticated REST endpoints live under /a/.
        prefix = "/a" if self.auth else ""
        return f"{self.base_url}{prefix}/{path.lstrip('/')}"

    def query(self, query: str) -> list[Change]:
        """Return the changes matching query, at their current patchset."""
        url = self._url("changes/")
        try:
            resp = requests.get(
                url,
                params=[("q", query), ("o", "CURRENT_REVISION"), ("o", "LABELS")],
                auth=self.auth,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = _decode(resp.text)
        except requests.RequestException as e:
            raise GerritError(f"GET {url} failed: {e}") from e
        except ValueError as e:
            raise GerritError(f"GET {url} returned invalid JSON: {e}") from e

        changes = []
        try:
            for item in data:
                revision = item.get("revisions", {}).get(item.get("current_revision"), {})
                changes.append(Change(
                    number=int(item["_number"]),
                    patchset=int(revision.get("_number", 0)),
                    project=item.get("project", ""),
                    labels=item.get("labels") or {},
                ))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise GerritError(f"unexpected change list from {url}: {e!r}") from e
        return changes

    def post_review(self, ref: str, message: str, labels: dict[str, str] | None = None) -> None:
        """Post message (and label votes) to the patchset named by ref."""
        change, patchset = parse_ref(ref)
        url = self._url(f"changes/{change}/revisions/{patchset}/review")
        body: dict = {"message": message}
        if labels:
            body["labels"] = labels
        try:
            resp = requests.post(url, json=body, auth=self.auth, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise GerritError(f"POST {url} failed: {e}") from e
