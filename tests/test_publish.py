"""Tests for presubmitctl.publish -- posting reports with votes."""

from unittest.mock import MagicMock

import pytest

from presubmitctl.gerrit import Change, GerritError
from presubmitctl.publish import post_message, refs_accepting_label

REF_A = "refs/changes/34/1234/2"
REF_B = "refs/changes/07/7/1"


def fake_gerrit(changes):
    gerrit = MagicMock()
    gerrit.query.return_value = changes
    return gerrit


class TestRefsAcceptingLabel:
    def test_only_changes_with_label(self):
        gerrit = fake_gerrit([
            Change(1234, 2, labels={"Verified": {}}),
            Change(7, 1, labels={"Code-Review": {}}),
        ])
        assert refs_accepting_label(gerrit, "Verified") == {REF_A}
        gerrit.query.assert_called_once_with("status:open")


class TestPostMessage:
    def test_vote_only_where_accepted(self):
        gerrit = fake_gerrit([Change(1234, 2, labels={"Verified": {}})])
        post_message(gerrit, "msg", [REF_A, REF_B], success=True)
        assert gerrit.post_review.call_args_list[0].args == (REF_A, "msg", {"Verified": "+1"})
        assert gerrit.post_review.call_args_list[1].args == (REF_B, "msg", {})

    def test_failure_votes_minus_one(self):
        gerrit = fake_gerrit([Change(1234, 2, labels={"Verified": {}})])
        post_message(gerrit, "msg", [REF_A], success=False)
        gerrit.post_review.assert_called_once_with(REF_A, "msg", {"Verified": "-1"})

    def test_no_label_accepted_posts_message_only(self):
        gerrit = fake_gerrit([])
        post_message(gerrit, "msg", [REF_A], success=False)
        gerrit.post_review.assert_called_once_with(REF_A, "msg", {})

    def test_custom_label(self):
        gerrit = fake_gerrit([Change(1234, 2, labels={"Presubmit": {}})])
        post_message(gerrit, "msg", [REF_A], success=True, label="Presubmit")
        gerrit.post_review.assert_called_once_with(REF_A, "msg", {"Presubmit": "+1"})

    def test_posting_twice_posts_twice(self):
        gerrit = fake_gerrit([])
        post_message(gerrit, "msg", [REF_A], success=True)
        post_message(gerrit, "msg", [REF_A], success=True)
        assert gerrit.post_review.call_count == 2

    def test_error_propagates(self):
        gerrit = fake_gerrit([])
        gerrit.post_review.side_effect = GerritError("down")
        with pytest.raises(GerritError):
            post_message(gerrit, "msg", [REF_A], success=True)
