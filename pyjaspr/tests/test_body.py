"""Tests for PR description rendering and stack name suggestions."""

import random
from typing import List, Optional, Sequence

from pyjaspr.github import PullRequest
from pyjaspr.jaspr.body import FOOTER_NOTICE, JASPR_START_COMMENT, build_pull_request_body, history_links
from pyjaspr.jaspr.names import MAX_LENGTH, generate_name, generate_suffix


def make_pr(commit_id: str, number: int, body: str = "") -> PullRequest:
    return PullRequest(
        id=f"PR_{number}", commit_id=commit_id, number=number, head_ref_name=f"jaspr/main/{commit_id}",
        base_ref_name="main", title=commit_id, body=body,
    )


def render(message: str, prs: List[PullRequest], existing: Optional[PullRequest] = None,
           current: str = "b", branches: Sequence[str] = ()) -> str:
    return build_pull_request_body(message, prs, existing, current, list(branches), "github.com", "owner", "repo")


class TestBuildPullRequestBody:
    """Tests for build_pull_request_body."""

    def test_full_template(self) -> None:
        prs = [make_pr("c", 3), make_pr("b", 2), make_pr("a", 1)]
        body = render("Second change\n\nExplains it.\n\ncommit-id: b\n", prs)
        assert body == (
            f"{JASPR_START_COMMENT}\n"
            "### Second change\n"
            "\n"
            "Explains it.\n"
            "\n"
            "**Stack**:\n"
            "- #3\n"
            "- #2 ⬅\n"
            "- #1\n"
            "\n"
            f"{FOOTER_NOTICE}\n"
        )

    def test_commit_id_does_not_leak(self) -> None:
        body = render("Subject\n\ncommit-id: b\n", [])
        assert "commit-id" not in body
        assert "**Stack**" not in body

    def test_user_text_before_marker_is_kept(self) -> None:
        existing = make_pr("b", 2, body=f"Reviewer notes\n\n{JASPR_START_COMMENT}\nold generated text")
        body = render("New subject", [make_pr("b", 2)], existing)
        assert body.startswith(f"Reviewer notes\n\n{JASPR_START_COMMENT}\n### New subject\n")
        assert "old generated text" not in body

    def test_history_links(self) -> None:
        branches = ["jaspr/main/b", "jaspr/main/b_01", "jaspr/main/b_02", "jaspr/main/c_01"]
        body = render("Subject", [make_pr("b", 2)], branches=branches)
        assert (
            "  - [02..Current](https://github.com/owner/repo/compare/jaspr/main/b_02..jaspr/main/b), "
            "[01..02](https://github.com/owner/repo/compare/jaspr/main/b_01..jaspr/main/b_02)\n"
        ) in body

    def test_no_history(self) -> None:
        assert history_links(make_pr("a", 1), ["jaspr/main/a"], "github.com", "owner", "repo") is None


class TestNames:
    """Tests for stack name generation."""

    def test_generate_name(self) -> None:
        assert generate_name("Fix: the   Widget (again)!") == "fix-the-widget-again"

    def test_truncates_at_word_boundary(self) -> None:
        name = generate_name("Implement the extremely long feature description that keeps going")
        assert len(name) <= MAX_LENGTH
        assert not name.endswith("-")
        assert name == "implement-the-extremely-long-feature"

    def test_suffix(self) -> None:
        suffix = generate_suffix(random.Random(1))
        assert len(suffix) == 4 and suffix.isalpha() and suffix.islower()
