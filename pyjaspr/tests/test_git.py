"""Unit tests for git module, specifically duplicate commit-id detection and log parsing."""

import pytest

from pyjaspr.git import (
    FIELD_SEP, RECORD_SEP, add_commit_ids_to_local_stack, check_for_duplicate_commit_ids,
    get_commits_with_duplicate_ids, get_local_commit_stack, parse_log,
)
from pyjaspr.tests.helpers import IdSequence, RepoContext
from pyjaspr.typing import Commit, DuplicateCommitIDError, JasprError, NonLinearStackError, RefSpec


class TestDuplicateCommitIDDetection:
    """Tests for duplicate commit-id detection."""

    def test_no_duplicates_passes(self) -> None:
        commits = [
            Commit.from_strings("abc12345", "aaa" * 13 + "a", "First commit"),
            Commit.from_strings("def67890", "bbb" * 13 + "b", "Second commit"),
        ]
        check_for_duplicate_commit_ids(commits)

    def test_empty_stack_passes(self) -> None:
        check_for_duplicate_commit_ids([])

    def test_duplicate_commit_id_raises(self) -> None:
        """Test that duplicate commit-ids raise DuplicateCommitIDError listing both commits."""
        commits = [
            Commit.from_strings("abc12345", "aaa" * 13 + "a", "First commit"),
            Commit.from_strings("abc12345", "bbb" * 13 + "b", "Second commit (duplicate ID)"),
            Commit.from_strings("def67890", "ccc" * 13 + "c", "Third commit"),
        ]
        with pytest.raises(DuplicateCommitIDError) as exc_info:
            check_for_duplicate_commit_ids(commits)

        assert "abc12345" in str(exc_info.value)
        assert "aaa" in str(exc_info.value)
        assert "bbb" in str(exc_info.value)
        assert "def67890" not in str(exc_info.value)
        assert list(exc_info.value.duplicates) == ["abc12345"]

    def test_commits_without_ids_are_ignored(self) -> None:
        commits = [
            Commit.from_strings("", "aaa" * 13 + "a", "No ID commit"),
            Commit.from_strings("", "bbb" * 13 + "b", "Another no ID commit"),
        ]
        assert get_commits_with_duplicate_ids(commits) == {}


class TestParseLog:
    """Tests for parse_log."""

    def _record(self, hash_: str, subject: str, body: str) -> str:
        return FIELD_SEP.join([
            hash_, "", subject, "Author", "author@example.com", "1700000000",
            "Committer", "committer@example.com", "1700000100", body,
        ]) + RECORD_SEP

    def test_parses_records_and_ids(self) -> None:
        output = (
            self._record("a" * 40, "First", "First\n\ncommit-id: one\n")
            + "\n"
            + self._record("b" * 40, "Second", "Second\n")
        )
        commits = parse_log(output)
        assert [c.short_message for c in commits] == ["First", "Second"]
        assert commits[0].id == "one"
        assert commits[1].id is None
        assert commits[0].committer is not None and commits[0].committer.email == "committer@example.com"
        assert commits[0].commit_time is not None and commits[0].commit_time.year == 2023

    def test_empty_output(self) -> None:
        assert parse_log("") == []

    def test_malformed_record_raises(self) -> None:
        with pytest.raises(JasprError):
            parse_log("not" + FIELD_SEP + "enough" + RECORD_SEP)


class TestRealGit:
    """RealGit against a temporary repository."""

    def test_local_commit_stack_is_oldest_first(self, repo_ctx: RepoContext) -> None:
        repo_ctx.commit("one", "id-one")
        repo_ctx.commit("two", "id-two")
        stack = repo_ctx.git_cmd.get_local_commit_stack("origin", "HEAD", "main")
        assert [c.id for c in stack] == ["id-one", "id-two"]

    def test_merge_commits_are_rejected(self, repo_ctx: RepoContext) -> None:
        repo_ctx.commit("one", "id-one")
        repo_ctx.git("checkout -q -b side origin/main")
        repo_ctx.commit("side", "id-side")
        repo_ctx.git("checkout -q development")
        repo_ctx.git("merge --no-ff --no-edit side")
        with pytest.raises(NonLinearStackError):
            repo_ctx.git_cmd.get_local_commit_stack("origin", "HEAD", "main")

    def test_missing_ids_are_back_filled(self, repo_ctx: RepoContext) -> None:
        repo_ctx.commit("has id", "keep-me")
        repo_ctx.commit("no id")
        repo_ctx.commit("also no id")

        stack = get_local_commit_stack(repo_ctx.git_cmd, "origin", "HEAD", "main", IdSequence("new"))

        assert [c.id for c in stack] == ["keep-me", "new1", "new2"]
        assert [c.short_message for c in stack] == ["has id", "no id", "also no id"]
        assert repo_ctx.git_cmd.is_working_directory_clean()

    def test_back_fill_refuses_a_branch_that_is_not_checked_out(self, repo_ctx: RepoContext) -> None:
        repo_ctx.git("checkout -q -b feature origin/main")
        feature = repo_ctx.commit("no id")
        repo_ctx.git("checkout -q development")
        development = repo_ctx.git("rev-parse HEAD")

        with pytest.raises(JasprError, match="missing commit IDs"):
            get_local_commit_stack(repo_ctx.git_cmd, "origin", "feature", "main", IdSequence())

        assert repo_ctx.git("rev-parse HEAD") == development
        assert repo_ctx.git("rev-parse feature") == feature

    def test_back_fill_accepts_a_ref_at_head(self, repo_ctx: RepoContext) -> None:
        repo_ctx.commit("no id")
        stack = get_local_commit_stack(repo_ctx.git_cmd, "origin", "development", "main", IdSequence("new"))
        assert [c.id for c in stack] == ["new1"]

    def test_back_fill_is_idempotent(self, repo_ctx: RepoContext) -> None:
        repo_ctx.commit("one", "id-one")
        stack = repo_ctx.git_cmd.get_local_commit_stack("origin", "HEAD", "main")
        assert add_commit_ids_to_local_stack(repo_ctx.git_cmd, stack, IdSequence()) is False
        assert repo_ctx.git("rev-parse HEAD") == stack[-1].hash

    def test_remote_branches_and_upstream(self, repo_ctx: RepoContext) -> None:
        head = repo_ctx.commit("one", "id-one")
        repo_ctx.git_cmd.push([RefSpec(head, "jaspr/main/id-one")], "origin")
        repo_ctx.git_cmd.fetch("origin")

        by_id = repo_ctx.git_cmd.get_remote_branches_by_id("origin", "jaspr", "main")
        assert by_id["id-one"].commit.hash == head
        assert repo_ctx.git_cmd.get_upstream_branch("origin") is None

        repo_ctx.git_cmd.set_upstream_branch("origin", "jaspr/main/id-one")
        upstream = repo_ctx.git_cmd.get_upstream_branch("origin")
        assert upstream is not None and upstream.name == "jaspr/main/id-one"

    def test_deleting_missing_branch_is_skipped(self, repo_ctx: RepoContext) -> None:
        repo_ctx.git_cmd.push([RefSpec.delete("jaspr/main/never-existed")], "origin")
        assert repo_ctx.remote_branches() == ["main"]

    def test_lease_rejects_moved_branch(self, repo_ctx: RepoContext) -> None:
        first = repo_ctx.commit("one", "id-one")
        repo_ctx.git_cmd.push([RefSpec(first, "jaspr/main/id-one")], "origin")
        second = repo_ctx.commit("two", "id-two")
        with pytest.raises(JasprError):
            repo_ctx.git_cmd.push_with_lease(
                [RefSpec(second, "jaspr/main/id-one").force_push()], {"jaspr/main/id-one": "0" * 40}, "origin",
            )
        assert repo_ctx.remote_head("jaspr/main/id-one") == first
