"""Status rendering against a real stack."""

from pyjaspr.pretty import STATUS_HEADER
from pyjaspr.tests.helpers import RepoContext
from pyjaspr.typing import RefSpec


def test_empty_stack(repo_ctx: RepoContext) -> None:
    assert repo_ctx.jaspr.get_status_string() == "Stack is empty.\n"


def test_unpushed_stack(repo_ctx: RepoContext) -> None:
    one = repo_ctx.commit("one", "one")
    two = repo_ctx.commit("two", "two")

    status = repo_ctx.jaspr.get_status_string()

    assert status == (
        STATUS_HEADER
        + f"[ㄧㄧㄧㄧㄧㄧ] {two} : two\n"
        + f"[ㄧㄧㄧㄧㄧㄧ] {one} : one\n"
    )


def test_pushed_stack_shows_permalinks_and_stack_check(repo_ctx: RepoContext) -> None:
    repo_ctx.commit("one", "one")
    repo_ctx.commit("two", "two")
    repo_ctx.jaspr.push()
    repo_ctx.github.set_status("one", True, True)
    repo_ctx.github.set_status("two", None, None)

    lines = repo_ctx.jaspr.get_status_string().splitlines()[len(STATUS_HEADER.splitlines()):]

    pr_one = repo_ctx.github.open_pr_for("one")
    pr_two = repo_ctx.github.open_pr_for("two")
    assert lines[0].startswith("[✅✅⌛✅ㄧㄧ] ")
    assert lines[0].endswith(f" : {pr_two.permalink} : two")
    assert lines[1].startswith("[✅✅✅✅✅✅] ")
    assert lines[1].endswith(f" : {pr_one.permalink} : one")


def test_amended_commit_shows_warning(repo_ctx: RepoContext) -> None:
    repo_ctx.commit("one", "one")
    repo_ctx.jaspr.push()
    with open(f"{repo_ctx.repo_dir}/one.txt", "a") as f:
        f.write("more\n")
    repo_ctx.git("commit -q -a --amend --no-edit")

    status = repo_ctx.jaspr.get_status_string()

    assert "[❗✅⌛✅ㄧㄧ]" in status


def test_duplicate_ids_are_listed(repo_ctx: RepoContext) -> None:
    repo_ctx.commit("first", "same")
    repo_ctx.commit("second", "same")

    status = repo_ctx.jaspr.get_status_string()

    assert "Some commits in your local stack have duplicate IDs:" in status
    assert "- same: (first, second)" in status
    assert status.count("[❗") == 2


def test_explicit_ref_spec(repo_ctx: RepoContext) -> None:
    one = repo_ctx.commit("one", "one")
    repo_ctx.commit("two", "two")

    status = repo_ctx.jaspr.get_status_string(RefSpec(one, "main"))

    assert " : one\n" in status
    assert " : two\n" not in status
