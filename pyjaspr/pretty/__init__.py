"""Pretty formatting utilities for CLI output."""

from enum import Enum
from typing import Collection, Dict, List, Sequence

from ..typing import RemoteCommitStatus
from ..util import plural

class Status(Enum):
    """One glyph of a status line."""
    SUCCESS = "success"
    FAIL = "fail"
    PENDING = "pending"
    UNKNOWN = "unknown"
    EMPTY = "empty"
    WARNING = "warning"

    @property
    def emoji(self) -> str:
        return STATUS_EMOJI[self]

STATUS_EMOJI = {
    Status.SUCCESS: "✅",
    Status.FAIL: "❌",
    Status.PENDING: "⌛",
    Status.UNKNOWN: "❓",
    Status.EMPTY: "ㄧ",
    Status.WARNING: "❗",
}

STATUS_HEADER = (
    " ┌─────────── commit pushed\n"
    " │ ┌─────────── exists       ┐\n"
    " │ │ ┌───────── checks pass  │ PR\n"
    " │ │ │ ┌─────── ready        │\n"
    " │ │ │ │ ┌───── approved     ┘\n"
    " │ │ │ │ │ ┌─ stack check\n"
    " │ │ │ │ │ │\n"
)

def status_bits(status: RemoteCommitStatus, duplicate_ids: Collection[str]) -> List[Status]:
    """The five per-commit glyphs: pushed, PR exists, checks, ready, approved."""
    local = status.local_commit
    pr = status.pull_request

    if local.id is not None and local.id in duplicate_ids:
        pushed = Status.WARNING
    elif status.remote_commit is None:
        pushed = Status.EMPTY
    elif status.remote_commit.hash != local.hash:
        pushed = Status.WARNING
    else:
        pushed = Status.SUCCESS

    if pr is None:
        checks = Status.EMPTY
    elif status.checks_pass is None:
        checks = Status.PENDING
    else:
        checks = Status.SUCCESS if status.checks_pass else Status.FAIL

    if pr is None or status.approved is None:
        approved = Status.EMPTY
    else:
        approved = Status.SUCCESS if status.approved else Status.FAIL

    return [
        pushed,
        Status.SUCCESS if pr is not None else Status.EMPTY,
        checks,
        Status.SUCCESS if pr is not None and status.is_draft is not True else Status.EMPTY,
        approved,
    ]

def stack_checks(bits: Sequence[Sequence[Status]], num_commits_behind: int) -> List[bool]:
    """Cumulative check, bottom up: a position passes only if it and all below pass."""
    if num_commits_behind != 0:
        return [False] * len(bits)
    checks: List[bool] = []
    ok = True
    for position in bits:
        ok = ok and all(s is Status.SUCCESS for s in position)
        checks.append(ok)
    return checks

def format_status_line(status: RemoteCommitStatus, bits: Sequence[Status], stack_check: bool) -> str:
    glyphs = "".join(s.emoji for s in bits) + (Status.SUCCESS if stack_check else Status.EMPTY).emoji
    parts = [status.local_commit.hash]
    if status.pull_request is not None and status.pull_request.permalink:
        parts.append(status.pull_request.permalink)
    parts.append(status.local_commit.short_message)
    return f"[{glyphs}] " + " : ".join(parts)

def format_behind_message(num_commits_behind: int, remote_name: str, target_ref: str) -> str:
    return (
        f"Your stack is out-of-date with the base branch "
        f"({num_commits_behind} {plural(num_commits_behind, 'commit')} behind {target_ref}).\n"
        f"You'll need to rebase it (`git rebase {remote_name}/{target_ref}`) "
        "before your stack will be mergeable."
    )

def format_named_stack_message(name: str, remote_name: str, ahead: int, behind: int) -> str:
    if ahead == 0 and behind == 0:
        summary = f"Your stack is up to date with the remote stack in '{remote_name}'."
    elif ahead == 0:
        summary = f"Your stack is behind the remote stack in '{remote_name}' by {behind} {plural(behind, 'commit')}."
    elif behind == 0:
        summary = f"Your stack is ahead of the remote stack in '{remote_name}' by {ahead} {plural(ahead, 'commit')}."
    else:
        summary = (
            f"Your stack and the remote stack in '{remote_name}' have diverged, and have "
            f"{ahead} and {behind} different commits each, respectively."
        )
    return f"Stack name: {name}\n{summary}"

def format_duplicate_ids_message(duplicates: Dict[str, List[RemoteCommitStatus]]) -> str:
    lines = ["Some commits in your local stack have duplicate IDs:"]
    for commit_id, statuses in duplicates.items():
        lines.append(f"- {commit_id}: ({', '.join(s.local_commit.short_message for s in statuses)})")
    lines.append("This is likely because you've based new commit messages off of those from other commits.")
    lines.append(
        "Please correct this by amending the commits and deleting the commit-id lines, then retry your operation."
    )
    return "\n".join(lines)
