"""Common types used across the codebase."""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, List, Mapping, NewType, Optional, Protocol, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .github import PullRequest

# Create NewTypes for commit identifiers
CommitID = NewType('CommitID', str)
CommitHash = NewType('CommitHash', str)

# A refspec whose local side is only this prefix deletes the remote ref
FORCE_PUSH_PREFIX = "+"

@dataclass(frozen=True)
class Ident:
    """Name and email of an author or committer."""
    name: str
    email: str

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"

@dataclass(frozen=True)
class Commit:
    """Immutable snapshot of a local or remote commit.

    Amending or cherry-picking never mutates a Commit; git produces a new one
    with a new hash that has to be read back.
    """
    hash: CommitHash
    short_message: str
    full_message: str
    id: Optional[CommitID] = None
    author: Optional[Ident] = None
    committer: Optional[Ident] = None
    author_time: Optional[datetime] = None
    commit_time: Optional[datetime] = None

    @classmethod
    def from_strings(cls, commit_id: Optional[str], commit_hash: str, subject: str, body: str = "") -> 'Commit':
        """Create a Commit from plain strings, mostly used by tests."""
        full_message = subject if not body else f"{subject}\n\n{body}"
        return cls(
            hash=CommitHash(commit_hash),
            short_message=subject,
            full_message=full_message,
            id=CommitID(commit_id) if commit_id else None,
        )

    @property
    def short_hash(self) -> str:
        return self.hash[:8]

@dataclass(frozen=True)
class RefSpec:
    """A push instruction from a local object to a remote branch."""
    local_ref: str
    remote_ref: str

    @classmethod
    def delete(cls, remote_ref: str) -> 'RefSpec':
        return cls(FORCE_PUSH_PREFIX, remote_ref)

    @property
    def is_delete(self) -> bool:
        return self.local_ref == FORCE_PUSH_PREFIX

    @property
    def is_forced(self) -> bool:
        return self.local_ref.startswith(FORCE_PUSH_PREFIX)

    def force_push(self) -> 'RefSpec':
        if self.is_forced:
            return self
        return replace(self, local_ref=FORCE_PUSH_PREFIX + self.local_ref)

    def __str__(self) -> str:
        return f"{self.local_ref}:{self.remote_ref}"

@dataclass(frozen=True)
class RemoteBranch:
    """A forge branch and the commit it currently points at."""
    name: str
    commit: Commit

@dataclass(frozen=True)
class RemoteRefParts:
    """Decoded form of a per-commit branch name."""
    target_ref: str
    commit_id: CommitID
    revision_num: Optional[int] = None

@dataclass(frozen=True)
class RemoteCommitStatus:
    """One stack position joined against its remote branch and pull request."""
    local_commit: Commit
    remote_commit: Optional[Commit] = None
    pull_request: Optional['PullRequest'] = None
    checks_pass: Optional[bool] = None
    is_draft: Optional[bool] = None
    approved: Optional[bool] = None

    @property
    def is_mergeable(self) -> bool:
        """Open, non-draft, approved PR whose checks concluded and passed."""
        return (
            self.pull_request is not None
            and self.is_draft is not True
            and self.checks_pass is True
            and self.approved is True
        )

class GitInterface(Protocol):
    """Local repository operations the engine depends on."""

    def must_git(self, command: str) -> str:
        ...

    def fetch(self, remote_name: str, prune: bool = False) -> None:
        ...

    def log(self, revision: str = "HEAD", max_count: int = -1) -> List[Commit]:
        ...

    def log_range(self, since: str, until: str) -> List[Commit]:
        ...

    def is_working_directory_clean(self) -> bool:
        ...

    def get_local_commit_stack(self, remote_name: str, local_object: str, target_ref: str) -> List[Commit]:
        ...

    def get_remote_branches(self, remote_name: str) -> List[RemoteBranch]:
        ...

    def get_remote_branches_by_id(self, remote_name: str, prefix: str,
                                  target_ref: Optional[str] = None) -> Dict[str, RemoteBranch]:
        ...

    def reset(self, ref: str) -> None:
        ...

    def branch(self, name: str, start_point: str = "HEAD", force: bool = False) -> None:
        ...

    def checkout(self, ref: str) -> None:
        ...

    def cherry_pick(self, commit: Commit, committer: Optional[Ident] = None) -> Commit:
        ...

    def set_commit_id(self, commit_id: str, committer: Optional[Ident] = None) -> Commit:
        ...

    def push(self, refspecs: Sequence[RefSpec], remote_name: str) -> None:
        ...

    def push_with_lease(self, refspecs: Sequence[RefSpec], expected: Mapping[str, str], remote_name: str) -> None:
        ...

    def get_upstream_branch(self, remote_name: str) -> Optional[RemoteBranch]:
        ...

    def set_upstream_branch(self, remote_name: str, branch_name: str) -> None:
        ...

    def get_current_branch_name(self) -> str:
        ...

    def is_head_detached(self) -> bool:
        ...

    def get_config_value(self, key: str) -> Optional[str]:
        ...

    def get_hooks_dir(self) -> str:
        ...

class JasprError(Exception):
    """A user or workflow error that is reported rather than retried."""

class InvariantViolation(JasprError):
    """The local stack or forge state breaks one of the stack invariants."""

class DuplicateCommitIDError(InvariantViolation):
    """Two or more commits in the stack carry the same commit-id."""

    def __init__(self, duplicates: Mapping[str, Sequence[Commit]]):
        self.duplicates: Dict[str, List[Commit]] = {k: list(v) for k, v in duplicates.items()}
        lines = ["Some commits in your local stack have duplicate IDs:"]
        for commit_id, commits in self.duplicates.items():
            described = ", ".join(f"{c.short_hash} {c.short_message}" for c in commits)
            lines.append(f"- {commit_id}: ({described})")
        super().__init__("\n".join(lines))

class SinglePullRequestPerCommitConstraintViolation(InvariantViolation):
    """More than one open pull request exists for a single commit-id."""

    def __init__(self, prs_by_commit_id: Mapping[str, Sequence['PullRequest']]):
        self.prs_by_commit_id = {k: list(v) for k, v in prs_by_commit_id.items()}
        described = "; ".join(
            f"{commit_id}: {', '.join(f'#{pr.number}' for pr in prs)}"
            for commit_id, prs in self.prs_by_commit_id.items()
        )
        super().__init__(
            "Some commits have multiple open PRs; please correct this and retry your operation: " + described
        )

class NonLinearStackError(InvariantViolation):
    """The stack range contains a merge commit."""

class GitCommandFailed(JasprError):
    """A git command exited with an error."""

class GitHubAuthError(JasprError):
    """The forge rejected our credentials."""

    def __init__(self, message: str = "GitHub authorization failed, please check your token"):
        super().__init__(message)
