"""Git interfaces and implementation."""

import os
import shlex
import uuid
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional, Sequence
import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..typing import (
    Commit, CommitHash, CommitID, DuplicateCommitIDError, GitCommandFailed, Ident, JasprError,
    NonLinearStackError, RefSpec, RemoteBranch,
)
from .footers import COMMIT_ID_LABEL, add_footers, get_commit_id
from .refs import get_remote_ref_parts

if TYPE_CHECKING:
    from ..config.models import JasprConfig

# Get module logger
logger = logging.getLogger(__name__)

FIELD_SEP = "\x1f"
RECORD_SEP = "\x1e"

# hash, parents, subject, author, committer, full message
LOG_FORMAT = "%x1f".join(["%H", "%P", "%s", "%an", "%ae", "%at", "%cn", "%ce", "%ct", "%B"]) + "%x1e"
REF_FORMAT = "%1f".join([
    "%(refname)", "%(objectname)", "%(subject)", "%(authorname)", "%(authoremail)",
    "%(committername)", "%(committeremail)", "%(contents)",
]) + "%1e"

def generate_commit_id() -> str:
    """Mint a fresh commit-id."""
    return str(uuid.uuid4())[:8]

def _ident_env(ident: Optional[Ident]) -> Optional[Dict[str, str]]:
    if ident is None:
        return None
    return {
        "GIT_COMMITTER_NAME": ident.name,
        "GIT_COMMITTER_EMAIL": ident.email,
    }

def _timestamp(value: str) -> Optional[datetime]:
    return datetime.fromtimestamp(int(value), tz=timezone.utc) if value else None

def _strip_email(value: str) -> str:
    return value.strip().lstrip("<").rstrip(">")

def parse_log(output: str) -> List[Commit]:
    """Parse output of ``git log --format=LOG_FORMAT``."""
    commits: List[Commit] = []
    for record in output.split(RECORD_SEP):
        record = record.lstrip("\n")
        if not record.strip():
            continue
        fields = record.split(FIELD_SEP)
        if len(fields) != 10:
            raise JasprError(f"Unexpected git log record: {record!r}")
        hash_, _parents, subject, an, ae, at, cn, ce, ct, body = fields
        commits.append(Commit(
            hash=CommitHash(hash_),
            short_message=subject,
            full_message=body,
            id=_commit_id(body),
            author=Ident(an, ae),
            committer=Ident(cn, ce),
            author_time=_timestamp(at),
            commit_time=_timestamp(ct),
        ))
    return commits

def _commit_id(message: str) -> Optional[CommitID]:
    commit_id = get_commit_id(message)
    return CommitID(commit_id) if commit_id else None

class RealGit:
    """Real Git implementation backed by GitPython."""
    def __init__(self, config: 'JasprConfig', working_dir: Optional[str] = None):
        """Initialize with config and the directory to run in (defaults to cwd)."""
        self.config: 'JasprConfig' = config
        self.working_dir = working_dir or os.getcwd()
        self._repo: Optional[git.Repo] = None

    @property
    def repo(self) -> git.Repo:
        if self._repo is None:
            try:
                self._repo = git.Repo(self.working_dir, search_parent_directories=True)
            except (InvalidGitRepositoryError, NoSuchPathError):
                raise JasprError("Not in a git repository")
        return self._repo

    def git(self, *args: str, env: Optional[Dict[str, str]] = None) -> str:
        """Run a git subcommand with an argument list."""
        cmd_str = " ".join(args)
        if self.config.user.log_git_commands:
            logger.info(f"> git {cmd_str}")
        else:
            logger.debug(f"> git {cmd_str}")
        method = getattr(self.repo.git, args[0].replace('-', '_'))
        kwargs = {"env": env} if env else {}
        try:
            result = method(*args[1:], **kwargs)
        except GitCommandError as e:
            raise GitCommandFailed(f"Git command failed: {e}") from e
        return result if isinstance(result, str) else str(result)

    def run_cmd(self, command: str) -> str:
        """Run git command given as a single string."""
        return self.git(*shlex.split(command.strip()))

    def must_git(self, command: str) -> str:
        """Run git command, failing on error."""
        return self.run_cmd(command)

    def fetch(self, remote_name: str, prune: bool = False) -> None:
        if prune:
            self.git("fetch", "--prune", remote_name)
        else:
            self.git("fetch", remote_name)

    def log(self, revision: str = "HEAD", max_count: int = -1) -> List[Commit]:
        """Commits reachable from ``revision``, newest first."""
        args = ["log", f"--format={LOG_FORMAT}"]
        if max_count >= 0:
            args.append(f"--max-count={max_count}")
        args.extend([revision, "--"])
        return parse_log(self.git(*args))

    def log_range(self, since: str, until: str) -> List[Commit]:
        """Commits reachable from ``until`` but not ``since``, oldest first."""
        return parse_log(self.git("log", "--reverse", f"--format={LOG_FORMAT}", f"{since}..{until}", "--"))

    def is_working_directory_clean(self) -> bool:
        return not self.repo.is_dirty()

    def get_local_commit_stack(self, remote_name: str, local_object: str, target_ref: str) -> List[Commit]:
        """Commits between the remote target and ``local_object``, oldest first."""
        range_spec = f"{remote_name}/{target_ref}..{local_object}"
        merges = self.git("rev-list", "--min-parents=2", range_spec).strip()
        if merges:
            raise NonLinearStackError(
                f"Your stack contains merge commits ({', '.join(h[:8] for h in merges.split())}); "
                "only linear stacks are supported."
            )
        return self.log_range(f"{remote_name}/{target_ref}", local_object)

    def get_remote_branches(self, remote_name: str) -> List[RemoteBranch]:
        """All branches of ``remote_name`` as of the last fetch."""
        prefix = f"refs/remotes/{remote_name}/"
        output = self.git("for-each-ref", f"--format={REF_FORMAT}", prefix)
        branches: List[RemoteBranch] = []
        for record in output.split(RECORD_SEP):
            record = record.lstrip("\n")
            if not record.strip():
                continue
            refname, object_name, subject, an, ae, cn, ce, contents = record.split(FIELD_SEP)
            name = refname[len(prefix):]
            if name == "HEAD":
                continue
            commit = Commit(
                hash=CommitHash(object_name),
                short_message=subject,
                full_message=contents,
                id=_commit_id(contents),
                author=Ident(an, _strip_email(ae)),
                committer=Ident(cn, _strip_email(ce)),
            )
            branches.append(RemoteBranch(name, commit))
        return branches

    def get_remote_branches_by_id(self, remote_name: str, prefix: str,
                                  target_ref: Optional[str] = None) -> Dict[str, RemoteBranch]:
        """Current per-commit branches keyed by commit-id, ignoring revision history."""
        result: Dict[str, RemoteBranch] = {}
        for branch in self.get_remote_branches(remote_name):
            parts = get_remote_ref_parts(branch.name, prefix)
            if parts is None or parts.revision_num is not None:
                continue
            if target_ref is not None and parts.target_ref != target_ref:
                continue
            result[parts.commit_id] = branch
        return result

    def ref_exists(self, ref: str) -> bool:
        try:
            self.git("rev-parse", "--verify", "--quiet", ref)
        except GitCommandFailed:
            return False
        return True

    def rev_parse(self, ref: str) -> str:
        return self.git("rev-parse", "--verify", f"{ref}^{{commit}}").strip()

    def reset(self, ref: str) -> None:
        self.git("reset", "--hard", ref)

    def branch(self, name: str, start_point: str = "HEAD", force: bool = False) -> None:
        if force:
            self.git("branch", "-f", name, start_point)
        else:
            self.git("branch", name, start_point)

    def checkout(self, ref: str) -> None:
        self.git("checkout", ref)

    def checkout_branch(self, name: str, start_point: str) -> None:
        """Create or reset local branch ``name`` at ``start_point`` and check it out."""
        self.git("checkout", "-B", name, start_point)

    def add(self, file_pattern: str) -> None:
        self.git("add", file_pattern)

    def commit(self, message: str, footers: Optional[Mapping[str, str]] = None,
               committer: Optional[Ident] = None) -> Commit:
        if footers:
            message = add_footers(message, footers)
        self.git("commit", "-m", message, env=_ident_env(committer))
        return self.log("HEAD", 1)[0]

    def cherry_pick(self, commit: Commit, committer: Optional[Ident] = None) -> Commit:
        """Replay ``commit`` onto HEAD, keeping its committer unless overridden."""
        self.git("cherry-pick", "--allow-empty", commit.hash, env=_ident_env(committer or commit.committer))
        return self.log("HEAD", 1)[0]

    def set_commit_id(self, commit_id: str, committer: Optional[Ident] = None) -> Commit:
        """Amend HEAD so its message carries ``commit_id``."""
        head = self.log("HEAD", 1)[0]
        message = add_footers(head.full_message, {COMMIT_ID_LABEL: commit_id})
        self.git("commit", "--amend", "--allow-empty", "-m", message,
                 env=_ident_env(committer or head.committer))
        return self.log("HEAD", 1)[0]

    def push(self, refspecs: Sequence[RefSpec], remote_name: str) -> None:
        """Push all refspecs atomically; deletes of branches that are already gone are dropped."""
        filtered = [
            r for r in refspecs
            if not (r.is_delete and not self.ref_exists(f"refs/remotes/{remote_name}/{r.remote_ref}"))
        ]
        if len(filtered) != len(refspecs):
            logger.debug(f"Filtered refspecs to {[str(r) for r in filtered]}")
        if not filtered:
            logger.info("No refspecs to push")
            return
        args = [str(RefSpec(r.local_ref, f"refs/heads/{r.remote_ref}")) for r in filtered]
        self.git("push", "--atomic", remote_name, *args)

    def push_with_lease(self, refspecs: Sequence[RefSpec], expected: Mapping[str, str],
                        remote_name: str) -> None:
        """Push atomically, refusing if a leased branch moved since we last saw it.

        ``expected`` maps remote branch names to the hash we believe they point at;
        an empty string means the branch must not exist yet.
        """
        if not refspecs:
            logger.info("No refspecs to push")
            return
        leases = [
            f"--force-with-lease=refs/heads/{name}:{value}" for name, value in expected.items()
        ]
        args = []
        for r in refspecs:
            local_ref = r.local_ref
            if r.remote_ref in expected and not r.is_delete:
                local_ref = local_ref.lstrip("+")
            args.append(str(RefSpec(local_ref, f"refs/heads/{r.remote_ref}")))
        self.git("push", "--atomic", *leases, remote_name, *args)

    def get_upstream_branch(self, remote_name: str) -> Optional[RemoteBranch]:
        try:
            upstream = self.git("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}").strip()
        except GitCommandFailed:
            return None
        prefix = f"{remote_name}/"
        if not upstream.startswith(prefix):
            return None
        commits = self.log(upstream, 1)
        if not commits:
            return None
        return RemoteBranch(upstream[len(prefix):], commits[0])

    def set_upstream_branch(self, remote_name: str, branch_name: str) -> None:
        self.git("branch", f"--set-upstream-to={remote_name}/{branch_name}")

    def get_current_branch_name(self) -> str:
        return self.git("rev-parse", "--abbrev-ref", "HEAD").strip()

    def is_head_detached(self) -> bool:
        return self.repo.head.is_detached

    def get_config_value(self, key: str) -> Optional[str]:
        try:
            value = self.git("config", "--get", key).strip()
        except GitCommandFailed:
            return None
        return value or None

    def get_hooks_dir(self) -> str:
        path = self.git("rev-parse", "--git-path", "hooks").strip()
        return path if os.path.isabs(path) else os.path.join(self.repo.working_tree_dir or self.working_dir, path)

def get_commits_with_duplicate_ids(commits: Sequence[Commit]) -> Dict[str, List[Commit]]:
    """Group commits sharing a commit-id; commits without one are ignored."""
    by_id: Dict[str, List[Commit]] = defaultdict(list)
    for commit in commits:
        if commit.id is not None:
            by_id[commit.id].append(commit)
    return {commit_id: group for commit_id, group in by_id.items() if len(group) > 1}

def check_for_duplicate_commit_ids(commits: Sequence[Commit]) -> None:
    """Raise DuplicateCommitIDError if any two commits share a commit-id."""
    duplicates = get_commits_with_duplicate_ids(commits)
    if duplicates:
        raise DuplicateCommitIDError(duplicates)

def add_commit_ids_to_local_stack(git_cmd: RealGit, commits: Sequence[Commit],
                                  new_id: Callable[[], str] = generate_commit_id,
                                  committer: Optional[Ident] = None) -> bool:
    """Rewrite the stack so every commit has a commit-id.

    Returns True if history was rewritten, in which case ``commits`` is stale
    and the caller must read the stack from git again.
    """
    missing_index = next((i for i, c in enumerate(commits) if c.id is None), None)
    if missing_index is None:
        logger.debug("No commits are missing IDs")
        return False

    logger.warning("Some commits in your local stack are missing commit IDs and are being amended to add them.")
    logger.warning("Consider running `jaspr install-commit-id-hook` to avoid this in the future.")
    to_replay = commits[missing_index:]
    git_cmd.reset(f"{to_replay[0].hash}^")
    for commit in to_replay:
        git_cmd.cherry_pick(commit, committer)
        if commit.id is None:
            git_cmd.set_commit_id(new_id(), committer)
    return True

def get_local_commit_stack(git_cmd: RealGit, remote_name: str, local_object: str, target_ref: str,
                           new_id: Callable[[], str] = generate_commit_id,
                           committer: Optional[Ident] = None) -> List[Commit]:
    """Get the local stack, oldest first, minting commit-ids where they're missing."""
    stack = git_cmd.get_local_commit_stack(remote_name, local_object, target_ref)
    if any(c.id is None for c in stack) and git_cmd.rev_parse(local_object) != git_cmd.rev_parse("HEAD"):
        # Rewriting replays onto the checked-out branch
        raise JasprError(
            f"Some commits in {local_object} are missing commit IDs. "
            "Check it out and re-run the command so they can be amended."
        )
    if add_commit_ids_to_local_stack(git_cmd, stack, new_id, committer):
        stack = git_cmd.get_local_commit_stack(remote_name, local_object, target_ref)
    logger.debug(f"get_local_commit_stack: {len(stack)} commits")
    for c in stack:
        logger.debug(f"  {c.short_hash}: id={c.id}, subject='{c.short_message}'")
    return stack
