"""Stack reconciliation: status, push, merge, auto-merge and clean."""

import os
import re
import stat
import time
import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..config.models import JasprConfig
from ..git import (
    RealGit, generate_commit_id, get_commits_with_duplicate_ids, get_local_commit_stack,
)
from ..git.refs import (
    build_named_stack_ref, build_remote_ref, build_revision_ref, get_named_stack_ref_parts,
    get_remote_ref_parts,
)
from ..github import GitHubClient, PullRequest
from ..pretty import (
    STATUS_HEADER, format_behind_message, format_duplicate_ids_message, format_named_stack_message,
    format_status_line, stack_checks, status_bits,
)
from ..typing import (
    Commit, DuplicateCommitIDError, GitCommandFailed, Ident, JasprError, RefSpec, RemoteBranch,
    RemoteCommitStatus, SinglePullRequestPerCommitConstraintViolation,
)
from ..util import ensure, plural, windowed_pairs
from .body import build_pull_request_body
from .names import generate_name

# Get module logger
logger = logging.getLogger(__name__)

DEFAULT_LOCAL_OBJECT = "HEAD"

DRAFT_REGEX = re.compile(r'^(draft|wip)\b.*$', re.IGNORECASE)

BRANCH_DELETE_TRIES = 3
BRANCH_DELETE_DELAY = 0.5

COMMIT_MSG_HOOK = "commit-msg"
COMMIT_MSG_HOOK_SOURCE = """#!/bin/sh
# Installed by jaspr: adds a commit-id trailer to new commit messages.
MSG_FILE="$1"
if grep -q '^commit-id: ' "$MSG_FILE"; then
    exit 0
fi
ID=$(LC_ALL=C tr -dc 'a-f0-9' < /dev/urandom | head -c 8)
git interpret-trailers --in-place --if-exists doNothing --trailer "commit-id: $ID" "$MSG_FILE"
"""

@dataclass(frozen=True)
class CleanPlan:
    """Remote branches `clean` would delete, by reason."""
    orphaned_branches: Tuple[str, ...] = ()
    empty_named_stack_branches: Tuple[str, ...] = ()
    abandoned_branches: Tuple[str, ...] = ()

    def all_branches(self) -> List[str]:
        return sorted(set(self.orphaned_branches) | set(self.empty_named_stack_branches)
                      | set(self.abandoned_branches))

    def is_empty(self) -> bool:
        return not self.all_branches()

def find_merge_boundary(statuses: Sequence[RemoteCommitStatus]) -> int:
    """Index of the last commit of the mergeable prefix, -1 if there is none."""
    for index, status in enumerate(statuses):
        if not status.is_mergeable:
            return index - 1
    return len(statuses) - 1

class GitJaspr:
    """Keeps a local commit stack and its pull requests in sync."""
    def __init__(self, github: GitHubClient, git_cmd: RealGit, config: JasprConfig,
                 new_id: Callable[[], str] = generate_commit_id,
                 committer: Optional[Ident] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.github = github
        self.git_cmd = git_cmd
        self.config = config
        self.new_id = new_id
        self.committer = committer
        self.sleep = sleep

    @property
    def remote_name(self) -> str:
        return self.config.remote_name

    @property
    def prefix(self) -> str:
        return self.config.user.remote_branch_prefix

    @property
    def named_stack_prefix(self) -> str:
        return self.config.user.remote_named_stack_branch_prefix

    def default_ref_spec(self) -> RefSpec:
        return RefSpec(DEFAULT_LOCAL_OBJECT, self.config.target_ref)

    def _remote_ref(self, commit: Commit, target_ref: str) -> str:
        return build_remote_ref(ensure(commit.id), target_ref, self.prefix)

    def _tracking(self, branch: str) -> str:
        return f"{self.remote_name}/{branch}"

    def _num_commits_behind(self, local_ref: str, target_ref: str) -> int:
        return len(self.git_cmd.log_range(local_ref, self._tracking(target_ref)))

    def _apply_count(self, ref_spec: RefSpec, count: Optional[int]) -> RefSpec:
        """Narrow ``ref_spec`` to the bottom ``count`` commits (negative drops from the top)."""
        if count is None:
            return ref_spec
        stack = self.git_cmd.get_local_commit_stack(self.remote_name, ref_spec.local_ref, ref_spec.remote_ref)
        limited = stack[:count]
        if not limited:
            raise JasprError(f"--count {count} leaves no commits out of {len(stack)} in your stack")
        return RefSpec(limited[-1].hash, ref_spec.remote_ref)

    def _stop_at_dont_push(self, stack: List[Commit]) -> List[Commit]:
        regex = re.compile(self.config.user.dont_push_regex, re.IGNORECASE)
        for index, commit in enumerate(stack):
            if regex.match(commit.short_message):
                held = len(stack) - index
                logger.warning(
                    f"Not pushing {held} {plural(held, 'commit')} starting at "
                    f"{commit.short_hash} ({commit.short_message}) because it matches the dont-push pattern."
                )
                return stack[:index]
        return stack

    def get_remote_commit_statuses(self, stack: Sequence[Commit], target_ref: str) -> List[RemoteCommitStatus]:
        """Join each stack commit with its remote branch and open PR."""
        branches_by_id = self.git_cmd.get_remote_branches_by_id(self.remote_name, self.prefix, target_ref)
        prs_by_id: Dict[str, PullRequest] = {}
        if stack:
            ids = [c.id for c in stack if c.id is not None]
            prs_by_id = {ensure(pr.commit_id): pr for pr in self.github.get_pull_requests(ids)}
        statuses: List[RemoteCommitStatus] = []
        for commit in stack:
            branch = branches_by_id.get(commit.id) if commit.id is not None else None
            pr = prs_by_id.get(commit.id) if commit.id is not None else None
            statuses.append(RemoteCommitStatus(
                local_commit=commit,
                remote_commit=branch.commit if branch else None,
                pull_request=pr,
                checks_pass=pr.checks_pass if pr else None,
                is_draft=pr.is_draft if pr else None,
                approved=pr.approved if pr else None,
            ))
        return statuses

    def get_status_string(self, ref_spec: Optional[RefSpec] = None) -> str:
        ref_spec = ref_spec or self.default_ref_spec()
        target_ref = ref_spec.remote_ref
        self.git_cmd.fetch(self.remote_name)

        stack = self.git_cmd.get_local_commit_stack(self.remote_name, ref_spec.local_ref, target_ref)
        if not stack:
            return "Stack is empty.\n"

        statuses = self.get_remote_commit_statuses(stack, target_ref)
        duplicates: Dict[str, List[RemoteCommitStatus]] = {}
        for status in statuses:
            if status.local_commit.id is not None:
                duplicates.setdefault(status.local_commit.id, []).append(status)
        duplicates = {k: v for k, v in duplicates.items() if len(v) > 1}

        top = stack[-1].hash
        num_behind = self._num_commits_behind(top, target_ref)
        bits = [status_bits(s, duplicates) for s in statuses]
        checks = stack_checks(bits, num_behind)

        out = [STATUS_HEADER]
        for status, status_flags, check in reversed(list(zip(statuses, bits, checks))):
            out.append(format_status_line(status, status_flags, check) + "\n")

        upstream = self.git_cmd.get_upstream_branch(self.remote_name)
        named_prefix = f"{self.named_stack_prefix}/"
        if upstream is not None and upstream.name.startswith(named_prefix):
            parts = get_named_stack_ref_parts(upstream.name, self.named_stack_prefix)
            name = parts.commit_id if parts else upstream.name[len(named_prefix):]
            tracking = self._tracking(upstream.name)
            ahead = len(self.git_cmd.log_range(tracking, top))
            behind = len(self.git_cmd.log_range(top, tracking))
            out.append("\n" + format_named_stack_message(name, self.remote_name, ahead, behind) + "\n")
        if num_behind > 0:
            out.append("\n" + format_behind_message(num_behind, self.remote_name, target_ref) + "\n")
        if duplicates:
            out.append("\n" + format_duplicate_ids_message(duplicates) + "\n")
        return "".join(out)

    def _check_single_pull_request_per_commit(self, prs: List[PullRequest]) -> List[PullRequest]:
        by_id: Dict[str, List[PullRequest]] = {}
        for pr in prs:
            by_id.setdefault(ensure(pr.commit_id), []).append(pr)
        multiple = {k: v for k, v in by_id.items() if len(v) > 1}
        if multiple:
            raise SinglePullRequestPerCommitConstraintViolation(multiple)
        return prs

    def _update_base_ref_for_reordered_prs(self, prs: List[PullRequest], stack: Sequence[Commit],
                                           target_ref: str) -> List[PullRequest]:
        """Point moved PRs at the target branch before their branches are force-pushed.

        If a PR's base and head ever end up on the same commit the forge closes
        it for good, and a moved PR's old base may be force-pushed first. The
        target branch can't be empty relative to any stack commit. The real
        predecessor is restored once the branches are pushed.
        """
        predecessors = {ensure(c.id): prev for prev, c in windowed_pairs(stack)}
        result: List[PullRequest] = []
        for pr in prs:
            if pr.commit_id not in predecessors:
                continue
            prev = predecessors[pr.commit_id]
            new_base = self._remote_ref(prev, target_ref) if prev is not None else target_ref
            if pr.base_ref_name == new_base or pr.base_ref_name == target_ref:
                result.append(pr)
                continue
            retargeted = replace(pr, base_ref_name=target_ref)
            logger.info(f"Temporarily retargeting #{pr.number} to {target_ref} because its commit moved")
            self.github.update_pull_request(retargeted)
            result.append(retargeted)
        return result

    def _revision_history_refs(self, stack: Sequence[Commit], branches: Sequence[RemoteBranch],
                               out_of_date: Set[str], target_ref: str) -> List[RefSpec]:
        next_revision: Dict[str, int] = {}
        for branch in branches:
            parts = get_remote_ref_parts(branch.name, self.prefix)
            if parts is None or parts.target_ref != target_ref:
                continue
            candidate = (parts.revision_num or 0) + 1
            next_revision[parts.commit_id] = max(next_revision.get(parts.commit_id, 0), candidate)

        existing = {b.name for b in branches}
        refs: List[RefSpec] = []
        for commit in stack:
            ref_name = self._remote_ref(commit, target_ref)
            revision = next_revision.get(ensure(commit.id))
            if revision is None or ref_name not in out_of_date or ref_name not in existing:
                continue
            refs.append(RefSpec(self._tracking(ref_name), build_revision_ref(ref_name, revision)))
        logger.debug(f"revision history refs: {[str(r) for r in refs]}")
        return refs

    def _named_stack_ref_spec(self, stack: Sequence[Commit], stack_name: Optional[str],
                              target_ref: str) -> Optional[RefSpec]:
        if stack_name is not None:
            name: Optional[str] = build_named_stack_ref(stack_name, target_ref, self.named_stack_prefix)
        else:
            upstream = self.git_cmd.get_upstream_branch(self.remote_name)
            name = None
            if upstream is not None and upstream.name.startswith(f"{self.named_stack_prefix}/"):
                name = upstream.name
        if name is None:
            return None
        return RefSpec(stack[-1].hash, name)

    def _with_stack_descriptions(self, prs: Sequence[PullRequest], stack: Sequence[Commit],
                                 existing_by_id: Dict[str, PullRequest],
                                 remote_branch_names: Sequence[str]) -> List[PullRequest]:
        """Rebuild bodies of ``prs`` (in stack order) with the stack listing."""
        commits_by_id = {ensure(c.id): c for c in stack}
        listed = [pr for pr in reversed(prs) if pr.number is not None]
        repo = self.config.repo
        result: List[PullRequest] = []
        for pr in prs:
            commit = commits_by_id.get(ensure(pr.commit_id))
            if commit is None:
                raise JasprError(f"Couldn't find commit for PR with commit-id {pr.commit_id}")
            body = build_pull_request_body(
                commit.full_message,
                listed,
                existing_by_id.get(ensure(pr.commit_id)),
                pr.commit_id,
                remote_branch_names,
                repo.github_host, repo.github_repo_owner or "", repo.github_repo_name or "",
            )
            result.append(replace(pr, body=body))
        return result

    def push(self, ref_spec: Optional[RefSpec] = None, stack_name: Optional[str] = None,
             count: Optional[int] = None) -> None:
        """Publish the local stack as branches and pull requests."""
        ref_spec = ref_spec or self.default_ref_spec()
        logger.debug(f"push {ref_spec} stack_name={stack_name} count={count}")

        if not self.git_cmd.is_working_directory_clean():
            raise JasprError(
                "Your working directory has local changes. Please commit or stash them and re-run the command."
            )
        if stack_name is not None and self.git_cmd.is_head_detached():
            raise JasprError("Pushing a named stack from detached HEAD is not supported.")

        remote = self.remote_name
        target_ref = ref_spec.remote_ref
        self.git_cmd.fetch(remote)

        stack = get_local_commit_stack(self.git_cmd, remote, ref_spec.local_ref, target_ref,
                                       self.new_id, self.committer)
        duplicates = get_commits_with_duplicate_ids(stack)
        if duplicates:
            logger.error("Refusing to push because some commits in your stack have duplicate IDs.")
            logger.error("Run `jaspr status` to see which commits are affected.")
            raise DuplicateCommitIDError(duplicates)

        if count is not None:
            stack = stack[:count]
        stack = self._stop_at_dont_push(stack)
        if not stack:
            logger.warning("Stack is empty.")
            return

        pull_requests = self._check_single_pull_request_per_commit(
            self.github.get_pull_requests([ensure(c.id) for c in stack])
        )
        pull_requests = self._update_base_ref_for_reordered_prs(pull_requests, stack, target_ref)

        remote_branches = self.git_cmd.get_remote_branches(remote)
        remote_heads = {b.name: b.commit.hash for b in remote_branches}
        out_of_date = [
            RefSpec(c.hash, self._remote_ref(c, target_ref)) for c in stack
            if remote_heads.get(self._remote_ref(c, target_ref)) != c.hash
        ]
        revision_refs = self._revision_history_refs(
            stack, remote_branches, {r.remote_ref for r in out_of_date}, target_ref,
        )
        named_ref = self._named_stack_ref_spec(stack, stack_name, target_ref)
        out_of_date_named = [
            r for r in [named_ref] if r is not None and remote_heads.get(r.remote_ref) != r.local_ref
        ]
        refspecs = [r.force_push() for r in out_of_date + out_of_date_named] + revision_refs
        leases = {r.remote_ref: remote_heads.get(r.remote_ref, "") for r in refspecs}
        self.git_cmd.push_with_lease(refspecs, leases, remote)
        logger.info(
            f"Pushed {len(out_of_date)} commit {plural(len(out_of_date), 'ref')}, "
            f"{len(out_of_date_named)} named stack {plural(len(out_of_date_named), 'ref')}, and "
            f"{len(revision_refs)} history {plural(len(revision_refs), 'ref')}"
        )

        if named_ref is not None and not self.git_cmd.is_head_detached():
            self.git_cmd.set_upstream_branch(remote, named_ref.remote_ref)

        existing_by_id = {ensure(pr.commit_id): pr for pr in pull_requests}
        remote_branch_names = [b.name for b in self.git_cmd.get_remote_branches(remote)]
        desired: List[PullRequest] = []
        for prev, commit in windowed_pairs(stack):
            existing = existing_by_id.get(ensure(commit.id))
            desired.append(PullRequest(
                id=existing.id if existing else None,
                commit_id=commit.id,
                number=existing.number if existing else None,
                head_ref_name=self._remote_ref(commit, target_ref),
                # The bottom PR merges into the target, every other one into its predecessor's branch
                base_ref_name=self._remote_ref(prev, target_ref) if prev is not None else target_ref,
                title=commit.short_message,
                body="",
                checks_pass=existing.checks_pass if existing else None,
                approved=existing.approved if existing else None,
                check_conclusion_states=existing.check_conclusion_states if existing else (),
                permalink=existing.permalink if existing else None,
                is_draft=bool(DRAFT_REGEX.match(commit.short_message)),
            ))
        desired = self._with_stack_descriptions(desired, stack, existing_by_id, remote_branch_names)
        to_mutate = [pr for pr in desired if existing_by_id.get(ensure(pr.commit_id)) != pr]

        for pr in to_mutate:
            if pr.id is None:
                self.github.create_pull_request(pr)
            else:
                self.github.update_pull_request(pr)
        logger.info(f"Updated {len(to_mutate)} pull {plural(len(to_mutate), 'request')}")

        # New PRs only have numbers now, so the stack listings need another pass
        current = self._check_single_pull_request_per_commit(
            self.github.get_pull_requests([ensure(c.id) for c in stack])
        )
        current_by_id = {ensure(pr.commit_id): pr for pr in current}
        ordered = [current_by_id[ensure(c.id)] for c in stack if ensure(c.id) in current_by_id]
        needing_update = [
            pr for pr in self._with_stack_descriptions(ordered, stack, current_by_id, remote_branch_names)
            if pr.body != current_by_id[ensure(pr.commit_id)].body
        ]
        for pr in needing_update:
            self.github.update_pull_request(pr)
        logger.info(f"Updated descriptions for {len(needing_update)} pull {plural(len(needing_update), 'request')}")

        print(self.get_status_string(ref_spec), end="")

    def _branches_to_delete(self, merged: Sequence[Commit], target_ref: str) -> List[RefSpec]:
        candidates = {(target_ref, ensure(c.id)) for c in merged}
        refspecs: List[RefSpec] = []
        for branch in self.git_cmd.get_remote_branches(self.remote_name):
            parts = get_remote_ref_parts(branch.name, self.prefix)
            if parts is not None and (parts.target_ref, parts.commit_id) in candidates:
                refspecs.append(RefSpec.delete(branch.name))
        return refspecs

    def _clean_up_branches(self, refspecs: Sequence[RefSpec]) -> None:
        logger.info(f"Cleaning up {len(refspecs)} {plural(len(refspecs), 'branch', 'branches')}.")
        tries = 0
        while True:
            tries += 1
            try:
                self.git_cmd.push(refspecs, self.remote_name)
            except GitCommandFailed as e:
                logger.error(f"Failed to delete branches (attempt {tries} of {BRANCH_DELETE_TRIES}): {e}")
                if tries >= BRANCH_DELETE_TRIES:
                    raise
                logger.info(f"Retrying in {int(BRANCH_DELETE_DELAY * 1000)} ms...")
                self.sleep(BRANCH_DELETE_DELAY)
                continue
            if tries > 1:
                logger.info(f"Successfully deleted branches after {tries} tries.")
            return

    def merge(self, ref_spec: Optional[RefSpec] = None, count: Optional[int] = None) -> bool:
        """Advance the target branch through the longest mergeable prefix of the stack.

        Returns True if anything was merged.
        """
        ref_spec = ref_spec or self.default_ref_spec()
        remote = self.remote_name
        target_ref = ref_spec.remote_ref
        self.git_cmd.fetch(remote)
        ref_spec = self._apply_count(ref_spec, count)

        num_behind = self._num_commits_behind(ref_spec.local_ref, target_ref)
        if num_behind > 0:
            logger.warning(
                f"Cannot merge because your stack is out-of-date with the base branch "
                f"({num_behind} {plural(num_behind, 'commit')} behind {target_ref})."
            )
            return False

        stack = self.git_cmd.get_local_commit_stack(remote, ref_spec.local_ref, target_ref)
        if not stack:
            logger.warning("Stack is empty.")
            return False

        statuses = self.get_remote_commit_statuses(stack, target_ref)
        boundary = find_merge_boundary(statuses)
        if boundary == -1:
            logger.warning("No commits in your local stack are mergeable.")
            return False

        prs = self.github.get_pull_requests()
        branches_to_delete = self._branches_to_delete(stack[:boundary + 1], target_ref)

        last_status = statuses[boundary]
        last_pr = ensure(last_status.pull_request)
        if last_pr.base_ref_name != target_ref:
            logger.debug(f"Retarget {last_pr} onto {target_ref} in prep for merge")
            self.github.update_pull_request(replace(last_pr, base_ref_name=target_ref))

        self.git_cmd.push([RefSpec(last_status.local_commit.hash, target_ref)], remote)
        merged = boundary + 1
        logger.info(f"Merged {merged} {plural(merged, 'ref')} to {target_ref}")

        for status in statuses[:boundary]:
            self.github.close_pull_request(ensure(status.pull_request))

        last_merged_ref = self._remote_ref(stack[boundary], target_ref)
        to_rebase = [replace(pr, base_ref_name=target_ref) for pr in prs if pr.base_ref_name == last_merged_ref]
        logger.debug(f"Rebasing {len(to_rebase)} prs to {target_ref}")
        for pr in to_rebase:
            self.github.update_pull_request(pr)

        self.github.auto_close_prs()

        # Only now that nothing is based on them can the merged branches go
        self._clean_up_branches(branches_to_delete)
        return True

    def auto_merge(self, ref_spec: Optional[RefSpec] = None, interval: Optional[float] = None,
                   count: Optional[int] = None) -> bool:
        """Poll until the whole stack is mergeable, then merge it.

        Returns True once merged, False if the loop gave up.
        """
        ref_spec = ref_spec or self.default_ref_spec()
        if interval is None:
            interval = self.config.user.auto_merge_interval
        target_ref = ref_spec.remote_ref
        while True:
            self.git_cmd.fetch(self.remote_name)
            tick_ref_spec = self._apply_count(ref_spec, count)

            num_behind = self._num_commits_behind(tick_ref_spec.local_ref, target_ref)
            if num_behind > 0:
                logger.warning(
                    f"Cannot merge because your stack is out-of-date with the base branch "
                    f"({num_behind} {plural(num_behind, 'commit')} behind {target_ref})."
                )
                return False

            stack = self.git_cmd.get_local_commit_stack(self.remote_name, tick_ref_spec.local_ref, target_ref)
            if not stack:
                logger.warning("Stack is empty.")
                return False

            statuses = self.get_remote_commit_statuses(stack, target_ref)
            if all(s.is_mergeable for s in statuses):
                return self.merge(tick_ref_spec)
            print(self.get_status_string(tick_ref_spec), end="")

            if any(s.checks_pass is False for s in statuses):
                logger.warning("Checks are failing. Aborting auto-merge.")
                return False
            if any(s.approved is False for s in statuses):
                logger.warning("PRs are not approved. Aborting auto-merge.")
                return False
            if any(s.is_draft is True for s in statuses):
                logger.warning("Some PRs in the stack are drafts. Aborting auto-merge.")
                return False

            logger.info(f"Delaying for {interval:g} seconds... (CTRL-C to cancel)")
            self.sleep(interval)

    def get_orphaned_branches(self) -> List[RemoteBranch]:
        """Per-commit branches that no open PR uses as its head."""
        heads = {pr.head_ref_name for pr in self.github.get_pull_requests()}
        self.git_cmd.fetch(self.remote_name, prune=True)
        orphaned: List[RemoteBranch] = []
        for branch in self.git_cmd.get_remote_branches(self.remote_name):
            parts = get_remote_ref_parts(branch.name, self.prefix)
            if parts is None:
                continue
            if build_remote_ref(parts.commit_id, parts.target_ref, self.prefix) not in heads:
                orphaned.append(branch)
        return orphaned

    def _named_stack_branches(self, branches: Iterable[RemoteBranch]) -> List[Tuple[RemoteBranch, str]]:
        result: List[Tuple[RemoteBranch, str]] = []
        for branch in branches:
            parts = get_named_stack_ref_parts(branch.name, self.named_stack_prefix)
            if parts is not None:
                result.append((branch, parts.target_ref))
        return result

    def _abandoned_branches(self, branches: Sequence[RemoteBranch], prs: Sequence[PullRequest]) -> List[RemoteBranch]:
        """Branches of open PRs that no named stack for their target reaches."""
        by_name = {b.name: b for b in branches}
        reachable: Dict[str, Set[str]] = {}
        for named, target_ref in self._named_stack_branches(branches):
            if self.git_cmd.ref_exists(f"refs/remotes/{self._tracking(target_ref)}"):
                hashes = {c.hash for c in self.git_cmd.log_range(self._tracking(target_ref), self._tracking(named.name))}
            else:
                hashes = {c.hash for c in self.git_cmd.log(self._tracking(named.name))}
            reachable.setdefault(target_ref, set()).update(hashes)

        abandoned_keys: Set[Tuple[str, str]] = set()
        for pr in prs:
            parts = get_remote_ref_parts(pr.head_ref_name, self.prefix)
            if parts is None or parts.revision_num is not None or parts.target_ref not in reachable:
                continue
            # PRs opened by hand against some other base aren't ours to close
            if pr.base_ref_name != parts.target_ref and get_remote_ref_parts(pr.base_ref_name, self.prefix) is None:
                continue
            head = by_name.get(pr.head_ref_name)
            if head is None or head.commit.hash in reachable[parts.target_ref]:
                continue
            abandoned_keys.add((parts.target_ref, parts.commit_id))

        result: List[RemoteBranch] = []
        for branch in branches:
            parts = get_remote_ref_parts(branch.name, self.prefix)
            if parts is not None and (parts.target_ref, parts.commit_id) in abandoned_keys:
                result.append(branch)
        return result

    def get_clean_plan(self, clean_abandoned_prs: Optional[bool] = None,
                       clean_all_commits: Optional[bool] = None) -> CleanPlan:
        """Work out which remote branches are safe to delete."""
        if clean_abandoned_prs is None:
            clean_abandoned_prs = self.config.user.clean_abandoned_prs
        if clean_all_commits is None:
            clean_all_commits = self.config.user.clean_all_commits

        orphaned = self.get_orphaned_branches()
        branches = self.git_cmd.get_remote_branches(self.remote_name)

        my_email = None if clean_all_commits else self.git_cmd.get_config_value("user.email")

        def is_mine(branch: RemoteBranch) -> bool:
            if clean_all_commits:
                return True
            committer = branch.commit.committer
            return committer is not None and my_email is not None and committer.email == my_email

        empty_named: List[str] = []
        for named, target_ref in self._named_stack_branches(branches):
            tracking_target = self._tracking(target_ref)
            if not self.git_cmd.ref_exists(f"refs/remotes/{tracking_target}"):
                continue
            if not self.git_cmd.log_range(tracking_target, self._tracking(named.name)):
                empty_named.append(named.name)

        abandoned: List[str] = []
        if clean_abandoned_prs:
            prs = self.github.get_pull_requests()
            abandoned = [b.name for b in self._abandoned_branches(branches, prs) if is_mine(b)]

        return CleanPlan(
            orphaned_branches=tuple(sorted(b.name for b in orphaned if is_mine(b))),
            empty_named_stack_branches=tuple(sorted(empty_named)),
            abandoned_branches=tuple(sorted(abandoned)),
        )

    def clean(self, dry_run: bool = False, clean_abandoned_prs: Optional[bool] = None,
              clean_all_commits: Optional[bool] = None) -> CleanPlan:
        plan = self.get_clean_plan(clean_abandoned_prs, clean_all_commits)
        subjects = {b.name: b.commit.short_message for b in self.git_cmd.get_remote_branches(self.remote_name)}
        for reason, names in (("orphaned", plan.orphaned_branches),
                              ("an empty named stack", plan.empty_named_stack_branches),
                              ("abandoned", plan.abandoned_branches)):
            for name in names:
                subject = subjects.get(name)
                logger.info(f"{name}{f' ({subject})' if subject else ''} is {reason}")

        if dry_run or plan.is_empty():
            return plan

        if plan.abandoned_branches:
            abandoned = set(plan.abandoned_branches)
            for pr in self.github.get_pull_requests():
                if pr.head_ref_name in abandoned:
                    logger.info(f"Closing abandoned PR #{pr.number} ({pr.title})")
                    self.github.close_pull_request(pr)

        branches = plan.all_branches()
        logger.info(f"Deleting {len(branches)} {plural(len(branches), 'branch', 'branches')}")
        self.git_cmd.push([RefSpec.delete(name) for name in branches], self.remote_name)
        return plan

    def get_named_stacks(self, target_ref: Optional[str] = None) -> List[str]:
        """Names of the remote named stacks for ``target_ref``."""
        target_ref = target_ref or self.config.target_ref
        self.git_cmd.fetch(self.remote_name, prune=True)
        names = [
            ensure(get_named_stack_ref_parts(b.name, self.named_stack_prefix)).commit_id
            for b, t in self._named_stack_branches(self.git_cmd.get_remote_branches(self.remote_name))
            if t == target_ref
        ]
        return sorted(names)

    def checkout_named_stack(self, stack_name: str, target_ref: Optional[str] = None) -> None:
        """Check out a local branch tracking a remote named stack."""
        target_ref = target_ref or self.config.target_ref
        if not self.git_cmd.is_working_directory_clean():
            raise JasprError(
                "Your working directory has local changes. Please commit or stash them and re-run the command."
            )
        self.git_cmd.fetch(self.remote_name)
        remote_branch = build_named_stack_ref(stack_name, target_ref, self.named_stack_prefix)
        tracking = self._tracking(remote_branch)
        if not self.git_cmd.ref_exists(f"refs/remotes/{tracking}"):
            raise JasprError(f"No named stack '{stack_name}' targeting {target_ref} exists in '{self.remote_name}'.")
        self.git_cmd.checkout_branch(stack_name, tracking)
        self.git_cmd.set_upstream_branch(self.remote_name, remote_branch)
        logger.info(f"Checked out {stack_name} tracking {tracking}")

    def suggest_stack_name(self, ref_spec: Optional[RefSpec] = None) -> Optional[str]:
        """Suggested name for a stack that isn't yet a named stack, else None."""
        ref_spec = ref_spec or self.default_ref_spec()
        upstream = self.git_cmd.get_upstream_branch(self.remote_name)
        if upstream is not None and upstream.name.startswith(f"{self.named_stack_prefix}/"):
            return None
        stack = self.git_cmd.get_local_commit_stack(self.remote_name, ref_spec.local_ref, ref_spec.remote_ref)
        if not stack:
            return None
        return generate_name(stack[0].short_message) or None

    def install_commit_id_hook(self) -> str:
        """Install a commit-msg hook adding commit-id trailers; returns its path."""
        hooks_dir = self.git_cmd.get_hooks_dir()
        os.makedirs(hooks_dir, exist_ok=True)
        hook = os.path.join(hooks_dir, COMMIT_MSG_HOOK)
        logger.info(f"Installing/overwriting {COMMIT_MSG_HOOK} to {hook} and setting the executable bit")
        with open(hook, "w") as f:
            f.write(COMMIT_MSG_HOOK_SOURCE)
        mode = os.stat(hook).st_mode
        os.chmod(hook, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return hook
