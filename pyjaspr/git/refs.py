"""Remote branch naming for stack commits and named stacks."""

import re
from typing import Optional

from ..typing import CommitID, RemoteRefParts

DEFAULT_REMOTE_BRANCH_PREFIX = "jaspr"
DEFAULT_REMOTE_NAMED_STACK_BRANCH_PREFIX = "jaspr-named"
DEFAULT_TARGET_REF = "main"
REV_NUM_DELIMITER = "_"


def build_remote_ref(commit_id: str, target_ref: str = DEFAULT_TARGET_REF,
                     prefix: str = DEFAULT_REMOTE_BRANCH_PREFIX) -> str:
    """Branch name holding the current head of a stack commit."""
    return f"{prefix}/{target_ref}/{commit_id}"


def build_revision_ref(remote_ref: str, revision_num: int) -> str:
    """Branch name archiving revision ``revision_num`` of ``remote_ref``."""
    return f"{remote_ref}{REV_NUM_DELIMITER}{revision_num:02d}"


def get_remote_ref_parts(name: str, prefix: str = DEFAULT_REMOTE_BRANCH_PREFIX) -> Optional[RemoteRefParts]:
    """Decode a per-commit branch name, or None if it isn't one of ours."""
    regex = rf'^{re.escape(prefix)}/(.+)/(.+?)(?:{REV_NUM_DELIMITER}(\d+))?$'
    match = re.match(regex, name)
    if not match:
        return None
    target_ref, commit_id, revision = match.groups()
    return RemoteRefParts(
        target_ref=target_ref,
        commit_id=CommitID(commit_id),
        revision_num=int(revision) if revision is not None else None,
    )


def build_named_stack_ref(stack_name: str, target_ref: str = DEFAULT_TARGET_REF,
                          prefix: str = DEFAULT_REMOTE_NAMED_STACK_BRANCH_PREFIX) -> str:
    return f"{prefix}/{target_ref}/{stack_name}"


def get_named_stack_ref_parts(name: str,
                              prefix: str = DEFAULT_REMOTE_NAMED_STACK_BRANCH_PREFIX) -> Optional[RemoteRefParts]:
    """Decode a named stack branch; commit_id holds the stack name."""
    match = re.match(rf'^{re.escape(prefix)}/(.+?)/(.+)$', name)
    if not match:
        return None
    target_ref, stack_name = match.groups()
    return RemoteRefParts(target_ref=target_ref, commit_id=CommitID(stack_name))


def validate_prefixes(remote_branch_prefix: str, named_stack_prefix: str) -> None:
    """Raise ValueError unless the two branch namespaces are usable and disjoint."""
    for label, prefix in (("remote branch prefix", remote_branch_prefix),
                          ("named stack branch prefix", named_stack_prefix)):
        if not prefix or not prefix.strip():
            raise ValueError(f"The {label} must not be blank")
        if "/" in prefix:
            raise ValueError(f"The {label} must not contain '/': {prefix!r}")
    if remote_branch_prefix == named_stack_prefix:
        raise ValueError(
            f"The remote branch prefix and the named stack branch prefix must differ (both are {remote_branch_prefix!r})"
        )
