"""Pull request description rendering."""

import re
from typing import Iterable, List, Optional, Sequence

from ..git.footers import get_subject_and_body, trim_footers
from ..github import PullRequest

JASPR_START_COMMENT = "<!-- jaspr start -->"

FOOTER_NOTICE = (
    "⚠️ *Part of a stack created by [jaspr](https://github.com/MichaelSims/git-jaspr). "
    "Do not merge manually using the UI - doing so may have unexpected results.*"
)

def history_links(pr: PullRequest, remote_branch_names: Iterable[str], host: str, owner: str, name: str) -> Optional[str]:
    """Compare links between consecutive revisions of a PR branch, newest first."""
    regex = re.compile(rf'^{re.escape(pr.head_ref_name)}_(\d+)$')
    history = sorted((b for b in remote_branch_names if regex.match(b)), reverse=True)
    if not history:
        return None
    refs = [pr.head_ref_name] + history
    links: List[str] = []
    for new, old in zip(refs, refs[1:]):
        old_desc = regex.match(old).group(1)  # type: ignore[union-attr]
        new_desc = "Current" if new == pr.head_ref_name else regex.match(new).group(1)  # type: ignore[union-attr]
        links.append(f"[{old_desc}..{new_desc}](https://{host}/{owner}/{name}/compare/{old}..{new})")
    return ", ".join(links)

def build_pull_request_body(full_message: str,
                            pull_requests: Sequence[PullRequest],
                            existing_pr: Optional[PullRequest],
                            current_commit_id: Optional[str],
                            remote_branch_names: Sequence[str],
                            host: str, owner: str, name: str) -> str:
    """Render the generated part of a PR description.

    Text a user wrote above the start marker in ``existing_pr`` is kept.
    ``pull_requests`` is the stack ordered top to bottom.
    """
    out: List[str] = []
    if existing_pr is not None and JASPR_START_COMMENT in existing_pr.body:
        out.append(existing_pr.body.split(JASPR_START_COMMENT, 1)[0])
    out.append(JASPR_START_COMMENT + "\n")

    subject, body = get_subject_and_body(trim_footers(full_message))
    out.append(f"### {subject}\n")
    if body is not None:
        out.append(f"\n{body}\n")
    out.append("\n")

    if pull_requests:
        out.append("**Stack**:\n")
        for pr in pull_requests:
            marker = " ⬅" if pr.commit_id == current_commit_id else ""
            out.append(f"- #{pr.number}{marker}\n")
            links = history_links(pr, remote_branch_names, host, owner, name)
            if links:
                out.append(f"  - {links}\n")
        out.append("\n")

    out.append(FOOTER_NOTICE + "\n")
    return "".join(out)
