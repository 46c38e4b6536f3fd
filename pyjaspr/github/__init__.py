"""GitHub interfaces and implementation."""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set, Tuple, TypeVar, cast

import yaml
from github import Auth, BadCredentialsException, Github, GithubException
from github.Repository import Repository

from ..config.models import JasprConfig
from ..git.refs import get_remote_ref_parts
from ..typing import GitHubAuthError, JasprError
from ..util import ensure
from .retry import GraphQLRequestError, RetryPolicy
from .types import GitHubRequester, GraphQLResponseType, GraphQLMutationResponse, PRNode, parse_graphql_response

# Get module logger
logger = logging.getLogger(__name__)

T = TypeVar('T')

@dataclass(frozen=True)
class PullRequest:
    """Pull request as the engine sees it.

    ``id`` and ``number`` are assigned by the forge and are None until the PR
    has been created.
    """
    id: Optional[str]
    commit_id: Optional[str]
    number: Optional[int]
    head_ref_name: str
    base_ref_name: str
    title: str
    body: str
    checks_pass: Optional[bool] = None
    approved: Optional[bool] = None
    check_conclusion_states: Tuple[str, ...] = ()
    permalink: Optional[str] = None
    is_draft: bool = False

    def __str__(self) -> str:
        number = f"#{self.number}" if self.number is not None else "(new)"
        return f"PR {number} {self.head_ref_name} -> {self.base_ref_name}: {self.title}"

class GitHubClient(Protocol):
    """Forge operations the engine depends on."""

    def get_pull_requests(self, commit_ids: Optional[Iterable[str]] = None) -> List[PullRequest]:
        """Open PRs on our commit branches, optionally limited to the given commit ids."""
        ...

    def create_pull_request(self, pr: PullRequest) -> PullRequest:
        ...

    def update_pull_request(self, pr: PullRequest) -> None:
        ...

    def close_pull_request(self, pr: PullRequest) -> None:
        ...

    def auto_close_prs(self) -> None:
        """Reconcile PRs the forge would close on its own."""
        ...

def checks_pass_from_rollup(state: Optional[str]) -> Optional[bool]:
    if state == "SUCCESS":
        return True
    if state in ("FAILURE", "ERROR"):
        return False
    return None

def approved_from_review_decision(decision: Optional[str]) -> Optional[bool]:
    if decision == "APPROVED":
        return True
    if decision == "CHANGES_REQUESTED":
        return False
    return None

def find_github_token(host: str = "github.com") -> Optional[str]:
    """Find GitHub token from env var or gh CLI config."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    gh_config_path = Path.home() / ".config" / "gh" / "hosts.yml"
    try:
        with open(gh_config_path, "r") as f:
            gh_config = yaml.safe_load(f)
    except FileNotFoundError:
        return None
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error reading gh CLI config: {e}")
        return None
    if gh_config and host in gh_config:
        host_config: Dict[str, object] = gh_config[host]
        token = host_config.get("oauth_token")
        if isinstance(token, str):
            return token
    return None

PULL_REQUESTS_QUERY = """
query Query($owner: String!, $name: String!, $after: String) {
  repository(owner: $owner, name: $name) {
    pullRequests(states: [OPEN], first: 100, after: $after) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        __typename
        id
        number
        title
        body
        baseRefName
        headRefName
        isDraft
        url
        reviewDecision
        commits(last: 1) {
          nodes {
            commit {
              oid
              statusCheckRollup {
                state
                contexts(first: 100) {
                  nodes {
                    __typename
                    ... on CheckRun { conclusion }
                    ... on StatusContext { state }
                  }
                }
              }
            }
          }
        }
      }
    }
  }
}
"""

CONVERT_TO_DRAFT_MUTATION = """
mutation ConvertToDraft($id: ID!) {
  convertPullRequestToDraft(input: {pullRequestId: $id}) { clientMutationId }
}
"""

MARK_READY_MUTATION = """
mutation MarkReady($id: ID!) {
  markPullRequestReadyForReview(input: {pullRequestId: $id}) { clientMutationId }
}
"""

class PyGithubClient:
    """GitHubClient over PyGithub: REST for writes, GraphQL for reads."""
    def __init__(self, config: JasprConfig, github_client: Github,
                 retry_policy: Optional[RetryPolicy] = None):
        self.config = config
        self.client = github_client
        self.retry_policy = retry_policy or RetryPolicy()
        self._repo: Optional[Repository] = None

    @classmethod
    def from_token(cls, config: JasprConfig, token: str,
                   retry_policy: Optional[RetryPolicy] = None) -> 'PyGithubClient':
        host = config.repo.github_host
        if host == "github.com":
            github_client = Github(auth=Auth.Token(token))
        else:
            github_client = Github(auth=Auth.Token(token), base_url=f"https://{host}/api/v3")
        return cls(config, github_client, retry_policy)

    @property
    def graphql_url(self) -> str:
        host = self.config.repo.github_host
        if host == "github.com":
            return "https://api.github.com/graphql"
        return f"https://{host}/api/graphql"

    def _call(self, description: str, fn: Callable[[], T]) -> T:
        """Run one transport call under the retry policy with auth errors mapped."""
        logger.info(f"> github {description}")
        try:
            return self.retry_policy.call(fn, description)
        except BadCredentialsException as e:
            raise GitHubAuthError() from e
        except GithubException as e:
            if e.status == 401:
                raise GitHubAuthError() from e
            raise

    @property
    def repo(self) -> Repository:
        """Get GitHub repository."""
        if self._repo is None:
            owner = self.config.repo.github_repo_owner
            name = self.config.repo.github_repo_name
            if not owner or not name:
                raise JasprError("Couldn't determine the GitHub repository; set github_repo_owner/github_repo_name")
            self._repo = self._call("get repository", lambda: self.client.get_repo(f"{owner}/{name}"))
        return ensure(self._repo)

    def _graphql(self, query: str, variables: Dict[str, object]) -> Dict[str, object]:
        # Access private requester - need cast since it's not part of the public API
        req = cast(GitHubRequester, getattr(self.client, '_Github__requester'))
        result: GraphQLResponseType = req.requestJsonAndCheck(
            "POST", self.graphql_url, input={"query": query, "variables": variables}
        )
        _headers, resp = result
        errors = resp.get("errors")
        if errors:
            raise GraphQLRequestError(str(errors))
        return resp

    def _to_pull_request(self, node: PRNode) -> Optional[PullRequest]:
        parts = get_remote_ref_parts(node.headRefName, self.config.user.remote_branch_prefix)
        if parts is None or parts.revision_num is not None:
            return None
        rollup = None
        if node.commits and node.commits.nodes:
            rollup = node.commits.nodes[-1].commit.statusCheckRollup
        states: List[str] = []
        if rollup and rollup.contexts:
            for ctx in rollup.contexts.nodes:
                if ctx is not None:
                    value = ctx.conclusion or ctx.state
                    if value:
                        states.append(value)
        return PullRequest(
            id=node.id,
            commit_id=parts.commit_id,
            number=node.number,
            head_ref_name=node.headRefName,
            base_ref_name=node.baseRefName,
            title=node.title,
            body=node.body,
            checks_pass=checks_pass_from_rollup(rollup.state if rollup else None),
            approved=approved_from_review_decision(node.reviewDecision),
            check_conclusion_states=tuple(states),
            permalink=node.url,
            is_draft=node.isDraft,
        )

    def _list_open_pull_requests(self) -> List[PullRequest]:
        """Every open PR in the repository whose head is one of our commit branches."""
        owner = self.config.repo.github_repo_owner
        name = self.config.repo.github_repo_name
        prs: List[PullRequest] = []
        after: Optional[str] = None
        while True:
            variables: Dict[str, object] = {"owner": owner, "name": name, "after": after}
            resp = self._call("fetch pull requests", lambda: self._graphql(PULL_REQUESTS_QUERY, variables))
            connection = ensure(parse_graphql_response(resp).data).repository.pullRequests
            for node in connection.nodes:
                pr = self._to_pull_request(node)
                if pr is not None:
                    prs.append(pr)
            if not connection.pageInfo.hasNextPage:
                break
            after = connection.pageInfo.endCursor
        logger.debug(f"GraphQL returned {len(prs)} open PRs")
        return prs

    def get_pull_requests(self, commit_ids: Optional[Iterable[str]] = None) -> List[PullRequest]:
        prs = self._list_open_pull_requests()
        if commit_ids is None:
            return prs
        wanted: Set[str] = set(commit_ids)
        return [pr for pr in prs if pr.commit_id in wanted]

    def create_pull_request(self, pr: PullRequest) -> PullRequest:
        gh_pr = self._call(
            f"create pull request {pr.head_ref_name} -> {pr.base_ref_name}",
            lambda: self.repo.create_pull(
                base=pr.base_ref_name, head=pr.head_ref_name, title=pr.title, body=pr.body, draft=pr.is_draft,
            ),
        )
        logger.info(f"Created PR #{gh_pr.number} for {pr.head_ref_name}")
        return PullRequest(
            id=gh_pr.node_id,
            commit_id=pr.commit_id,
            number=gh_pr.number,
            head_ref_name=pr.head_ref_name,
            base_ref_name=pr.base_ref_name,
            title=pr.title,
            body=pr.body,
            permalink=gh_pr.html_url,
            is_draft=pr.is_draft,
        )

    def update_pull_request(self, pr: PullRequest) -> None:
        number = ensure(pr.number)
        gh_pr = self._call(f"get pull request #{number}", lambda: self.repo.get_pull(number))
        self._call(
            f"update pull request #{number}",
            lambda: gh_pr.edit(title=pr.title, body=pr.body, base=pr.base_ref_name),
        )
        if bool(gh_pr.draft) != pr.is_draft:
            mutation = CONVERT_TO_DRAFT_MUTATION if pr.is_draft else MARK_READY_MUTATION
            node_id = pr.id or gh_pr.node_id
            resp = self._call(
                f"set draft={pr.is_draft} on pull request #{number}",
                lambda: self._graphql(mutation, {"id": node_id}),
            )
            GraphQLMutationResponse.model_validate(resp)

    def close_pull_request(self, pr: PullRequest) -> None:
        number = ensure(pr.number)
        gh_pr = self._call(f"get pull request #{number}", lambda: self.repo.get_pull(number))
        self._call(f"close pull request #{number}", lambda: gh_pr.edit(state="closed"))

    def auto_close_prs(self) -> None:
        # GitHub closes merged PRs itself
        return None
