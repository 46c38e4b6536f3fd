"""Type definitions for GitHub API responses."""

from typing import Dict, List, Optional, Protocol, Tuple, Union
from pydantic import BaseModel, Field

# GraphQL response types with Pydantic models
class CheckContextNode(BaseModel):
    typename: str = Field(alias="__typename")
    conclusion: Optional[str] = None
    state: Optional[str] = None

class CheckContexts(BaseModel):
    nodes: List[Optional[CheckContextNode]] = Field(default_factory=list)

class StatusCheckRollup(BaseModel):
    state: str
    contexts: Optional[CheckContexts] = None

class PRCommitNode(BaseModel):
    oid: str
    statusCheckRollup: Optional[StatusCheckRollup] = None

class PRCommitData(BaseModel):
    commit: PRCommitNode

class PRCommits(BaseModel):
    nodes: List[PRCommitData] = Field(default_factory=list)

class PRNode(BaseModel):
    typename: str = Field(alias="__typename")
    id: Optional[str] = None
    number: Optional[int] = None
    title: str = ""
    body: str = ""
    baseRefName: str = ""
    headRefName: str = ""
    isDraft: bool = False
    url: Optional[str] = None
    reviewDecision: Optional[str] = None
    commits: Optional[PRCommits] = None

class PageInfo(BaseModel):
    hasNextPage: bool
    endCursor: Optional[str] = None

class PullRequestConnection(BaseModel):
    nodes: List[PRNode]
    pageInfo: PageInfo

class GraphQLRepository(BaseModel):
    pullRequests: PullRequestConnection

class GraphQLData(BaseModel):
    repository: GraphQLRepository

class GraphQLErrorLocation(BaseModel):
    line: int
    column: int

class GraphQLError(BaseModel):
    message: str
    type: Optional[str] = None
    locations: Optional[List[GraphQLErrorLocation]] = None
    path: Optional[List[Union[str, int]]] = None
    extensions: Optional[Dict[str, object]] = None

class GraphQLResponse(BaseModel):
    data: Optional[GraphQLData] = None
    errors: Optional[List[GraphQLError]] = None

class GraphQLMutationResponse(BaseModel):
    data: Optional[Dict[str, object]] = None
    errors: Optional[List[GraphQLError]] = None

# Type for PyGithub GraphQL response
# First element is headers dict, second is the response data
GraphQLResponseType = Tuple[Dict[str, object], Dict[str, object]]

def parse_graphql_response(response: Dict[str, object]) -> GraphQLResponse:
    """Parse GraphQL response into Pydantic model."""
    try:
        return GraphQLResponse.model_validate(response)
    except Exception as e:
        raise TypeError(f"Invalid GraphQL response: {e}")

class GitHubRequester(Protocol):
    """Type for PyGithub requester to handle GraphQL calls.

    This types the internal _Github__requester that's needed for GraphQL.
    We use a Protocol since the requester is a private implementation detail.
    """
    def requestJsonAndCheck(
        self,
        verb: str,
        url: str,
        parameters: Optional[Dict[str, object]] = None,
        headers: Optional[Dict[str, str]] = None,
        input: Optional[Dict[str, object]] = None
    ) -> GraphQLResponseType:
        ...
