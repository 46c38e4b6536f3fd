"""Pydantic models for config types."""

from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from ..git.refs import (
    DEFAULT_REMOTE_BRANCH_PREFIX,
    DEFAULT_REMOTE_NAMED_STACK_BRANCH_PREFIX,
    validate_prefixes,
)

DEFAULT_DONT_PUSH_REGEX = r"^(dont[ -]?push)\b.*$"

class RepoConfig(BaseModel):
    """Repository configuration."""
    github_remote: str = "origin"
    github_branch: str = "main"
    github_host: str = "github.com"
    github_repo_owner: Optional[str] = None
    github_repo_name: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "allow"

class UserConfig(BaseModel):
    """User configuration."""
    remote_branch_prefix: str = DEFAULT_REMOTE_BRANCH_PREFIX
    remote_named_stack_branch_prefix: str = DEFAULT_REMOTE_NAMED_STACK_BRANCH_PREFIX
    dont_push_regex: str = DEFAULT_DONT_PUSH_REGEX
    clean_abandoned_prs: bool = False
    clean_all_commits: bool = False
    auto_merge_interval: int = 10
    log_git_commands: bool = True

    class Config:
        """Pydantic config."""
        extra = "allow"

    @field_validator("auto_merge_interval")
    @classmethod
    def _positive_interval(cls, value: int) -> int:
        if value < 0:
            raise ValueError("auto_merge_interval must not be negative")
        return value

class JasprConfig(BaseModel):
    """Full pyjaspr configuration."""
    repo: RepoConfig = Field(default_factory=RepoConfig)
    user: UserConfig = Field(default_factory=UserConfig)

    class Config:
        """Pydantic config."""
        extra = "allow"

    @model_validator(mode="after")
    def _check_prefixes(self) -> "JasprConfig":
        validate_prefixes(self.user.remote_branch_prefix, self.user.remote_named_stack_branch_prefix)
        return self

    @property
    def remote_name(self) -> str:
        return self.repo.github_remote

    @property
    def target_ref(self) -> str:
        return self.repo.github_branch
