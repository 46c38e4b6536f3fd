"""Shared utilities for pyjaspr tests."""
import os
import subprocess
import logging
from dataclasses import dataclass
from typing import List, Optional

from pyjaspr.config import Config
from pyjaspr.git import RealGit
from pyjaspr.jaspr import GitJaspr
from pyjaspr.tests.fake_github import FakeGitHubClient

logger = logging.getLogger(__name__)

TEST_USER_NAME = "Test User"
TEST_USER_EMAIL = "test@example.com"

def run_cmd(cmd: str, cwd: Optional[str] = None, check: bool = True) -> str:
    """Run shell command and return output."""
    logger.debug(f"Running command: {cmd}")
    result = subprocess.run(
        cmd, shell=True, check=check, cwd=cwd,
        capture_output=True, text=True
    )
    return result.stdout.strip()

def make_config(**user: object) -> Config:
    return Config({
        'repo': {
            'github_remote': 'origin',
            'github_branch': 'main',
            'github_repo_owner': 'owner',
            'github_repo_name': 'repo',
        },
        'user': {'log_git_commands': False, **user},
    })

class IdSequence:
    """Deterministic commit-id source."""
    def __init__(self, prefix: str = "gen"):
        self.prefix = prefix
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"{self.prefix}{self.count}"

@dataclass
class RepoContext:
    """A working clone wired to a bare remote and a fake forge."""
    remote_dir: str
    repo_dir: str
    config: Config
    git_cmd: RealGit
    github: FakeGitHubClient
    jaspr: GitJaspr
    sleeps: List[float]

    def git(self, cmd: str) -> str:
        return run_cmd(f"git {cmd}", cwd=self.repo_dir)

    def commit(self, subject: str, commit_id: Optional[str] = None, body: Optional[str] = None) -> str:
        """Create a commit adding a file named after the subject, returns its hash."""
        filename = "".join(c if c.isalnum() else "_" for c in subject) + ".txt"
        with open(os.path.join(self.repo_dir, filename), "a") as f:
            f.write(f"{subject}\n")
        subprocess.run(["git", "add", filename], cwd=self.repo_dir, check=True, capture_output=True)
        args = ["git", "commit", "-m", subject]
        if body:
            args.extend(["-m", body])
        if commit_id:
            args.extend(["-m", f"commit-id: {commit_id}"])
        subprocess.run(args, cwd=self.repo_dir, check=True, capture_output=True)
        return self.git("rev-parse HEAD")

    def remote_head(self, branch: str) -> Optional[str]:
        output = run_cmd(f"git rev-parse --verify --quiet refs/heads/{branch}", cwd=self.remote_dir, check=False)
        return output or None

    def remote_branches(self) -> List[str]:
        output = run_cmd("git for-each-ref '--format=%(refname:short)' refs/heads/", cwd=self.remote_dir)
        return sorted(line for line in output.splitlines() if line)

def create_repo_context(tmp_dir: str, **user: object) -> RepoContext:
    """Create a bare remote with one commit on main and a working clone of it."""
    remote_dir = os.path.join(tmp_dir, "remote.git")
    repo_dir = os.path.join(tmp_dir, "local")
    run_cmd(f"git init --bare {remote_dir}")
    run_cmd(f"git init {repo_dir}")
    run_cmd("git symbolic-ref HEAD refs/heads/main", cwd=repo_dir)
    run_cmd(f"git config user.name '{TEST_USER_NAME}'", cwd=repo_dir)
    run_cmd(f"git config user.email '{TEST_USER_EMAIL}'", cwd=repo_dir)
    run_cmd("git config commit.gpgsign false", cwd=repo_dir)
    with open(os.path.join(repo_dir, "README.md"), "w") as f:
        f.write("# test repo\n")
    run_cmd("git add README.md", cwd=repo_dir)
    run_cmd("git commit -m 'Initial commit'", cwd=repo_dir)
    run_cmd(f"git remote add origin file://{remote_dir}", cwd=repo_dir)
    run_cmd("git push origin main", cwd=repo_dir)
    run_cmd("git fetch origin", cwd=repo_dir)
    run_cmd("git checkout -q -b development", cwd=repo_dir)

    config = make_config(**user)
    git_cmd = RealGit(config, repo_dir)
    github = FakeGitHubClient(remote_dir, config.user.remote_branch_prefix)
    sleeps: List[float] = []
    jaspr = GitJaspr(github, git_cmd, config, new_id=IdSequence(), sleep=sleeps.append)
    return RepoContext(remote_dir, repo_dir, config, git_cmd, github, jaspr, sleeps)
