"""Config parser logic."""

import os
import re
from pathlib import Path
from typing import Dict, Any, Optional, Tuple
import logging
import yaml

from ...typing import GitInterface, JasprError

# Get module logger
logger = logging.getLogger(__name__)

SectionConfig = Dict[str, Any]  # yaml can return various types
Config = Dict[str, SectionConfig]

REPO_CONFIG_FILE = ".jaspr.yaml"

# git@host:owner/name.git, ssh://git@host/owner/name, https://host/owner/name.git
SCP_URL_REGEX = re.compile(r'^[^@/]+@([^:/]+):(.+)$')
URL_REGEX = re.compile(r'^[a-z+]+://(?:[^@/]+@)?([^/:]*)(?::\d+)?/(.+)$')

def defaults() -> Config:
    return {
        'repo': {
            'github_remote': 'origin',
            'github_branch': 'main',
            'github_host': 'github.com',
        },
        'user': {},
    }

def _load_yaml(path: Path) -> Optional[Dict[str, Any]]:
    try:
        with open(path, 'r') as f:
            logger.debug(f"Found {path}, loading...")
            data = yaml.safe_load(f)
    except FileNotFoundError:
        return None
    except yaml.YAMLError as e:
        raise JasprError(f"Failed to parse {path}: {e}") from e
    if data is None:
        return None
    if not isinstance(data, dict):
        raise JasprError(f"Expected a mapping at the top level of {path}")
    return data

def merge_config(config: Config, overrides: Dict[str, Any]) -> None:
    """Merge the repo and user sections of ``overrides`` into ``config``."""
    for section in ('repo', 'user'):
        values = overrides.get(section)
        if isinstance(values, dict):
            config[section].update(values)

def parse_remote_url(remote_url: str) -> Optional[Tuple[Optional[str], str, str]]:
    """Return (host, owner, name) for a remote URL, host is None for file remotes."""
    url = remote_url.strip()
    match = SCP_URL_REGEX.match(url)
    if match:
        host, path = match.groups()
    else:
        match = URL_REGEX.match(url)
        if not match:
            return None
        host, path = match.groups()
        if url.startswith("file://"):
            host = None
    path = path.rstrip("/")
    if path.endswith(".git"):
        path = path[:-len(".git")]
    parts = [p for p in path.split("/") if p]
    if len(parts) < 2:
        return None
    return host or None, parts[-2], parts[-1]

def parse_config(git_cmd: GitInterface) -> Config:
    """Parse config from user and repository config files plus the git remote."""
    config = defaults()

    user_config = _load_yaml(Path(internal_config_file_path()))
    if user_config:
        merge_config(config, user_config)

    repo_root = git_cmd.must_git("rev-parse --show-toplevel").strip()
    repo_config = _load_yaml(Path(repo_root) / REPO_CONFIG_FILE)
    if repo_config:
        logger.debug(f"Config from {REPO_CONFIG_FILE}: {repo_config}")
        merge_config(config, repo_config)

    explicit_host = any(
        isinstance(c, dict) and isinstance(c.get('repo'), dict) and 'github_host' in c['repo']
        for c in (user_config, repo_config)
    )

    # Fill in owner/name from the remote if the files didn't say
    repo = config['repo']
    if not repo.get('github_repo_owner') or not repo.get('github_repo_name'):
        remote = repo.get('github_remote', 'origin')
        try:
            remote_url = git_cmd.must_git(f"remote get-url {remote}")
        except JasprError as e:
            logger.warning(f"Failed to read URL of remote {remote}: {e}")
            return config
        parsed = parse_remote_url(remote_url)
        if parsed is None:
            logger.warning(f"Couldn't determine the GitHub repository from {remote_url}")
            return config
        host, owner, name = parsed
        if not repo.get('github_repo_owner'):
            repo['github_repo_owner'] = owner
        if not repo.get('github_repo_name'):
            repo['github_repo_name'] = name
        if host and not explicit_host:
            repo['github_host'] = host

    return config

def internal_config_file_path() -> str:
    """Get path to the per-user config file."""
    return os.environ.get("JASPR_CONFIG", str(Path.home() / ".jaspr.yml"))
