"""Config module."""

from typing import Dict, Any
from pydantic import ValidationError

from .models import RepoConfig, UserConfig, JasprConfig
from ..typing import JasprError

class Config(JasprConfig):
    """Config object holding repository and user config.

    Built from the nested dict produced by the config parser, so the YAML
    files and command line overrides can be merged before validation.
    """
    def __init__(self, config: Dict[str, Dict[str, Any]]):
        """Initialize with parsed config dict."""
        try:
            super().__init__(
                repo=RepoConfig.model_validate(config.get('repo', {})),
                user=UserConfig.model_validate(config.get('user', {})),
            )
        except ValidationError as e:
            raise JasprError(f"Invalid configuration: {e}") from e

def default_config() -> Config:
    """Get default config without parsing git."""
    return Config({
        'repo': {
            'github_remote': 'origin',
            'github_branch': 'main',
        },
        'user': {},
    })
