"""CLI entry point."""

import os
import sys
import click
import logging
from typing import Any, Callable, Dict, Optional, Tuple
from click import Context

from ...config import Config
from ...config.config_parser import parse_config
from ...config.models import JasprConfig
from ...git import RealGit
from ...github import PyGithubClient, find_github_token
from ...jaspr import GitJaspr
from ...typing import JasprError, RefSpec

# Get module logger
logger = logging.getLogger(__name__)

def check(err: Exception) -> None:
    """Log an error and exit."""
    logger.error(f"{err}")
    sys.exit(1)

class AliasedGroup(click.Group):
    """Command group with support for aliases."""

    def __init__(self, name: Optional[str] = None, commands: Optional[Dict[str, click.Command]] = None, **attrs: Any) -> None:
        """Initialize with aliases map."""
        super().__init__(name, commands, **attrs)
        self.aliases: Dict[str, str] = {}

    def add_alias(self, alias: str, command: str) -> None:
        """Add an alias for a command."""
        self.aliases[alias] = command

    def get_command(self, ctx: Context, cmd_name: str) -> Optional[click.Command]:
        """Get a command by name, supporting aliases."""
        if cmd_name in self.aliases:
            cmd_name = self.aliases[cmd_name]
        return super().get_command(ctx, cmd_name)

@click.group(cls=AliasedGroup)
@click.pass_context
def cli(ctx: Context) -> None:
    """jaspr - Just Another Stacked Pull Request tool."""
    ctx.obj = {}

def parse_ref_spec(value: Optional[str], config: JasprConfig) -> RefSpec:
    """Parse ``[local:]target``; either side may be omitted."""
    if not value:
        return RefSpec("HEAD", config.target_ref)
    if ":" in value:
        local, target = value.split(":", 1)
        return RefSpec(local or "HEAD", target or config.target_ref)
    return RefSpec(value, config.target_ref)

def setup_git(directory: Optional[str] = None, remote: Optional[str] = None) -> Tuple[Config, RealGit, GitJaspr]:
    """Setup Git command, config and the engine."""
    if directory:
        os.chdir(directory)

    git_cmd = RealGit(Config({}))
    git_cmd.must_git("rev-parse --git-dir")

    cfg = parse_config(git_cmd)
    if remote:
        cfg['repo']['github_remote'] = remote
    config = Config(cfg)
    git_cmd = RealGit(config)

    token = find_github_token(config.repo.github_host)
    if not token:
        raise JasprError(
            "No GitHub token found. Try one of:\n1. Set GITHUB_TOKEN env var\n2. Log in with 'gh auth login'"
        )
    github = PyGithubClient.from_token(config, token)
    return config, git_cmd, GitJaspr(github, git_cmd, config)

def common_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    fn = click.option('-v', '--verbose', count=True,
                      help="Increase verbosity (can be used multiple times for more verbosity)")(fn)
    fn = click.option('-r', '--remote-name', 'remote', help="Name of the git remote to use (defaults to origin)")(fn)
    fn = click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
                      help='Run as if jaspr was started in DIRECTORY instead of the current working directory')(fn)
    return fn

def run(directory: Optional[str], remote: Optional[str], verbose: int,
        action: Callable[[Config, GitJaspr], Any]) -> Any:
    """Set up logging and the engine, run ``action``, and turn errors into an exit status."""
    from ... import setup_logging
    setup_logging(verbose)
    try:
        config, _git_cmd, jaspr = setup_git(directory, remote)
        return action(config, jaspr)
    except JasprError as e:
        check(e)

@cli.command(name="status", help="Show the status of your commit stack")
@common_options
@click.argument('refspec', required=False)
def status(directory: Optional[str], remote: Optional[str], verbose: int, refspec: Optional[str]) -> None:
    def action(config: Config, jaspr: GitJaspr) -> None:
        click.echo(jaspr.get_status_string(parse_ref_spec(refspec, config)), nl=False)
    run(directory, remote, verbose, action)

@cli.command(name="push", help="Push your commit stack and create or update its pull requests")
@common_options
@click.option('--name', '-n', help="Also push the stack as the named stack NAME")
@click.option('--count', '-c', type=int,
              help="Push only the bottom COUNT commits (a negative number leaves that many off the top)")
@click.argument('refspec', required=False)
def push(directory: Optional[str], remote: Optional[str], verbose: int, name: Optional[str],
         count: Optional[int], refspec: Optional[str]) -> None:
    def action(config: Config, jaspr: GitJaspr) -> None:
        jaspr.push(parse_ref_spec(refspec, config), name, count)
    run(directory, remote, verbose, action)

@cli.command(name="merge", help="Merge all mergeable pull requests from the bottom of the stack")
@common_options
@click.option('--count', '-c', type=int,
              help="Consider only the bottom COUNT commits (a negative number leaves that many off the top)")
@click.argument('refspec', required=False)
def merge(directory: Optional[str], remote: Optional[str], verbose: int, count: Optional[int],
          refspec: Optional[str]) -> None:
    def action(config: Config, jaspr: GitJaspr) -> bool:
        return jaspr.merge(parse_ref_spec(refspec, config), count)
    if not run(directory, remote, verbose, action):
        sys.exit(1)

@cli.command(name="auto-merge", help="Wait for the stack to become mergeable, then merge it")
@common_options
@click.option('--interval', '-i', type=int, help="Seconds between polls (defaults to auto_merge_interval)")
@click.option('--count', '-c', type=int,
              help="Consider only the bottom COUNT commits (a negative number leaves that many off the top)")
@click.argument('refspec', required=False)
def auto_merge(directory: Optional[str], remote: Optional[str], verbose: int, interval: Optional[int],
               count: Optional[int], refspec: Optional[str]) -> None:
    def action(config: Config, jaspr: GitJaspr) -> bool:
        return jaspr.auto_merge(parse_ref_spec(refspec, config), interval, count)
    if not run(directory, remote, verbose, action):
        sys.exit(1)

@cli.command(name="clean", help="Delete orphaned, empty and abandoned jaspr branches")
@common_options
@click.option('--dry-run', is_flag=True, help="Only list the branches that would be deleted")
@click.option('--abandoned/--no-abandoned', default=None,
              help="Also close abandoned PRs and delete their branches")
@click.option('--all-commits', is_flag=True, default=None,
              help="Include branches whose commits were made by other people")
def clean(directory: Optional[str], remote: Optional[str], verbose: int, dry_run: bool,
          abandoned: Optional[bool], all_commits: Optional[bool]) -> None:
    def action(config: Config, jaspr: GitJaspr) -> None:
        plan = jaspr.clean(dry_run, abandoned, all_commits or None)
        if plan.is_empty():
            click.echo("Nothing to clean.")
        elif dry_run:
            for name in plan.all_branches():
                click.echo(name)
    run(directory, remote, verbose, action)

@cli.command(name="stacks", help="List the named stacks on the remote")
@common_options
@click.argument('target', required=False)
def stacks(directory: Optional[str], remote: Optional[str], verbose: int, target: Optional[str]) -> None:
    def action(config: Config, jaspr: GitJaspr) -> None:
        names = jaspr.get_named_stacks(target)
        if not names:
            click.echo("No named stacks found.")
        for name in names:
            click.echo(name)
    run(directory, remote, verbose, action)

@cli.command(name="checkout", help="Check out a named stack as a local branch")
@common_options
@click.argument('name')
@click.argument('target', required=False)
def checkout(directory: Optional[str], remote: Optional[str], verbose: int, name: str,
             target: Optional[str]) -> None:
    def action(config: Config, jaspr: GitJaspr) -> None:
        jaspr.checkout_named_stack(name, target)
    run(directory, remote, verbose, action)

@cli.command(name="suggest-name", help="Suggest a name for the current stack")
@common_options
@click.argument('refspec', required=False)
def suggest_name(directory: Optional[str], remote: Optional[str], verbose: int, refspec: Optional[str]) -> None:
    def action(config: Config, jaspr: GitJaspr) -> None:
        name = jaspr.suggest_stack_name(parse_ref_spec(refspec, config))
        if name:
            click.echo(name)
    run(directory, remote, verbose, action)

@cli.command(name="install-commit-id-hook", help="Install a commit-msg hook that adds commit-id trailers")
@common_options
def install_commit_id_hook(directory: Optional[str], remote: Optional[str], verbose: int) -> None:
    def action(config: Config, jaspr: GitJaspr) -> None:
        click.echo(jaspr.install_commit_id_hook())
    run(directory, remote, verbose, action)

def main() -> None:
    """Main entry point."""
    # Add command aliases
    cli.aliases['st'] = 'status'
    cli.aliases['p'] = 'push'
    cli.aliases['am'] = 'auto-merge'
    cli(obj={})

if __name__ == "__main__":
    main()
