#!/usr/bin/env python3
"""
eext CLI

Rebuilds upstream SRPMs and tarballs into modified SRPMs and binary RPMs.
"""

import sys
import logging
from typing import Callable

import click

from eext.common.config_loader import ConfigLoader
from eext.common.errors import EextError
from eext.common.logging_utils import setup_logging
from eext.common.shell_executor import DryRunExecutor, OsExecutor
from eext.orchestrator.commands import Orchestrator, default_arch

logger = logging.getLogger(__name__)


def _run(ctx: click.Context, command: Callable[[Orchestrator], object]) -> None:
    """Run a command, turning EextError into exit status 1"""
    orchestrator: Orchestrator = ctx.obj
    try:
        command(orchestrator)
    except EextError as e:
        logger.error(str(e))
        ctx.exit(1)
    finally:
        if isinstance(orchestrator.executor, DryRunExecutor):
            click.echo(orchestrator.executor.generate_shell_script())


@click.group()
@click.option('--config', 'config_file', default=None, help='Path to settings YAML')
@click.option('-q', '--quiet', is_flag=True, help='Suppress output of external commands')
@click.option('-d', '--dry-run', is_flag=True, help='Print the commands instead of running them')
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx: click.Context, config_file: str, quiet: bool, dry_run: bool, debug: bool):
    """eext - rebuild upstream sources into RPMs"""
    setup_logging(debug_mode=debug)
    try:
        settings = ConfigLoader.load(config_file, overrides={
            'quiet': quiet or None,
            'dry_run': dry_run or None,
            'debug': debug or None,
        })
    except EextError as e:
        logger.error(str(e))
        ctx.exit(1)

    if settings.log_file:
        setup_logging(debug_mode=settings.debug, log_file=settings.log_file)

    if settings.dry_run:
        executor = DryRunExecutor()
    else:
        executor = OsExecutor(suppress=settings.quiet, debug_mode=settings.debug)
    ctx.obj = Orchestrator(settings, executor)


@cli.command()
@click.argument('repo_url')
@click.option('-r', '--repo', required=True, help='Directory name under SRC_DIR to clone into')
@click.option('-f', '--force', is_flag=True, help='Overwrite an existing directory')
@click.pass_context
def clone(ctx: click.Context, repo_url: str, repo: str, force: bool):
    """Clone a package repository"""
    _run(ctx, lambda o: o.clone(repo_url, repo, force=force))


@cli.command('create-srpm')
@click.option('-r', '--repo', default='', help='Repository name (OPTIONAL)')
@click.option('-p', '--package', 'pkg', default='', help='Package name (OPTIONAL)')
@click.option('--do-build-prep', is_flag=True, help='Run rpmbuild -bp before building the SRPM')
@click.option('--skip-build-prep', is_flag=True, hidden=True)
@click.pass_context
def create_srpm(ctx: click.Context, repo: str, pkg: str, do_build_prep: bool, skip_build_prep: bool):
    """Build modified SRPMs"""
    _run(ctx, lambda o: o.create_srpm(repo, pkg, do_build_prep=do_build_prep))


@cli.command()
@click.option('-r', '--repo', default='', help='Repository name (OPTIONAL)')
@click.option('-p', '--package', 'pkg', default='', help='Package name (OPTIONAL)')
@click.option('-t', '--target', 'arch', default=None, help='Target arch (default: host arch)')
@click.option('--only-create-cfg', is_flag=True, help='Only create the mock configuration')
@click.option('--nocheck', 'no_check', is_flag=True, help="Don't run %check in the build")
@click.pass_context
def mock(ctx: click.Context, repo: str, pkg: str, arch: str, only_create_cfg: bool, no_check: bool):
    """Build RPMs from previously built SRPMs"""
    arch = arch or default_arch()
    _run(ctx, lambda o: o.mock(repo, pkg, arch, no_check=no_check, only_create_cfg=only_create_cfg))


@cli.command()
@click.option('-r', '--repo', default='', help='Repository name (OPTIONAL)')
@click.option('-p', '--package', 'pkg', default='', help='Package name (OPTIONAL)')
@click.option('-t', '--target', 'arch', default=None, help='Target arch (default: host arch)')
@click.option('--do-build-prep', is_flag=True, help='Run rpmbuild -bp before building the SRPM')
@click.option('--nocheck', 'no_check', is_flag=True, help="Don't run %check in the build")
@click.pass_context
def build(ctx: click.Context, repo: str, pkg: str, arch: str, do_build_prep: bool, no_check: bool):
    """create-srpm followed by mock"""
    arch = arch or default_arch()
    _run(ctx, lambda o: o.build(repo, pkg, arch, do_build_prep=do_build_prep, no_check=no_check))


@cli.command()
@click.pass_context
def checkenv(ctx: click.Context):
    """Validate the build environment"""
    _run(ctx, lambda o: o.checkenv())


@cli.command('list-unverified-sources')
@click.option('-r', '--repo', default='', help='Repository name (OPTIONAL)')
@click.option('-p', '--package', 'pkg', default='', help='Package name (OPTIONAL)')
@click.pass_context
def list_unverified_sources(ctx: click.Context, repo: str, pkg: str):
    """List upstream sources whose signature check is skipped"""
    _run(ctx, lambda o: o.list_unverified_sources(repo, pkg))


def main():
    cli(prog_name='eext')


if __name__ == "__main__":
    sys.exit(main())
