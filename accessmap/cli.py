# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#                              ᚷᚨᛏᛖ • THE GATE
#                   Command-line entry point for accessmap
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#
#   Global flags build one EvaluationContext per invocation; each command
#   hands it to its run_* function in accessmap.commands. Library errors
#   become exit codes: 2 when the graph cannot be built, 3 when an ARN is
#   not in the graph, 1 for everything else.
#
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

from __future__ import annotations

import logging
import platform
import sys
from typing import Any, Callable, Optional

import click

from accessmap import __version__
from accessmap.cli_utils import (
    DATA_ENV_VAR,
    DEFAULT_DATA_FILE,
    DEFAULT_MAX_HOPS,
    DEFAULT_MAX_PATHS,
    ExitCode,
    build_evaluation_context,
    configure_logging,
    console,
    exit_code_for,
    set_console_theme,
)

logger = logging.getLogger(__name__)


def _data_option(func: Callable) -> Callable:
    return click.option(
        '--data', '-d',
        default=DEFAULT_DATA_FILE,
        envvar=DATA_ENV_VAR,
        show_default=True,
        type=click.Path(dir_okay=False),
        help=f'Snapshot JSON file (env: {DATA_ENV_VAR})',
    )(func)


def _run(command: str, func: Callable[..., Any], *args: Any) -> Any:
    """Run a command body, mapping failures to exit codes."""
    try:
        return func(*args)
    except SystemExit:
        raise
    except Exception as e:
        raise SystemExit(exit_code_for(command, e))


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--format', 'output_format', type=click.Choice(['text', 'json']), default='text', help='Output format')
@click.option('--no-color', is_flag=True, help='Disable colored output')
@click.option('--source-ip', default=None, help='Source IP for aws:SourceIp conditions')
@click.option('--mfa', is_flag=True, help='Treat the request as MFA-authenticated')
@click.option('--org-id', default=None, help='Organization id for aws:ResourceOrgID conditions')
@click.option('--principal-org-id', default=None, help='Organization id for aws:PrincipalOrgID conditions')
@click.option('--principal-arn', default=None, help='Value for aws:PrincipalArn conditions')
@click.option('--session-policy', type=click.Path(dir_okay=False), default=None, help='Session policy JSON file')
@click.pass_context
def main(
    ctx: click.Context,
    debug: bool,
    output_format: str,
    no_color: bool,
    source_ip: Optional[str],
    mfa: bool,
    org_id: Optional[str],
    principal_org_id: Optional[str],
    principal_arn: Optional[str],
    session_policy: Optional[str],
) -> None:
    """
    accessmap - who can access what in an AWS account.

    \b
    Works on local snapshot files:
      accessmap who-can arn:aws:s3:::bucket/* --action s3:GetObject
      accessmap path --from arn:aws:iam::123456789012:user/alice \\
                     --to arn:aws:s3:::bucket --action s3:ListBucket
      accessmap simulate diff --before current.json --after proposed.json
    """
    configure_logging(debug)
    set_console_theme(no_color=no_color)

    try:
        context = build_evaluation_context(
            source_ip=source_ip,
            mfa=mfa,
            org_id=org_id,
            principal_org_id=principal_org_id,
            principal_arn=principal_arn,
            session_policy=session_policy,
        )
    except Exception as e:
        raise SystemExit(exit_code_for('main', e))

    ctx.ensure_object(dict)
    ctx.obj['format'] = output_format
    ctx.obj['context'] = context


@main.command()
def version() -> None:
    """Show version information."""
    console.print(f"[bold cyan]accessmap[/bold cyan] {__version__}")
    console.print(f"[dim]Python {sys.version.split()[0]} on {platform.system()} {platform.release()}[/dim]")


@main.command('who-can')
@click.argument('resource')
@click.option('--action', '-a', required=True, help='Action to check, e.g. s3:GetObject')
@_data_option
@click.pass_context
def who_can(ctx: click.Context, resource: str, action: str, data: str) -> None:
    """List principals that can perform ACTION on RESOURCE."""
    from accessmap.commands.who_can import run_who_can
    _run('who-can', run_who_can, data, resource, action, ctx.obj['context'], ctx.obj['format'])


@main.command('can-access')
@click.option('--principal', '-p', required=True, help='Principal ARN')
@click.option('--action', '-a', required=True, help='Action to check')
@click.option('--resource', '-r', required=True, help='Resource ARN')
@_data_option
@click.pass_context
def can_access(ctx: click.Context, principal: str, action: str, resource: str, data: str) -> None:
    """Decide a single request and show which evaluation stage settled it."""
    from accessmap.commands.can_access import run_can_access
    _run('can-access', run_can_access, data, principal, action, resource, ctx.obj['context'], ctx.obj['format'])


@main.command()
@click.option('--from', 'source', required=True, help='Source principal ARN')
@click.option('--to', 'target', required=True, help='Target resource ARN')
@click.option('--action', '-a', required=True, help='Action to perform on the target')
@click.option('--max-hops', default=DEFAULT_MAX_HOPS, show_default=True, type=click.IntRange(min=1), help='Maximum path length')
@click.option('--max-paths', default=DEFAULT_MAX_PATHS, show_default=True, type=click.IntRange(min=1), help='Maximum paths to report')
@_data_option
@click.pass_context
def path(ctx: click.Context, source: str, target: str, action: str, max_hops: int, max_paths: int, data: str) -> None:
    """Find access paths, including role-assumption chains."""
    from accessmap.commands.path import run_path
    _run('path', run_path, data, source, target, action, max_hops, max_paths, ctx.obj['context'], ctx.obj['format'])


@main.command()
@click.option('--high-risk', is_flag=True, help='Include high-risk findings')
@_data_option
@click.pass_context
def report(ctx: click.Context, high_risk: bool, data: str) -> None:
    """Summarize the graph and list publicly accessible resources."""
    from accessmap.commands.report import run_report
    _run('report', run_report, data, high_risk, ctx.obj['format'])


# ═══════════════════════════════════════════════════════════════════════════════
# Simulation
# ═══════════════════════════════════════════════════════════════════════════════

@main.group()
def simulate() -> None:
    """Test policy changes against local snapshots."""


@simulate.command('diff')
@click.option('--before', required=True, type=click.Path(dir_okay=False), help='Snapshot before changes')
@click.option('--after', required=True, type=click.Path(dir_okay=False), help='Snapshot after changes')
@click.option('--resource', '-r', default='*', show_default=True, help='Resource ARN to check')
@click.option('--action', '-a', default='*', show_default=True, help='Action to check')
@click.pass_context
def simulate_diff(ctx: click.Context, before: str, after: str, resource: str, action: str) -> None:
    """Compare who can access a resource between two snapshots."""
    from accessmap.commands.simulate import run_simulate_diff
    _run('simulate diff', run_simulate_diff, before, after, resource, action, ctx.obj['context'], ctx.obj['format'])


@simulate.command('test')
@_data_option
@click.option('--add-policy', 'policy_file', required=True, type=click.Path(dir_okay=False), help='Policy JSON to add')
@click.option('--principal', '-p', required=True, help='Principal ARN receiving the policy')
@click.option('--resource', '-r', default='*', show_default=True, help='Resource ARN to compare')
@click.option('--action', '-a', default='*', show_default=True, help='Action to compare')
@click.pass_context
def simulate_test(
    ctx: click.Context, data: str, policy_file: str, principal: str, resource: str, action: str
) -> None:
    """Apply a policy to a copy of the snapshot and show the impact."""
    from accessmap.commands.simulate import run_simulate_test
    _run(
        'simulate test', run_simulate_test,
        data, policy_file, principal, resource, action, ctx.obj['context'], ctx.obj['format'],
    )


@simulate.command('validate')
@_data_option
@click.pass_context
def simulate_validate(ctx: click.Context, data: str) -> None:
    """Check a snapshot for security issues (exit 1 when any are found)."""
    from accessmap.commands.simulate import run_simulate_validate
    issues = _run('simulate validate', run_simulate_validate, data, ctx.obj['format'])
    if issues:
        raise SystemExit(ExitCode.ERROR)


if __name__ == '__main__':
    main()
