"""
simulate commands: offline what-if analysis over snapshot files.

    diff      compare who can access a resource in two snapshots
    test      append a policy to a principal and show the impact
    validate  flag common security issues (exit 1 when any are found)
"""

from __future__ import annotations

import logging
from typing import List

from accessmap.cli_utils import console, load_graph, load_snapshot, print_json
from accessmap.errors import PrincipalNotFoundError
from accessmap.graph.builder import build_graph
from accessmap.iam.conditions import EvaluationContext
from accessmap.simulation import (
    AccessDiff,
    PolicyChanges,
    ValidationIssue,
    compare_access,
    load_policy_file,
    merge_policy_changes,
    validate_snapshot,
)

logger = logging.getLogger(__name__)


def run_simulate_diff(
    before: str,
    after: str,
    resource: str,
    action: str,
    context: EvaluationContext,
    output_format: str,
) -> AccessDiff:
    _, before_graph = load_graph(before)
    _, after_graph = load_graph(after)

    diff = compare_access(before_graph, after_graph, resource, action, context)
    logger.info("simulate diff: +%d -%d =%d", len(diff.granted), len(diff.revoked), len(diff.unchanged))

    if output_format == 'json':
        print_json(diff.to_dict())
    else:
        console.print(f"\n[bold]Access diff for {resource}[/bold] [dim](action: {action})[/dim]\n")
        _print_diff(diff)
    return diff


def run_simulate_test(
    data: str,
    policy_file: str,
    principal: str,
    resource: str,
    action: str,
    context: EvaluationContext,
    output_format: str,
) -> AccessDiff:
    """
    Append ``policy_file`` to ``principal`` in a copy of the snapshot and
    compare access before and after.

    Raises:
        PrincipalNotFoundError: the principal is not in the snapshot
    """
    base = load_snapshot(data)
    if not any(p.arn == principal for p in base.principals):
        raise PrincipalNotFoundError(principal)

    policy = load_policy_file(policy_file)
    modified = merge_policy_changes(base, PolicyChanges(update_policies={principal: [policy]}))

    before_graph = build_graph(base)
    after_graph = build_graph(modified)

    grants_admin = after_graph.can_access(principal, '*', '*', context) and not before_graph.can_access(
        principal, '*', '*', context
    )
    diff = compare_access(before_graph, after_graph, resource, action, context)

    if output_format == 'json':
        print_json({
            'principal': principal,
            'policy_file': policy_file,
            'grants_full_admin': grants_admin,
            'diff': diff.to_dict(),
        })
        return diff

    console.print("\n[bold cyan]Testing policy change...[/bold cyan]")
    console.print(f"Principal:  {principal}")
    console.print(f"New policy: {policy_file}\n")
    if grants_admin:
        console.print("[bold red]⚠ WARNING: this policy grants full admin access (* on *)[/bold red]\n")
    _print_diff(diff)
    return diff


def run_simulate_validate(data: str, output_format: str) -> List[ValidationIssue]:
    """
    Returns:
        Issues found (the caller maps a non-empty list to exit code 1)
    """
    snapshot, graph = load_graph(data)
    issues = validate_snapshot(snapshot, graph)

    if output_format == 'json':
        print_json({'issues': [i.to_dict() for i in issues]})
        return issues

    if not issues:
        console.print("[green]✓ No security issues detected[/green]")
        return issues

    console.print("[bold]Security issues found:[/bold]")
    for issue in issues:
        marker = "[yellow]⚠[/yellow]" if issue.severity == 'warning' else "[dim]ℹ[/dim]"
        console.print(f"{marker}  {issue.message}")
        for identifier in issue.identifiers:
            console.print(f"    - {identifier}")
    return issues


def _print_diff(diff: AccessDiff) -> None:
    if diff.granted:
        console.print(f"[green]NEW ACCESS GRANTED ({len(diff.granted)} principals):[/green]")
        for arn in diff.granted:
            console.print(f"  + {arn}")
        console.print()

    if diff.revoked:
        console.print(f"[red]ACCESS REVOKED ({len(diff.revoked)} principals):[/red]")
        for arn in diff.revoked:
            console.print(f"  - {arn}")
        console.print()

    if diff.unchanged:
        console.print(f"[dim]UNCHANGED ACCESS ({len(diff.unchanged)} principals)[/dim]")

    if not diff.has_changes:
        console.print("No changes in access")
