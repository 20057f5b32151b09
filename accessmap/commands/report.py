"""report command: graph summary, public resources and high-risk findings."""

from __future__ import annotations

import logging

from rich.table import Table

from accessmap.cli_utils import DEFAULT_TABLE_LIMIT, console, format_severity, load_graph, print_json, truncate
from accessmap.query.engine import QueryEngine

logger = logging.getLogger(__name__)


def run_report(data: str, high_risk: bool, output_format: str) -> None:
    """
    Args:
        data: Snapshot file
        high_risk: Include high-risk findings
        output_format: 'text' or 'json'
    """
    snapshot, graph = load_graph(data)
    engine = QueryEngine(graph)

    stats = graph.stats()
    public = engine.find_public_access()
    findings = engine.find_high_risk_access() if high_risk else []
    logger.info("report: %d public resources, %d findings", len(public), len(findings))

    if output_format == 'json':
        report = {
            'account_id': snapshot.account_id,
            'collected_at': snapshot.collected_at,
            'stats': stats,
            'public_resources': [r.arn for r in public],
        }
        if high_risk:
            report['findings'] = [f.to_dict() for f in findings]
        print_json(report)
        return

    console.print(f"\n[bold cyan]Access report[/bold cyan] [dim]account {snapshot.account_id or 'unknown'}[/dim]\n")
    console.print(f"  Principals:       {stats['principals']}")
    console.print(f"  Resources:        {stats['resources']}")
    console.print(f"  Allow edges:      {stats['allow_edges']}")
    console.print(f"  Deny edges:       {stats['deny_edges']}")
    console.print(f"  Trust relations:  {stats['trust_relations']}")
    console.print(f"  SCPs:             {stats['scps']}\n")

    if public:
        console.print(f"[red]{len(public)} publicly accessible resource(s):[/red]")
        for resource in public:
            console.print(f"  • {resource.arn}")
    else:
        console.print("[green]No publicly accessible resources[/green]")

    if not high_risk:
        return

    console.print()
    if not findings:
        console.print("[green]No high-risk findings[/green]")
        return

    table = Table(title="High-risk findings")
    table.add_column("Severity")
    table.add_column("Type", style="magenta")
    table.add_column("Description")
    table.add_column("Principal", overflow="fold")
    for finding in findings[:DEFAULT_TABLE_LIMIT]:
        table.add_row(
            format_severity(finding.severity),
            finding.type,
            finding.description,
            truncate(finding.principal, 60),
        )
    console.print(table)

    if len(findings) > DEFAULT_TABLE_LIMIT:
        console.print(f"[dim]... and {len(findings) - DEFAULT_TABLE_LIMIT} more (use --format json)[/dim]")
