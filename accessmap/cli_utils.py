# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#                            ᚱᚢᚾᛁᚱ • SHARED CLI UTILITIES
#             Constants, console, snapshot loading and error mapping
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#
#   Everything the command modules share: exit codes, the rich console,
#   building an EvaluationContext from global flags, and turning library
#   errors into messages and exit codes.
#
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Tuple

import click
from rich.console import Console

from accessmap.errors import AccessLookupError, AccessMapError, GraphConstructionError, SnapshotError
from accessmap.graph.access_graph import AccessGraph
from accessmap.graph.builder import build_graph
from accessmap.iam.conditions import EvaluationContext
from accessmap.models import CollectionResult
from accessmap.query.engine import DEFAULT_MAX_HOPS, DEFAULT_MAX_PATHS
from accessmap.simulation import load_from_file, load_policy_file

# ᚢᚱᚢᛉ • Uruz - Constants
DEFAULT_DATA_FILE = 'accessmap-snapshot.json'
DATA_ENV_VAR = 'ACCESSMAP_DATA'
DEFAULT_TABLE_LIMIT = 50

__all__ = [
    'DEFAULT_DATA_FILE', 'DATA_ENV_VAR', 'DEFAULT_MAX_HOPS', 'DEFAULT_MAX_PATHS', 'DEFAULT_TABLE_LIMIT',
    'ExitCode', 'console', 'set_console_theme', 'configure_logging', 'format_severity', 'truncate',
    'load_snapshot', 'load_graph', 'build_evaluation_context', 'print_json', 'exit_code_for',
]


# ᛏᛁᚹᚨᛉ • Tiwaz - Exit Codes
class ExitCode:
    """
    Exit codes, distinct per failure class so scripts can react.

    CI/CD Example:
        accessmap path --from ... --to ... --action s3:GetObject
        if [ $? -eq 3 ]; then echo "check the ARN you typed"; fi
    """
    SUCCESS = 0               # Query ran (whatever its answer)
    ERROR = 1                 # General error, or validation found issues
    CONSTRUCTION_FAILED = 2   # Snapshot could not be compiled into a graph
    LOOKUP_FAILED = 3         # Principal or resource not in the graph


SEVERITY_COLORS: Dict[str, str] = {
    'CRITICAL': 'red',
    'HIGH': 'orange1',
    'MEDIUM': 'yellow',
    'LOW': 'blue',
    'INFO': 'dim',
    'WARNING': 'yellow',
}

# ═══════════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════════
logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> None:
    """
    Configure the root logger on stderr. DEBUG with ``--debug``, else WARNING
    (condition-evaluation warnings stay visible).
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Console Configuration
# ═══════════════════════════════════════════════════════════════════════════════
console = Console()


def set_console_theme(*, no_color: bool = False) -> None:
    """Disable colored output on the shared console (useful for CI/CD)."""
    console.no_color = no_color


def truncate(text: str, max_length: int, suffix: str = '..') -> str:
    text = str(text) if text else ''
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def format_severity(severity: str) -> str:
    color = SEVERITY_COLORS.get(severity.upper(), 'white')
    return f"[{color}]{severity.upper()}[/{color}]"


def print_json(data: Any) -> None:
    """Plain JSON on stdout; bypasses rich so output stays machine-readable."""
    click.echo(json.dumps(data, indent=2))


# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot & Context Loading
# ═══════════════════════════════════════════════════════════════════════════════

def load_snapshot(path: str) -> CollectionResult:
    logger.info("Loading snapshot from %s", path)
    return load_from_file(path)


def load_graph(path: str) -> Tuple[CollectionResult, AccessGraph]:
    """
    Load a snapshot file and compile it.

    Raises:
        SnapshotError: unreadable or invalid file
        GraphConstructionError: the snapshot cannot be compiled
    """
    snapshot = load_snapshot(path)
    return snapshot, build_graph(snapshot)


def build_evaluation_context(
    source_ip: Optional[str] = None,
    mfa: bool = False,
    org_id: Optional[str] = None,
    principal_org_id: Optional[str] = None,
    principal_arn: Optional[str] = None,
    session_policy: Optional[str] = None,
) -> EvaluationContext:
    """
    Build the per-invocation EvaluationContext from global CLI flags.

    Args:
        session_policy: Path to a JSON policy file applied as a session policy
    """
    return EvaluationContext(
        source_ip=source_ip,
        mfa_authenticated=mfa,
        organization_id=org_id,
        principal_org_id=principal_org_id,
        principal_arn=principal_arn,
        session_policy=load_policy_file(session_policy) if session_policy else None,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Error Mapping
# ═══════════════════════════════════════════════════════════════════════════════

def exit_code_for(command: str, error: Exception) -> int:
    """
    Report a failed command and choose its exit code.

    Args:
        command: Command name for the log line
        error: The exception that ended the command

    Returns:
        ExitCode value for the error class
    """
    if isinstance(error, GraphConstructionError):
        logger.error("%s failed: cannot build graph: %s", command, error)
        console.print(f"[red]✗ Construction failed:[/red] cannot build graph: {error}")
        return ExitCode.CONSTRUCTION_FAILED
    if isinstance(error, AccessLookupError):
        logger.error("%s failed: %s", command, error)
        console.print(f"[red]✗ Query failed:[/red] {error}")
        return ExitCode.LOOKUP_FAILED
    if isinstance(error, (SnapshotError, AccessMapError)):
        logger.error("%s failed: %s", command, error)
    else:
        logger.error("%s failed: %s", command, error, exc_info=True)
    console.print(f"[red]✗ Error:[/red] {error}")
    return ExitCode.ERROR
