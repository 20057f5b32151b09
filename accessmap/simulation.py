"""
Accessmap Simulation

Offline what-if analysis over snapshot files: load/save snapshots, apply
proposed policy changes to a copy, and compare who can access a resource
before and after.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from accessmap.errors import SnapshotError
from accessmap.graph.access_graph import AccessGraph
from accessmap.graph.builder import build_graph, decode_snapshot
from accessmap.iam.conditions import EvaluationContext
from accessmap.models import CollectionResult, PolicyDocument, Principal, PrincipalType, Resource
from accessmap.query.engine import QueryEngine

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_from_file(path: PathLike) -> CollectionResult:
    """
    Load a snapshot from a JSON file.

    Raises:
        SnapshotError: the file cannot be read, is not JSON, or is not a JSON object
        GraphConstructionError: a principal or resource record is malformed
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise SnapshotError(f"failed to read snapshot {path}: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SnapshotError(f"failed to parse JSON from {path}: {e}") from e

    if not isinstance(data, dict):
        raise SnapshotError(f"snapshot {path} must contain a JSON object")

    result = decode_snapshot(data)

    logger.debug("Loaded %d principals and %d resources from %s", len(result.principals), len(result.resources), path)
    return result


def load_policy_file(path: PathLike) -> PolicyDocument:
    """Load a single policy document from a JSON file."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return PolicyDocument.from_dict(data)
    except OSError as e:
        raise SnapshotError(f"failed to read policy file {path}: {e}") from e
    except (TypeError, ValueError) as e:
        raise SnapshotError(f"failed to parse policy JSON from {path}: {e}") from e


def save_to_file(snapshot: CollectionResult, path: PathLike) -> None:
    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(snapshot.to_dict(), f, indent=2)
    except OSError as e:
        raise SnapshotError(f"failed to write snapshot {path}: {e}") from e


# ═══════════════════════════════════════════════════════════════════════════════
# Policy changes
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class PolicyChanges:
    """Modifications to apply to a snapshot."""
    add_principals: List[Principal] = field(default_factory=list)
    remove_principals: List[str] = field(default_factory=list)
    update_policies: Dict[str, List[PolicyDocument]] = field(default_factory=dict)  # arn -> policies to append
    add_resources: List[Resource] = field(default_factory=list)
    remove_resources: List[str] = field(default_factory=list)


def merge_policy_changes(base: CollectionResult, changes: Optional[PolicyChanges]) -> CollectionResult:
    """
    Apply changes to a deep copy of ``base``.

    Order: principal additions, policy appends, principal removals, resource
    additions, resource removals. A principal added and removed in the same
    change set ends up removed.

    Raises:
        ValueError: base is None
    """
    if base is None:
        raise ValueError("base snapshot cannot be None")

    modified = base.copy()
    if changes is None:
        return modified

    changes = copy.deepcopy(changes)

    modified.principals.extend(changes.add_principals)

    for principal in modified.principals:
        new_policies = changes.update_policies.get(principal.arn)
        if new_policies:
            principal.policies.extend(new_policies)

    unknown = set(changes.update_policies) - {p.arn for p in modified.principals}
    for arn in sorted(unknown):
        logger.warning("Policy update targets unknown principal %s (ignored)", arn)

    if changes.remove_principals:
        removed = set(changes.remove_principals)
        modified.principals = [p for p in modified.principals if p.arn not in removed]

    modified.resources.extend(changes.add_resources)

    if changes.remove_resources:
        removed = set(changes.remove_resources)
        modified.resources = [r for r in modified.resources if r.arn not in removed]

    return modified


# ═══════════════════════════════════════════════════════════════════════════════
# Access comparison
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AccessDiff:
    """Principals who gained, lost or kept access between two graphs."""
    granted: List[str]
    revoked: List[str]
    unchanged: List[str]

    @property
    def has_changes(self) -> bool:
        return bool(self.granted or self.revoked)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            'granted': list(self.granted),
            'revoked': list(self.revoked),
            'unchanged': list(self.unchanged),
        }


def compare_access(
    before: AccessGraph,
    after: AccessGraph,
    resource_arn: str,
    action: str,
    context: Optional[EvaluationContext] = None,
) -> AccessDiff:
    """
    Compare ``who_can(resource_arn, action)`` across two graphs.

    Returns:
        AccessDiff with each list sorted by ARN

    Raises:
        ValueError: either graph is None
    """
    if before is None or after is None:
        raise ValueError("graphs cannot be None")

    before_arns = {p.arn for p in QueryEngine(before, context).who_can(resource_arn, action)}
    after_arns = {p.arn for p in QueryEngine(after, context).who_can(resource_arn, action)}

    return AccessDiff(
        granted=sorted(after_arns - before_arns),
        revoked=sorted(before_arns - after_arns),
        unchanged=sorted(before_arns & after_arns),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ValidationIssue:
    """A security concern found by ``validate_snapshot``."""
    type: str
    severity: str  # 'warning' or 'info'
    message: str
    identifiers: List[str] = field(default_factory=list)  # principal or resource ARNs

    def to_dict(self) -> Dict[str, object]:
        return {
            'type': self.type,
            'severity': self.severity,
            'message': self.message,
            'identifiers': list(self.identifiers),
        }


def validate_snapshot(
    snapshot: CollectionResult,
    graph: Optional[AccessGraph] = None,
) -> List[ValidationIssue]:
    """
    Check a snapshot for common security issues.

    Checks:
        - principals with full admin access ("*" on "*")
        - resources reachable by the public principal
        - principals with no policies at all (possibly unused)

    Args:
        snapshot: Snapshot to validate
        graph: Graph already built from ``snapshot`` (built here when omitted)

    Returns:
        Issues found; empty when the snapshot is clean
    """
    if graph is None:
        graph = build_graph(snapshot)
    engine = QueryEngine(graph)
    issues: List[ValidationIssue] = []

    admins = [p for p in engine.who_can('*', '*') if p.type != PrincipalType.PUBLIC]
    if admins:
        issues.append(ValidationIssue(
            type='full_admin',
            severity='warning',
            message=f"{len(admins)} principal(s) have full admin access (* on *)",
            identifiers=[p.arn for p in admins],
        ))

    public = engine.find_public_access()
    if public:
        issues.append(ValidationIssue(
            type='public_access',
            severity='warning',
            message=f"{len(public)} resource(s) allow public access",
            identifiers=[r.arn for r in public],
        ))

    unused = [
        p.arn for p in snapshot.principals
        if not p.policies and p.trust_policy is None and p.type != PrincipalType.PUBLIC
    ]
    if unused:
        issues.append(ValidationIssue(
            type='no_policies',
            severity='info',
            message=f"{len(unused)} principal(s) have no policies (potentially unused)",
            identifiers=unused,
        ))

    return issues
