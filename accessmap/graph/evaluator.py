"""
Layered authorization decision (CanAccess).

The decision is an ordered list of named stages. Each stage looks at one
policy layer and answers ALLOW, DENY or NOT_APPLICABLE. The first stage
that answers ALLOW or DENY decides; if every stage falls through, access
is implicitly denied.

Stage order mirrors the AWS evaluation logic:
    1. organization-guardrail   SCP allow-list, then SCP denies (root bypasses)
    2. permission-boundary      boundary allow-list, then boundary denies
    3. session-policy           session allow-list, then session denies
    4. explicit-deny            principal's own and its groups' deny edges
    5. explicit-allow           principal's own allow edges
    6. group-inheritance        any group of the principal grants access

Condition failures: a deny whose condition cannot be evaluated is treated
as applying; an allow whose condition cannot be evaluated is skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from accessmap.errors import ConditionEvaluationError
from accessmap.iam.arn_utils import is_root_user
from accessmap.iam.conditions import ConditionEvaluator, EvaluationContext
from accessmap.iam.patterns import matches_action, matches_any_action, matches_any_resource, matches_resource
from accessmap.models import PermissionEdge, PolicyDocument, Principal, Statement

logger = logging.getLogger(__name__)

EdgeIndex = Mapping[str, Mapping[str, List[PermissionEdge]]]


class Decision(Enum):
    ALLOW = "allow"
    DENY = "deny"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class GraphView:
    """
    Read-only handle on the graph's maps for the duration of one decision.

    Only valid while the owning graph's read lock is held.
    """
    principals: Mapping[str, Principal]
    allows: EdgeIndex
    denies: EdgeIndex
    scps: Sequence[PolicyDocument]
    condition_evaluator: ConditionEvaluator


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of CanAccess plus the stage that settled it."""
    allowed: bool
    stage: str

    def __bool__(self) -> bool:
        return self.allowed


Stage = Callable[[str, str, str, EvaluationContext, GraphView], Decision]

IMPLICIT_DENY = "implicit-deny"


def _evaluate(evaluator: ConditionEvaluator, conditions, context: EvaluationContext) -> bool:
    """Run an injected evaluator; any failure surfaces as ConditionEvaluationError."""
    try:
        return bool(evaluator.evaluate(conditions, context))
    except ConditionEvaluationError:
        raise
    except Exception as e:
        raise ConditionEvaluationError(f"condition evaluator failed: {e!r}") from e


# ═══════════════════════════════════════════════════════════════════════════════
# Allow-list filters (SCP, boundary, session policy)
# ═══════════════════════════════════════════════════════════════════════════════

def _statement_matches(stmt: Statement, action: str, resource_arn: str) -> bool:
    return matches_any_action(stmt.actions, action) and matches_any_resource(stmt.resources, resource_arn)


def _allow_list_filter(
    statements: Sequence[Statement],
    action: str,
    resource_arn: str,
    context: EvaluationContext,
    evaluator: ConditionEvaluator,
    layer: str,
) -> Decision:
    """
    Apply the two-step allow-list check shared by SCPs, boundaries and
    session policies.

    Step 1: some Allow statement must match, or the action is implicitly blocked.
    Step 2: any matching Deny statement blocks regardless of the allow.

    Returns:
        DENY when blocked, NOT_APPLICABLE when the layer lets the request through
    """
    explicitly_allowed = False
    for stmt in statements:
        if not stmt.is_allow or not _statement_matches(stmt, action, resource_arn):
            continue
        try:
            matched = _evaluate(evaluator, stmt.condition, context)
        except ConditionEvaluationError as e:
            logger.warning(
                "Failed to evaluate %s allow condition (statement %s): %s (skipping this allow)",
                layer, stmt.sid or "<no sid>", e,
            )
            continue
        if matched:
            explicitly_allowed = True
            break

    if not explicitly_allowed:
        logger.debug("%s does not allow %s on %s", layer, action, resource_arn)
        return Decision.DENY

    for stmt in statements:
        if not stmt.is_deny or not _statement_matches(stmt, action, resource_arn):
            continue
        try:
            matched = _evaluate(evaluator, stmt.condition, context)
        except ConditionEvaluationError as e:
            logger.warning(
                "Failed to evaluate %s deny condition (statement %s): %s (assuming deny applies)",
                layer, stmt.sid or "<no sid>", e,
            )
            return Decision.DENY
        if matched:
            logger.debug("%s explicitly denies %s on %s (statement %s)", layer, action, resource_arn, stmt.sid)
            return Decision.DENY

    return Decision.NOT_APPLICABLE


def organization_guardrail_stage(
    principal_arn: str, action: str, resource_arn: str, context: EvaluationContext, view: GraphView
) -> Decision:
    # Root identity is not affected by SCPs
    if is_root_user(principal_arn) or not view.scps:
        return Decision.NOT_APPLICABLE

    statements = [stmt for scp in view.scps for stmt in scp.statements]
    return _allow_list_filter(statements, action, resource_arn, context, view.condition_evaluator, "SCP")


def permission_boundary_stage(
    principal_arn: str, action: str, resource_arn: str, context: EvaluationContext, view: GraphView
) -> Decision:
    principal = view.principals.get(principal_arn)
    if principal is None or principal.permissions_boundary is None:
        return Decision.NOT_APPLICABLE

    return _allow_list_filter(
        principal.permissions_boundary.statements,
        action, resource_arn, context, view.condition_evaluator, "permission boundary",
    )


def session_policy_stage(
    principal_arn: str, action: str, resource_arn: str, context: EvaluationContext, view: GraphView
) -> Decision:
    if context.session_policy is None:
        return Decision.NOT_APPLICABLE

    return _allow_list_filter(
        context.session_policy.statements,
        action, resource_arn, context, view.condition_evaluator, "session policy",
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Edge scans (identity and resource policies)
# ═══════════════════════════════════════════════════════════════════════════════

def _matching_edges(index: EdgeIndex, owner_arn: str, action: str, resource_arn: str):
    for action_pattern, edges in index.get(owner_arn, {}).items():
        if not matches_action(action_pattern, action):
            continue
        for edge in edges:
            if matches_resource(edge.resource_pattern, resource_arn):
                yield edge


def _group_memberships(principal_arn: str, view: GraphView) -> Tuple[str, ...]:
    principal = view.principals.get(principal_arn)
    if principal is None:
        return ()
    return tuple(principal.group_memberships)


def explicit_deny_stage(
    principal_arn: str, action: str, resource_arn: str, context: EvaluationContext, view: GraphView
) -> Decision:
    # Users inherit deny rules from their groups
    for owner_arn in (principal_arn,) + _group_memberships(principal_arn, view):
        for edge in _matching_edges(view.denies, owner_arn, action, resource_arn):
            try:
                matched = _evaluate(view.condition_evaluator, edge.conditions, context)
            except ConditionEvaluationError as e:
                logger.warning(
                    "Failed to evaluate deny condition for %s on %s: %s (assuming deny applies)",
                    owner_arn, resource_arn, e,
                )
                return Decision.DENY
            if matched:
                logger.debug("Explicit deny for %s from %s (%s)", principal_arn, owner_arn, edge.policy_name)
                return Decision.DENY
    return Decision.NOT_APPLICABLE


def explicit_allow_stage(
    principal_arn: str, action: str, resource_arn: str, context: EvaluationContext, view: GraphView
) -> Decision:
    for edge in _matching_edges(view.allows, principal_arn, action, resource_arn):
        try:
            matched = _evaluate(view.condition_evaluator, edge.conditions, context)
        except ConditionEvaluationError as e:
            logger.warning(
                "Failed to evaluate allow condition for %s on %s: %s (skipping this allow)",
                principal_arn, resource_arn, e,
            )
            continue
        if matched:
            return Decision.ALLOW
    return Decision.NOT_APPLICABLE


def group_inheritance_stage(
    principal_arn: str, action: str, resource_arn: str, context: EvaluationContext, view: GraphView
) -> Decision:
    # Groups are evaluated one level deep: a group's own memberships are ignored
    for group_arn in _group_memberships(principal_arn, view):
        if decide(view, group_arn, action, resource_arn, context, stages=GROUP_STAGES):
            logger.debug("%s inherits %s on %s from %s", principal_arn, action, resource_arn, group_arn)
            return Decision.ALLOW
    return Decision.NOT_APPLICABLE


STAGES: Tuple[Tuple[str, Stage], ...] = (
    ("organization-guardrail", organization_guardrail_stage),
    ("permission-boundary", permission_boundary_stage),
    ("session-policy", session_policy_stage),
    ("explicit-deny", explicit_deny_stage),
    ("explicit-allow", explicit_allow_stage),
    ("group-inheritance", group_inheritance_stage),
)

GROUP_STAGES: Tuple[Tuple[str, Stage], ...] = STAGES[:-1]


def decide(
    view: GraphView,
    principal_arn: str,
    action: str,
    resource_arn: str,
    context: EvaluationContext,
    stages: Optional[Sequence[Tuple[str, Stage]]] = None,
) -> AccessDecision:
    """
    Run the stages in order and return the first definitive outcome.

    Args:
        view: Graph maps (caller holds the read lock)
        principal_arn: Principal making the request
        action: Action requested, e.g. "s3:GetObject"
        resource_arn: Resource requested
        context: Request-time facts
        stages: Stage list override (defaults to the full pipeline)

    Returns:
        AccessDecision; truthy when access is granted
    """
    for name, stage in stages if stages is not None else STAGES:
        decision = stage(principal_arn, action, resource_arn, context, view)
        if decision is Decision.DENY:
            return AccessDecision(allowed=False, stage=name)
        if decision is Decision.ALLOW:
            return AccessDecision(allowed=True, stage=name)

    return AccessDecision(allowed=False, stage=IMPLICIT_DENY)
