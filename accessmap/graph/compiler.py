"""
Policy Compiler - turns policy documents into graph edges

Three flavours:
    identity policy   one allow/deny edge per (action, resource) pair
    trust policy      Allow statements only; each Principal becomes a trustor
    resource policy   each Principal becomes a grantee, scoped to the owning
                      resource; wildcard principals collapse
                      into the reserved public principal
"""

import logging
from typing import Iterable, List, Sequence, Tuple

from accessmap.graph.access_graph import AccessGraph
from accessmap.iam.patterns import matches_resource
from accessmap.iam.policy_parser import PUBLIC_PRINCIPAL_ARN, extract_principals, is_public_principal
from accessmap.models import PolicyDocument, Principal, PrincipalType, Resource, Statement

logger = logging.getLogger(__name__)

PUBLIC_PRINCIPAL_NAME = "Public (Anonymous)"


def public_principal() -> Principal:
    """The reserved node standing in for anonymous / any-account access."""
    return Principal(arn=PUBLIC_PRINCIPAL_ARN, type=PrincipalType.PUBLIC, name=PUBLIC_PRINCIPAL_NAME)


def scope_to_resource(resource_arn: str, patterns: Sequence[str]) -> List[str]:
    """
    Limit a resource-policy statement's Resource patterns to the owning
    resource.

    Rules:
        no patterns                      -> the resource itself
        the resource or a path under it  -> kept as written
        broader than the resource ("*")  -> the resource and resource/*
        matches only paths under it      -> resource/*
        anything else                    -> dropped

    Examples:
        scope_to_resource("arn:aws:kms:us-east-1:1:key/k", ["*"])
            -> ["arn:aws:kms:us-east-1:1:key/k", "arn:aws:kms:us-east-1:1:key/k/*"]
        scope_to_resource("arn:aws:s3:::b", ["arn:aws:s3:::b/*", "arn:aws:s3:::other"])
            -> ["arn:aws:s3:::b/*"]
    """
    if not patterns:
        return [resource_arn]

    nested = resource_arn + "/"
    scoped: List[str] = []
    for pattern in patterns:
        if pattern == resource_arn or pattern.startswith(nested):
            candidates: Tuple[str, ...] = (pattern,)
        elif matches_resource(pattern, resource_arn):
            candidates = (resource_arn, nested + "*")
        elif matches_resource(pattern, nested + "*"):
            candidates = (nested + "*",)
        else:
            logger.debug("Dropping pattern %s outside of %s", pattern, resource_arn)
            candidates = ()
        for candidate in candidates:
            if candidate not in scoped:
                scoped.append(candidate)
    return scoped


class PolicyCompiler:
    """Appends compiled edges and trust relations to an AccessGraph."""

    def __init__(self, graph: AccessGraph):
        self.graph = graph

    def compile_identity_policy(self, principal_arn: str, policy: PolicyDocument) -> int:
        """
        Compile a policy attached to a principal.

        Args:
            principal_arn: Principal the policy is attached to
            policy: Parsed policy document

        Returns:
            Number of edges added
        """
        count = 0
        for stmt in policy.statements:
            count += self._add_statement_edges(principal_arn, stmt, stmt.resources)
        return count

    def compile_trust_policy(self, role_arn: str, policy: PolicyDocument) -> int:
        """
        Record who may assume a role.

        Only Allow statements are considered. Trustors are stored as written,
        with account ids expanded to their root ARN; ``"*"`` stays ``"*"``.
        """
        count = 0
        for stmt in policy.statements:
            if not stmt.is_allow:
                continue
            for trustor in extract_principals(stmt.principal):
                self.graph.add_trust_relation(trustor, role_arn)
                count += 1
        return count

    def compile_resource_policy(self, resource: Resource, policy: PolicyDocument) -> int:
        """
        Compile a resource policy into edges owned by its grantees.

        A resource policy only governs the resource it is attached to, so
        every edge is scoped to that resource (and paths beneath it). See
        ``scope_to_resource``.
        """
        count = 0
        for stmt in policy.statements:
            patterns = scope_to_resource(resource.arn, stmt.resources)
            for grantee in self._grantees(stmt):
                count += self._add_statement_edges(grantee, stmt, patterns)
        return count

    def _grantees(self, stmt: Statement) -> List[str]:
        grantees: List[str] = []
        for principal_id in extract_principals(stmt.principal):
            if is_public_principal(principal_id):
                principal_id = PUBLIC_PRINCIPAL_ARN
                self._ensure_public_principal()
            if principal_id not in grantees:
                grantees.append(principal_id)
        return grantees

    def _ensure_public_principal(self) -> None:
        if self.graph.get_principal(PUBLIC_PRINCIPAL_ARN) is None:
            logger.debug("Creating public principal node")
            self.graph.add_principal(public_principal())

    def _add_statement_edges(self, owner_arn: str, stmt: Statement, resource_patterns: Iterable[str]) -> int:
        patterns = list(resource_patterns)
        for action in stmt.actions:
            for pattern in patterns:
                self.graph.add_edge(
                    owner_arn,
                    action,
                    pattern,
                    is_deny=stmt.is_deny,
                    conditions=stmt.condition,
                    policy_name=stmt.sid,
                )
        return len(stmt.actions) * len(patterns)
