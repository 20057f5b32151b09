"""
Query Engine - answers access questions against a built AccessGraph.

Key Features:
    - who_can: every principal that can perform an action on a resource
    - find_paths: breadth-first search over role assumptions
    - find_public_access / find_high_risk_access: report queries

Only the graph's public read operations are used; the engine never reaches
into edge indexes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, List, Optional, Tuple

import networkx as nx

from accessmap.graph.access_graph import AccessGraph
from accessmap.iam.arn_utils import account_root_arn, extract_account_id, is_cross_account, is_root_user
from accessmap.iam.conditions import EvaluationContext
from accessmap.iam.policy_parser import PUBLIC_PRINCIPAL_ARN
from accessmap.models import AccessHop, AccessPath, PolicyType, Principal, PrincipalType, Resource

logger = logging.getLogger(__name__)

DEFAULT_MAX_HOPS = 5
DEFAULT_MAX_PATHS = 10

ASSUME_ROLE_ACTION = "sts:AssumeRole"

SEVERITY_ORDER = {'CRITICAL': 0, 'HIGH': 1, 'MEDIUM': 2, 'LOW': 3}


@dataclass(frozen=True)
class HighRiskFinding:
    """A risky access pattern surfaced by ``find_high_risk_access``."""
    type: str
    severity: str
    description: str
    principal: str = ""
    resource: str = ""
    action: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            'type': self.type,
            'severity': self.severity,
            'description': self.description,
            'principal': self.principal,
            'resource': self.resource,
            'action': self.action,
        }


class QueryEngine:
    """
    Read-only queries over an AccessGraph.

    The evaluation context is fixed per engine; ``with_context`` returns a
    new engine over the same graph.
    """

    def __init__(self, graph: AccessGraph, context: Optional[EvaluationContext] = None):
        self.graph = graph
        self.context = context or EvaluationContext()

    def with_context(self, context: EvaluationContext) -> "QueryEngine":
        engine = QueryEngine(self.graph, context)
        if 'trust_graph' in self.__dict__:
            engine.__dict__['trust_graph'] = self.trust_graph
        return engine

    # ─────────────────────────────────────────────────────────────────────────
    # WhoCan
    # ─────────────────────────────────────────────────────────────────────────

    def who_can(self, resource_arn: str, action: str) -> List[Principal]:
        """
        Principals allowed to perform ``action`` on ``resource_arn``.

        Returns:
            Principals in graph insertion order
        """
        return [
            p for p in self.graph.get_all_principals()
            if self.graph.can_access(p.arn, action, resource_arn, self.context)
        ]

    # ─────────────────────────────────────────────────────────────────────────
    # FindPaths
    # ─────────────────────────────────────────────────────────────────────────

    @cached_property
    def trust_graph(self) -> nx.DiGraph:
        """
        Directed graph of recorded trust: trustor -> role.

        A ``"*"`` trustor becomes a node of its own; ``_assumable_roles``
        consults it for every principal.
        """
        trust_graph = nx.DiGraph()
        for principal in self.graph.get_all_principals():
            if principal.type != PrincipalType.ROLE:
                continue
            for trustor in self.graph.get_trusted_principals(principal.arn):
                trust_graph.add_edge(trustor, principal.arn)
        return trust_graph

    def _assumable_roles(self, principal_arn: str) -> List[str]:
        """
        Roles ``principal_arn`` can step into, sorted by ARN.

        Direct and wildcard trust are sufficient on their own. Trust granted
        to the principal's account root also needs an identity-side
        ``sts:AssumeRole`` permission.
        """
        candidates = set()
        for trustor in (principal_arn, PUBLIC_PRINCIPAL_ARN):
            if trustor in self.trust_graph:
                candidates.update(self.trust_graph.successors(trustor))

        account_id = extract_account_id(principal_arn)
        if account_id and not is_root_user(principal_arn):
            root_arn = account_root_arn(account_id)
            if root_arn in self.trust_graph:
                for role_arn in self.trust_graph.successors(root_arn):
                    if role_arn not in candidates and self.graph.can_access(
                        principal_arn, ASSUME_ROLE_ACTION, role_arn, self.context
                    ):
                        candidates.add(role_arn)

        candidates.discard(principal_arn)
        return sorted(r for r in candidates if self.graph.get_principal(r) is not None)

    def find_paths(
        self,
        from_principal_arn: str,
        to_resource_arn: str,
        action: str,
        max_hops: int = DEFAULT_MAX_HOPS,
        max_paths: int = DEFAULT_MAX_PATHS,
    ) -> List[AccessPath]:
        """
        Find ways for a principal to reach a resource, directly or by
        assuming roles.

        Breadth-first, level by level: every path of n hops is found before
        any path of n+1. Successors are visited in ARN order, so paths of
        equal length come out lexicographically. A path stops at the first
        principal that has access. A principal first reached at one depth is
        never explored again at a deeper one, and trust lookups are cached
        per principal for the duration of the search.

        Args:
            from_principal_arn: Starting principal
            to_resource_arn: Target resource
            action: Action to perform on the resource
            max_hops: Longest path to report, counting the final access hop
            max_paths: Stop after this many paths

        Returns:
            Paths sorted by hop count

        Raises:
            PrincipalNotFoundError: unknown source
            ResourceNotFoundError: unknown destination
        """
        self.graph.require_principal(from_principal_arn)
        self.graph.require_resource(to_resource_arn)

        paths: List[AccessPath] = []
        access_cache: Dict[str, bool] = {}
        roles_cache: Dict[str, List[str]] = {}
        # Depth at which each principal was first reached; never revisited deeper
        first_depth: Dict[str, int] = {from_principal_arn: 0}

        def has_access(arn: str) -> bool:
            if arn not in access_cache:
                access_cache[arn] = self.graph.can_access(arn, action, to_resource_arn, self.context)
            return access_cache[arn]

        def assumable(arn: str) -> List[str]:
            if arn not in roles_cache:
                roles_cache[arn] = self._assumable_roles(arn)
            return roles_cache[arn]

        level: List[Tuple[str, ...]] = [(from_principal_arn,)]
        while level and len(paths) < max_paths:
            next_level: List[Tuple[str, ...]] = []
            for chain in level:
                current = chain[-1]
                if has_access(current):
                    paths.append(self._build_path(chain, to_resource_arn, action))
                    if len(paths) >= max_paths:
                        break
                    continue

                # A chain of n principals yields an n-hop path
                depth = len(chain)
                if depth >= max_hops:
                    continue
                for role_arn in assumable(current):
                    if role_arn in chain or first_depth.setdefault(role_arn, depth) < depth:
                        continue
                    next_level.append(chain + (role_arn,))
            level = next_level

        logger.debug("Found %d path(s) from %s to %s", len(paths), from_principal_arn, to_resource_arn)
        return paths

    @staticmethod
    def _build_path(chain: Tuple[str, ...], resource_arn: str, action: str) -> AccessPath:
        hops = [
            AccessHop(source=src, target=dst, action=ASSUME_ROLE_ACTION, policy_type=PolicyType.TRUST)
            for src, dst in zip(chain, chain[1:])
        ]
        hops.append(AccessHop(source=chain[-1], target=resource_arn, action=action, policy_type=PolicyType.IDENTITY))
        return AccessPath(source=chain[0], target=resource_arn, action=action, hops=tuple(hops))

    # ─────────────────────────────────────────────────────────────────────────
    # Reports
    # ─────────────────────────────────────────────────────────────────────────

    def find_public_access(self) -> List[Resource]:
        """Resources on which the public principal holds at least one allow edge."""
        if self.graph.get_principal(PUBLIC_PRINCIPAL_ARN) is None:
            return []
        return [
            r for r in self.graph.get_all_resources()
            if self.graph.actions_granted_on(PUBLIC_PRINCIPAL_ARN, r.arn)
        ]

    def find_high_risk_access(self) -> List[HighRiskFinding]:
        """
        Flag risky patterns in the graph.

        Checks:
            - full admin: allow "*" on "*"                      CRITICAL
            - resource reachable by the public principal        CRITICAL
            - role assumable by anyone ("*" trustor)            CRITICAL
            - role trusting a principal in another account      HIGH

        Returns:
            Findings sorted by severity (stable within a severity)
        """
        findings: List[HighRiskFinding] = []

        for principal in self.graph.get_all_principals():
            if principal.type != PrincipalType.PUBLIC and self.graph.has_allow(principal.arn, '*', '*'):
                findings.append(HighRiskFinding(
                    type='full_admin',
                    severity='CRITICAL',
                    description=f"{principal.name or principal.arn} is allowed every action on every resource",
                    principal=principal.arn,
                    resource='*',
                    action='*',
                ))

        for resource in self.find_public_access():
            actions = self.graph.actions_granted_on(PUBLIC_PRINCIPAL_ARN, resource.arn)
            findings.append(HighRiskFinding(
                type='public_access',
                severity='CRITICAL',
                description=f"{resource.name or resource.arn} is publicly accessible",
                principal=PUBLIC_PRINCIPAL_ARN,
                resource=resource.arn,
                action=', '.join(actions),
            ))

        for principal in self.graph.get_all_principals():
            if principal.type != PrincipalType.ROLE:
                continue
            for trustor in self.graph.get_trusted_principals(principal.arn):
                if trustor == PUBLIC_PRINCIPAL_ARN:
                    findings.append(HighRiskFinding(
                        type='wildcard_trust',
                        severity='CRITICAL',
                        description=f"Role {principal.name or principal.arn} can be assumed by anyone",
                        principal=trustor,
                        resource=principal.arn,
                        action=ASSUME_ROLE_ACTION,
                    ))
                elif is_cross_account(trustor, principal.arn):
                    findings.append(HighRiskFinding(
                        type='cross_account_trust',
                        severity='HIGH',
                        description=(
                            f"Role {principal.name or principal.arn} trusts account "
                            f"{extract_account_id(trustor)}"
                        ),
                        principal=trustor,
                        resource=principal.arn,
                        action=ASSUME_ROLE_ACTION,
                    ))

        findings.sort(key=lambda f: SEVERITY_ORDER.get(f.severity, 4))
        return findings
