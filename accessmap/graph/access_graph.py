# ᚷᚱᚨᚠ • Graph - Principals, Resources and Compiled Edges
"""
AccessGraph: the node/edge store the evaluator and query engine read from.

Internal layout:
    principals         arn -> Principal (insertion ordered)
    resources          arn -> Resource (insertion ordered)
    allows / denies    principal arn -> action pattern -> [PermissionEdge]
    trust_relations    role arn -> [trustor id]
    scps               organization policies applicable to this account

All mutators take the exclusive lock, all readers the shared lock. The graph
is append-only: nothing is ever removed.
"""

import logging
from typing import Dict, List, Optional

from accessmap.errors import PrincipalNotFoundError, ResourceNotFoundError
from accessmap.graph.evaluator import AccessDecision, GraphView, decide
from accessmap.graph.locks import ReadWriteLock
from accessmap.iam.conditions import ConditionEvaluator, DefaultConditionEvaluator, EvaluationContext
from accessmap.iam.patterns import matches_resource
from accessmap.models import PermissionEdge, PolicyDocument, Principal, Resource

logger = logging.getLogger(__name__)

_EMPTY_CONTEXT = EvaluationContext()


class AccessGraph:
    """Thread-safe store of principals, resources, edges and trust relations."""

    def __init__(self, condition_evaluator: Optional[ConditionEvaluator] = None):
        self._lock = ReadWriteLock()
        self._principals: Dict[str, Principal] = {}
        self._resources: Dict[str, Resource] = {}
        self._allows: Dict[str, Dict[str, List[PermissionEdge]]] = {}
        self._denies: Dict[str, Dict[str, List[PermissionEdge]]] = {}
        self._trust_relations: Dict[str, List[str]] = {}
        self._scps: List[PolicyDocument] = []
        self._condition_evaluator = condition_evaluator or DefaultConditionEvaluator()

    # ─────────────────────────────────────────────────────────────────────────
    # Mutators
    # ─────────────────────────────────────────────────────────────────────────

    def add_principal(self, principal: Principal) -> None:
        with self._lock.write():
            self._principals[principal.arn] = principal

    def add_resource(self, resource: Resource) -> None:
        with self._lock.write():
            self._resources[resource.arn] = resource

    def add_edge(
        self,
        principal_arn: str,
        action: str,
        resource_pattern: str,
        is_deny: bool = False,
        conditions: Optional[dict] = None,
        policy_name: str = "",
    ) -> None:
        """
        Record one allow or deny fact.

        Edges accumulate: two statements with the same action pattern produce
        two entries under that key.

        Args:
            principal_arn: Principal the edge belongs to
            action: Action pattern, e.g. "s3:Get*"
            resource_pattern: Resource ARN pattern
            is_deny: Route to the deny index instead of the allow index
            conditions: Condition block from the source statement
            policy_name: Label for diagnostics (statement Sid)
        """
        edge = PermissionEdge(resource_pattern=resource_pattern, conditions=conditions, policy_name=policy_name)
        with self._lock.write():
            index = self._denies if is_deny else self._allows
            index.setdefault(principal_arn, {}).setdefault(action, []).append(edge)

    def add_trust_relation(self, trustor_arn: str, role_arn: str) -> None:
        """Record that ``trustor_arn`` (or ``"*"``) may assume ``role_arn``."""
        with self._lock.write():
            self._trust_relations.setdefault(role_arn, []).append(trustor_arn)

    def add_scp(self, policy: PolicyDocument) -> None:
        with self._lock.write():
            self._scps.append(policy)

    # ─────────────────────────────────────────────────────────────────────────
    # Readers
    # ─────────────────────────────────────────────────────────────────────────

    def get_principal(self, arn: str) -> Optional[Principal]:
        with self._lock.read():
            return self._principals.get(arn)

    def get_resource(self, arn: str) -> Optional[Resource]:
        with self._lock.read():
            return self._resources.get(arn)

    def get_all_principals(self) -> List[Principal]:
        with self._lock.read():
            return list(self._principals.values())

    def get_all_resources(self) -> List[Resource]:
        with self._lock.read():
            return list(self._resources.values())

    def get_scps(self) -> List[PolicyDocument]:
        with self._lock.read():
            return list(self._scps)

    def get_trusted_principals(self, role_arn: str) -> List[str]:
        """Trustor ids recorded for a role (may include ``"*"``)."""
        with self._lock.read():
            return list(self._trust_relations.get(role_arn, []))

    def get_roles_can_assume(self, principal_arn: str) -> List[str]:
        """
        Inverse trust lookup: roles whose trustors include the principal
        itself or the wildcard.

        Returns:
            Role ARNs in insertion order, without duplicates
        """
        with self._lock.read():
            return [
                role_arn
                for role_arn, trustors in self._trust_relations.items()
                if principal_arn in trustors or "*" in trustors
            ]

    def can_assume(self, principal_arn: str, role_arn: str) -> bool:
        with self._lock.read():
            trustors = self._trust_relations.get(role_arn, [])
            return principal_arn in trustors or "*" in trustors

    def actions_granted_on(self, principal_arn: str, resource_arn: str) -> List[str]:
        """
        Action patterns on the principal's allow edges whose resource pattern
        covers ``resource_arn``. Ignores conditions and every other layer; used
        by reports, not for decisions.
        """
        with self._lock.read():
            return [
                action
                for action, edges in self._allows.get(principal_arn, {}).items()
                if any(matches_resource(e.resource_pattern, resource_arn) for e in edges)
            ]

    def has_allow(self, principal_arn: str, action: str, resource_pattern: str) -> bool:
        """True when an allow edge with exactly this action and resource pattern exists."""
        with self._lock.read():
            edges = self._allows.get(principal_arn, {}).get(action, [])
            return any(e.resource_pattern == resource_pattern for e in edges)

    # ─────────────────────────────────────────────────────────────────────────
    # CanAccess
    # ─────────────────────────────────────────────────────────────────────────

    def can_access(
        self,
        principal_arn: str,
        action: str,
        resource_arn: str,
        context: Optional[EvaluationContext] = None,
    ) -> bool:
        """
        Decide whether a principal may perform an action on a resource.

        Unknown identifiers are not an error here: a principal with no edges
        is simply denied. Use ``explain_access`` for the deciding stage.
        """
        return self.explain_access(principal_arn, action, resource_arn, context).allowed

    def explain_access(
        self,
        principal_arn: str,
        action: str,
        resource_arn: str,
        context: Optional[EvaluationContext] = None,
    ) -> AccessDecision:
        """Same as ``can_access`` but also reports which stage decided."""
        with self._lock.read():
            view = GraphView(
                principals=self._principals,
                allows=self._allows,
                denies=self._denies,
                scps=self._scps,
                condition_evaluator=self._condition_evaluator,
            )
            decision = decide(view, principal_arn, action, resource_arn, context or _EMPTY_CONTEXT)

        logger.debug(
            "%s %s on %s: %s (%s)",
            principal_arn, action, resource_arn,
            "ALLOW" if decision.allowed else "DENY", decision.stage,
        )
        return decision

    def require_principal(self, arn: str) -> Principal:
        principal = self.get_principal(arn)
        if principal is None:
            raise PrincipalNotFoundError(arn)
        return principal

    def require_resource(self, arn: str) -> Resource:
        resource = self.get_resource(arn)
        if resource is None:
            raise ResourceNotFoundError(arn)
        return resource

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._principals) + len(self._resources)

    def stats(self) -> Dict[str, int]:
        with self._lock.read():
            return {
                "principals": len(self._principals),
                "resources": len(self._resources),
                "allow_edges": sum(len(e) for p in self._allows.values() for e in p.values()),
                "deny_edges": sum(len(e) for p in self._denies.values() for e in p.values()),
                "trust_relations": sum(len(t) for t in self._trust_relations.values()),
                "scps": len(self._scps),
            }
