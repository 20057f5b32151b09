# ᚱᚢᚾᛖᛊ • Runes - Data Models for the Access Graph
"""
Pure data models for accessmap. No I/O, no AWS calls.

Snapshot records serialize with the field names used by the collector
(``Principals``, ``ARN``, ``GroupMemberships``, ...) so cached snapshots
stay interchangeable between tools.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from accessmap.iam.policy_parser import normalize_to_list

ConditionBlock = Dict[str, Dict[str, Any]]

EFFECT_ALLOW = "Allow"
EFFECT_DENY = "Deny"


class PrincipalType(Enum):
    """Kinds of identities that appear in the graph."""
    USER = "user"
    ROLE = "role"
    GROUP = "group"
    SERVICE = "service"
    PUBLIC = "public"


class ResourceType(Enum):
    """Resource kinds the collector knows about."""
    S3 = "s3"
    KMS = "kms"
    SQS = "sqs"
    SNS = "sns"
    SECRETS_MANAGER = "secretsmanager"
    LAMBDA = "lambda"
    API_GATEWAY = "apigateway"
    ECR = "ecr"
    EVENTBRIDGE = "eventbridge"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "ResourceType":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.OTHER


class PolicyType(Enum):
    """Which kind of policy produced a hop in an access path."""
    IDENTITY = "identity"
    RESOURCE = "resource"
    TRUST = "trust"
    SCP = "scp"
    BOUNDARY = "boundary"


class SCPTargetType(Enum):
    """Where an organization policy is attached."""
    ACCOUNT = "ACCOUNT"
    ORGANIZATIONAL_UNIT = "ORGANIZATIONAL_UNIT"
    ROOT = "ROOT"

    @classmethod
    def parse(cls, value: Any) -> "SCPTargetType":
        """Accept both ``ORGANIZATIONAL_UNIT`` and ``organizational-unit``."""
        return cls(str(value).upper().replace("-", "_"))


# ═══════════════════════════════════════════════════════════════════════════════
# Policy documents
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Statement:
    """
    Single policy statement with Action/Resource already normalized.

    ``principal`` keeps the raw Principal value (string, list or map);
    callers expand it through ``policy_parser.extract_principals``.
    """
    effect: str = EFFECT_ALLOW
    actions: Tuple[str, ...] = ()
    resources: Tuple[str, ...] = ()
    principal: Any = None
    condition: Optional[ConditionBlock] = None
    sid: str = ""

    @property
    def is_allow(self) -> bool:
        return self.effect == EFFECT_ALLOW

    @property
    def is_deny(self) -> bool:
        return self.effect == EFFECT_DENY

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Statement":
        if not isinstance(data, Mapping):
            raise TypeError(f"policy statement must be an object, got {type(data).__name__}")

        condition = data.get("Condition")
        return cls(
            effect=str(data.get("Effect", EFFECT_ALLOW)),
            actions=tuple(normalize_to_list(data.get("Action"))),
            resources=tuple(normalize_to_list(data.get("Resource"))),
            principal=data.get("Principal"),
            condition=dict(condition) if isinstance(condition, Mapping) and condition else None,
            sid=str(data.get("Sid") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.sid:
            out["Sid"] = self.sid
        out["Effect"] = self.effect
        if self.principal is not None:
            out["Principal"] = self.principal
        out["Action"] = list(self.actions)
        out["Resource"] = list(self.resources)
        if self.condition:
            out["Condition"] = self.condition
        return out


@dataclass(frozen=True)
class PolicyDocument:
    """An IAM-style policy document."""
    statements: Tuple[Statement, ...] = ()
    version: str = "2012-10-17"
    id: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "PolicyDocument":
        """
        Build a document from its JSON record.

        A string is treated as a (possibly URL-encoded) JSON document.
        ``Statement`` may be a single object or a list.

        Raises:
            TypeError: the record or one of its statements is not an object.
            ValueError: a string document does not decode to JSON.
        """
        if isinstance(data, str):
            from accessmap.iam.policy_parser import parse_policy_document
            return parse_policy_document(data)
        if not isinstance(data, Mapping):
            raise TypeError(f"policy document must be an object, got {type(data).__name__}")

        raw_statements = data.get("Statement") or []
        if isinstance(raw_statements, Mapping):
            raw_statements = [raw_statements]
        if not isinstance(raw_statements, list):
            raise TypeError("policy document Statement must be an object or a list")

        return cls(
            statements=tuple(Statement.from_dict(s) for s in raw_statements),
            version=str(data.get("Version") or "2012-10-17"),
            id=str(data.get("Id") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"Version": self.version}
        if self.id:
            out["Id"] = self.id
        out["Statement"] = [s.to_dict() for s in self.statements]
        return out


def _optional_document(data: Any) -> Optional[PolicyDocument]:
    return PolicyDocument.from_dict(data) if data else None


# ═══════════════════════════════════════════════════════════════════════════════
# Graph nodes
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Principal:
    """An identity that can be granted or denied access."""
    arn: str
    type: PrincipalType
    name: str = ""
    account_id: str = ""
    policies: List[PolicyDocument] = field(default_factory=list)
    trust_policy: Optional[PolicyDocument] = None
    permissions_boundary: Optional[PolicyDocument] = None
    group_memberships: List[str] = field(default_factory=list)  # users only

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Principal":
        return cls(
            arn=data["ARN"],
            type=PrincipalType(str(data.get("Type", "user")).lower()),
            name=data.get("Name") or "",
            account_id=data.get("AccountID") or "",
            policies=[PolicyDocument.from_dict(p) for p in data.get("Policies") or []],
            trust_policy=_optional_document(data.get("TrustPolicy")),
            permissions_boundary=_optional_document(data.get("PermissionsBoundary")),
            group_memberships=list(data.get("GroupMemberships") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ARN": self.arn,
            "Type": self.type.value,
            "Name": self.name,
            "AccountID": self.account_id,
            "Policies": [p.to_dict() for p in self.policies],
            "TrustPolicy": self.trust_policy.to_dict() if self.trust_policy else None,
            "PermissionsBoundary": (
                self.permissions_boundary.to_dict() if self.permissions_boundary else None
            ),
            "GroupMemberships": list(self.group_memberships),
        }


@dataclass
class Resource:
    """An addressable target that policies protect."""
    arn: str
    type: ResourceType = ResourceType.OTHER
    name: str = ""
    region: str = ""
    account_id: str = ""
    resource_policy: Optional[PolicyDocument] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Resource":
        return cls(
            arn=data["ARN"],
            type=ResourceType.parse(data.get("Type", "other")),
            name=data.get("Name") or "",
            region=data.get("Region") or "",
            account_id=data.get("AccountID") or "",
            resource_policy=_optional_document(data.get("ResourcePolicy")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ARN": self.arn,
            "Type": self.type.value,
            "Name": self.name,
            "Region": self.region,
            "AccountID": self.account_id,
            "ResourcePolicy": self.resource_policy.to_dict() if self.resource_policy else None,
        }


@dataclass(frozen=True)
class PermissionEdge:
    """A compiled allow or deny fact, indexed by principal and action pattern."""
    resource_pattern: str
    conditions: Optional[ConditionBlock] = None
    policy_name: str = ""


# ═══════════════════════════════════════════════════════════════════════════════
# Organization policies
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SCPTarget:
    type: SCPTargetType
    id: str
    arn: str = ""
    name: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SCPTarget":
        return cls(
            type=SCPTargetType.parse(data["Type"]),
            id=data.get("ID") or "",
            arn=data.get("Arn") or "",
            name=data.get("Name") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {"Type": self.type.value, "ID": self.id}
        if self.arn:
            out["Arn"] = self.arn
        if self.name:
            out["Name"] = self.name
        return out


@dataclass(frozen=True)
class SCPAttachment:
    """A service control policy together with the targets it is attached to."""
    policy: PolicyDocument
    targets: Tuple[SCPTarget, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SCPAttachment":
        return cls(
            policy=PolicyDocument.from_dict(data.get("Policy") or {}),
            targets=tuple(SCPTarget.from_dict(t) for t in data.get("Targets") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Policy": self.policy.to_dict(),
            "Targets": [t.to_dict() for t in self.targets],
        }


@dataclass(frozen=True)
class OUHierarchy:
    """Organizational-unit membership of one account, parent first."""
    account_id: str
    parent_ous: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OUHierarchy":
        return cls(
            account_id=data.get("AccountID") or "",
            parent_ous=tuple(data.get("ParentOUs") or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"AccountID": self.account_id, "ParentOUs": list(self.parent_ous)}


# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class CollectionResult:
    """Everything collected for one account; the graph's construction input."""
    principals: List[Principal] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)
    scps: List[PolicyDocument] = field(default_factory=list)  # legacy, unfiltered
    scp_attachments: List[SCPAttachment] = field(default_factory=list)
    ou_hierarchy: Optional[OUHierarchy] = None
    collected_at: str = ""
    account_id: str = ""
    regions: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CollectionResult":
        hierarchy = data.get("OUHierarchy")
        return cls(
            principals=[Principal.from_dict(p) for p in data.get("Principals") or []],
            resources=[Resource.from_dict(r) for r in data.get("Resources") or []],
            scps=[PolicyDocument.from_dict(p) for p in data.get("SCPs") or []],
            scp_attachments=[
                SCPAttachment.from_dict(a) for a in data.get("SCPAttachments") or []
            ],
            ou_hierarchy=OUHierarchy.from_dict(hierarchy) if hierarchy else None,
            collected_at=str(data.get("CollectedAt") or ""),
            account_id=data.get("AccountID") or "",
            regions=list(data.get("Regions") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Principals": [p.to_dict() for p in self.principals],
            "Resources": [r.to_dict() for r in self.resources],
            "SCPs": [p.to_dict() for p in self.scps],
            "SCPAttachments": [a.to_dict() for a in self.scp_attachments],
            "OUHierarchy": self.ou_hierarchy.to_dict() if self.ou_hierarchy else None,
            "CollectedAt": self.collected_at,
            "AccountID": self.account_id,
            "Regions": list(self.regions),
        }

    def copy(self) -> "CollectionResult":
        """Deep copy; simulated snapshots must never alias the base."""
        return copy.deepcopy(self)


# ═══════════════════════════════════════════════════════════════════════════════
# Query results
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AccessHop:
    """One step of an access path: a role assumption or the final access."""
    source: str
    target: str
    action: str
    policy_type: PolicyType
    policy_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.source,
            "to": self.target,
            "action": self.action,
            "policy_type": self.policy_type.value,
            "policy_name": self.policy_name,
        }


@dataclass(frozen=True)
class AccessPath:
    """A chain from a principal to a resource."""
    source: str
    target: str
    action: str
    hops: Tuple[AccessHop, ...] = ()

    @property
    def hop_count(self) -> int:
        return len(self.hops)

    @property
    def principal_chain(self) -> Tuple[str, ...]:
        """Principal ARNs visited along the path, source first."""
        return tuple(h.source for h in self.hops)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.source,
            "to": self.target,
            "action": self.action,
            "hops": [h.to_dict() for h in self.hops],
        }
