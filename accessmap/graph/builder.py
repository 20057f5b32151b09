"""
Graph Builder - compiles a collected snapshot into an AccessGraph

Construction is all-or-nothing: the first principal or resource whose
policies cannot be read aborts the build with GraphConstructionError naming
it, and the partial graph is discarded.
"""

import logging
from typing import Any, Mapping, Optional, Union

from accessmap.errors import GraphConstructionError
from accessmap.graph.access_graph import AccessGraph
from accessmap.graph.compiler import PolicyCompiler
from accessmap.iam.conditions import ConditionEvaluator
from accessmap.iam.scp_resolver import filter_applicable
from accessmap.models import CollectionResult, Principal, PrincipalType, Resource

logger = logging.getLogger(__name__)

_MALFORMED = (KeyError, TypeError, ValueError, AttributeError)


class GraphBuilder:
    """Builds an AccessGraph from one account's CollectionResult."""

    def __init__(self, condition_evaluator: Optional[ConditionEvaluator] = None):
        self.graph = AccessGraph(condition_evaluator=condition_evaluator)
        self.compiler = PolicyCompiler(self.graph)

    def build(self, collection: CollectionResult) -> AccessGraph:
        """
        Compile the snapshot.

        Order: applicable SCPs, then principals (identity policies and trust
        policies), then resources (resource policies).

        Args:
            collection: Snapshot for a single account

        Returns:
            The populated graph

        Raises:
            GraphConstructionError: a policy could not be compiled
        """
        self._add_scps(collection)

        for principal in collection.principals:
            self._add_principal(principal)

        for resource in collection.resources:
            self._add_resource(resource)

        stats = self.graph.stats()
        logger.info(
            "Built access graph: %d principals, %d resources, %d allow edges, %d deny edges, %d SCPs",
            stats["principals"], stats["resources"], stats["allow_edges"], stats["deny_edges"], stats["scps"],
        )
        return self.graph

    def _add_scps(self, collection: CollectionResult) -> None:
        if collection.scp_attachments:
            scps = filter_applicable(collection.account_id, collection.scp_attachments, collection.ou_hierarchy)
            logger.debug(
                "%d of %d SCP attachments apply to account %s",
                len(scps), len(collection.scp_attachments), collection.account_id or "<unknown>",
            )
        else:
            # Older snapshots carry a flat, pre-filtered list
            scps = collection.scps

        for scp in scps:
            self.graph.add_scp(scp)

    def _add_principal(self, principal: Principal) -> None:
        try:
            self.graph.add_principal(principal)
            edges = 0
            for policy in principal.policies:
                edges += self.compiler.compile_identity_policy(principal.arn, policy)
            if principal.type == PrincipalType.ROLE and principal.trust_policy is not None:
                self.compiler.compile_trust_policy(principal.arn, principal.trust_policy)
        except _MALFORMED as e:
            raise GraphConstructionError(
                f"cannot compile policies of principal {principal.arn}: {e}", identifier=principal.arn
            ) from e
        logger.debug("Compiled %d edges for %s", edges, principal.arn)

    def _add_resource(self, resource: Resource) -> None:
        try:
            self.graph.add_resource(resource)
            if resource.resource_policy is not None:
                edges = self.compiler.compile_resource_policy(resource, resource.resource_policy)
                logger.debug("Compiled %d resource-policy edges for %s", edges, resource.arn)
        except _MALFORMED as e:
            raise GraphConstructionError(
                f"cannot compile resource policy of {resource.arn}: {e}", identifier=resource.arn
            ) from e


def decode_snapshot(data: Mapping[str, Any]) -> CollectionResult:
    """Decode a snapshot record, naming the principal or resource that fails."""
    def decode(cls, record):
        try:
            return cls.from_dict(record)
        except _MALFORMED as e:
            identifier = record.get("ARN") if isinstance(record, Mapping) else None
            raise GraphConstructionError(
                f"malformed {cls.__name__.lower()} record {identifier or '<no ARN>'}: {e}",
                identifier=identifier,
            ) from e

    principals = [decode(Principal, p) for p in data.get("Principals") or []]
    resources = [decode(Resource, r) for r in data.get("Resources") or []]
    try:
        rest = CollectionResult.from_dict({**data, "Principals": [], "Resources": []})
    except _MALFORMED as e:
        raise GraphConstructionError(f"malformed organization policy data: {e}") from e

    rest.principals = principals
    rest.resources = resources
    return rest


def build_graph(
    collection: Union[CollectionResult, Mapping[str, Any]],
    condition_evaluator: Optional[ConditionEvaluator] = None,
) -> AccessGraph:
    """
    Construction entry point.

    Args:
        collection: CollectionResult, or its JSON record form
        condition_evaluator: Override for condition evaluation

    Returns:
        Populated AccessGraph

    Raises:
        GraphConstructionError: the snapshot cannot be compiled
    """
    if not isinstance(collection, CollectionResult):
        if not isinstance(collection, Mapping):
            raise GraphConstructionError(f"snapshot must be a mapping, got {type(collection).__name__}")
        collection = decode_snapshot(collection)

    return GraphBuilder(condition_evaluator=condition_evaluator).build(collection)
