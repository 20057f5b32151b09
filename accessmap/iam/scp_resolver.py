"""
Service Control Policy (SCP) Resolver

Narrows an organization's SCP attachments to the ones that govern a given
account. Evaluation of the applicable set happens at query time in the
organization guardrail stage of the evaluator.
"""

import logging
from typing import FrozenSet, Iterable, List, Optional

from accessmap.models import OUHierarchy, PolicyDocument, SCPAttachment, SCPTarget, SCPTargetType

logger = logging.getLogger(__name__)


def filter_applicable(
    account_id: str,
    attachments: Iterable[SCPAttachment],
    hierarchy: Optional[OUHierarchy] = None,
) -> List[PolicyDocument]:
    """
    Return the SCPs that apply to an account.

    An SCP can be attached to:
        1. The organization root (ROOT) - applies to every account
        2. The account itself (ACCOUNT)
        3. An OU that contains the account (ORGANIZATIONAL_UNIT)

    Without hierarchy information every OU-attached SCP is included. That
    may report denies that do not apply, but never drops one that does.

    Args:
        account_id: Account being evaluated (12 digits)
        attachments: SCPs with their attachment targets
        hierarchy: OU membership for the account, if known

    Returns:
        Applicable policy documents, in attachment order
    """
    parent_ous: Optional[FrozenSet[str]] = (
        frozenset(hierarchy.parent_ous) if hierarchy is not None else None
    )

    applicable = []
    for attachment in attachments:
        if any(_target_applies(t, account_id, parent_ous) for t in attachment.targets):
            applicable.append(attachment.policy)
        else:
            logger.debug("SCP %s does not apply to account %s", attachment.policy.id or "<unnamed>", account_id)

    return applicable


def _target_applies(target: SCPTarget, account_id: str, parent_ous: Optional[FrozenSet[str]]) -> bool:
    if target.type == SCPTargetType.ROOT:
        return True
    if target.type == SCPTargetType.ACCOUNT:
        return target.id == account_id
    if target.type == SCPTargetType.ORGANIZATIONAL_UNIT:
        return parent_ous is None or target.id in parent_ous
    return False
