"""
Policy document parsing and field normalization.

IAM documents allow Action, Resource and Principal to appear either as a
single string or as a list (and Principal additionally as a map keyed by
identity class). Everything in here turns those dynamic shapes into plain
ordered lists of strings so nothing past the compiler has to care.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Mapping
from urllib.parse import unquote

logger = logging.getLogger(__name__)

PUBLIC_PRINCIPAL_ARN = "*"
ANY_ACCOUNT_ROOT_ARN = "arn:aws:iam::*:root"

_ACCOUNT_ID_RE = re.compile(r"^\d{12}$")


def normalize_to_list(value: Any) -> List[str]:
    """
    Convert a string-or-list policy field into a list of strings.

    Non-string list items and unrecognized types are dropped rather than
    raising, so one malformed field never aborts a whole document.

    Examples:
        "s3:GetObject"              -> ["s3:GetObject"]
        ["s3:Get*", "s3:List*"]     -> ["s3:Get*", "s3:List*"]
        None                        -> []
    """
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [item for item in value if isinstance(item, str)]
    return []


def extract_principals(principal: Any) -> List[str]:
    """
    Expand a statement's Principal field into principal identifiers.

    Handles:
        "*"                                        -> ["*"]
        ["arn:...:user/a", "arn:...:user/b"]       -> both ARNs
        {"AWS": "arn:...", "Service": ["x", "y"]}  -> every value, in order
        {"AWS": "123456789012"}                    -> account root ARN

    Args:
        principal: Raw Principal value from a policy statement

    Returns:
        List of identifiers; empty for unrecognized shapes
    """
    if isinstance(principal, Mapping):
        raw: List[str] = []
        for values in principal.values():
            raw.extend(normalize_to_list(values))
    else:
        raw = normalize_to_list(principal)

    return [normalize_principal_id(p) for p in raw]


def normalize_principal_id(principal_id: str) -> str:
    """Expand a bare 12-digit account id to that account's root ARN."""
    if _ACCOUNT_ID_RE.match(principal_id):
        return f"arn:aws:iam::{principal_id}:root"
    return principal_id


def is_public_principal(principal_id: str) -> bool:
    return principal_id in (PUBLIC_PRINCIPAL_ARN, ANY_ACCOUNT_ROOT_ARN)


def parse_policy_document(policy_doc: str):
    """
    Parse a policy document string into a PolicyDocument.

    IAM returns documents URL-encoded; plain JSON is accepted as well.

    Raises:
        ValueError: the decoded text is not a JSON policy document.
    """
    from accessmap.models import PolicyDocument

    try:
        data = json.loads(policy_doc)
    except json.JSONDecodeError:
        try:
            data = json.loads(unquote(policy_doc))
        except json.JSONDecodeError as e:
            raise ValueError(f"failed to parse policy document: {e}") from e

    if not isinstance(data, Mapping):
        raise ValueError("failed to parse policy document: top level is not an object")

    return PolicyDocument.from_dict(data)
