"""
Wildcard matching for IAM actions and resource ARNs.

Patterns are shell-style globs (``*``, ``?``, ``[...]``). Action names are
compared case-insensitively, ARNs case-sensitively. A pattern that cannot
be compiled falls back to plain string equality, so matching never raises.

Compiled patterns are cached; the cache is safe to share between threads.
"""

import fnmatch
import re
from functools import lru_cache
from typing import Optional, Pattern

WILDCARD = "*"


@lru_cache(maxsize=4096)
def _compile(pattern: str) -> Optional[Pattern[str]]:
    try:
        return re.compile(fnmatch.translate(pattern))
    except re.error:
        return None


def _glob_match(pattern: str, value: str) -> bool:
    compiled = _compile(pattern)
    if compiled is None:
        return pattern == value
    return compiled.match(value) is not None


def matches_action(pattern: str, action: str) -> bool:
    """
    Check if an action pattern matches a specific action.

    Examples:
        matches_action("s3:*", "s3:GetObject")          -> True
        matches_action("S3:get*", "s3:GetObject")       -> True
        matches_action("iam:*User*", "iam:CreateUser")  -> True
        matches_action("s3:*", "iam:PassRole")          -> False
    """
    if pattern == action or pattern == WILDCARD:
        return True
    return _glob_match(pattern.lower(), action.lower())


def matches_resource(pattern: str, arn: str) -> bool:
    """
    Check if a resource pattern matches a specific ARN.

    Examples:
        matches_resource("arn:aws:s3:::bucket/*", "arn:aws:s3:::bucket/key")  -> True
        matches_resource("arn:aws:iam::*:role/Admin*", "arn:aws:iam::123:role/AdminRole")  -> True
        matches_resource("arn:aws:s3:::Bucket", "arn:aws:s3:::bucket")        -> False
    """
    if pattern == arn or pattern == WILDCARD:
        return True
    return _glob_match(pattern, arn)


def matches_any_action(patterns, action: str) -> bool:
    return any(matches_action(p, action) for p in patterns)


def matches_any_resource(patterns, arn: str) -> bool:
    return any(matches_resource(p, arn) for p in patterns)
