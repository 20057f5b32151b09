"""
ARN parsing utilities.

Account extraction, cross-account detection and root-identity checks.
"""

from typing import Optional
import re

_ACCOUNT_RE = re.compile(r'^\d{12}$')


def extract_account_id(arn: str) -> Optional[str]:
    """
    Extract account ID from AWS ARN.

    ARN format: arn:partition:service:region:account-id:resource-type/resource-id

    Examples:
        arn:aws:iam::123456789012:role/MyRole -> 123456789012
        arn:aws:iam::123456789012:root -> 123456789012
        arn:aws:s3:::my-bucket -> None (S3 buckets don't carry account IDs)

    Args:
        arn: AWS ARN string

    Returns:
        Account ID (12-digit string) or None if not found/invalid
    """
    if not arn or not isinstance(arn, str):
        return None

    parts = arn.split(':')
    if len(parts) < 6:
        return None

    account_id = parts[4]
    if account_id and _ACCOUNT_RE.match(account_id):
        return account_id

    return None


def is_cross_account(source_arn: str, target_arn: str) -> bool:
    """
    Check if two ARNs belong to different AWS accounts.

    Returns:
        True if accounts differ, False if same or cannot determine
    """
    source_account = extract_account_id(source_arn)
    target_account = extract_account_id(target_arn)

    if not source_account or not target_account:
        return False

    return source_account != target_account


def is_root_user(arn: str) -> bool:
    """
    Check whether an ARN names an account root identity.

    Root ARN format: arn:aws:iam::123456789012:root (a trailing slash is tolerated)
    """
    return arn.endswith(':root') or arn.endswith(':root/')


def account_root_arn(account_id: str) -> str:
    return f'arn:aws:iam::{account_id}:root'
