"""Shared pytest fixtures and snapshot builders for accessmap tests."""
import json

import pytest

from accessmap.models import (
    CollectionResult,
    PolicyDocument,
    Principal,
    PrincipalType,
    Resource,
    ResourceType,
    Statement,
)

ACCOUNT = "123456789012"
OTHER_ACCOUNT = "210987654321"
ROOT_ARN = f"arn:aws:iam::{ACCOUNT}:root"


def user_arn(name, account=ACCOUNT):
    return f"arn:aws:iam::{account}:user/{name}"


def role_arn(name, account=ACCOUNT):
    return f"arn:aws:iam::{account}:role/{name}"


def group_arn(name, account=ACCOUNT):
    return f"arn:aws:iam::{account}:group/{name}"


def bucket_arn(name):
    return f"arn:aws:s3:::{name}"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def stmt(effect="Allow", action="*", resource="*", principal=None, condition=None, sid=""):
    """Build a Statement from the same loose shapes a JSON document allows."""
    data = {"Effect": effect, "Action": action, "Resource": resource}
    if principal is not None:
        data["Principal"] = principal
    if condition is not None:
        data["Condition"] = condition
    if sid:
        data["Sid"] = sid
    return Statement.from_dict(data)


def policy(*statements):
    return PolicyDocument(statements=tuple(statements))


def allow(action="*", resource="*", **kwargs):
    return stmt("Allow", action, resource, **kwargs)


def deny(action="*", resource="*", **kwargs):
    return stmt("Deny", action, resource, **kwargs)


def make_user(name, *policies, groups=(), boundary=None):
    return Principal(
        arn=user_arn(name),
        type=PrincipalType.USER,
        name=name,
        account_id=ACCOUNT,
        policies=list(policies),
        permissions_boundary=boundary,
        group_memberships=list(groups),
    )


def make_group(name, *policies):
    return Principal(
        arn=group_arn(name),
        type=PrincipalType.GROUP,
        name=name,
        account_id=ACCOUNT,
        policies=list(policies),
    )


def make_role(name, *policies, trust=None, boundary=None, account=ACCOUNT):
    return Principal(
        arn=role_arn(name, account),
        type=PrincipalType.ROLE,
        name=name,
        account_id=account,
        policies=list(policies),
        trust_policy=trust,
        permissions_boundary=boundary,
    )


def trust_policy(*trustors):
    return policy(allow("sts:AssumeRole", [], principal={"AWS": list(trustors)}))


def make_bucket(name, resource_policy=None):
    return Resource(
        arn=bucket_arn(name),
        type=ResourceType.S3,
        name=name,
        region="us-east-1",
        account_id=ACCOUNT,
        resource_policy=resource_policy,
    )


def make_snapshot(principals=(), resources=(), scps=(), scp_attachments=(), ou_hierarchy=None):
    return CollectionResult(
        principals=list(principals),
        resources=list(resources),
        scps=list(scps),
        scp_attachments=list(scp_attachments),
        ou_hierarchy=ou_hierarchy,
        collected_at="2024-01-01T00:00:00Z",
        account_id=ACCOUNT,
        regions=["us-east-1"],
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def write_json(tmp_path):
    """Write a dict (or anything with to_dict) to a JSON file; return its path."""
    def _write(name, data):
        if hasattr(data, "to_dict"):
            data = data.to_dict()
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return str(path)

    return _write


@pytest.fixture
def sample_snapshot():
    """
    alice: s3:GetObject on data-bucket/*
    charlie: s3:* on *, member of Restricted (denies s3:DeleteObject)
    bob: can assume ReaderRole, which reads data-bucket/*
    public-bucket: world-readable via bucket policy
    """
    alice = make_user("alice", policy(allow("s3:GetObject", bucket_arn("data-bucket") + "/*")))
    charlie = make_user("charlie", policy(allow("s3:*", "*")), groups=[group_arn("Restricted")])
    restricted = make_group("Restricted", policy(deny("s3:DeleteObject", "*")))
    bob = make_user("bob")
    reader = make_role(
        "ReaderRole",
        policy(allow("s3:GetObject", bucket_arn("data-bucket") + "/*")),
        trust=trust_policy(user_arn("bob")),
    )
    data_object = Resource(
        arn=bucket_arn("data-bucket") + "/file.txt",
        type=ResourceType.S3,
        name="file.txt",
        account_id=ACCOUNT,
    )
    public_bucket = make_bucket(
        "public-bucket",
        policy(allow(
            "s3:GetObject",
            [bucket_arn("public-bucket"), bucket_arn("public-bucket") + "/*"],
            principal="*",
        )),
    )
    return make_snapshot(
        principals=[alice, charlie, restricted, bob, reader],
        resources=[make_bucket("data-bucket"), data_object, public_bucket],
    )
