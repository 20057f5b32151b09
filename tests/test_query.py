"""Tests for accessmap.query.engine."""

import time

import pytest

from accessmap.errors import PrincipalNotFoundError, ResourceNotFoundError
from accessmap.graph.builder import build_graph
from accessmap.iam.conditions import EvaluationContext
from accessmap.models import PolicyType, Resource
from accessmap.query.engine import QueryEngine

from conftest import (
    ACCOUNT,
    OTHER_ACCOUNT,
    ROOT_ARN,
    allow,
    bucket_arn,
    make_bucket,
    make_role,
    make_snapshot,
    make_user,
    policy,
    role_arn,
    trust_policy,
    user_arn,
)

OBJECT = bucket_arn("data-bucket") + "/file.txt"
READ_OBJECT = policy(allow("s3:GetObject", bucket_arn("data-bucket") + "/*"))


def engine_for(*principals, resources=None):
    if resources is None:
        resources = [Resource(arn=OBJECT)]
    return QueryEngine(build_graph(make_snapshot(principals=principals, resources=resources)))


# ---------------------------------------------------------------------------
# WhoCan
# ---------------------------------------------------------------------------


def test_who_can_single_grantee():
    engine = engine_for(make_user("alice", READ_OBJECT), make_user("bob"))
    assert [p.arn for p in engine.who_can(OBJECT, "s3:GetObject")] == [user_arn("alice")]


def test_who_can_insertion_order(sample_snapshot):
    engine = QueryEngine(build_graph(sample_snapshot))
    arns = [p.arn for p in engine.who_can(OBJECT, "s3:GetObject")]
    assert arns == [user_arn("alice"), user_arn("charlie"), role_arn("ReaderRole")]


def test_who_can_respects_group_deny(sample_snapshot):
    engine = QueryEngine(build_graph(sample_snapshot))
    assert engine.who_can(OBJECT, "s3:DeleteObject") == []


def test_with_context_returns_new_engine():
    cond = {"Bool": {"aws:MultiFactorAuthPresent": "true"}}
    engine = engine_for(make_user("alice", policy(allow("s3:GetObject", "*", condition=cond))))
    mfa_engine = engine.with_context(EvaluationContext(mfa_authenticated=True))
    assert engine.who_can(OBJECT, "s3:GetObject") == []
    assert [p.name for p in mfa_engine.who_can(OBJECT, "s3:GetObject")] == ["alice"]
    assert mfa_engine is not engine and mfa_engine.graph is engine.graph


# ---------------------------------------------------------------------------
# FindPaths
# ---------------------------------------------------------------------------


def test_direct_path():
    engine = engine_for(make_user("alice", READ_OBJECT))
    paths = engine.find_paths(user_arn("alice"), OBJECT, "s3:GetObject")
    assert len(paths) == 1
    assert paths[0].hop_count == 1
    hop = paths[0].hops[0]
    assert (hop.source, hop.target, hop.policy_type) == (user_arn("alice"), OBJECT, PolicyType.IDENTITY)


def test_path_through_role(sample_snapshot):
    engine = QueryEngine(build_graph(sample_snapshot))
    paths = engine.find_paths(user_arn("bob"), OBJECT, "s3:GetObject")
    assert len(paths) == 1
    path = paths[0]
    assert path.principal_chain == (user_arn("bob"), role_arn("ReaderRole"))
    assert [h.policy_type for h in path.hops] == [PolicyType.TRUST, PolicyType.IDENTITY]
    assert path.hops[0].action == "sts:AssumeRole"


def test_multi_hop_chain():
    engine = engine_for(
        make_user("dev"),
        make_role("Jump", trust=trust_policy(user_arn("dev"))),
        make_role("Data", READ_OBJECT, trust=trust_policy(role_arn("Jump"))),
    )
    paths = engine.find_paths(user_arn("dev"), OBJECT, "s3:GetObject")
    assert [p.principal_chain for p in paths] == [(user_arn("dev"), role_arn("Jump"), role_arn("Data"))]
    assert paths[0].hop_count == 3


def test_max_hops_bounds_search():
    engine = engine_for(
        make_user("dev"),
        make_role("Jump", trust=trust_policy(user_arn("dev"))),
        make_role("Data", READ_OBJECT, trust=trust_policy(role_arn("Jump"))),
    )
    assert engine.find_paths(user_arn("dev"), OBJECT, "s3:GetObject", max_hops=2) == []
    assert len(engine.find_paths(user_arn("dev"), OBJECT, "s3:GetObject", max_hops=3)) == 1


def test_paths_sorted_by_hops_then_arn():
    dev = user_arn("dev")
    engine = engine_for(
        make_user("dev", READ_OBJECT),
        make_role("Zeta", READ_OBJECT, trust=trust_policy(dev)),
        make_role("Alpha", READ_OBJECT, trust=trust_policy(dev)),
        make_role("Mid", trust=trust_policy(dev)),
        make_role("Deep", READ_OBJECT, trust=trust_policy(role_arn("Mid"))),
    )
    chains = [p.principal_chain for p in engine.find_paths(dev, OBJECT, "s3:GetObject")]
    assert chains == [(dev,)]

    # Without direct access the search continues through the roles
    engine = engine_for(
        make_user("dev"),
        make_role("Zeta", READ_OBJECT, trust=trust_policy(dev)),
        make_role("Alpha", READ_OBJECT, trust=trust_policy(dev)),
        make_role("Mid", trust=trust_policy(dev)),
        make_role("Deep", READ_OBJECT, trust=trust_policy(role_arn("Mid"))),
    )
    chains = [p.principal_chain for p in engine.find_paths(dev, OBJECT, "s3:GetObject")]
    assert chains == [
        (dev, role_arn("Alpha")),
        (dev, role_arn("Zeta")),
        (dev, role_arn("Mid"), role_arn("Deep")),
    ]


def test_max_paths_caps_results():
    dev = user_arn("dev")
    roles = [make_role(f"R{i}", READ_OBJECT, trust=trust_policy(dev)) for i in range(5)]
    engine = engine_for(make_user("dev"), *roles)
    paths = engine.find_paths(dev, OBJECT, "s3:GetObject", max_paths=3)
    assert [p.principal_chain[-1] for p in paths] == [role_arn("R0"), role_arn("R1"), role_arn("R2")]


def test_trust_cycles_do_not_loop():
    engine = engine_for(
        make_user("dev"),
        make_role("A", trust=trust_policy(user_arn("dev"), role_arn("B"))),
        make_role("B", trust=trust_policy(role_arn("A"))),
    )
    assert engine.find_paths(user_arn("dev"), OBJECT, "s3:GetObject") == []


def test_wildcard_trust_is_followed():
    engine = engine_for(
        make_user("anyone"),
        make_role("Open", READ_OBJECT, trust=policy(allow("sts:AssumeRole", [], principal="*"))),
    )
    paths = engine.find_paths(user_arn("anyone"), OBJECT, "s3:GetObject")
    assert [p.principal_chain for p in paths] == [(user_arn("anyone"), role_arn("Open"))]


def test_open_trust_fan_out_stays_fast():
    anyone = policy(allow("sts:AssumeRole", [], principal="*"))
    roles = [make_role(f"R{i:02d}", trust=anyone) for i in range(60)]
    engine = engine_for(make_user("alice"), *roles)

    started = time.monotonic()
    assert engine.find_paths(user_arn("alice"), OBJECT, "s3:GetObject") == []
    assert time.monotonic() - started < 5


def test_principal_reached_early_is_not_revisited_deeper():
    dev = user_arn("dev")
    engine = engine_for(
        make_user("dev"),
        make_role("A", trust=trust_policy(dev)),
        make_role("B", READ_OBJECT, trust=trust_policy(dev, role_arn("A"))),
    )
    chains = [p.principal_chain for p in engine.find_paths(dev, OBJECT, "s3:GetObject")]
    assert chains == [(dev, role_arn("B"))]


def test_account_root_trust_needs_assume_role_permission():
    role = make_role("Data", READ_OBJECT, trust=trust_policy(ACCOUNT))
    without = engine_for(make_user("dev"), role)
    assert without.find_paths(user_arn("dev"), OBJECT, "s3:GetObject") == []

    can_assume = policy(allow("sts:AssumeRole", role_arn("Data")))
    with_permission = engine_for(make_user("dev", can_assume), role)
    paths = with_permission.find_paths(user_arn("dev"), OBJECT, "s3:GetObject")
    assert [p.principal_chain for p in paths] == [(user_arn("dev"), role_arn("Data"))]


def test_unknown_source_or_target_is_lookup_error():
    engine = engine_for(make_user("alice", READ_OBJECT))
    with pytest.raises(PrincipalNotFoundError):
        engine.find_paths(user_arn("ghost"), OBJECT, "s3:GetObject")
    with pytest.raises(ResourceNotFoundError):
        engine.find_paths(user_arn("alice"), bucket_arn("ghost"), "s3:GetObject")


def test_no_access_is_empty_not_error():
    engine = engine_for(make_user("alice"))
    assert engine.find_paths(user_arn("alice"), OBJECT, "s3:GetObject") == []


def test_path_serializes():
    engine = engine_for(make_user("alice", READ_OBJECT))
    data = engine.find_paths(user_arn("alice"), OBJECT, "s3:GetObject")[0].to_dict()
    assert data["from"] == user_arn("alice")
    assert data["hops"][0]["policy_type"] == "identity"


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def test_find_public_access(sample_snapshot):
    engine = QueryEngine(build_graph(sample_snapshot))
    assert [r.arn for r in engine.find_public_access()] == [bucket_arn("public-bucket")]


def test_no_public_principal_means_no_public_access():
    engine = engine_for(make_user("alice", READ_OBJECT))
    assert engine.find_public_access() == []


def test_find_high_risk_access():
    engine = engine_for(
        make_user("admin", policy(allow("*", "*"))),
        make_role("Open", trust=policy(allow("sts:AssumeRole", [], principal="*"))),
        make_role("Partner", trust=trust_policy(OTHER_ACCOUNT)),
        make_role("Local", trust=trust_policy(ROOT_ARN)),
        resources=[make_bucket("site", policy(allow("s3:GetObject", [], principal="*")))],
    )
    findings = engine.find_high_risk_access()
    kinds = [(f.type, f.severity) for f in findings]
    assert kinds == [
        ("full_admin", "CRITICAL"),
        ("public_access", "CRITICAL"),
        ("wildcard_trust", "CRITICAL"),
        ("cross_account_trust", "HIGH"),
    ]
    assert findings[0].principal == user_arn("admin")
    assert findings[1].resource == bucket_arn("site")
    assert findings[3].resource == role_arn("Partner")
