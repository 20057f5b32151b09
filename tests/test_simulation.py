"""Tests for accessmap.simulation."""

import pytest

from accessmap.errors import GraphConstructionError, SnapshotError
from accessmap.graph.builder import build_graph
from accessmap.query.engine import QueryEngine
from accessmap.simulation import (
    PolicyChanges,
    compare_access,
    load_from_file,
    load_policy_file,
    merge_policy_changes,
    save_to_file,
    validate_snapshot,
)

from conftest import (
    allow,
    bucket_arn,
    make_bucket,
    make_role,
    make_snapshot,
    make_user,
    policy,
    role_arn,
    user_arn,
)

OBJECT = bucket_arn("data-bucket") + "/file.txt"


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def test_save_and_load(tmp_path, sample_snapshot):
    path = tmp_path / "snapshot.json"
    save_to_file(sample_snapshot, path)
    loaded = load_from_file(path)
    assert loaded.to_dict() == sample_snapshot.to_dict()


def test_load_missing_file(tmp_path):
    with pytest.raises(SnapshotError):
        load_from_file(tmp_path / "nope.json")


def test_load_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    with pytest.raises(SnapshotError):
        load_from_file(path)


def test_load_non_utf8_bytes(tmp_path):
    path = tmp_path / "binary.json"
    path.write_bytes(b"\xff\xfe\x00")
    with pytest.raises(SnapshotError):
        load_from_file(path)


def test_load_non_object(write_json):
    with pytest.raises(SnapshotError):
        load_from_file(write_json("list.json", [1, 2, 3]))


def test_load_malformed_record_names_it(write_json):
    path = write_json("broken.json", {
        "Principals": [{"ARN": user_arn("broken"), "Type": "user", "Policies": [{"Statement": [7]}]}],
    })
    with pytest.raises(GraphConstructionError) as exc:
        load_from_file(path)
    assert exc.value.identifier == user_arn("broken")


def test_load_policy_file(write_json):
    doc = load_policy_file(write_json("p.json", {
        "Version": "2012-10-17",
        "Statement": {"Effect": "Allow", "Action": "s3:GetObject", "Resource": "*"},
    }))
    assert doc.statements[0].actions == ("s3:GetObject",)


def test_load_policy_file_errors(tmp_path, write_json):
    with pytest.raises(SnapshotError):
        load_policy_file(tmp_path / "missing.json")
    with pytest.raises(SnapshotError):
        load_policy_file(write_json("p.json", ["not", "a", "policy"]))


# ---------------------------------------------------------------------------
# merge_policy_changes
# ---------------------------------------------------------------------------


def test_merge_none_base_rejected():
    with pytest.raises(ValueError):
        merge_policy_changes(None, PolicyChanges())


def test_merge_without_changes_is_copy(sample_snapshot):
    merged = merge_policy_changes(sample_snapshot, None)
    assert merged is not sample_snapshot
    assert merged.to_dict() == sample_snapshot.to_dict()


def test_merge_leaves_base_untouched(sample_snapshot):
    before = sample_snapshot.to_dict()
    changes = PolicyChanges(
        add_principals=[make_user("dave")],
        update_policies={user_arn("bob"): [policy(allow("*", "*"))]},
        remove_resources=[bucket_arn("public-bucket")],
    )
    merged = merge_policy_changes(sample_snapshot, changes)
    assert sample_snapshot.to_dict() == before

    bob = next(p for p in merged.principals if p.arn == user_arn("bob"))
    assert len(bob.policies) == 1
    assert user_arn("dave") in [p.arn for p in merged.principals]
    assert bucket_arn("public-bucket") not in [r.arn for r in merged.resources]


def test_merge_does_not_alias_changes(sample_snapshot):
    dave = make_user("dave")
    merged = merge_policy_changes(sample_snapshot, PolicyChanges(add_principals=[dave]))
    next(p for p in merged.principals if p.arn == dave.arn).policies.append(policy())
    assert dave.policies == []


def test_merge_policies_reach_added_principals():
    dave = make_user("dave")
    changes = PolicyChanges(add_principals=[dave], update_policies={dave.arn: [policy(allow("s3:*", "*"))]})
    merged = merge_policy_changes(make_snapshot(), changes)
    assert len(merged.principals[0].policies) == 1


def test_merge_removal_wins_over_addition():
    dave = make_user("dave")
    changes = PolicyChanges(add_principals=[dave], remove_principals=[dave.arn])
    assert merge_policy_changes(make_snapshot(), changes).principals == []

    bucket = make_bucket("tmp")
    changes = PolicyChanges(add_resources=[bucket], remove_resources=[bucket.arn])
    assert merge_policy_changes(make_snapshot(), changes).resources == []


def test_merge_unknown_principal_update_warns(caplog, sample_snapshot):
    changes = PolicyChanges(update_policies={user_arn("ghost"): [policy()]})
    merged = merge_policy_changes(sample_snapshot, changes)
    assert merged.to_dict() == sample_snapshot.to_dict()
    assert "unknown principal" in caplog.text


# ---------------------------------------------------------------------------
# compare_access
# ---------------------------------------------------------------------------


def test_compare_same_graph_has_no_changes(sample_snapshot):
    graph = build_graph(sample_snapshot)
    diff = compare_access(graph, graph, OBJECT, "s3:GetObject")
    assert not diff.has_changes
    assert diff.granted == [] and diff.revoked == []
    expected = sorted(p.arn for p in QueryEngine(graph).who_can(OBJECT, "s3:GetObject"))
    assert diff.unchanged == expected


def test_compare_reports_granted_and_revoked(sample_snapshot):
    changes = PolicyChanges(
        update_policies={user_arn("bob"): [policy(allow("s3:GetObject", "*"))]},
        remove_principals=[role_arn("ReaderRole")],
    )
    before = build_graph(sample_snapshot)
    after = build_graph(merge_policy_changes(sample_snapshot, changes))

    diff = compare_access(before, after, OBJECT, "s3:GetObject")
    assert diff.granted == [user_arn("bob")]
    assert diff.revoked == [role_arn("ReaderRole")]
    assert diff.unchanged == [user_arn("alice"), user_arn("charlie")]
    assert diff.to_dict()["granted"] == [user_arn("bob")]


def test_compare_none_graph_rejected(sample_snapshot):
    graph = build_graph(sample_snapshot)
    with pytest.raises(ValueError):
        compare_access(graph, None, OBJECT, "s3:GetObject")


# ---------------------------------------------------------------------------
# validate_snapshot
# ---------------------------------------------------------------------------


def test_validate_reports_issues(sample_snapshot):
    sample_snapshot.principals.append(make_user("root-ish", policy(allow("*", "*"))))
    issues = {i.type: i for i in validate_snapshot(sample_snapshot)}

    assert issues["full_admin"].severity == "warning"
    assert issues["full_admin"].identifiers == [user_arn("root-ish")]
    assert issues["public_access"].identifiers == [bucket_arn("public-bucket")]
    assert issues["no_policies"].severity == "info"
    assert issues["no_policies"].identifiers == [user_arn("bob")]


def test_validate_clean_snapshot():
    snapshot = make_snapshot(
        principals=[make_user("alice", policy(allow("s3:GetObject", OBJECT))), make_role("Svc", policy())],
        resources=[make_bucket("data-bucket")],
    )
    assert validate_snapshot(snapshot) == []
