"""Unit tests for dot-notation path helpers."""

import copy

import pytest

from codex_cli.errors import InvalidPathError, InvalidShapeError
from codex_cli.objectpath import (
    NOT_FOUND,
    flatten,
    get_value,
    is_valid_path,
    remove_value,
    set_value,
    split_path,
    unflatten,
    validate_tree,
)


@pytest.fixture
def sample_tree():
    return {
        "server": {
            "production": {"ip": "10.0.0.1", "port": 22},
            "staging": {"ip": "10.0.0.2"},
        },
        "debug": True,
        "name": "codex",
    }


class TestSplitPath:
    """Tests for split_path."""

    def test_split_simple(self):
        assert split_path("a.b.c") == ["a", "b", "c"]

    def test_split_single_segment(self):
        assert split_path("a") == ["a"]

    @pytest.mark.parametrize("path", ["", ".a", "a.", "a..b", "."])
    def test_split_rejects_empty_segments(self, path):
        with pytest.raises(InvalidPathError):
            split_path(path)

    def test_is_valid_path(self):
        assert is_valid_path("server.ip")
        assert not is_valid_path("server..ip")


class TestGetValue:
    """Tests for get_value."""

    def test_get_leaf(self, sample_tree):
        assert get_value(sample_tree, "server.production.ip") == "10.0.0.1"

    def test_get_subtree(self, sample_tree):
        assert get_value(sample_tree, "server.staging") == {"ip": "10.0.0.2"}

    def test_get_missing_top_level(self, sample_tree):
        assert get_value(sample_tree, "missing") is NOT_FOUND

    def test_get_missing_nested(self, sample_tree):
        assert get_value(sample_tree, "server.production.missing") is NOT_FOUND

    def test_get_through_leaf(self, sample_tree):
        """A leaf in the middle of the path means not found."""
        assert get_value(sample_tree, "name.first") is NOT_FOUND

    def test_get_falsy_leaf_is_found(self):
        tree = {"flag": False, "count": 0, "empty": ""}
        assert get_value(tree, "flag") is False
        assert get_value(tree, "count") == 0
        assert get_value(tree, "empty") == ""


class TestSetValue:
    """Tests for set_value."""

    def test_set_then_get(self, sample_tree):
        updated = set_value(sample_tree, "server.production.user", "deploy")
        assert get_value(updated, "server.production.user") == "deploy"

    def test_set_preserves_siblings(self, sample_tree):
        updated = set_value(sample_tree, "server.production.ip", "10.9.9.9")
        assert updated["server"]["production"]["port"] == 22
        assert updated["server"]["staging"] == {"ip": "10.0.0.2"}
        assert updated["debug"] is True

    def test_set_creates_intermediates(self):
        updated = set_value({}, "a.b.c", "x")
        assert updated == {"a": {"b": {"c": "x"}}}

    def test_set_does_not_mutate_input(self, sample_tree):
        original = copy.deepcopy(sample_tree)
        set_value(sample_tree, "server.production.ip", "changed")
        set_value(sample_tree, "new.branch", "value")
        assert sample_tree == original

    def test_set_overwrites_subtree_with_leaf(self, sample_tree):
        updated = set_value(sample_tree, "server", "flat")
        assert updated["server"] == "flat"

    def test_set_replaces_leaf_on_the_way(self, sample_tree):
        updated = set_value(sample_tree, "name.first", "ada")
        assert updated["name"] == {"first": "ada"}

    def test_set_shares_untouched_branches(self, sample_tree):
        updated = set_value(sample_tree, "server.production.ip", "10.9.9.9")
        assert updated["server"]["staging"] is sample_tree["server"]["staging"]

    def test_set_invalid_path(self):
        with pytest.raises(InvalidPathError):
            set_value({}, "a..b", "x")


class TestRemoveValue:
    """Tests for remove_value."""

    def test_remove_leaf(self, sample_tree):
        updated = remove_value(sample_tree, "server.production.ip")
        assert get_value(updated, "server.production.ip") is NOT_FOUND
        assert updated["server"]["production"] == {"port": 22}

    def test_remove_subtree(self, sample_tree):
        updated = remove_value(sample_tree, "server.production")
        assert "production" not in updated["server"]
        assert "staging" in updated["server"]

    def test_remove_missing_returns_same_object(self, sample_tree):
        assert remove_value(sample_tree, "server.production.missing") is sample_tree
        assert remove_value(sample_tree, "name.first") is sample_tree

    def test_remove_keeps_empty_parent(self):
        tree = {"server": {"ip": "10.0.0.1"}}
        updated = remove_value(tree, "server.ip")
        assert get_value(updated, "server") == {}

    def test_remove_does_not_mutate_input(self, sample_tree):
        original = copy.deepcopy(sample_tree)
        remove_value(sample_tree, "server.production.ip")
        assert sample_tree == original


class TestFlatten:
    """Tests for flatten and unflatten."""

    def test_flatten(self, sample_tree):
        assert flatten(sample_tree) == {
            "server.production.ip": "10.0.0.1",
            "server.production.port": 22,
            "server.staging.ip": "10.0.0.2",
            "debug": True,
            "name": "codex",
        }

    def test_flatten_skips_empty_subtrees(self):
        assert flatten({"a": {}, "b": {"c": {}}, "d": "x"}) == {"d": "x"}

    def test_flatten_empty(self):
        assert flatten({}) == {}

    def test_round_trip(self, sample_tree):
        assert unflatten(flatten(sample_tree)) == sample_tree

    def test_round_trip_via_set(self, sample_tree):
        rebuilt = {}
        for path, value in flatten(sample_tree).items():
            rebuilt = set_value(rebuilt, path, value)
        assert rebuilt == sample_tree


class TestValidateTree:
    """Tests for validate_tree."""

    def test_valid_tree(self, sample_tree):
        assert validate_tree(sample_tree) is sample_tree

    @pytest.mark.parametrize("value", [[], [1, 2], "text", 3, None])
    def test_non_object_root(self, value):
        with pytest.raises(InvalidShapeError):
            validate_tree(value)

    def test_nested_array(self):
        with pytest.raises(InvalidShapeError, match="a.b"):
            validate_tree({"a": {"b": [1, 2]}})
