"""Unit tests for remote branch naming."""

import pytest

from pyjaspr.git.refs import (
    build_named_stack_ref, build_remote_ref, build_revision_ref, get_named_stack_ref_parts,
    get_remote_ref_parts, validate_prefixes,
)


@pytest.mark.parametrize("commit_id,target_ref,prefix", [
    ("abc12345", "main", "jaspr"),
    ("deadbeef", "release/1.x", "jaspr"),
    ("I0123456789", "develop", "custom"),
])
def test_remote_ref_round_trip(commit_id: str, target_ref: str, prefix: str) -> None:
    parts = get_remote_ref_parts(build_remote_ref(commit_id, target_ref, prefix), prefix)
    assert parts is not None
    assert (parts.target_ref, parts.commit_id, parts.revision_num) == (target_ref, commit_id, None)


def test_revision_ref_is_zero_padded() -> None:
    ref = build_remote_ref("abc", "main")
    assert build_revision_ref(ref, 1) == "jaspr/main/abc_01"
    assert build_revision_ref(ref, 12) == "jaspr/main/abc_12"


@pytest.mark.parametrize("revision", [1, 9, 10, 99])
def test_revision_number_is_decoded(revision: int) -> None:
    parts = get_remote_ref_parts(build_revision_ref(build_remote_ref("abc", "main"), revision))
    assert parts is not None
    assert parts.commit_id == "abc"
    assert parts.revision_num == revision


def test_foreign_branches_are_not_decoded() -> None:
    assert get_remote_ref_parts("main") is None
    assert get_remote_ref_parts("feature/thing") is None
    assert get_remote_ref_parts("jaspr-named/main/stack") is None


def test_named_stack_ref() -> None:
    name = build_named_stack_ref("my-stack", "main")
    assert name == "jaspr-named/main/my-stack"
    parts = get_named_stack_ref_parts(name)
    assert parts is not None
    assert parts.target_ref == "main"
    assert parts.commit_id == "my-stack"
    assert get_named_stack_ref_parts("jaspr/main/abc") is None


class TestValidatePrefixes:
    """Tests for prefix validation."""

    def test_defaults_are_valid(self) -> None:
        validate_prefixes("jaspr", "jaspr-named")

    def test_equal_prefixes_rejected(self) -> None:
        with pytest.raises(ValueError, match="must differ"):
            validate_prefixes("jaspr", "jaspr")

    def test_blank_prefix_rejected(self) -> None:
        with pytest.raises(ValueError, match="blank"):
            validate_prefixes(" ", "jaspr-named")

    def test_slash_rejected(self) -> None:
        with pytest.raises(ValueError, match="'/'"):
            validate_prefixes("jaspr", "named/stacks")
