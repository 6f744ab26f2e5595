"""Tests for the eligibility policy."""

from __future__ import annotations

import itertools
from pathlib import Path

import pytest

from super_repo.core import (
    DETACHED,
    Eligible,
    RepositoryDescriptor,
    RepositoryState,
    SkippedDirty,
    SkippedWrongBranch,
    evaluate_eligibility,
)


def make_state(branch: str, dirty: bool = False) -> RepositoryState:
    return RepositoryState(path=Path("/work/repo"), branch=branch, dirty=dirty)


def test_clean_repo_on_declared_branch_is_eligible():
    descriptor = RepositoryDescriptor(name="a", path=Path("a"), branch="main")

    assert evaluate_eligibility(make_state("main"), descriptor) == Eligible("main")


def test_undeclared_branch_falls_back_to_master():
    descriptor = RepositoryDescriptor(name="b", path=Path("b"))

    assert evaluate_eligibility(make_state("master"), descriptor) == Eligible("master")
    assert evaluate_eligibility(make_state("feature-x"), descriptor) == SkippedWrongBranch(
        current="feature-x", expected="master"
    )


def test_dirty_repo_on_declared_branch_is_skipped():
    descriptor = RepositoryDescriptor(name="c", path=Path("c"), branch="main")

    assert evaluate_eligibility(make_state("main", dirty=True), descriptor) == SkippedDirty()


def test_branch_check_precedes_dirty_check():
    descriptor = RepositoryDescriptor(name="c", path=Path("c"), branch="main")

    decision = evaluate_eligibility(make_state("develop", dirty=True), descriptor)

    assert decision == SkippedWrongBranch(current="develop", expected="main")


def test_detached_head_is_wrong_branch():
    descriptor = RepositoryDescriptor(name="d", path=Path("d"), branch="main")

    decision = evaluate_eligibility(make_state(DETACHED), descriptor)

    assert decision == SkippedWrongBranch(current=DETACHED, expected="main")


@pytest.mark.parametrize(
    "current,declared,dirty",
    list(
        itertools.product(
            ["main", "master", "feature-x", DETACHED], ["main", None], [True, False]
        )
    ),
)
def test_policy_is_total(current, declared, dirty):
    descriptor = RepositoryDescriptor(name="r", path=Path("r"), branch=declared)

    decision = evaluate_eligibility(make_state(current, dirty), descriptor)

    matches = [
        isinstance(decision, variant) for variant in (Eligible, SkippedWrongBranch, SkippedDirty)
    ]
    assert matches.count(True) == 1
    if current != descriptor.target_branch:
        assert isinstance(decision, SkippedWrongBranch)
