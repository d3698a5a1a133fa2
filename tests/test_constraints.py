"""Tests for constraint defaults, relabeling and county validation."""

from __future__ import annotations

import numpy as np
import pytest

from smc_redist.constraints import ConstraintBundle, normalize_constraints, validate_counties
from smc_redist.errors import ConfigError


def test_missing_groups_are_disabled_with_neutral_defaults() -> None:
    bundle = normalize_constraints(None, n_units=5)

    assert bundle.strengths() == {"status_quo": 0.0, "vra": 0.0, "incumbency": 0.0}
    assert not bundle.any_active()
    np.testing.assert_array_equal(bundle.status_quo.current, np.ones(5))
    assert bundle.status_quo.n_current == 1
    np.testing.assert_array_equal(bundle.vra.min_pop, np.zeros(5))
    assert bundle.vra.tgt_vra_min == pytest.approx(0.55)
    assert bundle.vra.tgt_vra_other == pytest.approx(0.25)
    assert bundle.vra.pow_vra == pytest.approx(1.5)
    assert bundle.incumbency.incumbents.size == 0


def test_zero_based_status_quo_is_shifted_to_start_at_one() -> None:
    bundle = normalize_constraints({"status_quo": {"strength": 10, "current": [0, 0, 1, 2, 2]}}, n_units=5)

    np.testing.assert_array_equal(bundle.status_quo.current, [1, 1, 2, 3, 3])
    assert bundle.status_quo.n_current == 3
    assert bundle.status_quo.strength == 10.0
    assert bundle.any_active()


def test_one_based_status_quo_is_left_alone() -> None:
    bundle = normalize_constraints({"status_quo": {"strength": 1, "current": [1, 2, 2, 4]}}, n_units=4)

    np.testing.assert_array_equal(bundle.status_quo.current, [1, 2, 2, 4])
    assert bundle.status_quo.n_current == 4


def test_partial_vra_group_gets_remaining_defaults() -> None:
    bundle = normalize_constraints({"vra": {"strength": 5, "tgt_vra_min": 0.6}}, n_units=3)

    assert bundle.vra.strength == 5.0
    assert bundle.vra.tgt_vra_min == pytest.approx(0.6)
    assert bundle.vra.tgt_vra_other == pytest.approx(0.25)
    np.testing.assert_array_equal(bundle.vra.min_pop, np.zeros(3))


@pytest.mark.parametrize(
    "constraints",
    [
        {"vra": {"strength": 1, "min_pop": [1, 2]}},
        {"status_quo": {"strength": 1, "current": [1, 1, 1, 1]}},
        {"incumbency": {"strength": -1, "incumbents": [0]}},
        {"incumbency": {"strength": 1, "incumbents": [7]}},
        {"partisan": {"strength": 1}},
        {"vra": {"strength": 1, "target": 0.5}},
    ],
)
def test_invalid_constraints_raise_config_error(constraints) -> None:
    with pytest.raises(ConfigError):
        normalize_constraints(constraints, n_units=3)


def test_normalized_bundle_is_returned_unchanged() -> None:
    bundle = normalize_constraints({"incumbency": {"strength": 2, "incumbents": [2, 0, 2]}}, n_units=4)

    assert isinstance(bundle, ConstraintBundle)
    assert normalize_constraints(bundle, n_units=4) is bundle
    np.testing.assert_array_equal(bundle.incumbency.incumbents, [0, 2])


@pytest.mark.parametrize(
    "constraints",
    [
        {"status_quo": {"current": [1, 1, 2, 2, 2]}},
        {"vra": {"min_pop": [5.0, 1.0, 0.0, 2.0, 3.0]}},
        {"incumbency": {"incumbents": [0, 4]}},
    ],
)
def test_bundle_for_another_unit_count_is_rejected(constraints) -> None:
    bundle = normalize_constraints(constraints, n_units=5)

    with pytest.raises(ConfigError):
        normalize_constraints(bundle, n_units=3)


def test_normalized_arrays_are_read_only() -> None:
    current = np.array([0, 1, 1])
    bundle = normalize_constraints({"status_quo": {"strength": 1, "current": current}}, n_units=3)

    with pytest.raises(ValueError):
        bundle.status_quo.current[0] = 9
    # input is copied, not shifted in place
    np.testing.assert_array_equal(current, [0, 1, 1])


def test_validate_counties() -> None:
    np.testing.assert_array_equal(validate_counties(None, 4), np.ones(4))
    np.testing.assert_array_equal(validate_counties([2, 1, 3, 3], 4), [2, 1, 3, 3])
    np.testing.assert_array_equal(validate_counties(np.array([1.0, 2.0]), 2), [1, 2])

    with pytest.raises(ConfigError):
        validate_counties([1, 3, 3, 1], 4)  # gap at 2
    with pytest.raises(ConfigError):
        validate_counties([0, 1, 2, 2], 4)
    with pytest.raises(ConfigError):
        validate_counties([1, 2], 4)
