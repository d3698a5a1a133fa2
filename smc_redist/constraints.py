from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union

import numpy as np

from .config import DEFAULT_POW_VRA, DEFAULT_TGT_VRA_MIN, DEFAULT_TGT_VRA_OTHER
from .errors import ConfigError

CONSTRAINT_KEYS = {
    "status_quo": {"strength", "current"},
    "vra": {"strength", "tgt_vra_min", "tgt_vra_other", "pow_vra", "min_pop"},
    "incumbency": {"strength", "incumbents"},
}


@dataclass(frozen=True, eq=False)
class StatusQuo:
    strength: float
    current: np.ndarray  # one label per unit, starting at 1
    n_current: int


@dataclass(frozen=True, eq=False)
class VRA:
    strength: float
    tgt_vra_min: float
    tgt_vra_other: float
    pow_vra: float
    min_pop: np.ndarray  # minority population per unit


@dataclass(frozen=True, eq=False)
class Incumbency:
    strength: float
    incumbents: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=int))


@dataclass(frozen=True, eq=False)
class ConstraintBundle:
    status_quo: StatusQuo
    vra: VRA
    incumbency: Incumbency

    def strengths(self) -> dict[str, float]:
        return {
            "status_quo": self.status_quo.strength,
            "vra": self.vra.strength,
            "incumbency": self.incumbency.strength,
        }

    def any_active(self) -> bool:
        return any(s > 0 for s in self.strengths().values())


ConstraintsLike = Union[ConstraintBundle, Mapping[str, Mapping[str, Any]], None]


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


def _strength(group: str, raw: Mapping[str, Any]) -> float:
    strength = float(raw.get("strength", 0.0))
    if not np.isfinite(strength) or strength < 0:
        raise ConfigError(f"{group}.strength must be a non-negative number, got {strength!r}")
    return strength


def _check_keys(group: str, raw: Mapping[str, Any]) -> None:
    unknown = set(raw) - CONSTRAINT_KEYS[group]
    if unknown:
        raise ConfigError(f"Unknown keys for constraint {group!r}: {sorted(unknown)}")


def _status_quo(raw: Optional[Mapping[str, Any]], n_units: int) -> StatusQuo:
    if raw is None:
        return StatusQuo(strength=0.0, current=_readonly(np.ones(n_units, dtype=int)), n_current=1)
    _check_keys("status_quo", raw)
    strength = _strength("status_quo", raw)

    current = raw.get("current")
    if current is None:
        current = np.ones(n_units, dtype=int)
    current = np.asarray(current, dtype=int).copy()
    if current.shape != (n_units,):
        raise ConfigError(
            f"Length of status quo plan ({current.size}) must match the number of units ({n_units})."
        )
    # 0-based labels are shifted so districts start at 1
    if current.min() == 0:
        current = current + 1
    if current.min() < 1:
        raise ConfigError("Status quo district labels must be non-negative integers.")
    return StatusQuo(strength=strength, current=_readonly(current), n_current=int(current.max()))


def _vra(raw: Optional[Mapping[str, Any]], n_units: int) -> VRA:
    raw = {} if raw is None else raw
    _check_keys("vra", raw)

    min_pop = raw.get("min_pop")
    if min_pop is None:
        min_pop = np.zeros(n_units, dtype=float)
    min_pop = np.asarray(min_pop, dtype=float).copy()
    if min_pop.ndim != 1 or min_pop.size != n_units:
        raise ConfigError("Length of minority population vector must match the number of units.")

    return VRA(
        strength=_strength("vra", raw),
        tgt_vra_min=float(raw.get("tgt_vra_min", DEFAULT_TGT_VRA_MIN)),
        tgt_vra_other=float(raw.get("tgt_vra_other", DEFAULT_TGT_VRA_OTHER)),
        pow_vra=float(raw.get("pow_vra", DEFAULT_POW_VRA)),
        min_pop=_readonly(min_pop),
    )


def _incumbency(raw: Optional[Mapping[str, Any]], n_units: int) -> Incumbency:
    raw = {} if raw is None else raw
    _check_keys("incumbency", raw)

    incumbents = np.unique(np.asarray(raw.get("incumbents", []), dtype=int))
    if incumbents.size and (incumbents.min() < 0 or incumbents.max() >= n_units):
        raise ConfigError(f"Incumbent unit indices must lie in [0, {n_units - 1}].")
    return Incumbency(strength=_strength("incumbency", raw), incumbents=_readonly(incumbents))


def _check_bundle(bundle: ConstraintBundle, n_units: int) -> None:
    if bundle.status_quo.current.shape != (n_units,):
        raise ConfigError(
            f"Length of status quo plan ({bundle.status_quo.current.size}) must match the number of units ({n_units})."
        )
    if bundle.vra.min_pop.shape != (n_units,):
        raise ConfigError("Length of minority population vector must match the number of units.")
    incumbents = bundle.incumbency.incumbents
    if incumbents.size and (incumbents.min() < 0 or incumbents.max() >= n_units):
        raise ConfigError(f"Incumbent unit indices must lie in [0, {n_units - 1}].")


def normalize_constraints(constraints: ConstraintsLike, n_units: int) -> ConstraintBundle:
    """
    Fill in every constraint group, returning a fully populated bundle.

    Missing groups are disabled (strength 0) with neutral parameters: the status
    quo becomes a single district covering every unit, the VRA minority
    population is all zeros and there are no incumbents. A bundle that is
    already normalized is checked against `n_units` and returned as-is.
    """
    if isinstance(constraints, ConstraintBundle):
        _check_bundle(constraints, n_units)
        return constraints
    constraints = dict(constraints or {})

    unknown = set(constraints) - set(CONSTRAINT_KEYS)
    if unknown:
        raise ConfigError(f"Unknown constraint groups: {sorted(unknown)}")

    return ConstraintBundle(
        status_quo=_status_quo(constraints.get("status_quo"), n_units),
        vra=_vra(constraints.get("vra"), n_units),
        incumbency=_incumbency(constraints.get("incumbency"), n_units),
    )


def validate_counties(counties: Optional[Sequence[int]], n_units: int) -> np.ndarray:
    """County labels must run from 1 to n_county with no interruptions."""
    if counties is None:
        return _readonly(np.ones(n_units, dtype=int))

    arr = np.asarray(counties)
    if arr.shape != (n_units,):
        raise ConfigError(f"County vector has length {arr.size}; expected {n_units}.")
    if not np.issubdtype(arr.dtype, np.integer):
        if not np.all(np.equal(np.mod(arr, 1), 0)):
            raise ConfigError("County labels must be integers.")
        arr = arr.astype(int)
    arr = arr.copy()

    if arr.min() < 1 or len(np.unique(arr)) != arr.max():
        raise ConfigError("County numbers must run from 1 to n_county with no interruptions.")
    return _readonly(arr)
