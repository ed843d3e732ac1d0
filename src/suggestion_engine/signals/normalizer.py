"""Signal normalization: map heterogeneous provider outputs onto [-1, 1]."""

from __future__ import annotations

import math
from dataclasses import dataclass

from suggestion_engine.exceptions import ConfigurationError, MalformedFactorError
from suggestion_engine.models.domain import FactorKind, FactorValue, SignalReading


@dataclass(frozen=True)
class LinearRule:
    """Linear map of [low, high] onto [-1, 1], clamped. low > high inverts the direction."""

    low: float
    high: float

    def apply(self, raw: float | str | bool) -> float:
        x = _as_number(raw)
        fraction = (x - self.low) / (self.high - self.low)
        return _clamp(2.0 * fraction - 1.0)


@dataclass(frozen=True)
class SaturatingRule:
    """tanh saturation for unbounded magnitudes."""

    scale: float
    center: float = 0.0

    def apply(self, raw: float | str | bool) -> float:
        x = _as_number(raw)
        return math.tanh((x - self.center) / self.scale)


@dataclass(frozen=True)
class SeverityRule:
    """Ordered categories, best first, spread evenly from +1 down to -1."""

    levels: tuple[str, ...]

    def apply(self, raw: float | str | bool) -> float:
        if not isinstance(raw, str):
            raise MalformedFactorError(f"expected a category, got {raw!r}")
        label = raw.strip().lower()
        if label not in self.levels:
            raise MalformedFactorError(f"unknown category {raw!r}")
        if len(self.levels) == 1:
            return 0.0
        position = self.levels.index(label)
        return 1.0 - 2.0 * position / (len(self.levels) - 1)


@dataclass(frozen=True)
class FlagRule:
    true_value: float = 1.0
    false_value: float = 0.0

    def apply(self, raw: float | str | bool) -> float:
        if not isinstance(raw, bool):
            raise MalformedFactorError(f"expected a boolean flag, got {raw!r}")
        return _clamp(self.true_value if raw else self.false_value)


NormalizationRule = LinearRule | SaturatingRule | SeverityRule | FlagRule

DEFAULT_RULES: dict[FactorKind, NormalizationRule] = {
    # forecast demand relative to available units, 0 = balanced
    FactorKind.DEMAND: SaturatingRule(scale=1.0),
    # utilization ratio
    FactorKind.UTILIZATION: LinearRule(low=0.0, high=1.0),
    FactorKind.HEALTH: SeverityRule(
        levels=("healthy", "watch", "degraded", "critical", "failed")
    ),
    # distance in km, closer is better
    FactorKind.PROXIMITY: LinearRule(low=200.0, high=0.0),
    # breach probability
    FactorKind.SLA_RISK: LinearRule(low=0.0, high=1.0),
    # surplus units (negative = shortage)
    FactorKind.INVENTORY: SaturatingRule(scale=5.0),
    # calendar pressure already expressed in [-1, 1]
    FactorKind.CALENDAR: LinearRule(low=-1.0, high=1.0),
    # kg CO2e saved
    FactorKind.CARBON: SaturatingRule(scale=100.0),
}


def rule_from_config(rule_config: dict) -> NormalizationRule:
    """Build a rule from a mapping such as {"transform": "linear", "low": 0, "high": 1}."""
    transform = rule_config.get("transform")
    try:
        if transform == "linear":
            rule: NormalizationRule = LinearRule(low=float(rule_config["low"]), high=float(rule_config["high"]))
            if rule.low == rule.high:
                raise ConfigurationError("linear rule needs low != high")
            return rule
        if transform == "saturating":
            rule = SaturatingRule(
                scale=float(rule_config["scale"]), center=float(rule_config.get("center", 0.0))
            )
            if rule.scale <= 0:
                raise ConfigurationError("saturating rule needs a positive scale")
            return rule
        if transform == "severity":
            levels = tuple(str(level).strip().lower() for level in rule_config["levels"])
            if not levels:
                raise ConfigurationError("severity rule needs at least one level")
            return SeverityRule(levels=levels)
        if transform == "flag":
            return FlagRule(
                true_value=float(rule_config.get("true_value", 1.0)),
                false_value=float(rule_config.get("false_value", 0.0)),
            )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"invalid normalization rule {rule_config!r}: {e}") from e
    raise ConfigurationError(f"unknown transform {transform!r}")


class SignalNormalizer:
    def __init__(self, overrides: dict[str, dict] | None = None) -> None:
        self._rules: dict[FactorKind, NormalizationRule] = dict(DEFAULT_RULES)
        for kind_name, rule_config in (overrides or {}).items():
            try:
                kind = FactorKind(kind_name)
            except ValueError as e:
                raise ConfigurationError(f"unknown factor kind {kind_name!r}") from e
            self._rules[kind] = rule_from_config(rule_config)

    def rule_for(self, kind: FactorKind) -> NormalizationRule:
        return self._rules[kind]

    def normalize(self, kind: FactorKind, reading: SignalReading | None) -> FactorValue:
        """Absent readings become neutral; malformed ones raise MalformedFactorError."""
        if reading is None:
            return FactorValue.neutral(kind)

        confidence = _as_number(reading.confidence)
        if not 0.0 <= confidence <= 1.0:
            raise MalformedFactorError(
                f"{kind.value}: confidence {reading.confidence!r} outside [0, 1]"
            )
        try:
            normalized = self._rules[kind].apply(reading.value)
        except MalformedFactorError as e:
            raise MalformedFactorError(f"{kind.value}: {e}") from e

        return FactorValue(
            kind=kind,
            raw_value=reading.value,
            normalized_value=normalized,
            confidence=confidence,
        )

    def normalize_vector(
        self,
        readings: dict[FactorKind, SignalReading | None],
        kinds: list[FactorKind] | None = None,
    ) -> tuple[tuple[FactorValue, ...], dict[FactorKind, str]]:
        """One FactorValue per kind, in enumeration order, plus the kinds that were malformed.

        A malformed reading is replaced by the neutral value so the other kinds
        stay usable; callers decide which candidates it invalidates.
        """
        wanted = kinds if kinds is not None else list(FactorKind)
        values: list[FactorValue] = []
        malformed: dict[FactorKind, str] = {}
        for kind in sorted(set(wanted), key=lambda k: k.order):
            try:
                values.append(self.normalize(kind, readings.get(kind)))
            except MalformedFactorError as e:
                malformed[kind] = str(e)
                values.append(FactorValue.neutral(kind))
        return tuple(values), malformed


def _as_number(raw: float | str | bool) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise MalformedFactorError(f"expected a number, got {raw!r}")
    x = float(raw)
    if math.isnan(x) or math.isinf(x):
        raise MalformedFactorError(f"non-finite value {raw!r}")
    return x


def _clamp(x: float) -> float:
    return max(-1.0, min(1.0, x))
