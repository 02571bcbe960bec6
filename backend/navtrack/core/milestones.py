"""Trigger-based milestones evaluated against each progress snapshot.

A milestone pairs an identifier (and optional instruction text) with a
trigger built from comparison statements over ``TriggerProperty`` values,
for example::

    Milestone(
        identifier=1,
        scope=MilestoneScope.STEP,
        trigger=all_of(
            gt(TriggerProperty.STEP_DISTANCE_TOTAL_METERS, 200),
            lte(TriggerProperty.STEP_DISTANCE_REMAINING_METERS, 100),
        ),
    )

Step milestones fire at most once per step, route milestones at most once
per route.
"""

import enum
import logging
import operator
from dataclasses import dataclass
from typing import Callable, Mapping

from navtrack.core.progress import RouteProgress

logger = logging.getLogger(__name__)


class TriggerProperty(str, enum.Enum):
    STEP_DURATION_REMAINING_SECONDS = "step_duration_remaining_seconds"
    STEP_DISTANCE_REMAINING_METERS = "step_distance_remaining_meters"
    STEP_DISTANCE_TOTAL_METERS = "step_distance_total_meters"
    STEP_DURATION_TOTAL_SECONDS = "step_duration_total_seconds"
    STEP_DISTANCE_TRAVELED_METERS = "step_distance_traveled_meters"
    STEP_INDEX = "step_index"
    NEXT_STEP_DISTANCE_METERS = "next_step_distance_meters"
    NEXT_STEP_DURATION_SECONDS = "next_step_duration_seconds"
    # Pair properties: the two values are compared with each other
    NEW_STEP = "new_step"
    FIRST_STEP = "first_step"
    LAST_STEP = "last_step"
    FIRST_LEG = "first_leg"
    LAST_LEG = "last_leg"


PAIR_PROPERTIES = frozenset({
    TriggerProperty.NEW_STEP,
    TriggerProperty.FIRST_STEP,
    TriggerProperty.LAST_STEP,
    TriggerProperty.FIRST_LEG,
    TriggerProperty.LAST_LEG,
})

TriggerValues = Mapping[TriggerProperty, tuple[float, ...]]

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}


class Statement:
    def is_occurring(self, values: TriggerValues) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class Comparison(Statement):
    """``key <op> value``; for pair properties ``value`` says whether the pair relation must hold."""

    key: TriggerProperty
    op: str
    value: float | bool

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"unknown comparison {self.op!r}")
        if self.key in PAIR_PROPERTIES and not isinstance(self.value, bool):
            raise ValueError(f"{self.key.value} compares its own pair; value must be true or false")

    def is_occurring(self, values: TriggerValues) -> bool:
        current = values.get(self.key)
        if not current:
            # e.g. no upcoming step on the last step of a leg
            return False
        compare = _OPERATORS[self.op]
        if len(current) > 1:
            holds = compare(current[0], current[1])
            return holds if self.value else not holds
        return compare(current[0], self.value)


@dataclass(frozen=True)
class AllOf(Statement):
    statements: tuple[Statement, ...]

    def is_occurring(self, values: TriggerValues) -> bool:
        return all(s.is_occurring(values) for s in self.statements)


@dataclass(frozen=True)
class AnyOf(Statement):
    statements: tuple[Statement, ...]

    def is_occurring(self, values: TriggerValues) -> bool:
        return any(s.is_occurring(values) for s in self.statements)


@dataclass(frozen=True)
class NoneOf(Statement):
    statements: tuple[Statement, ...]

    def is_occurring(self, values: TriggerValues) -> bool:
        return not any(s.is_occurring(values) for s in self.statements)


def all_of(*statements: Statement) -> Statement:
    return AllOf(statements)


def any_of(*statements: Statement) -> Statement:
    return AnyOf(statements)


def none_of(*statements: Statement) -> Statement:
    return NoneOf(statements)


def eq(key: TriggerProperty, value) -> Statement:
    return Comparison(key, "eq", value)


def neq(key: TriggerProperty, value) -> Statement:
    return Comparison(key, "neq", value)


def gt(key: TriggerProperty, value) -> Statement:
    return Comparison(key, "gt", value)


def gte(key: TriggerProperty, value) -> Statement:
    return Comparison(key, "gte", value)


def lt(key: TriggerProperty, value) -> Statement:
    return Comparison(key, "lt", value)


def lte(key: TriggerProperty, value) -> Statement:
    return Comparison(key, "lte", value)


def _step_ordinal(progress: RouteProgress) -> int:
    """Position of the current step counted across all legs."""
    legs = progress.route.legs
    return sum(len(leg.steps) for leg in legs[:progress.leg_index]) + progress.step_index


def trigger_values(previous: RouteProgress | None, current: RouteProgress) -> dict[TriggerProperty, tuple[float, ...]]:
    """Current value of every trigger property for one fix."""
    step = current.current_step
    sp = current.step_progress
    values = {
        TriggerProperty.STEP_DISTANCE_TOTAL_METERS: (step.distance,),
        TriggerProperty.STEP_DURATION_TOTAL_SECONDS: (step.duration,),
        TriggerProperty.STEP_DISTANCE_REMAINING_METERS: (sp.distance_remaining,),
        TriggerProperty.STEP_DURATION_REMAINING_SECONDS: (sp.duration_remaining,),
        TriggerProperty.STEP_DISTANCE_TRAVELED_METERS: (sp.distance_traveled,),
        TriggerProperty.STEP_INDEX: (current.step_index,),
        TriggerProperty.FIRST_STEP: (current.step_index, 0),
        TriggerProperty.LAST_STEP: (current.step_index, len(current.current_leg.steps) - 1),
        TriggerProperty.FIRST_LEG: (current.leg_index, 0),
        TriggerProperty.LAST_LEG: (current.leg_index, len(current.route.legs) - 1),
    }
    if previous is not None and previous.route is current.route:
        values[TriggerProperty.NEW_STEP] = (_step_ordinal(previous), _step_ordinal(current))
    upcoming = current.upcoming_step
    if upcoming is not None:
        values[TriggerProperty.NEXT_STEP_DISTANCE_METERS] = (upcoming.distance,)
        values[TriggerProperty.NEXT_STEP_DURATION_SECONDS] = (upcoming.duration,)
    return values


class MilestoneScope(str, enum.Enum):
    STEP = "step"
    ROUTE = "route"


@dataclass(frozen=True)
class Milestone:
    identifier: int
    trigger: Statement
    scope: MilestoneScope = MilestoneScope.STEP
    instruction: str | None = None


@dataclass(frozen=True)
class MilestoneState:
    step_key: tuple[int, int] | None = None
    fired_on_step: frozenset[int] = frozenset()
    fired_on_route: frozenset[int] = frozenset()


def evaluate_milestones(
    milestones,
    previous: RouteProgress | None,
    current: RouteProgress,
    state: MilestoneState,
) -> tuple[list[Milestone], MilestoneState]:
    """Milestones whose trigger holds now and that have not fired in their scope yet."""
    key = (current.leg_index, current.step_index)
    fired_step = set(state.fired_on_step) if key == state.step_key else set()
    fired_route = set(state.fired_on_route)

    values = trigger_values(previous, current)
    reached = []
    for milestone in milestones:
        fired = fired_step if milestone.scope is MilestoneScope.STEP else fired_route
        if milestone.identifier in fired:
            continue
        if milestone.trigger.is_occurring(values):
            fired.add(milestone.identifier)
            reached.append(milestone)

    if reached:
        logger.debug(
            "Milestones %s reached on step %d/%d",
            [m.identifier for m in reached], current.leg_index, current.step_index,
        )
    return reached, MilestoneState(
        step_key=key,
        fired_on_step=frozenset(fired_step),
        fired_on_route=frozenset(fired_route),
    )
