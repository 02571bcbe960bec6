"""Immutable route structure and position fix types."""

import math
import uuid
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")


@dataclass(frozen=True)
class Location:
    """A raw or snapped position fix.

    Not range-checked on construction: malformed fixes are rejected by the
    engine's validator so they never crash the caller.
    """

    latitude: float
    longitude: float
    timestamp: float = 0.0  # seconds since epoch
    bearing: float | None = None
    speed: float | None = None  # m/s
    accuracy: float | None = None  # meters, horizontal
    altitude: float | None = None
    provider: str = "gps"

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def is_finite(self) -> bool:
        values = [self.latitude, self.longitude, self.timestamp]
        values += [v for v in (self.bearing, self.speed, self.accuracy) if v is not None]
        return all(math.isfinite(v) for v in values)


@dataclass(frozen=True)
class Maneuver:
    location: Coordinate
    bearing_before: float = 0.0
    bearing_after: float = 0.0
    type: str = "turn"
    modifier: str | None = None
    instruction: str = ""


@dataclass(frozen=True)
class Intersection:
    location: Coordinate
    distance: float | None = None  # offset along the step, computed from geometry when None


@dataclass(frozen=True)
class Step:
    geometry: tuple[Coordinate, ...]
    distance: float  # meters
    duration: float  # seconds
    intersections: tuple[Intersection, ...] = ()
    maneuver: Maneuver | None = None
    name: str = ""

    def __post_init__(self) -> None:
        # Accept lists from callers but store tuples
        object.__setattr__(self, "geometry", tuple(self.geometry))
        object.__setattr__(self, "intersections", tuple(self.intersections))
        if self.distance < 0 or self.duration < 0:
            raise ValueError("step distance and duration must be non-negative")

    @property
    def maneuver_point(self) -> Coordinate | None:
        if self.maneuver is not None:
            return self.maneuver.location
        return self.geometry[0] if self.geometry else None


@dataclass(frozen=True)
class Leg:
    steps: tuple[Step, ...]
    summary: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        if not self.steps:
            raise ValueError("a leg needs at least one step")

    @property
    def distance(self) -> float:
        return sum(s.distance for s in self.steps)

    @property
    def duration(self) -> float:
        return sum(s.duration for s in self.steps)


@dataclass(frozen=True)
class Route:
    legs: tuple[Leg, ...]
    waypoints: tuple[Coordinate, ...] = ()
    route_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        object.__setattr__(self, "legs", tuple(self.legs))
        object.__setattr__(self, "waypoints", tuple(self.waypoints))
        if not self.legs:
            raise ValueError("a route needs at least one leg")

    @property
    def distance(self) -> float:
        return sum(leg.distance for leg in self.legs)

    @property
    def duration(self) -> float:
        return sum(leg.duration for leg in self.legs)

    @property
    def first_coordinate(self) -> Coordinate | None:
        for leg in self.legs:
            for step in leg.steps:
                if step.geometry:
                    return step.geometry[0]
        return None

    def step_at(self, indices: "NavigationIndices") -> Step:
        return self.legs[indices.leg_index].steps[indices.step_index]

    def is_last_step(self, indices: "NavigationIndices") -> bool:
        return (
            indices.leg_index == len(self.legs) - 1
            and indices.step_index == len(self.legs[indices.leg_index].steps) - 1
        )


@dataclass(frozen=True, order=True)
class NavigationIndices:
    leg_index: int = 0
    step_index: int = 0
