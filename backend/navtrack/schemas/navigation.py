import time
from typing import Literal

from pydantic import BaseModel, Field

from navtrack.core.camera import CameraUpdate
from navtrack.core.engine import NavigationUpdate
from navtrack.core.milestones import (
    AllOf,
    AnyOf,
    Comparison,
    Milestone,
    MilestoneScope,
    NoneOf,
    Statement,
    TriggerProperty,
)
from navtrack.core.models import (
    Coordinate,
    Intersection,
    Leg,
    Location,
    Maneuver,
    Route,
    Step,
)
from navtrack.core.progress import RouteProgress


def _coord(pair: list[float]) -> Coordinate:
    """[lat, lon] -> Coordinate"""
    return Coordinate(pair[0], pair[1])


class ManeuverIn(BaseModel):
    location: list[float] = Field(min_length=2, max_length=2)
    bearing_before: float = 0.0
    bearing_after: float = 0.0
    type: str = "turn"
    modifier: str | None = None
    instruction: str = ""


class IntersectionIn(BaseModel):
    location: list[float] = Field(min_length=2, max_length=2)
    distance: float | None = Field(None, ge=0)


class StepIn(BaseModel):
    geometry: list[list[float]]  # [[lat, lon], ...]
    distance: float = Field(ge=0)
    duration: float = Field(ge=0)
    intersections: list[IntersectionIn] = []
    maneuver: ManeuverIn | None = None
    name: str = ""


class LegIn(BaseModel):
    steps: list[StepIn] = Field(min_length=1)
    summary: str = ""


class RouteIn(BaseModel):
    legs: list[LegIn] = Field(min_length=1)
    waypoints: list[list[float]] = []
    route_id: str | None = None

    def to_route(self) -> Route:
        legs = []
        for leg in self.legs:
            steps = []
            for s in leg.steps:
                maneuver = None
                if s.maneuver is not None:
                    m = s.maneuver
                    maneuver = Maneuver(
                        location=_coord(m.location),
                        bearing_before=m.bearing_before,
                        bearing_after=m.bearing_after,
                        type=m.type,
                        modifier=m.modifier,
                        instruction=m.instruction,
                    )
                steps.append(Step(
                    geometry=tuple(_coord(p) for p in s.geometry),
                    distance=s.distance,
                    duration=s.duration,
                    intersections=tuple(
                        Intersection(location=_coord(i.location), distance=i.distance)
                        for i in s.intersections
                    ),
                    maneuver=maneuver,
                    name=s.name,
                ))
            legs.append(Leg(steps=tuple(steps), summary=leg.summary))
        waypoints = tuple(_coord(w) for w in self.waypoints)
        if self.route_id:
            return Route(legs=tuple(legs), waypoints=waypoints, route_id=self.route_id)
        return Route(legs=tuple(legs), waypoints=waypoints)


class FixIn(BaseModel):
    lat: float
    lon: float
    timestamp: float | None = None
    bearing: float | None = None
    speed: float | None = None
    accuracy: float | None = None
    altitude: float | None = None
    provider: str = "gps"

    def to_location(self) -> Location:
        return Location(
            latitude=self.lat,
            longitude=self.lon,
            timestamp=self.timestamp if self.timestamp is not None else time.time(),
            bearing=self.bearing,
            speed=self.speed,
            accuracy=self.accuracy,
            altitude=self.altitude,
            provider=self.provider,
        )


class IndexIn(BaseModel):
    leg_index: int = Field(ge=0)
    step_index: int = Field(ge=0)


class TriggerIn(BaseModel):
    """Either a group (all/any/none of ``statements``) or one comparison on ``property``."""

    op: Literal["all", "any", "none", "eq", "neq", "gt", "gte", "lt", "lte"]
    property: TriggerProperty | None = None
    value: bool | float | None = None
    statements: list["TriggerIn"] = []

    def to_statement(self) -> Statement:
        groups = {"all": AllOf, "any": AnyOf, "none": NoneOf}
        if self.op in groups:
            if not self.statements:
                raise ValueError(f"{self.op} needs at least one statement")
            return groups[self.op](tuple(s.to_statement() for s in self.statements))
        if self.property is None or self.value is None:
            raise ValueError(f"{self.op} needs a property and a value")
        return Comparison(self.property, self.op, self.value)


class MilestoneIn(BaseModel):
    identifier: int
    trigger: TriggerIn
    scope: MilestoneScope = MilestoneScope.STEP
    instruction: str | None = None

    def to_milestone(self) -> Milestone:
        return Milestone(
            identifier=self.identifier,
            trigger=self.trigger.to_statement(),
            scope=self.scope,
            instruction=self.instruction,
        )


class MilestoneOut(BaseModel):
    identifier: int
    scope: MilestoneScope
    instruction: str | None = None


class ReplayIn(BaseModel):
    speed_kmh: float | None = Field(None, gt=0)
    interval_seconds: float | None = Field(None, gt=0)


class RouteInfo(BaseModel):
    route_id: str
    legs: int
    steps: int
    distance: float
    duration: float


class LocationOut(BaseModel):
    lat: float
    lon: float
    bearing: float | None = None
    timestamp: float | None = None


class ProgressOut(BaseModel):
    route_id: str
    leg_index: int
    step_index: int
    distance_remaining: float
    duration_remaining: float
    fraction_traveled: float
    leg_distance_remaining: float
    leg_duration_remaining: float
    step_distance_remaining: float
    step_duration_remaining: float
    remaining_waypoints: int
    current_step_name: str
    upcoming_step_name: str | None = None
    current_intersection: list[float] | None = None
    upcoming_intersection: list[float] | None = None
    intersection_distances: list[float] = []


class CameraOut(BaseModel):
    tilt: float
    zoom: float
    zoom_recomputed: bool
    alerts: list[str] = []


class UpdateOut(BaseModel):
    accepted: bool
    rejected_reason: str | None = None
    snapped: LocationOut | None = None
    progress: ProgressOut | None = None
    camera: CameraOut | None = None
    is_off_route: bool = False
    should_reroute: bool = False
    step_advanced: bool = False
    arrived: bool = False
    distance_from_route: float | None = None
    tolerance: float | None = None
    milestones: list[int] = []
    check_faster_route: bool = False


def route_info(route: Route) -> RouteInfo:
    return RouteInfo(
        route_id=route.route_id,
        legs=len(route.legs),
        steps=sum(len(leg.steps) for leg in route.legs),
        distance=route.distance,
        duration=route.duration,
    )


def location_out(location: Location | None) -> LocationOut | None:
    if location is None:
        return None
    return LocationOut(
        lat=location.latitude,
        lon=location.longitude,
        bearing=location.bearing,
        timestamp=location.timestamp,
    )


def progress_out(progress: RouteProgress | None) -> ProgressOut | None:
    if progress is None:
        return None
    sp = progress.step_progress
    upcoming = progress.upcoming_step
    return ProgressOut(
        route_id=progress.route.route_id,
        leg_index=progress.leg_index,
        step_index=progress.step_index,
        distance_remaining=progress.distance_remaining,
        duration_remaining=progress.duration_remaining,
        fraction_traveled=progress.fraction_traveled,
        leg_distance_remaining=progress.leg_progress.distance_remaining,
        leg_duration_remaining=progress.leg_progress.duration_remaining,
        step_distance_remaining=sp.distance_remaining,
        step_duration_remaining=sp.duration_remaining,
        remaining_waypoints=progress.remaining_waypoints,
        current_step_name=progress.current_step.name,
        upcoming_step_name=upcoming.name if upcoming is not None else None,
        current_intersection=[sp.current_intersection.location.latitude, sp.current_intersection.location.longitude],
        upcoming_intersection=(
            [sp.upcoming_intersection.location.latitude, sp.upcoming_intersection.location.longitude]
            if sp.upcoming_intersection is not None else None
        ),
        intersection_distances=list(sp.intersection_distances),
    )


def camera_out(camera: CameraUpdate | None) -> CameraOut | None:
    if camera is None:
        return None
    return CameraOut(
        tilt=camera.tilt,
        zoom=camera.zoom,
        zoom_recomputed=camera.zoom_recomputed,
        alerts=[a.value for a in camera.alerts],
    )


def update_out(update: NavigationUpdate) -> UpdateOut:
    return UpdateOut(
        accepted=update.accepted,
        rejected_reason=update.rejected_reason,
        snapped=location_out(update.snapped),
        progress=progress_out(update.progress),
        camera=camera_out(update.camera),
        is_off_route=update.is_off_route,
        should_reroute=update.should_reroute,
        step_advanced=update.step_advanced,
        arrived=update.arrived,
        distance_from_route=update.distance_from_route,
        tolerance=update.tolerance,
        milestones=[m.identifier for m in update.milestones],
        check_faster_route=update.check_faster_route,
    )


def event_payload(event) -> dict:
    """JSON-ready body for a navigation event (without its ``type``)."""
    if event.kind == "camera":
        return camera_out(event.camera).model_dump()
    body: dict = {"progress": progress_out(event.progress).model_dump()}
    if event.kind == "step_advanced":
        body["previous"] = [event.previous.leg_index, event.previous.step_index]
        body["current"] = [event.current.leg_index, event.current.step_index]
        body["reason"] = event.reason
    else:
        body["location"] = location_out(event.location).model_dump()
    if event.kind == "milestone":
        body["identifier"] = event.milestone.identifier
        body["instruction"] = event.milestone.instruction
    return body
