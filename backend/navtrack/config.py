from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings


class NavigationOptions(BaseModel):
    """Tunable thresholds for tracking, off-route detection and camera framing.

    Distances are meters, durations seconds, angles degrees. Invalid values
    (negative radii, unordered alert thresholds, inverted clamps) raise
    ``pydantic.ValidationError`` on construction.
    """

    model_config = {"frozen": True}

    # Off-route
    enable_off_route_detection: bool = True
    off_route_threshold_radius_m: float = Field(50.0, gt=0)
    maneuver_zone_radius_m: float = Field(40.0, gt=0)
    off_route_window_size: int = Field(3, ge=2)
    off_route_min_corroborating_fixes: int = Field(2, ge=2)
    seconds_before_reroute: float = Field(3.0, ge=0)
    off_route_min_consecutive_fixes: int = Field(2, ge=2)
    off_route_min_distance_after_reroute_m: float = Field(50.0, ge=0)
    off_route_wrong_direction_m: float = Field(50.0, gt=0)
    off_route_right_direction_m: float = Field(20.0, gt=0)
    dead_reckoning_time_interval_s: float = Field(1.0, ge=0)
    max_turn_completion_offset_deg: float = Field(30.0, ge=0, le=180)
    step_lookahead: int = Field(3, ge=1)

    # Snapping / validation
    snap_to_route: bool = True
    location_accuracy_threshold_m: float = Field(100.0, gt=0)

    # Faster route
    enable_faster_route_detection: bool = False
    faster_route_check_interval_s: float = Field(120.0, gt=0)

    # Camera
    low_alert_duration_s: float = Field(125.0, gt=0)
    medium_alert_duration_s: float = Field(70.0, gt=0)
    high_alert_duration_s: float = Field(15.0, gt=0)
    min_camera_tilt_deg: float = Field(45.0, ge=0, le=90)
    max_camera_tilt_deg: float = Field(60.0, ge=0, le=90)
    min_camera_zoom: float = Field(12.0, ge=0, le=24)
    max_camera_zoom: float = Field(16.0, ge=0, le=24)
    default_camera_zoom: float = Field(15.0, ge=0, le=24)
    viewport_width_px: int = Field(1080, gt=0)
    viewport_height_px: int = Field(1920, gt=0)
    viewport_padding_px: int = Field(120, ge=0)

    @model_validator(mode="after")
    def _check_ordering(self) -> "NavigationOptions":
        if not (self.low_alert_duration_s > self.medium_alert_duration_s > self.high_alert_duration_s):
            raise ValueError("alert durations must be strictly descending: low > medium > high")
        if self.min_camera_tilt_deg > self.max_camera_tilt_deg:
            raise ValueError("min_camera_tilt_deg must not exceed max_camera_tilt_deg")
        if self.min_camera_zoom > self.max_camera_zoom:
            raise ValueError("min_camera_zoom must not exceed max_camera_zoom")
        if self.off_route_min_corroborating_fixes > self.off_route_window_size:
            raise ValueError("off_route_min_corroborating_fixes must fit inside off_route_window_size")
        if 2 * self.viewport_padding_px >= min(self.viewport_width_px, self.viewport_height_px):
            raise ValueError("viewport padding leaves no drawable area")
        return self


class Settings(BaseSettings):
    redis_url: str | None = None
    log_level: str = "INFO"
    replay_speed_kmh: float = 45.0
    replay_interval_seconds: float = 1.0
    navigation: NavigationOptions = NavigationOptions()

    model_config = {
        "env_prefix": "NAVTRACK_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


settings = Settings()
