# core/common_types.py
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

Point = Tuple[int, int]

# --- Geometry ---

class Rectangle(BaseModel):
    """Axis-aligned pixel rectangle. `right` and `bottom` are exclusive."""
    model_config = ConfigDict(frozen=True)

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    @classmethod
    def empty(cls) -> "Rectangle":
        return cls()

    @classmethod
    def from_cv(cls, rect: Tuple[int, int, int, int]) -> "Rectangle":
        """Builds a rectangle from an OpenCV (x, y, w, h) tuple."""
        x, y, w, h = rect
        return cls(x=int(x), y=int(y), width=int(w), height=int(h))

    @classmethod
    def from_points(cls, points: Iterable[Point]) -> "Rectangle":
        pts = np.asarray(list(points), dtype=np.int64)
        if pts.size == 0:
            return cls()
        min_x, min_y = pts.min(axis=0)
        max_x, max_y = pts.max(axis=0)
        return cls(x=int(min_x), y=int(min_y), width=int(max_x - min_x + 1), height=int(max_y - min_y + 1))

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    def intersects_with(self, other: "Rectangle") -> bool:
        return (other.x < self.right and self.x < other.right and
                other.y < self.bottom and self.y < other.bottom)

    def union(self, other: "Rectangle") -> "Rectangle":
        if self.is_empty:
            return other
        if other.is_empty:
            return self
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return Rectangle(x=x, y=y, width=max(self.right, other.right) - x, height=max(self.bottom, other.bottom) - y)

    def as_slices(self) -> Tuple[slice, slice]:
        """Row/column slices for indexing a (height, width) array."""
        return slice(self.y, self.bottom), slice(self.x, self.right)


class RectangleMillimeters(BaseModel):
    """Bounding rectangle expressed in millimetres on the build plate."""
    x: float
    y: float
    width: float
    height: float

# --- Issue Related Enums and Models ---

class IssueType(str, Enum):
    """Categorization of layer issues. Declaration order is the report sort order."""
    EMPTY = "Empty Layer"
    TOUCHING_BOUND = "Touching Bound"
    ISLAND = "Island"
    OVERHANG = "Overhang"
    RESIN_TRAP = "Resin Trap"

ISSUE_TYPE_ORDER: Dict[IssueType, int] = {issue_type: rank for rank, issue_type in enumerate(IssueType)}


class Issue(BaseModel):
    """Represents a single detection result on one layer."""
    model_config = ConfigDict(frozen=True)

    issue_type: IssueType = Field(..., description="Category of the issue.")
    layer_index: int = Field(..., ge=0, description="Index of the layer the issue belongs to.")
    pixels: List[Point] = Field(default_factory=list, description="Pixel coordinates (x, y) making up the issue.")
    bounding_rectangle: Rectangle = Field(default_factory=Rectangle, description="Rectangle enclosing the issue.")

    @property
    def pixel_count(self) -> int:
        return len(self.pixels)

    def ignore_key(self) -> Tuple[IssueType, int, FrozenSet[Point]]:
        """Identity used by suppression lists: type, layer and pixel set."""
        return self.issue_type, self.layer_index, frozenset(self.pixels)

    def sort_key(self) -> Tuple[int, int, int]:
        return ISSUE_TYPE_ORDER[self.issue_type], self.layer_index, self.pixel_count


class DetectionReport(BaseModel):
    """Consolidated result of an issue detection run."""
    issues: List[Issue] = Field(default_factory=list, description="Detected issues sorted by type, layer and size.")
    cancelled: bool = Field(False, description="True when the run stopped early on a cancellation request.")
    layer_count: int = Field(0, description="Number of layers in the inspected stack.")
    analysis_time_sec: float = Field(0.0, description="Time taken for the detection run in seconds.")

    def counts(self) -> Dict[IssueType, int]:
        summary = {issue_type: 0 for issue_type in IssueType}
        for issue in self.issues:
            summary[issue.issue_type] += 1
        return summary

# --- Detection Configuration ---

class _LayerFilterConfig(BaseModel):
    enabled: bool = True
    white_list_layers: Optional[Set[int]] = Field(None, description="Restrict processing to these layer indexes.")

    def allows(self, layer_index: int) -> bool:
        return self.white_list_layers is None or layer_index in self.white_list_layers


class IslandDetectionConfig(_LayerFilterConfig):
    allow_diagonal_bonds: bool = Field(False, description="Use 8-connectivity instead of 4-connectivity for labeling.")
    binary_threshold: int = Field(1, ge=0, le=255, description="Binarize before labeling when > 0.")
    required_area_to_process_check: int = Field(1, ge=0, description="Minimum component pixel area to be checked.")
    required_pixel_brightness_to_process_check: int = Field(1, ge=0, le=255)
    required_pixels_to_support_multiplier: float = Field(0.25, ge=0.0)
    required_pixel_brightness_to_support: int = Field(150, ge=0, le=255)
    enhanced_detection: bool = Field(True, description="Re-validate supported islands with an overhang check.")


class OverhangDetectionConfig(_LayerFilterConfig):
    independent_from_islands: bool = Field(True, description="Scan the whole layer instead of island candidates.")
    required_pixels_to_consider: int = Field(1, ge=0)
    erode_iterations: int = Field(40, ge=0)


class ResinTrapDetectionConfig(_LayerFilterConfig):
    binary_threshold: int = Field(127, ge=0, le=255, description="Binarize before contour search when > 0.")
    required_area_to_process_check: int = Field(17, ge=0, description="Minimum bounding-box area of a cavity.")
    required_black_pixels_to_drain: int = Field(10, ge=0)
    maximum_pixel_brightness_to_drain: int = Field(30, ge=0, le=255)


class TouchingBoundDetectionConfig(_LayerFilterConfig):
    minimum_pixel_brightness: int = Field(127, ge=0, le=255)
    margin_left: int = Field(5, ge=0)
    margin_top: int = Field(5, ge=0)
    margin_right: int = Field(5, ge=0)
    margin_bottom: int = Field(5, ge=0)

# --- Resin trap working records ---

class HollowAreaType(str, Enum):
    UNKNOWN = "Unknown"
    TRAP = "Trap"
    DRAIN = "Drain"


@dataclass(eq=False)
class HollowArea:
    """Mutable cavity record owned by the resin trap resolver."""
    layer_index: int
    contour: np.ndarray  # OpenCV contour, shape (N, 1, 2), int32
    bounding_rectangle: Rectangle
    area_type: HollowAreaType = HollowAreaType.UNKNOWN
    processed: bool = False

    @property
    def contour_length(self) -> int:
        return len(self.contour)

    def mark(self, area_type: HollowAreaType) -> None:
        """Sets the classification; a drain never goes back to trap."""
        if self.area_type == HollowAreaType.DRAIN:
            return
        self.area_type = area_type

    def to_issue(self) -> Issue:
        points = [(int(x), int(y)) for x, y in self.contour.reshape(-1, 2)]
        return Issue(issue_type=IssueType.RESIN_TRAP, layer_index=self.layer_index,
                     pixels=points, bounding_rectangle=self.bounding_rectangle)

# --- Layer metadata ---

class LayerParameters(BaseModel):
    """Per-layer print parameters; read-only to the inspection core."""
    position_z: float = 0.0
    exposure_time: float = 0.0
    lift_height: float = 0.0
    lift_speed: float = 0.0
    light_pwm: int = 255
