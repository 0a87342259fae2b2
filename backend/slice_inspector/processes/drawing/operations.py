# processes/drawing/operations.py

import logging
from enum import Enum
from typing import Annotated, List, Literal, Union

import cv2
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ...core.common_types import Point, Rectangle
from ...core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# --- Enums ---

class PixelOperationType(str, Enum):
    DRAWING = "Drawing"
    TEXT = "Text"
    ERASER = "Eraser"
    SUPPORT = "Support"
    DRAIN_HOLE = "DrainHole"


class BrushShape(str, Enum):
    RECTANGLE = "Rectangle"
    CIRCLE = "Circle"


class LineType(str, Enum):
    """Rasterization mode of the drawing primitives."""
    FOUR_CONNECTED = "4-connected"
    EIGHT_CONNECTED = "8-connected"
    ANTI_ALIASED = "anti-aliased"

    @property
    def cv_value(self) -> int:
        return _LINE_TYPES[self]


class FontFace(str, Enum):
    HERSHEY_SIMPLEX = "HersheySimplex"
    HERSHEY_PLAIN = "HersheyPlain"
    HERSHEY_DUPLEX = "HersheyDuplex"
    HERSHEY_COMPLEX = "HersheyComplex"
    HERSHEY_TRIPLEX = "HersheyTriplex"
    HERSHEY_COMPLEX_SMALL = "HersheyComplexSmall"
    HERSHEY_SCRIPT_SIMPLEX = "HersheyScriptSimplex"
    HERSHEY_SCRIPT_COMPLEX = "HersheyScriptComplex"

    @property
    def cv_value(self) -> int:
        return _FONT_FACES[self]


_LINE_TYPES = {
    LineType.FOUR_CONNECTED: cv2.LINE_4,
    LineType.EIGHT_CONNECTED: cv2.LINE_8,
    LineType.ANTI_ALIASED: cv2.LINE_AA,
}

_FONT_FACES = {
    FontFace.HERSHEY_SIMPLEX: cv2.FONT_HERSHEY_SIMPLEX,
    FontFace.HERSHEY_PLAIN: cv2.FONT_HERSHEY_PLAIN,
    FontFace.HERSHEY_DUPLEX: cv2.FONT_HERSHEY_DUPLEX,
    FontFace.HERSHEY_COMPLEX: cv2.FONT_HERSHEY_COMPLEX,
    FontFace.HERSHEY_TRIPLEX: cv2.FONT_HERSHEY_TRIPLEX,
    FontFace.HERSHEY_COMPLEX_SMALL: cv2.FONT_HERSHEY_COMPLEX_SMALL,
    FontFace.HERSHEY_SCRIPT_SIMPLEX: cv2.FONT_HERSHEY_SCRIPT_SIMPLEX,
    FontFace.HERSHEY_SCRIPT_COMPLEX: cv2.FONT_HERSHEY_SCRIPT_COMPLEX,
}

# --- Operation Models ---

class PixelOperation(BaseModel):
    """One pixel edit on a layer. `operation_type` selects the drawing routine."""
    operation_type: str = Field(..., description="Kind of edit to apply.")
    layer_index: int = Field(..., ge=0, description="Layer the edit is anchored on.")
    location: Point = Field(..., description="Edit location (x, y) in pixels.")
    brightness: int = Field(255, ge=0, le=255, description="Pixel value written by the edit.")
    line_type: LineType = Field(LineType.ANTI_ALIASED, description="Rasterization mode for primitives.")


class PixelDrawing(PixelOperation):
    operation_type: Literal["Drawing"] = PixelOperationType.DRAWING.value
    brush_shape: BrushShape = BrushShape.RECTANGLE
    brush_size: int = Field(1, ge=1, description="Brush side or diameter in pixels; 1 writes a single pixel.")
    thickness: int = Field(-1, ge=-1, description="Outline thickness; -1 fills the shape.")

    @property
    def rectangle(self) -> Rectangle:
        half = self.brush_size // 2
        return Rectangle(x=self.location[0] - half, y=self.location[1] - half,
                         width=self.brush_size, height=self.brush_size)


class PixelText(PixelOperation):
    operation_type: Literal["Text"] = PixelOperationType.TEXT.value
    text: str = Field(..., min_length=1)
    font: FontFace = FontFace.HERSHEY_SIMPLEX
    font_scale: float = Field(1.0, gt=0)
    thickness: int = Field(1, ge=1)
    mirror: bool = Field(False, description="Mirror the text horizontally around its own box.")


class PixelEraser(PixelOperation):
    """Fills the shape under `location` with `brightness` (black by default)."""
    operation_type: Literal["Eraser"] = PixelOperationType.ERASER.value
    brightness: int = Field(0, ge=0, le=255)


class PixelSupport(PixelOperation):
    """Tapered support pillar grown downwards from the layer below `layer_index`."""
    operation_type: Literal["Support"] = PixelOperationType.SUPPORT.value
    tip_diameter: int = Field(19, ge=1)
    pillar_diameter: int = Field(32, ge=1)
    base_diameter: int = Field(60, ge=1)


class PixelDrainHole(PixelOperation):
    """Vertical hole drilled from `layer_index` down until the cavity below is reached."""
    operation_type: Literal["DrainHole"] = PixelOperationType.DRAIN_HOLE.value
    diameter: int = Field(50, ge=1)


AnyPixelOperation = Annotated[
    Union[PixelDrawing, PixelText, PixelEraser, PixelSupport, PixelDrainHole],
    Field(discriminator="operation_type"),
]

_OPERATIONS_ADAPTER = TypeAdapter(List[AnyPixelOperation])


def parse_operations(data: Union[str, bytes, list]) -> List[PixelOperation]:
    """
    Builds operation models from JSON text or a list of dictionaries.

    Raises:
        ConfigurationError: If an entry is malformed or of an unknown kind.
    """
    try:
        if isinstance(data, (str, bytes)):
            operations = _OPERATIONS_ADAPTER.validate_json(data)
        else:
            operations = _OPERATIONS_ADAPTER.validate_python(data)
    except ValidationError as e:
        logger.error(f"Invalid pixel operations: {e}")
        raise ConfigurationError(f"Invalid pixel operations: {e}") from e
    logger.debug(f"Parsed {len(operations)} pixel operations.")
    return operations
