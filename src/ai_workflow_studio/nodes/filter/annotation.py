"""
Annotation node - draws user shapes over an image.

Annotations are stored as a list of shape records in the node data:

    {"type": "rectangle", "x": 10, "y": 10, "width": 80, "height": 40,
     "color": "#ff0000", "strokeWidth": 3}
    {"type": "circle", ...same box fields...}
    {"type": "arrow", "points": [[x1, y1], [x2, y2]], ...}
    {"type": "freehand", "points": [[x, y], ...], ...}
    {"type": "text", "x": 10, "y": 10, "text": "label", "fontSize": 24, ...}
"""

from __future__ import annotations

import asyncio
import math
from typing import Any

from PIL import Image, ImageDraw, ImageFont

from ai_workflow_studio.core.data_types import DataType, ImageData, NodeKind, load_image
from ai_workflow_studio.core.errors import ValidationError
from ai_workflow_studio.core.node_types import (
    InputDefinition,
    NodeCategory,
    NodeType,
    OutputDefinition,
    ParameterDefinition,
)

DEFAULT_COLOR = "#ff0000"
DEFAULT_STROKE = 3
ARROW_HEAD_LENGTH = 16.0
ARROW_HEAD_ANGLE = math.radians(25)


def _box(shape: dict[str, Any]) -> tuple[float, float, float, float]:
    x, y = float(shape.get("x", 0)), float(shape.get("y", 0))
    x2, y2 = x + float(shape.get("width", 0)), y + float(shape.get("height", 0))
    return min(x, x2), min(y, y2), max(x, x2), max(y, y2)


def _points(shape: dict[str, Any]) -> list[tuple[float, float]]:
    return [(float(p[0]), float(p[1])) for p in shape.get("points") or []]


def _draw_arrow(draw: ImageDraw.ImageDraw, shape: dict[str, Any], color: str, width: int) -> None:
    points = _points(shape)
    if len(points) < 2:
        raise ValidationError("Arrow annotation needs two points")
    (x1, y1), (x2, y2) = points[0], points[-1]
    draw.line([(x1, y1), (x2, y2)], fill=color, width=width)

    angle = math.atan2(y2 - y1, x2 - x1)
    for side in (-1, 1):
        a = angle + math.pi + side * ARROW_HEAD_ANGLE
        tip = (x2 + ARROW_HEAD_LENGTH * math.cos(a), y2 + ARROW_HEAD_LENGTH * math.sin(a))
        draw.line([(x2, y2), tip], fill=color, width=width)


def _draw_shape(draw: ImageDraw.ImageDraw, shape: dict[str, Any]) -> None:
    kind = shape.get("type")
    color = shape.get("color") or DEFAULT_COLOR
    width = int(shape.get("strokeWidth") or DEFAULT_STROKE)
    fill = shape.get("fill")

    if kind == "rectangle":
        draw.rectangle(_box(shape), outline=color, width=width, fill=fill)
    elif kind == "circle":
        draw.ellipse(_box(shape), outline=color, width=width, fill=fill)
    elif kind == "arrow":
        _draw_arrow(draw, shape, color, width)
    elif kind == "freehand":
        points = _points(shape)
        if len(points) >= 2:
            draw.line(points, fill=color, width=width, joint="curve")
    elif kind == "text":
        font = ImageFont.load_default(size=int(shape.get("fontSize") or 24))
        draw.text(
            (float(shape.get("x", 0)), float(shape.get("y", 0))),
            str(shape.get("text", "")),
            fill=color,
            font=font,
        )
    else:
        raise ValidationError(f"Unknown annotation type: {kind}")


def render_annotations(image: ImageData, annotations: list[dict[str, Any]]) -> ImageData:
    """Composite the annotation shapes over the image."""
    canvas = image.to_pil().convert("RGBA")
    overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    for shape in annotations:
        _draw_shape(draw, shape)
    return ImageData.from_pil(Image.alpha_composite(canvas, overlay))


async def annotation_executor(
    inputs: dict[str, Any],
    data: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """
    Execute annotation node.

    With no annotations the source passes through unchanged.
    """
    source = inputs.get("image")
    if not source:
        raise ValidationError("Missing input: no source image")

    annotations = data.get("annotations") or []
    if not annotations:
        return {"outputImage": source}

    try:
        image = await load_image(source)
    except (ValueError, OSError) as e:
        raise ValidationError(f"Cannot read source image: {e}") from e

    loop = asyncio.get_running_loop()
    rendered = await loop.run_in_executor(None, render_annotations, image, annotations)
    return {"outputImage": rendered.to_data_url()}


ANNOTATION_NODE = NodeType(
    kind=NodeKind.ANNOTATION,
    name="Annotation",
    description="Draw shapes and labels over an image",
    category=NodeCategory.FILTER,
    inputs=[
        InputDefinition(
            name="image",
            label="Image",
            data_type=DataType.IMAGE,
            required=True,
            fallback_field="sourceImage",
            description="Image to annotate",
        ),
    ],
    outputs=[
        OutputDefinition(
            name="image",
            label="Image",
            data_type=DataType.IMAGE,
            source_field="outputImage",
            description="Annotated image",
        ),
    ],
    parameters=[
        ParameterDefinition.obj(
            name="annotations",
            label="Annotations",
            default=[],
        ),
    ],
    state_defaults={
        "sourceImage": None,
        "outputImage": None,
    },
    executor=annotation_executor,
    default_width=300.0,
    default_height=280.0,
)
