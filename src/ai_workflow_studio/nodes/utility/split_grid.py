"""
Split Grid node - crops an image into a rows x cols grid of cells.

Each cell is exposed on its own indexed output handle ("cell-0",
"cell-1", ... in row-major order). After a successful run the executor
replaces the node's generate-image children, one per cell.
"""

from __future__ import annotations

import asyncio
from typing import Any

from ai_workflow_studio.core.data_types import DataType, ImageData, NodeKind, load_image
from ai_workflow_studio.core.errors import ValidationError
from ai_workflow_studio.core.node_types import (
    InputDefinition,
    NodeCategory,
    NodeType,
    OutputDefinition,
    ParameterDefinition,
)


def split_cells(image: ImageData, rows: int, cols: int) -> list[str]:
    """Split an image and encode each cell as a PNG data URL."""
    return [cell.to_data_url() for cell in image.split_grid(rows, cols)]


async def split_grid_executor(
    inputs: dict[str, Any],
    data: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Execute split grid node."""
    source = inputs.get("image")
    if not source:
        raise ValidationError("Missing input: no source image")

    try:
        rows = int(data.get("gridRows") or 0)
        cols = int(data.get("gridCols") or 0)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid grid size: {e}") from e
    if rows < 1 or cols < 1:
        raise ValidationError("Grid rows and columns must be at least 1")

    try:
        image = await load_image(source)
        loop = asyncio.get_running_loop()
        cells = await loop.run_in_executor(None, split_cells, image, rows, cols)
    except (ValueError, OSError) as e:
        raise ValidationError(f"Cannot split image: {e}") from e

    return {
        "cellImages": cells,
        "targetCount": rows * cols,
        "isConfigured": True,
    }


SPLIT_GRID_NODE = NodeType(
    kind=NodeKind.SPLIT_GRID,
    name="Split Grid",
    description="Split an image into a grid and spawn a generator per cell",
    category=NodeCategory.UTILITY,
    inputs=[
        InputDefinition(
            name="image",
            label="Image",
            data_type=DataType.IMAGE,
            required=True,
            fallback_field="sourceImage",
        ),
    ],
    outputs=[
        OutputDefinition(
            name="cell",
            label="Cell",
            data_type=DataType.IMAGE,
            source_field="cellImages",
            indexed=True,
            count_fields=("gridRows", "gridCols"),
            description="One handle per grid cell, row-major",
        ),
    ],
    parameters=[
        ParameterDefinition.integer(
            name="gridRows",
            label="Rows",
            default=2,
            min_value=1,
            max_value=8,
        ),
        ParameterDefinition.integer(
            name="gridCols",
            label="Columns",
            default=3,
            min_value=1,
            max_value=8,
        ),
        ParameterDefinition.text(
            name="defaultPrompt",
            label="Cell Prompt",
            default="",
            multiline=True,
            description="Prompt given to every generated child",
        ),
        ParameterDefinition.obj(
            name="generateSettings",
            label="Child Settings",
            default={
                "aspectRatio": "1:1",
                "resolution": "1K",
                "model": "nano-banana-pro",
                "useGoogleSearch": False,
            },
        ),
    ],
    state_defaults={
        "sourceImage": None,
        "cellImages": [],
        "targetCount": 6,
        "childNodeIds": [],
        "isConfigured": False,
    },
    executor=split_grid_executor,
    default_width=300.0,
    default_height=320.0,
)
