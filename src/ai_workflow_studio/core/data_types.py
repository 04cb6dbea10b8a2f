"""
Data Types - Core value types that flow through the workflow graph.

This module defines:
- DataType: Content type carried by a handle (image, text, video)
- NodeKind: The fixed set of node kinds a workflow can contain
- NodeStatus: Per-node execution state
- ImageData: Pixel container used by nodes that process images locally
- compress_image: Downscale and JPEG-encode a data URL before upload

Images travel between nodes as strings: either a base64 data URL or a
remote http(s) URL returned by a provider. ImageData is only materialised
when a node needs to touch pixels (annotation, grid splitting).
"""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from typing import Any, TypeAlias

import aiohttp
import numpy as np
from numpy.typing import NDArray
from PIL import Image


class DataType(Enum):
    """
    Content type carried by a node handle.

    Each input/output handle has a DataType that determines which
    connections are valid. There is no wildcard type.
    """
    IMAGE = "image"
    TEXT = "text"
    VIDEO = "video"

    def is_compatible_with(self, other: DataType) -> bool:
        """Check if this type can connect to another type."""
        return self == other


class NodeKind(Enum):
    """Node kinds supported by the engine."""
    IMAGE_INPUT = "imageInput"
    ANNOTATION = "annotation"
    PROMPT = "prompt"
    GENERATE_IMAGE = "generate-image"
    GENERATE_VIDEO = "generate-video"
    LLM_GENERATE = "llm-generate"
    SPLIT_GRID = "split-grid"
    OUTPUT = "output"


class NodeStatus(Enum):
    """
    Execution state of a node.

    idle -> queued -> running -> {success, error}; success and error may
    be re-entered by another run. RUNNING serializes as "loading".
    """
    IDLE = "idle"
    QUEUED = "queued"
    RUNNING = "loading"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_busy(self) -> bool:
        return self in (NodeStatus.QUEUED, NodeStatus.RUNNING)


# Values that may sit in a node's data payload
DataValue: TypeAlias = str | int | float | bool | list | dict | None

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?P<b64>;base64)?,(?P<payload>.*)$", re.DOTALL)


def is_data_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("data:")


def is_remote_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


@dataclass
class ImageData:
    """
    Container for image pixels.

    Internally stores pixels as a numpy array in HWC format with
    uint8 values, either RGB or RGBA.

    Attributes:
        pixels: numpy array of shape (H, W, C)
        mime_type: MIME type used when re-encoding to a data URL
    """
    pixels: NDArray[np.uint8]
    mime_type: str = "image/png"

    @classmethod
    def from_pil(cls, image: Image.Image, mime_type: str = "image/png") -> ImageData:
        """Create ImageData from a PIL Image."""
        if not isinstance(image, Image.Image):
            raise TypeError(f"Expected PIL Image, got {type(image)}")

        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA" if "A" in image.getbands() else "RGB")

        return cls(pixels=np.array(image, dtype=np.uint8), mime_type=mime_type)

    @classmethod
    def from_bytes(cls, data: bytes) -> ImageData:
        """Decode encoded image bytes (PNG, JPEG, WebP...)."""
        image = Image.open(BytesIO(data))
        image.load()
        mime = Image.MIME.get(image.format or "", "image/png")
        return cls.from_pil(image, mime_type=mime)

    @classmethod
    def from_data_url(cls, url: str) -> ImageData:
        """
        Decode a base64 data URL.

        Raises:
            ValueError: If the string is not a base64 data URL.
        """
        match = _DATA_URL_RE.match(url)
        if not match or not match.group("b64"):
            raise ValueError("Not a base64 data URL")
        return cls.from_bytes(base64.b64decode(match.group("payload")))

    @property
    def width(self) -> int:
        """Image width in pixels."""
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        """Image height in pixels."""
        return self.pixels.shape[0]

    @property
    def size(self) -> tuple[int, int]:
        """Image size as (width, height)."""
        return (self.width, self.height)

    def to_pil(self) -> Image.Image:
        """Convert to PIL Image."""
        return Image.fromarray(self.pixels)

    def to_bytes(self, format: str = "PNG") -> bytes:
        buf = BytesIO()
        self.to_pil().save(buf, format=format)
        return buf.getvalue()

    def to_data_url(self) -> str:
        """Encode as a PNG data URL."""
        b64 = base64.b64encode(self.to_bytes("PNG")).decode("ascii")
        return f"data:image/png;base64,{b64}"

    def crop(self, x: int, y: int, width: int, height: int) -> ImageData:
        """Return a copy of the given pixel rectangle."""
        return ImageData(
            pixels=self.pixels[y:y + height, x:x + width].copy(),
            mime_type=self.mime_type,
        )

    def split_grid(self, rows: int, cols: int) -> list[ImageData]:
        """
        Split into rows x cols equal cells, row-major.

        Remainder pixels on the right and bottom edges are dropped so that
        every cell has the same size.
        """
        if rows < 1 or cols < 1:
            raise ValueError("rows and cols must be >= 1")
        cell_w = self.width // cols
        cell_h = self.height // rows
        if cell_w == 0 or cell_h == 0:
            raise ValueError(f"Image {self.width}x{self.height} too small for a {rows}x{cols} grid")

        return [
            self.crop(col * cell_w, row * cell_h, cell_w, cell_h)
            for row in range(rows)
            for col in range(cols)
        ]


async def load_image(source: str, timeout: float = 60.0) -> ImageData:
    """
    Load an image from a data URL or an http(s) URL.

    Raises:
        ValueError: If the source is neither, or cannot be fetched.
    """
    if is_data_url(source):
        return ImageData.from_data_url(source)

    if is_remote_url(source):
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.get(source) as resp:
                if resp.status != 200:
                    raise ValueError(f"Failed to fetch image ({resp.status}): {source}")
                return ImageData.from_bytes(await resp.read())

    raise ValueError("Unsupported image source")


def compress_image(
    data_url: str,
    max_width: int = 1024,
    max_height: int = 1024,
    quality: float = 0.85,
) -> str:
    """
    Shrink a data URL image for upload.

    Images larger than max_width x max_height are scaled down keeping
    their aspect ratio; smaller ones keep their size. The result is
    always re-encoded as a JPEG data URL, so transparency is flattened
    onto white.

    Raises:
        ValueError: If the string is not a decodable base64 data URL.
    """
    try:
        image = ImageData.from_data_url(data_url).to_pil()
    except OSError as e:
        raise ValueError(f"Cannot decode image for compression: {e}") from e

    width, height = image.size
    if width > max_width or height > max_height:
        ratio = min(max_width / width, max_height / height)
        size = (max(int(width * ratio), 1), max(int(height * ratio), 1))
        image = image.resize(size, Image.Resampling.LANCZOS)

    if image.mode == "RGBA":
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.getchannel("A"))
        image = background

    buf = BytesIO()
    image.save(buf, format="JPEG", quality=round(quality * 100))
    b64 = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:image/jpeg;base64,{b64}"
