# backend/validation.py
"""
Request validation for ``POST /api/generate``.

``validate_generate_request`` is a pure function: it either returns a
``NormalizedRequest`` ready for the payload builder or raises one of the
``RequestValidationFailed`` subclasses from ``backend.errors``. Nothing here
touches the network, so invalid requests never cost an upstream call.

Rules are applied in a fixed order and the first violation wins:

1. prompt present and non-empty after trimming
2. width/height required for text-to-image (default 1024); optional for
   editing and only validated when they differ from 1024x1024
3. both dimensions multiples of 16
4. both dimensions >= 64
5. width * height <= 4,000,000
6. both dimensions <= 2048 (text-to-image only)
7. output_format in {jpeg, png}
8. safety_tolerance in [0, 5]
"""

from typing import Any, Optional, Tuple

from .errors import (
    DimensionTooLarge,
    DimensionTooSmall,
    InvalidDimensionAlignment,
    InvalidFormat,
    InvalidSafetyTolerance,
    MegapixelExceeded,
    MissingPrompt,
)
from .model import GenerateRequest, NormalizedRequest

DEFAULT_WIDTH = 1024
DEFAULT_HEIGHT = 1024

DIMENSION_STEP = 16
MIN_DIMENSION = 64
MAX_DIMENSION = 2048
MAX_PIXELS = 4_000_000

OUTPUT_FORMATS = ("jpeg", "png")
SAFETY_TOLERANCE_RANGE = (0, 5)


def validate_dimensions(width: int, height: int, text_to_image: bool = True) -> None:
    """Raise the first dimension rule violated by ``width`` x ``height``."""
    if width % DIMENSION_STEP != 0 or height % DIMENSION_STEP != 0:
        raise InvalidDimensionAlignment(
            f"Width and height must be multiples of {DIMENSION_STEP} "
            f"(got {width}x{height})",
            width=width,
            height=height,
        )

    if width < MIN_DIMENSION or height < MIN_DIMENSION:
        raise DimensionTooSmall(
            f"Width and height must be at least {MIN_DIMENSION} pixels "
            f"(got {width}x{height})",
            width=width,
            height=height,
        )

    if width * height > MAX_PIXELS:
        megapixels = width * height / 1_000_000
        raise MegapixelExceeded(
            f"Image dimensions exceed the 4 megapixel limit "
            f"({width}x{height} = {megapixels:.2f} MP)",
            width=width,
            height=height,
            megapixels=round(megapixels, 2),
        )

    if text_to_image and (width > MAX_DIMENSION or height > MAX_DIMENSION):
        raise DimensionTooLarge(
            f"Width and height must be at most {MAX_DIMENSION} pixels "
            f"(got {width}x{height})",
            width=width,
            height=height,
        )


def _resolve_dimensions(req: GenerateRequest) -> Tuple[Optional[int], Optional[int]]:
    width = req.width if req.width is not None else DEFAULT_WIDTH
    height = req.height if req.height is not None else DEFAULT_HEIGHT

    if not req.input_image:
        validate_dimensions(width, height, text_to_image=True)
        return width, height

    # Editing mode: an explicit 1024x1024 cannot be told apart from an
    # omitted size, both mean "keep the input image dimensions".
    if (width, height) == (DEFAULT_WIDTH, DEFAULT_HEIGHT):
        return None, None

    validate_dimensions(width, height, text_to_image=False)
    return width, height


def _check_safety_tolerance(value: Any) -> Optional[int]:
    if value is None:
        return None

    # JSON has one number type: 2.0 is accepted as 2, 2.5 is not
    if isinstance(value, float) and value.is_integer():
        value = int(value)

    low, high = SAFETY_TOLERANCE_RANGE
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise InvalidSafetyTolerance(
            f"safety_tolerance must be an integer between {low} and {high} "
            f"(got {value!r})",
            safety_tolerance=value,
        )
    return value


def validate_generate_request(req: GenerateRequest) -> NormalizedRequest:
    prompt = (req.prompt or "").strip()
    if not prompt:
        raise MissingPrompt("Prompt is required", prompt=req.prompt)

    width, height = _resolve_dimensions(req)

    output_format = req.output_format if req.output_format is not None else "jpeg"
    if not isinstance(output_format, str) or output_format not in OUTPUT_FORMATS:
        raise InvalidFormat(
            f"output_format must be one of {', '.join(OUTPUT_FORMATS)} "
            f"(got {output_format!r})",
            output_format=output_format,
        )

    safety_tolerance = _check_safety_tolerance(req.safety_tolerance)

    return NormalizedRequest(
        prompt=prompt,
        mode="edit" if req.input_image else "generate",
        output_format=output_format,
        width=width,
        height=height,
        seed=req.seed,
        safety_tolerance=safety_tolerance,
        input_image=req.input_image or None,
    )
