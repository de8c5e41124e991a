# backend/payload_builder.py

from typing import Any, Dict

from config.settings import Settings, settings

from .model import NormalizedRequest


def _set_optional(payload: Dict[str, Any], req: NormalizedRequest) -> None:
    """
    Copy optional knobs only when the caller set them, so that the
    upstream applies its own defaults otherwise.
    """
    if req.seed is not None:
        payload["seed"] = req.seed
    if req.safety_tolerance is not None:
        payload["safety_tolerance"] = req.safety_tolerance


def _normalize_input_image(image: str) -> str:
    """
    Browsers hand over FileReader results as data URLs; BFL wants the bare
    base64 body. Remote URLs and bare base64 pass through unchanged.
    """
    if image.startswith("data:") and "," in image:
        return image.split(",", 1)[1]
    return image


def build_gen_payload(req: NormalizedRequest) -> Dict[str, Any]:
    """
    Text-to-image: width/height are always sent.
    """
    payload: Dict[str, Any] = {
        "prompt": req.prompt,
        "width": req.width,
        "height": req.height,
        "output_format": req.output_format,
    }
    _set_optional(payload, req)
    return payload


def build_edit_payload(req: NormalizedRequest) -> Dict[str, Any]:
    """
    Image editing: input_image is forwarded as-is (BFL accepts base64 as
    well as a public URL). Without explicit dimensions the upstream keeps
    the size of the input image.
    """
    payload: Dict[str, Any] = {
        "prompt": req.prompt,
        "input_image": _normalize_input_image(req.input_image or ""),
        "output_format": req.output_format,
    }
    if req.width is not None and req.height is not None:
        payload["width"] = req.width
        payload["height"] = req.height
    _set_optional(payload, req)
    return payload


def build_payload(req: NormalizedRequest) -> Dict[str, Any]:
    if req.mode == "edit":
        return build_edit_payload(req)
    return build_gen_payload(req)


def model_for(req: NormalizedRequest, cfg: Settings = settings) -> str:
    """Flux endpoint name for the request mode."""
    return cfg.BFL_EDIT_MODEL if req.mode == "edit" else cfg.BFL_MODEL
