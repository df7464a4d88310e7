import asyncio
import base64
import json
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import Response
from pydantic import ValidationError

from config import settings
from exceptions import BadRequestError
from pipeline.coordinator import Conversion
from pipeline.frames import SourceFile
from schemas import ErrorResponse, UpscaleConfig, UpscaleResponse, UpscaleResult
from security.file_validation import validate_upload
from utils.concurrency import conversion_gate

router = APIRouter()

RESPONSE_FORMATS = ("binary", "json")


@router.post(
    "/upscale",
    responses={
        status: {"model": ErrorResponse}
        for status in (400, 409, 413, 415, 422, 500, 503)
    },
)
async def upscale(
    request: Request,
    file: UploadFile | None = File(None),
    options: str | None = Form(None),
):
    """Upscale an animated GIF or WebP.

    Input: multipart ``file`` field + optional ``options`` JSON string
    (scale, loop_count, preserve_zero_delay, response_format).

    Two response modes:
    1. response_format="binary" (default) → raw bytes with X-* headers
    2. response_format="json" → JSON with base64 output + progress events
    """
    if file is None:
        raise BadRequestError("Expected multipart/form-data with a 'file' field")

    config, response_format = _parse_options(options)

    data = await file.read()
    source = SourceFile(
        data=data,
        media_type=file.content_type or "",
        filename=file.filename or "",
    )
    validate_upload(source)

    conversion = Conversion(source, config)
    async with conversion_gate.slot():
        result = await asyncio.to_thread(conversion.run)

    if response_format == "json":
        return _build_json_response(result, conversion)
    return _build_binary_response(result, request)


def _parse_options(options_str: Optional[str]) -> tuple[UpscaleConfig, str]:
    """Parse the 'options' form field JSON string."""
    if not options_str:
        return UpscaleConfig(scale=settings.default_scale), "binary"

    try:
        data = json.loads(options_str)
    except json.JSONDecodeError as e:
        raise BadRequestError(f"Invalid JSON in 'options' field: {e}")

    if not isinstance(data, dict):
        raise BadRequestError("'options' must be a JSON object")

    data.setdefault("scale", settings.default_scale)
    response_format = data.pop("response_format", "binary")
    if response_format not in RESPONSE_FORMATS:
        raise BadRequestError(
            f"Unknown response_format {response_format!r}",
            allowed=list(RESPONSE_FORMATS),
        )

    try:
        config = UpscaleConfig(**data)
    except ValidationError as e:
        raise BadRequestError(f"Invalid options: {e.errors()[0]['msg']}")

    return config, response_format


def _build_binary_response(result: UpscaleResult, request: Request) -> Response:
    """Build raw bytes response with X-* headers."""
    request_id = getattr(request.state, "request_id", "")

    return Response(
        content=result.output_bytes,
        media_type=result.mime_type,
        headers={
            "Content-Length": str(result.output_size),
            "Content-Disposition": _content_disposition(result.filename),
            "X-Original-Size": str(result.original_size),
            "X-Output-Size": str(result.output_size),
            "X-Original-Format": result.source_format,
            "X-Output-Format": result.format,
            "X-Frame-Count": str(result.frame_count),
            "X-Scale": str(result.scale),
            "X-Outcome": result.outcome.value,
            "X-Request-ID": request_id,
        },
    )


def _build_json_response(result: UpscaleResult, conversion: Conversion) -> dict:
    """Inline the output as base64 next to the progress events."""
    return UpscaleResponse(
        success=result.success,
        outcome=result.outcome,
        source_format=result.source_format,
        format=result.format,
        mime_type=result.mime_type,
        filename=result.filename,
        frame_count=result.frame_count,
        width=result.width,
        height=result.height,
        scale=result.scale,
        loop_count=result.loop_count,
        original_size=result.original_size,
        output_size=result.output_size,
        data=base64.b64encode(result.output_bytes).decode("ascii"),
        message=result.message,
        events=conversion.progress.events,
    ).model_dump(mode="json", exclude_none=True)


def _content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback and an RFC 5987 UTF-8 name."""
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"
