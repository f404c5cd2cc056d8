import base64
import binascii
import logging
import os
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from image_resizer import config
from image_resizer.errors import NoImageSupplied, PayloadTooLarge, ResizeError, UnreadablePayload
from image_resizer.models import EncodeRequest, ErrorResponse, OutputFormat, ResizeResponse
from image_resizer.pipeline import resize_to_target

# --- Logging ---
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("image_resizer.api")

PORT = int(os.getenv("PORT", "8181"))

logger.info(
    "[startup] quality range %d-%d, %d search iterations, max target %d KB",
    config.QUALITY_MIN,
    config.QUALITY_MAX,
    config.SEARCH_ITERATIONS,
    config.MAX_TARGET_KB,
)

# --- App Init ---
app = FastAPI(title="Image Resizer")
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Resize-Warnings", "X-Resize-Quality", "X-Resize-Original-Format"],
)


# --- Middleware ---
@app.middleware("http")
async def add_cache_control_header(request: Request, call_next):
    response = await call_next(request)
    # Resized images are per-request results, never cache them.
    if request.url.path.startswith("/tools/"):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(ResizeError)
async def resize_error_handler(request: Request, exc: ResizeError):
    logger.warning("Resize request failed (%s): %s", exc.kind, exc.message)
    body = ErrorResponse(detail=exc.message, kind=exc.kind)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


# --- Helpers ---
async def _read_payload(image: Optional[UploadFile], data_url: Optional[str]) -> bytes:
    """Return the uploaded image bytes from either a file part or a data URL."""
    if image is not None:
        try:
            raw_data = await image.read()
        except OSError as exc:
            raise UnreadablePayload(f"Could not read uploaded file: {exc}") from exc
    elif data_url:
        # expects data:image/png;base64,AAAA... but a bare base64 string is accepted too
        encoded = data_url.split(",", 1)[1] if "," in data_url else data_url
        try:
            raw_data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise UnreadablePayload(f"Invalid base64 image data: {exc}") from exc
    else:
        raise NoImageSupplied("No image data provided.")
    if not raw_data:
        raise NoImageSupplied("No image data provided.")
    if len(raw_data) > config.MAX_UPLOAD_BYTES:
        raise PayloadTooLarge(f"Image exceeds {config.MAX_UPLOAD_BYTES} bytes.")
    return raw_data


def _parse_output_format(output_format: str) -> OutputFormat:
    try:
        return OutputFormat.parse(output_format)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


async def _resize(
    target_size_kb: int,
    output_format: str,
    image: Optional[UploadFile],
    data_url: Optional[str],
):
    request = EncodeRequest.from_kilobytes(target_size_kb, _parse_output_format(output_format))
    raw_data = await _read_payload(image, data_url)
    logger.info("Resize request: %d bytes in, target %d KB, format %s", len(raw_data), target_size_kb, output_format)
    # Encoding is CPU-bound; keep it off the event loop.
    return await run_in_threadpool(resize_to_target, raw_data, request)


# --- Resize Endpoints ---
@app.post("/tools/resize-image")
async def resize_image_endpoint(
    target_size_kb: int = Query(..., gt=0, le=config.MAX_TARGET_KB),
    output_format: str = Query("auto"),
    image: Optional[UploadFile] = File(None),
    data_url: Optional[str] = Form(None),
):
    """Re-encode an image to fit ``target_size_kb`` and return the raw bytes.

    The body is the encoded image with a matching ``Content-Type``. Results
    that fit the budget are padded to exactly ``target_size_kb * 1024``
    bytes. Non-fatal conditions are listed in ``X-Resize-Warnings``.
    """
    result = await _resize(target_size_kb, output_format, image, data_url)
    headers = {
        "X-Resize-Warnings": ",".join(w.value for w in result.warnings),
        "X-Resize-Original-Format": result.input_format,
    }
    if result.quality is not None:
        headers["X-Resize-Quality"] = str(result.quality)
    return Response(content=result.data, media_type=result.mime_type, headers=headers)


@app.post("/tools/resize-image/data-url", response_model=ResizeResponse)
async def resize_image_data_url_endpoint(
    target_size_kb: int = Query(..., gt=0, le=config.MAX_TARGET_KB),
    output_format: str = Query("auto"),
    image: Optional[UploadFile] = File(None),
    data_url: Optional[str] = Form(None),
):
    """Same as ``/tools/resize-image`` but returns the image as a data URL."""
    result = await _resize(target_size_kb, output_format, image, data_url)
    b64 = base64.b64encode(result.data).decode("ascii")
    return ResizeResponse(
        data_url=f"data:{result.mime_type};base64,{b64}",
        mime_type=result.mime_type,
        size_bytes=result.size,
        width=result.width,
        height=result.height,
        quality=result.quality,
        original_format=result.input_format,
        warnings=[w.value for w in result.warnings],
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
