from fastapi import FastAPI, UploadFile, File, HTTPException, Form, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from typing import List, Optional
import base64
import logging
import os
import uuid
import uvicorn
from dotenv import load_dotenv

from .services.codec import ensure_avif_registered
from .services.compressor import CompressionResult, compress_async, compress_many
from .services.errors import DecodeError, EncodeError, ValidationError
from .services.formats import SUPPORTED_TYPES
from .settings import get_settings

load_dotenv()

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="imgcap API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-Id"],
    expose_headers=[
        "X-Request-Id",
        "X-Imgcap-Size",
        "X-Imgcap-Iterations",
        "X-Imgcap-Quality",
        "X-Imgcap-Passthrough",
    ],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    response = await call_next(request)
    response.headers["X-Request-Id"] = rid
    return response


def result_headers(result: CompressionResult) -> dict:
    return {
        "X-Imgcap-Size": str(result.size),
        "X-Imgcap-Iterations": str(result.iterations),
        "X-Imgcap-Quality": f"{result.quality:.4f}",
        "X-Imgcap-Passthrough": "true" if result.passthrough else "false",
    }


async def read_upload(file: UploadFile) -> bytes:
    contents = await file.read()
    if len(contents) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Image too large. Maximum size: {settings.max_upload_bytes / (1024*1024):.1f}MB"
        )
    return contents


def to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, DecodeError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, EncodeError):
        logger.error(f"Encoder failure: {e}")
        return HTTPException(status_code=500, detail=str(e))
    logger.error(f"Unexpected compression error: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Failed to compress image: {str(e)}")


@app.get("/")
async def root():
    return {"message": "imgcap API is running"}


@app.get("/api/formats")
async def formats():
    return {
        "supported": list(SUPPORTED_TYPES),
        "avif_encoding": ensure_avif_registered(),
    }


@app.post("/api/compress")
async def compress_endpoint(
    image: UploadFile = File(...),
    target_size: int = Form(...),
    tolerance: Optional[int] = Form(None),
    output_type: Optional[str] = Form(None),
):
    """
    Recompress a single uploaded image to approximately target_size bytes.
    The input format is taken from the upload's content type.
    """
    try:
        contents = await read_upload(image)
        logger.info(
            f"Compress request: {image.filename} ({image.content_type}, {len(contents)} bytes), "
            f"target={target_size}, tolerance={tolerance}, output={output_type}"
        )
        result = await compress_async(
            contents,
            image.content_type,
            target_size,
            tolerance,
            output_type,
            precision=settings.precision,
            min_interval=settings.min_interval,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_error(e) from e

    return Response(content=result.data, media_type=result.format.value, headers=result_headers(result))


@app.post("/api/compress-batch")
async def compress_batch_endpoint(
    images: List[UploadFile] = File(...),
    target_size: int = Form(...),
    tolerance: Optional[int] = Form(None),
    output_type: Optional[str] = Form(None),
):
    """
    Recompress several images to the same target concurrently.
    Returns data URLs plus per-item size and iteration count.
    """
    if not images:
        raise HTTPException(status_code=400, detail="At least one image is required")

    try:
        jobs = []
        for upload in images:
            contents = await read_upload(upload)
            jobs.append({
                "input_bytes": contents,
                "input_format": upload.content_type,
                "target_size": target_size,
                "tolerance": tolerance,
                "output_format": output_type,
                "precision": settings.precision,
                "min_interval": settings.min_interval,
            })
        results = await compress_many(jobs, concurrency=settings.max_concurrency)
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_error(e) from e

    logger.info(f"Batch compression complete: {len(results)} items")
    items = []
    for upload, result in zip(images, results):
        encoded = base64.b64encode(result.data).decode("utf-8")
        items.append({
            "filename": upload.filename,
            "data_url": f"data:{result.format.value};base64,{encoded}",
            "size": result.size,
            "format": result.format.value,
            "iterations": result.iterations,
            "accepted": result.accepted,
            "passthrough": result.passthrough,
        })
    return {"items": items, "total": len(items)}


if __name__ == "__main__":
    os.environ.setdefault('PYTHONIOENCODING', 'utf-8')

    uvicorn.run(
        "imgcap.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.reload,
    )
