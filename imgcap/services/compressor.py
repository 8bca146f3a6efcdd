"""
Size-targeting compressor.

Recompresses an image so its encoded size lands near a caller-supplied target.
A single parameter t in [0, 1] drives both encoder quality and a linear
dimension scale; the search bisects t until a candidate falls inside the
acceptance window or the interval has converged.

Acceptance policy is picked once per run from the request:

- tolerance given  -> WindowPolicy: [target + min(0, tol), target + max(0, tol)]
- tolerance absent -> DynamicTolerancePolicy: target +/- clamp(1% of target, 1KB, 1MB)

When the interval converges without an accepted candidate the best candidate
seen so far is returned (best-effort; it may lie outside the window).
Best-so-far is the candidate closest to the target, except that a candidate
above the window's upper bound never displaces one that fits under it.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .codec import Candidate, DecodedImage, decode, encode
from .errors import ValidationError
from .formats import ImageType, parse_image_type

logger = logging.getLogger(__name__)

MIN_TARGET_SIZE = 1024
MIN_TOLERANCE = 1024
MAX_DYNAMIC_TOLERANCE = 1024 * 1024
DYNAMIC_TOLERANCE_RATIO = 0.01

DEFAULT_PRECISION = 0.01
# Relative width never shrinks while low == 0, so an absolute floor bounds the loop
DEFAULT_MIN_INTERVAL = 1.0 / 1024

Decoder = Callable[[bytes, ImageType], DecodedImage]
Encoder = Callable[[DecodedImage, float, float, ImageType], Candidate]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class CompressionRequest:
    target_size: int
    tolerance: Optional[int] = None
    output_format: Optional[Union[ImageType, str]] = None

    def __post_init__(self):
        if not _is_int(self.target_size):
            raise ValidationError("Target size must be an integer number of bytes.")
        if self.target_size < MIN_TARGET_SIZE:
            raise ValidationError("Target size must be at least 1KB (1024 bytes).")

        if self.tolerance is not None:
            if not _is_int(self.tolerance):
                raise ValidationError("Tolerance size must be an integer number of bytes.")
            if abs(self.tolerance) < MIN_TOLERANCE:
                raise ValidationError("Tolerance size must be at least ±1024 bytes.")

        if self.output_format is not None:
            object.__setattr__(self, "output_format", parse_image_type(self.output_format))

    def resolve_output_format(self, source_format: ImageType) -> ImageType:
        return self.output_format or source_format


@dataclass(frozen=True)
class CompressionResult:
    data: bytes
    size: int
    format: ImageType
    quality: float
    scale: float
    iterations: int
    accepted: bool
    passthrough: bool = False


@dataclass(frozen=True)
class SearchInterval:
    low: float = 0.0
    high: float = 1.0

    def mid(self) -> float:
        return (self.low + self.high) / 2

    def converged(self, precision: float, min_interval: float) -> bool:
        width = self.high - self.low
        return width / self.high < precision or width < min_interval

    def narrow(self, mid: float, too_large: bool) -> "SearchInterval":
        if too_large:
            return SearchInterval(self.low, mid)
        return SearchInterval(mid, self.high)


class WindowPolicy:
    """Caller-supplied signed tolerance around the target."""

    name = "window"

    def __init__(self, target: int, tolerance: int):
        self.target = target
        self.lower = target + min(0, tolerance)
        self.upper = target + max(0, tolerance)

    def accepts(self, size: int) -> bool:
        return self.lower <= size <= self.upper

    def rank(self, size: int) -> Tuple[bool, int]:
        # Anything under the upper bound beats any overshoot
        return (size > self.upper, abs(size - self.target))


class DynamicTolerancePolicy(WindowPolicy):
    """Symmetric tolerance of 1% of the target, clamped to [1KB, 1MB]."""

    name = "dynamic"

    def __init__(self, target: int):
        tol = int(min(max(MIN_TOLERANCE, target * DYNAMIC_TOLERANCE_RATIO), MAX_DYNAMIC_TOLERANCE))
        self.target = target
        self.tolerance = tol
        self.lower = target - tol
        self.upper = target + tol


def select_policy(request: CompressionRequest) -> WindowPolicy:
    if request.tolerance is None:
        return DynamicTolerancePolicy(request.target_size)
    return WindowPolicy(request.target_size, request.tolerance)


def _result(candidate: Candidate, iterations: int, accepted: bool) -> CompressionResult:
    return CompressionResult(
        data=candidate.data,
        size=candidate.size,
        format=candidate.format,
        quality=candidate.quality,
        scale=candidate.scale,
        iterations=iterations,
        accepted=accepted,
    )


def compress_image(
    image: DecodedImage,
    request: CompressionRequest,
    *,
    encoder: Encoder = encode,
    precision: float = DEFAULT_PRECISION,
    min_interval: float = DEFAULT_MIN_INTERVAL,
) -> CompressionResult:
    """
    Bisect t over (0, 1) on an already decoded image.

    Encoder failures propagate immediately; the search itself cannot fail.
    """
    fmt = request.resolve_output_format(image.source_format)
    target = request.target_size
    policy = select_policy(request)

    interval = SearchInterval()
    best: Optional[Candidate] = None
    iterations = 0

    while True:
        mid = interval.mid()
        candidate = encoder(image, mid, mid, fmt)
        iterations += 1
        logger.debug(
            f"iter={iterations} interval=({interval.low:.5f}, {interval.high:.5f}) "
            f"t={mid:.5f} size={candidate.size} target={target}"
        )

        if best is None or policy.rank(candidate.size) < policy.rank(best.size):
            best = candidate

        if policy.accepts(candidate.size):
            return _result(candidate, iterations, accepted=True)

        if interval.converged(precision, min_interval):
            accepted = policy.accepts(best.size)
            if not accepted:
                logger.warning(
                    f"Search converged outside [{policy.lower}, {policy.upper}] after {iterations} encodes; "
                    f"returning closest candidate ({best.size} bytes, target {target})"
                )
            return _result(best, iterations, accepted=accepted)

        interval = interval.narrow(mid, candidate.size > target)


def compress(
    input_bytes: bytes,
    input_format: Union[ImageType, str],
    target_size: int,
    tolerance: Optional[int] = None,
    output_format: Optional[Union[ImageType, str]] = None,
    *,
    decoder: Decoder = decode,
    encoder: Encoder = encode,
    precision: float = DEFAULT_PRECISION,
    min_interval: float = DEFAULT_MIN_INTERVAL,
) -> CompressionResult:
    """
    Compress `input_bytes` to approximately `target_size` bytes.

    If the input already fits and no format conversion is requested, the
    original bytes are returned untouched without decoding.

    Raises ValidationError before any decode/encode work, DecodeError for
    malformed input and EncodeError when the encoder rejects a candidate.
    """
    source_format = parse_image_type(input_format)
    request = CompressionRequest(target_size, tolerance, output_format)
    out_format = request.resolve_output_format(source_format)

    if len(input_bytes) <= target_size and out_format is source_format:
        logger.info(f"Input already fits ({len(input_bytes)} <= {target_size} bytes); returning original")
        return CompressionResult(
            data=input_bytes,
            size=len(input_bytes),
            format=source_format,
            quality=1.0,
            scale=1.0,
            iterations=0,
            accepted=True,
            passthrough=True,
        )

    image = decoder(input_bytes, source_format)
    policy = select_policy(request)
    logger.info(
        f"Compressing {image.width}x{image.height} {source_format.value} ({len(input_bytes)} bytes) "
        f"-> {out_format.value} target={target_size} policy={policy.name} window=[{policy.lower}, {policy.upper}]"
    )

    result = compress_image(
        image,
        request,
        encoder=encoder,
        precision=precision,
        min_interval=min_interval,
    )
    logger.info(
        f"Compression finished: {result.size} bytes after {result.iterations} encodes "
        f"(t={result.quality:.4f}, accepted={result.accepted})"
    )
    return result


async def compress_async(
    input_bytes: bytes,
    input_format: Union[ImageType, str],
    target_size: int,
    tolerance: Optional[int] = None,
    output_format: Optional[Union[ImageType, str]] = None,
    *,
    decoder: Decoder = decode,
    encoder: Encoder = encode,
    precision: float = DEFAULT_PRECISION,
    min_interval: float = DEFAULT_MIN_INTERVAL,
) -> CompressionResult:
    """Run compress() in a worker thread so independent runs can overlap."""
    return await asyncio.to_thread(
        compress,
        input_bytes,
        input_format,
        target_size,
        tolerance,
        output_format,
        decoder=decoder,
        encoder=encoder,
        precision=precision,
        min_interval=min_interval,
    )


async def compress_many(jobs: List[Dict[str, Any]], concurrency: int = 4) -> List[CompressionResult]:
    """
    Run several independent compressions concurrently.

    Each job is a dict of keyword arguments for compress(). Results keep the
    order of `jobs`; the first failure propagates.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    semaphore = asyncio.Semaphore(concurrency)

    async def run_one(job: Dict[str, Any], index: int) -> CompressionResult:
        async with semaphore:
            logger.debug(f"Batch job {index} started (target={job.get('target_size')})")
            return await compress_async(**job)

    logger.info(f"Starting batch compression of {len(jobs)} images (concurrency={concurrency})")
    tasks = [run_one(job, i) for i, job in enumerate(jobs)]
    return list(await asyncio.gather(*tasks))
