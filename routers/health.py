from fastapi import APIRouter
from PIL import features

from schemas import HealthResponse

router = APIRouter()


def check_codecs() -> dict[str, bool]:
    """Check the Pillow codecs the decoders and encoders rely on.

    GIF reading and writing is done in-process; Pillow is needed for
    quantization and for VP8/VP8L bitstreams.
    """
    results = {"pillow": True}
    results["webp"] = bool(features.check_module("webp"))
    return results


@router.get("/health", response_model=HealthResponse)
async def health():
    codecs = check_codecs()
    all_available = all(codecs.values())
    return HealthResponse(
        status="ok" if all_available else "degraded",
        codecs=codecs,
        version="0.1.0",
    )
