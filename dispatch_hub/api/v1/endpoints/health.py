from fastapi import APIRouter

from dispatch_hub.carriers.registry import supported_formats
from dispatch_hub.mapping.transforms import supported_transforms

router = APIRouter()


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "apiFormats": supported_formats(), "transforms": supported_transforms()}
