"""
Health check endpoints for diagnosing service dependencies.
"""
import fitz
from fastapi import APIRouter, Depends

from jurissign.config import Settings, get_settings
from jurissign.pdf.drawing import FONT_PATHS, find_font

router = APIRouter(
    prefix="/health",
    tags=["health"],
)


@router.get("")
async def health_check():
    """Health check endpoint for Cloud Run."""
    return {"status": "healthy", "version": "1.0.0"}


@router.get("/pdf")
async def health_check_pdf(settings: Settings = Depends(get_settings)):
    """
    Reports the PDF toolchain the certification pipeline will use.
    Missing fonts fall back to the built-in Helvetica with transliterated text.
    """
    return {
        "pymupdf_version": fitz.VersionBind,
        "fonts": {style: find_font(style) for style in FONT_PATHS},
        "storage_backend": settings.storage_backend,
        "persistence_backend": settings.persistence_backend,
        "display_timezone": settings.display_timezone,
    }
