"""
==============================================================================
Decode Endpoints
==============================================================================

Single-shot decoding of uploaded images.

- POST /decode          Run every enhancement variant and engine on an image
- POST /decode/preview  Return the located crop and enhanced variants

==============================================================================
"""

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool

from labelscan.core.dependencies import get_engines, get_scan_service
from labelscan.imaging.primitives import gray_to_rgba
from labelscan.scanner.engines import EngineSet
from labelscan.schemas.scan import DecodeResponse, PreviewResponse, ReadingOut
from labelscan.services.scan_service import ScanService
from labelscan.utils.images import encode_png_data_url


router = APIRouter(prefix="/decode", tags=["Decode"])


class DecodeController:
    """Controller for single-shot decode operations."""
    
    def __init__(self, service: ScanService):
        self._service = service
    
    def decode(self, data: bytes, engines: EngineSet) -> DecodeResponse:
        """Decode an image and record the reading."""
        attempt, reading = self._service.decode_upload(data, engines)
        
        return DecodeResponse(
            value=attempt.value,
            source_tag=attempt.source_tag,
            format=attempt.format,
            pass_name=attempt.pass_name,
            committed=reading is not None,
            reading=ReadingOut(**reading.as_dict()) if reading else None,
        )
    
    def preview(self, data: bytes) -> PreviewResponse:
        """Render the crop and every variant as PNG data URLs."""
        result = self._service.preview(data)
        
        return PreviewResponse(
            crop_rect=result.crop_rect.as_dict(),
            skew_angle=result.skew_angle,
            crop=encode_png_data_url(result.crop),
            variants={
                v.name: encode_png_data_url(gray_to_rgba(v.buffer))
                for v in result.variants
            },
        )


@router.post("", response_model=DecodeResponse)
async def decode_image(
    file: UploadFile = File(...),
    engines: EngineSet = Depends(get_engines),
    service: ScanService = Depends(get_scan_service),
):
    """
    Decode a barcode (or printed serial) from an uploaded image.
    
    Returns 422 NO_DECODE_RESULT when every variant and engine misses.
    """
    data = await file.read()
    controller = DecodeController(service)
    return await run_in_threadpool(controller.decode, data, engines)


@router.post("/preview", response_model=PreviewResponse)
async def preview_image(
    file: UploadFile = File(...),
    service: ScanService = Depends(get_scan_service),
):
    """Show how an image is cropped, straightened and enhanced."""
    data = await file.read()
    controller = DecodeController(service)
    return await run_in_threadpool(controller.preview, data)
