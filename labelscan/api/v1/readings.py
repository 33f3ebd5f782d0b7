"""
==============================================================================
Reading History Endpoints
==============================================================================

Endpoints for the shared reading log.

- GET    /readings  List readings (oldest first)
- POST   /readings  Add a manually typed value
- DELETE /readings  Clear the history

==============================================================================
"""

from fastapi import APIRouter, Depends

from labelscan.core.dependencies import get_scan_service
from labelscan.schemas.scan import (
    ManualReadingCreate,
    MessageResponse,
    ReadingListResponse,
    ReadingOut,
    SuccessResponse,
)
from labelscan.services.scan_service import ScanService


router = APIRouter(prefix="/readings", tags=["Readings"])


class ReadingController:
    """Controller for reading history operations."""
    
    def __init__(self, service: ScanService):
        self._service = service
    
    def list_readings(self) -> ReadingListResponse:
        """List every reading."""
        readings = self._service.list_readings()
        return ReadingListResponse(
            items=[ReadingOut(**r.as_dict()) for r in readings],
            total=len(readings),
        )
    
    def add_manual(self, data: ManualReadingCreate) -> SuccessResponse:
        """Record a manual reading."""
        reading = self._service.commit_manual(data.value)
        return SuccessResponse(data=ReadingOut(**reading.as_dict()).model_dump())
    
    def clear(self) -> MessageResponse:
        """Clear the history."""
        removed = self._service.clear_readings()
        return MessageResponse(message=f"Cleared {removed} readings")


@router.get("", response_model=ReadingListResponse)
async def list_readings(service: ScanService = Depends(get_scan_service)):
    """List committed readings, oldest first."""
    return ReadingController(service).list_readings()


@router.post("", response_model=SuccessResponse, status_code=201)
async def add_manual_reading(
    data: ManualReadingCreate,
    service: ScanService = Depends(get_scan_service),
):
    """
    Add a value typed in by an operator.
    
    Values shorter than the configured minimum are rejected with 400.
    """
    return ReadingController(service).add_manual(data)


@router.delete("", response_model=MessageResponse)
async def clear_readings(service: ScanService = Depends(get_scan_service)):
    """Clear the reading history."""
    return ReadingController(service).clear()
