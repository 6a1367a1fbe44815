"""
Machine OEE - OEE Analysis API Routes

This module provides API endpoints for the OEE analysis of a machine, for
maintaining its OEE parameters and for maintaining its shifts.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import ValidationError as PydanticValidationError
import structlog

from machine_oee.models.oee import (
    AnalysisRequest, AnalysisResult, OeeParameters, OeeParametersUpdate, PlannedStoppage,
    PlannedStoppageCreate, ShiftCreate, ShiftDefinition
)
from machine_oee.services.analysis_service import OEEAnalysisService
from machine_oee.services.oee_repository import OeeRepository
from machine_oee.services.shift_configuration import ShiftConfigurationService
from machine_oee.utils.exceptions import DataAccessError, handle_validation_exception

logger = structlog.get_logger()

router = APIRouter()


def get_repository() -> OeeRepository:
    return OeeRepository()


def get_analysis_service(repository: OeeRepository = Depends(get_repository)) -> OEEAnalysisService:
    return OEEAnalysisService(repository)


def get_shift_service(repository: OeeRepository = Depends(get_repository)) -> ShiftConfigurationService:
    return ShiftConfigurationService(repository)


@router.get("/machines/{machine_id}/analysis", response_model=AnalysisResult, status_code=status.HTTP_200_OK)
async def get_machine_analysis(
    machine_id: str,
    start_date: date = Query(..., description="First local day of the analysis"),
    end_date: date = Query(..., description="Last local day of the analysis (inclusive)"),
    shift_id: Optional[int] = Query(None, description="Restrict to one shift; 0 or omitted analyzes all shifts"),
    service: OEEAnalysisService = Depends(get_analysis_service)
) -> AnalysisResult:
    """Compute OEE KPIs, time breakdown and top losses for a machine over a date range."""
    try:
        request = AnalysisRequest(
            machine_id=machine_id,
            start_date=start_date,
            end_date=end_date,
            shift_id=shift_id
        )
    except PydanticValidationError as e:
        raise handle_validation_exception(e)

    try:
        result = await service.compute_analysis(request)
    except DataAccessError:
        logger.error("Failed to compute OEE analysis via API", machine_id=machine_id)
        raise

    logger.debug(
        "OEE analysis served via API",
        machine_id=machine_id,
        start_date=start_date.isoformat(),
        end_date=end_date.isoformat(),
        oee=result.oee
    )
    return result


@router.get("/machines/{machine_id}/parameters", response_model=OeeParameters, status_code=status.HTTP_200_OK)
async def get_machine_parameters(
    machine_id: str,
    repository: OeeRepository = Depends(get_repository)
) -> OeeParameters:
    """Get the OEE parameters of a machine; defaults when it was never configured."""
    parameters = await repository.load_oee_parameters(machine_id)
    return parameters or OeeParameters.defaults(machine_id)


@router.put("/machines/{machine_id}/parameters", response_model=OeeParameters, status_code=status.HTTP_200_OK)
async def update_machine_parameters(
    machine_id: str,
    changes: OeeParametersUpdate,
    repository: OeeRepository = Depends(get_repository)
) -> OeeParameters:
    """Update the OEE parameters of a machine, creating them on first write."""
    parameters = await repository.save_oee_parameters(machine_id, changes)

    logger.info(
        "OEE parameters updated via API",
        machine_id=machine_id,
        fields=sorted(changes.model_dump(exclude_none=True))
    )
    return parameters


@router.get("/machines/{machine_id}/shifts", response_model=List[ShiftDefinition], status_code=status.HTTP_200_OK)
async def list_machine_shifts(
    machine_id: str,
    service: ShiftConfigurationService = Depends(get_shift_service)
) -> List[ShiftDefinition]:
    """List the shifts of a machine with their planned stoppages."""
    return await service.list_shifts(machine_id)


@router.post("/machines/{machine_id}/shifts", response_model=ShiftDefinition, status_code=status.HTTP_201_CREATED)
async def create_machine_shift(
    machine_id: str,
    shift: ShiftCreate,
    service: ShiftConfigurationService = Depends(get_shift_service)
) -> ShiftDefinition:
    """Create a shift; an end time not after the start time ends on the next day."""
    return await service.create_shift(machine_id, shift)


@router.delete("/machines/{machine_id}/shifts/{shift_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_machine_shift(
    machine_id: str,
    shift_id: int,
    service: ShiftConfigurationService = Depends(get_shift_service)
) -> Response:
    """Delete a shift of the machine and its planned stoppages."""
    await service.delete_shift(machine_id, shift_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/machines/{machine_id}/shifts/{shift_id}/stoppages",
    response_model=PlannedStoppage,
    status_code=status.HTTP_201_CREATED
)
async def add_shift_stoppage(
    machine_id: str,
    shift_id: int,
    stoppage: PlannedStoppageCreate,
    service: ShiftConfigurationService = Depends(get_shift_service)
) -> PlannedStoppage:
    """Add a planned stoppage; the shift's stoppages may not exceed its duration."""
    return await service.add_planned_stoppage(machine_id, shift_id, stoppage)


@router.delete("/machines/{machine_id}/shifts/{shift_id}/stoppages/{stoppage_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_shift_stoppage(
    machine_id: str,
    shift_id: int,
    stoppage_id: int,
    service: ShiftConfigurationService = Depends(get_shift_service)
) -> Response:
    await service.delete_planned_stoppage(machine_id, shift_id, stoppage_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
