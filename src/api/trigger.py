"""Authenticated endpoint for externally scheduled delivery sweeps."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.dependencies import get_delivery_trigger, verify_trigger_secret
from src.schemas.trigger import SweepResponse
from src.services.delivery_trigger import DeliveryTrigger
from src.utils.time import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/trigger",
    tags=["trigger"],
    dependencies=[Depends(verify_trigger_secret)],
)


@router.post("/sweep", response_model=SweepResponse)
def run_sweep(
    trigger: Annotated[DeliveryTrigger, Depends(get_delivery_trigger)],
) -> SweepResponse:
    """Run one delivery sweep and report its statistics."""
    result = trigger.sweep(utc_now())
    logger.info(f"Externally triggered sweep finished: {result}")
    return SweepResponse(**result.to_dict())
