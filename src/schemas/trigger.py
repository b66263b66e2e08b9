"""Schemas for the delivery trigger endpoint."""

from pydantic import BaseModel


class SweepResponse(BaseModel):
    """Summary of one sweep run."""

    processed: int
    delivered: int
    failed: int
    skipped: int = 0
