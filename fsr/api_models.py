from __future__ import annotations

from pydantic import BaseModel, Field

from .descriptor import DescriptorModel


class RunRequest(BaseModel):
    descriptor: DescriptorModel = Field(..., description="Desired-state descriptor (same shape as the JSON file)")
    target: str | None = Field(None, description="Overrides descriptor.target")
    max_retries: int | None = Field(None, ge=0, le=10, description="Retries per write on transport failures")
    call_timeout_s: float | None = Field(None, gt=0, le=600, description="Wall-clock limit per remote call")


class CancelResponse(BaseModel):
    target: str
    cancelled: bool
