from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str = "healthy"
    service: str
    version: str
    backend: str
    timestamp: datetime


class DeploymentProbeResponse(BaseModel):
    message: str
    library: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    error: str
    message: str
    correlation_id: str = Field(..., alias="correlationId")
    processing_time_ms: int = Field(default=0, alias="processingTimeMs")
