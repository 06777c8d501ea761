from .common import DeploymentProbeResponse, ErrorResponse, HealthResponse
from .conversion import ConversionOutput, RequestContext, new_correlation_id

__all__ = [
    "ConversionOutput",
    "DeploymentProbeResponse",
    "ErrorResponse",
    "HealthResponse",
    "RequestContext",
    "new_correlation_id",
]
