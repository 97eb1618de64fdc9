from lexgate.api.schemas.admin import ApiKeyBody, RotateApiKeyRequest
from lexgate.api.schemas.common import ProblemDetail
from lexgate.api.schemas.integration import (
    CompensationBody,
    CoordinateRequest,
    ExecuteWorkflowRequest,
    ServiceCallBody,
    TransactionOperationBody,
    TransactionRequest,
)

__all__ = [
    "ApiKeyBody",
    "CompensationBody",
    "CoordinateRequest",
    "ExecuteWorkflowRequest",
    "ProblemDetail",
    "RotateApiKeyRequest",
    "ServiceCallBody",
    "TransactionOperationBody",
    "TransactionRequest",
]
