from lexgate.api.middleware.errors import (
    lexgate_error_handler,
    problem_response,
    unhandled_exception_handler,
)
from lexgate.api.middleware.request_id import RequestIDMiddleware

__all__ = [
    "RequestIDMiddleware",
    "lexgate_error_handler",
    "problem_response",
    "unhandled_exception_handler",
]
