"""
Requests Module (``procurement_modules.requests``).

Responsibility
--------------
Material and product requests and their two-tier approval chain
(operations head, then director).  Final approval is the only path that
produces purchase preparations.
"""

from procurement_modules.requests.config import RequestConfig
from procurement_modules.requests.models import (
    ApprovalStamp,
    MaterialRequest,
    RejectionStage,
    RequestKind,
    RequestLine,
    RequestStatus,
    Urgency,
)
from procurement_modules.requests.workflows import REQUEST_WORKFLOW, normalize_status

__all__ = [
    "ApprovalStamp",
    "MaterialRequest",
    "RejectionStage",
    "RequestKind",
    "RequestLine",
    "RequestStatus",
    "Urgency",
    "RequestConfig",
    "REQUEST_WORKFLOW",
    "normalize_status",
]
