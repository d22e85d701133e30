"""ilabs API client package — async HTTP interface to the prediction services.

WHY: Callers need to upload documents, run prediction tasks, wait for them,
and fetch the results. This package keeps all ilabs API communication
behind one async client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. IlabsClient provides a
method per API step plus run() for the whole pipeline. Response data and
client settings are typed dataclasses defined in models.py.

RULES:
- All HTTP calls go through IlabsClient (no direct httpx usage elsewhere)
- Authentication is via the User-Key header from config
- Tasks abandoned by the client are cancelled at the service
"""

from ilabs_api.api.client import (
    IlabsClient,
    TaskFailedError,
    TaskTimeoutError,
    TransportError,
    backoff_schedule,
    run_sync,
)
from ilabs_api.api.models import ClientConfig, RequestOptions, StatusReport
from ilabs_api.config import MissingUserKeyError

__all__ = [
    "ClientConfig",
    "IlabsClient",
    "MissingUserKeyError",
    "RequestOptions",
    "StatusReport",
    "TaskFailedError",
    "TaskTimeoutError",
    "TransportError",
    "backoff_schedule",
    "run_sync",
]
