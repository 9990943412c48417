"""
Request Context Utilities

Helpers the routers use to reach shared services and to validate path
identifiers before touching the database.
"""

import logging
import uuid

from fastapi import HTTPException, Request

from services.container import ServiceContainer

logger = logging.getLogger(__name__)


def get_container(request: Request) -> ServiceContainer:
    """
    Return the service container attached to the application.

    Raises:
        HTTPException 503: If the application started without its services
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        logger.error("Service container not initialized")
        raise HTTPException(status_code=503, detail="Service not initialized")
    return container


def parse_record_id(value: str, label: str) -> uuid.UUID:
    """
    Validate a path identifier as a UUID.

    Raises:
        HTTPException 400: If the value is not a valid UUID
    """
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label} ID format")
