"""
Pydantic models for API responses.
These define the contract between the API and external clients.
"""

from pydantic import BaseModel


class HealthCheckResponse(BaseModel):
    status: str
    version: str


class BulkSyncStartedResponse(BaseModel):
    """Returned when the sweep runs in the background."""

    workflow_id: str
    status: str = "started"
