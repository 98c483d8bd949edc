from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Phase(str, Enum):
    PENDING = "Pending"
    STARTED = "Started"
    NETWORK_SCAN_STARTED = "NetworkScanStarted"
    NETWORK_SCAN_RESULT = "NetworkScanResult"
    NETWORK_SCAN_PROGRESS = "NetworkScanProgress"
    NETWORK_SCAN_FINISHED = "NetworkScanFinished"
    PORT_SCAN_STARTED = "PortScanStarted"
    PORT_SCAN_RESULT = "PortScanResult"
    PORT_SCAN_PROGRESS = "PortScanProgress"
    PORT_SCAN_FINISHED = "PortScanFinished"
    SERVER_DISCOVERY_STARTED = "ServerDiscoveryStarted"
    ENDPOINTS_DISCOVERY_STARTED = "EndpointsDiscoveryStarted"
    ENDPOINTS_DISCOVERY_FINISHED = "EndpointsDiscoveryFinished"
    SERVER_DISCOVERY_FINISHED = "ServerDiscoveryFinished"
    CANCELLED = "Cancelled"
    ERROR = "Error"
    FINISHED = "Finished"


class Outcome(str, Enum):
    SUCCESS = "success"
    CANCELLED = "cancelled"
    ERROR = "error"


class ProgressEvent(BaseModel):
    """
    One progress notification for a discovery job, as pushed by the events
    service. Wire names are camelCase; `requestId` is the correlation id and
    `eventType` the phase.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    correlation_id: Optional[str] = Field(default=None, alias="requestId")
    discoverer_id: Optional[str] = None
    phase: Phase = Field(alias="eventType")
    progress: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    discovered: int = Field(default=0, ge=0)
    result: Optional[str] = None
    result_details: Optional[Dict[str, Any]] = None
    request_details: Dict[str, str] = Field(default_factory=dict)
    timestamp: Optional[datetime] = Field(default=None, alias="timeStamp")
    workers: Optional[int] = None

    @field_validator("progress", "total", "discovered", mode="before")
    @classmethod
    def _null_count(cls, v: Any) -> Any:
        # the service sends null for counters a phase does not report
        return 0 if v is None else v

    @field_validator("request_details", mode="before")
    @classmethod
    def _null_details(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def url(self) -> Optional[str]:
        # endpoints discovery phases carry the probed url
        return self.request_details.get("url")
