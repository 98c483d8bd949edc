from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ScanMode(str, Enum):
    OFF = "Off"
    FAST = "Fast"
    SCAN = "Scan"


class SecurityMode(str, Enum):
    BEST = "Best"
    SIGN = "Sign"
    SIGN_AND_ENCRYPT = "SignAndEncrypt"
    NONE = "None"


class ActivationFilter(_ApiModel):
    """Endpoints matching this filter are activated once discovered."""
    trust_lists: Optional[list[str]] = None
    security_policies: Optional[list[str]] = None
    security_mode: Optional[SecurityMode] = SecurityMode.NONE


class DiscoveryConfig(_ApiModel):
    # "" means "scan the discoverer's local ranges"
    address_ranges_to_scan: Optional[str] = None
    port_ranges_to_scan: Optional[str] = None
    max_network_probes: Optional[int] = Field(default=None, gt=0)
    max_port_probes: Optional[int] = Field(default=None, ge=0)
    network_probe_timeout: Optional[timedelta] = None
    port_probe_timeout: Optional[timedelta] = None
    idle_time_between_scans: Optional[timedelta] = None
    activation_filter: Optional[ActivationFilter] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class DiscoveryRequest(_ApiModel):
    id: Optional[str] = None
    discovery: ScanMode = ScanMode.FAST
    configuration: Optional[DiscoveryConfig] = None


class ServerRegistrationRequest(_ApiModel):
    id: Optional[str] = None
    discovery_url: Optional[str] = None
    activation_filter: Optional[ActivationFilter] = None
