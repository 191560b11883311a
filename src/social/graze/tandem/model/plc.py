"""DID-PLC directory data models.

Typed views of what a PLC directory serves: the resolved DID document,
the document data view that operations are built from, and audit log entries.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

PDS_SERVICE_TYPE = "AtprotoPersonalDataServer"
PDS_SERVICE_ID = "atproto_pds"
HANDLE_PREFIX = "at://"

OPERATION_TYPE = "plc_operation"
TOMBSTONE_TYPE = "plc_tombstone"
LEGACY_CREATE_TYPE = "create"


class DidService(BaseModel):
    """Service entry of a resolved DID document."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    type: str
    service_endpoint: str = Field(alias="serviceEndpoint")


class DidDocument(BaseModel):
    """Resolved DID document as served by ``GET /{did}``."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    also_known_as: List[str] = Field(alias="alsoKnownAs", default_factory=list)
    service: List[DidService] = Field(default_factory=list)

    def handles(self) -> List[str]:
        return [
            value.removeprefix(HANDLE_PREFIX)
            for value in self.also_known_as
            if value.startswith(HANDLE_PREFIX)
        ]

    def pds_endpoints(self) -> List[str]:
        return [
            service.service_endpoint
            for service in self.service
            if service.type == PDS_SERVICE_TYPE
        ]


class PlcService(BaseModel):
    """Service entry of an operation or document data view."""

    type: str
    endpoint: str


class DocumentData(BaseModel):
    """Mutable projection of identity state.

    Rotation key order matters: index 0 is the highest priority rotation
    authority.
    """

    model_config = ConfigDict(populate_by_name=True)

    did: Optional[str] = None
    also_known_as: List[str] = Field(alias="alsoKnownAs", default_factory=list)
    rotation_keys: List[str] = Field(alias="rotationKeys", default_factory=list)
    verification_methods: Dict[str, str] = Field(
        alias="verificationMethods", default_factory=dict
    )
    services: Dict[str, PlcService] = Field(default_factory=dict)

    def pds_endpoint(self) -> Optional[str]:
        service = self.services.get(PDS_SERVICE_ID)
        if service is not None and service.type == PDS_SERVICE_TYPE:
            return service.endpoint
        return None


class AuditEntry(BaseModel):
    """One record of a DID's operation log."""

    model_config = ConfigDict(populate_by_name=True)

    did: Optional[str] = None
    cid: str
    operation: Dict[str, Any]
    nullified: bool = False
    created_at: datetime = Field(alias="createdAt")
