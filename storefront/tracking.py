"""
Normalisation of carrier tracking payloads.

The tracking endpoint has answered in several shapes over time. Each known
shape is described by a Pydantic model and tried in order; a payload that
matches none of them is rejected rather than guessed at.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from storefront.repositories import CarrierPayloadError

logger = logging.getLogger(__name__)


class TrackingSnapshot(BaseModel):
    raw_status: str
    event_description: Optional[str] = None


class _ShipmentStatus(BaseModel):
    Status: str = Field(min_length=1)
    StatusDateTime: Optional[str] = None
    Instructions: Optional[str] = None


class _ScanDetail(BaseModel):
    Scan: Optional[str] = None
    ScanDateTime: Optional[str] = None
    Instructions: Optional[str] = None


class _Scan(BaseModel):
    ScanDetail: _ScanDetail


class _Shipment(BaseModel):
    Status: _ShipmentStatus
    Scans: List[_Scan] = Field(default_factory=list)


class _ShipmentDataItem(BaseModel):
    Shipment: _Shipment


class _ShipmentDataEnvelope(BaseModel):
    ShipmentData: List[_ShipmentDataItem] = Field(min_length=1)


class _Package(BaseModel):
    current_status: Optional[str] = None
    status: Optional[str] = None
    last_status: Optional[str] = None
    events: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def raw_status(self) -> Optional[str]:
        return self.current_status or self.status or self.last_status


class _PackagesEnvelope(BaseModel):
    packages: List[_Package] = Field(min_length=1)


class _NestedListEnvelope(BaseModel):
    data: List[_Package] = Field(min_length=1)


def _describe(text: Optional[str], at: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return f"{text} ({at})" if at else text


def _from_package(package: _Package) -> Optional[TrackingSnapshot]:
    if not package.raw_status:
        return None
    description = None
    if package.events:
        last = package.events[-1]
        text = (
            last.get("description")
            or last.get("remarks")
            or last.get("status")
        )
        description = _describe(text, last.get("time") or last.get("date"))
    return TrackingSnapshot(
        raw_status=package.raw_status, event_description=description
    )


def _parse_shipment_data(
    payload: Dict[str, Any], awb: str
) -> Optional[TrackingSnapshot]:
    envelope = _ShipmentDataEnvelope.model_validate(payload)
    shipment = envelope.ShipmentData[0].Shipment
    description = _describe(
        shipment.Status.Instructions, shipment.Status.StatusDateTime
    )
    if description is None and shipment.Scans:
        scan = shipment.Scans[-1].ScanDetail
        description = _describe(
            scan.Instructions or scan.Scan, scan.ScanDateTime
        )
    return TrackingSnapshot(
        raw_status=shipment.Status.Status, event_description=description
    )


def _parse_packages(
    payload: Dict[str, Any], awb: str
) -> Optional[TrackingSnapshot]:
    envelope = _PackagesEnvelope.model_validate(payload)
    return _from_package(envelope.packages[0])


def _parse_keyed_by_awb(
    payload: Dict[str, Any], awb: str
) -> Optional[TrackingSnapshot]:
    data = payload.get("data")
    if not isinstance(data, dict) or awb not in data:
        return None
    return _from_package(_Package.model_validate(data[awb]))


def _parse_nested_list(
    payload: Dict[str, Any], awb: str
) -> Optional[TrackingSnapshot]:
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    envelope = _NestedListEnvelope.model_validate(data)
    return _from_package(envelope.data[0])


_PARSERS: Sequence[
    Callable[[Dict[str, Any], str], Optional[TrackingSnapshot]]
] = (
    _parse_shipment_data,
    _parse_packages,
    _parse_keyed_by_awb,
    _parse_nested_list,
)


def parse_tracking_payload(payload: Any, awb: str) -> TrackingSnapshot:
    """
    Extract the current raw status and latest scan from a tracking payload.

    Raises:
        CarrierPayloadError: if the payload matches no known shape or
            carries no status.
    """
    if not isinstance(payload, dict):
        raise CarrierPayloadError(
            f"Tracking payload for {awb} is not an object"
        )

    for parser in _PARSERS:
        try:
            snapshot = parser(payload, awb)
        except ValidationError:
            continue
        if snapshot is not None:
            logger.debug(
                "Parsed tracking payload",
                extra={
                    "awb": awb,
                    "parser": parser.__name__,
                    "raw_status": snapshot.raw_status,
                },
            )
            return snapshot

    logger.warning(
        "Unrecognised tracking payload shape",
        extra={"awb": awb, "payload_keys": sorted(payload.keys())},
    )
    raise CarrierPayloadError(
        f"Tracking payload for {awb} has no recognisable status"
    )
