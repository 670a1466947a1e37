import pytest

from storefront.repositories import CarrierPayloadError
from storefront.tracking import parse_tracking_payload
from storefront.tests.factories import tracking_payload


def test_shipment_data_shape() -> None:
    snapshot = parse_tracking_payload(
        tracking_payload("In Transit", "Shipment reached Pune hub"), "AWB1"
    )

    assert snapshot.raw_status == "In Transit"
    assert snapshot.event_description == (
        "Shipment reached Pune hub (2024-05-01T10:00:00)"
    )


def test_shipment_data_falls_back_to_last_scan() -> None:
    payload = {
        "ShipmentData": [
            {
                "Shipment": {
                    "Status": {"Status": "Dispatched"},
                    "Scans": [
                        {"ScanDetail": {"Scan": "Manifested"}},
                        {
                            "ScanDetail": {
                                "Scan": "In Transit",
                                "Instructions": "Bag received at facility",
                                "ScanDateTime": "2024-05-01T08:00:00",
                            }
                        },
                    ],
                }
            }
        ]
    }

    snapshot = parse_tracking_payload(payload, "AWB1")

    assert snapshot.raw_status == "Dispatched"
    assert snapshot.event_description == (
        "Bag received at facility (2024-05-01T08:00:00)"
    )


def test_packages_shape() -> None:
    payload = {
        "packages": [
            {
                "current_status": "Delivered",
                "events": [
                    {"description": "Out for delivery"},
                    {"description": "Delivered to consignee", "time": "10:42"},
                ],
            }
        ]
    }

    snapshot = parse_tracking_payload(payload, "AWB1")

    assert snapshot.raw_status == "Delivered"
    assert snapshot.event_description == "Delivered to consignee (10:42)"


def test_keyed_by_awb_shape() -> None:
    payload = {"data": {"AWB1": {"status": "RTO Initiated"}}}

    snapshot = parse_tracking_payload(payload, "AWB1")

    assert snapshot.raw_status == "RTO Initiated"
    assert snapshot.event_description is None


def test_nested_list_shape() -> None:
    payload = {"data": {"data": [{"last_status": "Out for Delivery"}]}}

    assert parse_tracking_payload(payload, "AWB1").raw_status == (
        "Out for Delivery"
    )


@pytest.mark.parametrize(
    "payload",
    [
        None,
        ["In Transit"],
        {},
        {"Error": "Unauthorized"},
        {"ShipmentData": []},
        {"ShipmentData": [{"Shipment": {"Status": {"Status": ""}}}]},
        {"packages": [{}]},
        {"data": {"OTHER": {"status": "Delivered"}}},
    ],
)
def test_unrecognised_payloads_raise(payload) -> None:
    with pytest.raises(CarrierPayloadError):
        parse_tracking_payload(payload, "AWB1")
