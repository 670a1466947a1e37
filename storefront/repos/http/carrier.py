"""
Delhivery implementation of CarrierGateway over httpx.

The gateway makes exactly one HTTP attempt per call. Business failures on
manifest creation come back as an unsuccessful ShipmentOutcome; transport
failures, non-2xx answers and timeouts raise CarrierGatewayError (or its
CarrierTimeoutError subclass) so callers can tell "carrier said no" from
"carrier unreachable".
"""

import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

from storefront.domain import ShipmentOutcome, ShipmentRequest
from storefront.repositories import (
    CarrierGateway,
    CarrierGatewayError,
    CarrierTimeoutError,
)

logger = logging.getLogger(__name__)

CREATE_PATH = "/api/cmu/create.json"
TRACK_PATH = "/api/v1/packages/json/"
WAYBILL_KEYS = ("waybill", "waybill_number", "awb", "waybill_no")
DEFAULT_WEIGHT_GRAMS = 500

_INSUFFICIENT_BALANCE = re.compile(
    r"insufficient\s+balance|insufficient\s+funds|prepaid\s+balance",
    re.IGNORECASE,
)


def _sanitize_phone(raw: str) -> str:
    """Reduce a phone number to the 10-digit national form when possible."""
    digits = re.sub(r"\D+", "", raw or "")
    if len(digits) == 12 and digits.startswith("91"):
        return digits[2:]
    if len(digits) == 11 and digits.startswith("0"):
        return digits[1:]
    if len(digits) > 10:
        return digits[-10:]
    return digits


def _remarks(*sources: Optional[Dict[str, Any]]) -> str:
    for source in sources:
        if not source:
            continue
        value = source.get("remarks") or source.get("remark")
        if isinstance(value, list):
            value = "; ".join(str(v) for v in value if v)
        if value:
            return str(value)
    return ""


class DelhiveryCarrierGateway(CarrierGateway):
    """
    Carrier gateway for the Delhivery CMU and tracking APIs.

    Args:
        api_key: Delhivery API token, sent as ``Authorization: Token <key>``
        base_url: API host, e.g. https://track.delhivery.com
        tracking_base_url: Host used to build customer tracking links
        pickup_location: Registered pickup location name for manifests
        timeout: Per-request timeout in seconds
        client: Optional pre-built httpx.AsyncClient (tests inject one
            backed by httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://track.delhivery.com",
        tracking_base_url: str = "https://track.delhivery.com",
        pickup_location: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.tracking_base_url = tracking_base_url.rstrip("/")
        self.pickup_location = pickup_location
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)
        logger.debug(
            "Initialized DelhiveryCarrierGateway",
            extra={"base_url": self.base_url, "timeout": timeout},
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Token {self.api_key}"
        return headers

    def tracking_url(self, awb: str) -> str:
        return f"{self.tracking_base_url}/?waybill={awb}"

    async def _send(
        self, method: str, path: str, awb_or_ref: str, **kwargs: Any
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            logger.warning(
                "Carrier request timed out",
                extra={"url": url, "reference": awb_or_ref},
            )
            raise CarrierTimeoutError(
                f"Carrier request timed out after {self.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            logger.error(
                "Carrier request failed",
                extra={
                    "url": url,
                    "reference": awb_or_ref,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
            raise CarrierGatewayError(f"Carrier request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "Carrier answered with an error status",
                extra={
                    "url": url,
                    "reference": awb_or_ref,
                    "status_code": response.status_code,
                },
            )
            raise CarrierGatewayError(
                f"Carrier returned HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CarrierGatewayError("Carrier returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise CarrierGatewayError("Carrier returned a non-object body")
        return data

    def _manifest_payload(self, request: ShipmentRequest) -> Dict[str, Any]:
        address = request.address
        street = ", ".join(
            part for part in (address.line1, address.line2) if part
        )
        shipment = {
            "client_order_id": request.order_number,
            "order": request.order_number,
            "name": address.name,
            "add": street,
            "city": address.city,
            "state": address.state,
            "pin": address.postal_code,
            "country": address.country,
            "phone": _sanitize_phone(address.phone),
            "payment_mode": request.payment_mode,
            "total_amount": float(request.total_amount),
            "cod_amount": float(request.cod_amount),
            "quantity": request.quantity,
            "products_desc": request.products_description,
            "weight": request.weight_grams or DEFAULT_WEIGHT_GRAMS,
        }
        payload: Dict[str, Any] = {"shipments": [shipment]}
        if self.pickup_location:
            payload["pickup_location"] = {"name": self.pickup_location}
        return payload

    async def create_shipment(
        self, request: ShipmentRequest
    ) -> ShipmentOutcome:
        """Manifest a shipment. One attempt, no internal retry."""
        payload = self._manifest_payload(request)
        logger.info(
            "Creating carrier shipment",
            extra={
                "order_id": request.order_id,
                "order_number": request.order_number,
                "payment_mode": request.payment_mode,
            },
        )
        data = await self._send(
            "POST",
            CREATE_PATH,
            request.order_number,
            data={"format": "json", "data": json.dumps(payload)},
        )

        packages = data.get("packages")
        package = (
            packages[0]
            if isinstance(packages, list)
            and packages
            and isinstance(packages[0], dict)
            else None
        )
        waybill = ""
        if package is not None:
            waybill = next(
                (str(package[key]) for key in WAYBILL_KEYS if package.get(key)),
                "",
            )

        if (
            data.get("success") is True
            and package is not None
            and str(package.get("status", "")).lower() == "success"
            and waybill
        ):
            logger.info(
                "Carrier shipment created",
                extra={"order_id": request.order_id, "awb": waybill},
            )
            return ShipmentOutcome(
                success=True,
                awb=waybill,
                tracking_url=self.tracking_url(waybill),
                raw_response=data,
            )

        remarks = _remarks(package, data) or str(data.get("message") or "")
        insufficient = bool(_INSUFFICIENT_BALANCE.search(remarks))
        if insufficient:
            error = (
                "Carrier prepaid balance is insufficient, please recharge "
                "wallet"
            )
        elif package is None:
            error = "Carrier did not report success or returned no packages"
        else:
            error = "Carrier reported package not successful or missing waybill"
        if remarks:
            error = f"{error} ({remarks})"

        logger.warning(
            "Carrier rejected shipment",
            extra={
                "order_id": request.order_id,
                "insufficient_balance": insufficient,
                "remarks": remarks,
            },
        )
        return ShipmentOutcome(
            success=False,
            error=error,
            insufficient_balance=insufficient,
            raw_response=data,
        )

    async def fetch_tracking(self, awb: str) -> Dict[str, Any]:
        """Raw tracking payload for one waybill."""
        logger.debug("Fetching carrier tracking", extra={"awb": awb})
        return await self._send(
            "GET", TRACK_PATH, awb, params={"waybill": awb}
        )

    async def aclose(self) -> None:
        await self.client.aclose()
