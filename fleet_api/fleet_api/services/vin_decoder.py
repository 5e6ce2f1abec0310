"""HTTP client for the NHTSA vPIC vehicle decoder."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from fleet_api.errors import RecordValidationError, VinDecodeError
from fleet_api.schemas import VinDecodeResult

logger = logging.getLogger(__name__)

VIN_LENGTH = 17

# vPIC "Variable" name -> VinDecodeResult field.
_VARIABLE_FIELDS: dict[str, str] = {
    "Make": "make",
    "Model": "model",
    "Model Year": "model_year",
    "Manufacturer Name": "manufacturer",
    "Plant City": "plant_city",
    "Vehicle Type": "vehicle_type",
    "Body Class": "body_class",
    "Series": "series",
    "Trim": "trim",
    "Engine Model": "engine_model",
    "Engine Number of Cylinders": "engine_cylinders",
    "Displacement (L)": "displacement",
    "Fuel Type - Primary": "fuel_type",
    "Drive Type": "drive_type",
    "Transmission Style": "transmission",
    "Error Code": "error_code",
    "Error Text": "error_text",
    "Additional Error Text": "additional_error_text",
}


def normalise_vin(vin: str | None) -> str:
    """Trim *vin* and check it has exactly 17 characters."""
    cleaned = (vin or "").strip()
    if len(cleaned) != VIN_LENGTH:
        raise RecordValidationError(f"VIN must be exactly {VIN_LENGTH} characters")
    return cleaned


def parse_decode_response(vin: str, body: dict[str, Any]) -> VinDecodeResult:
    """Map the vPIC ``Results`` variable/value pairs onto a result model.

    Empty strings are reported as missing.
    """
    results = body.get("Results")
    if not isinstance(results, list):
        raise VinDecodeError("Decoder response has no Results list")

    fields: dict[str, str] = {}
    for entry in results:
        if not isinstance(entry, dict):
            continue
        name = _VARIABLE_FIELDS.get(entry.get("Variable") or "")
        value = entry.get("Value")
        if name and value not in (None, ""):
            fields[name] = str(value)
    return VinDecodeResult(vin=vin, **fields)


class VinDecoderClient:
    """Thin async wrapper around the vPIC ``DecodeVin`` endpoint.

    One instance is created at application startup and shared by all
    requests; call :meth:`close` on shutdown.

    Parameters
    ----------
    base_url:
        Root of the vPIC API (``https://vpic.nhtsa.dot.gov/api/vehicles``).
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional httpx transport, used by tests to stub the upstream.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def decode(self, vin: str) -> VinDecodeResult:
        """Decode *vin* into make, model, year and equipment details.

        Raises
        ------
        RecordValidationError
            If the VIN is not 17 characters after trimming.
        VinDecodeError
            If the upstream call fails or returns an unusable body.
        """
        vin = normalise_vin(vin)
        path = f"/DecodeVin/{vin}"
        try:
            response = await self._client.get(path, params={"format": "json"})
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "VIN decoder returned %d for %s: %s",
                exc.response.status_code,
                vin,
                exc.response.text[:500],
            )
            raise VinDecodeError(f"VIN decoder returned HTTP {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            logger.warning("VIN decoder request for %s failed: %s", vin, exc)
            raise VinDecodeError(f"VIN decoder request failed: {exc}") from exc
        except ValueError as exc:
            raise VinDecodeError("VIN decoder returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise VinDecodeError("Decoder response is not a JSON object")
        return parse_decode_response(vin, body)

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()
