from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

logger = logging.getLogger(__name__)


class CoinGeckoAPIError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


@dataclass(frozen=True)
class CoinHistory:
    coin_id: str
    day: date
    eur: Decimal | None
    usd: Decimal | None


class CoinGeckoClient:
    """Minimal CoinGecko API client for daily historical prices."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str = "https://api.coingecko.com/api/v3",
        timeout: float = 10.0,
        session: requests.Session | None = None,
        retry_attempts: int = 2,
        retry_backoff_seconds: float = 1,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

        # 429 is handled by the caller's backoff window, only transient server errors are retried.
        retry = Retry(
            total=retry_attempts,
            backoff_factor=retry_backoff_seconds,
            status_forcelist={500, 502, 503, 504},
            allowed_methods={"GET"},
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def get_coin_history(self, *, coin_id: str, day: date) -> CoinHistory:
        if not coin_id:
            raise ValueError("coin_id must be provided")

        params: dict[str, Any] = {"date": day.strftime("%d-%m-%Y"), "localization": "false"}
        if self.api_key:
            params["x_cg_demo_api_key"] = self.api_key
        payload = self._request("GET", f"/coins/{coin_id}/history", params=params)

        market_data = payload.get("market_data")
        current_price = market_data.get("current_price") if isinstance(market_data, dict) else None
        if not isinstance(current_price, dict):
            current_price = {}

        return CoinHistory(
            coin_id=coin_id,
            day=day,
            eur=self._to_decimal(current_price.get("eur")),
            usd=self._to_decimal(current_price.get("usd")),
        )

    def _request(self, method: str, path: str, *, params: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            message, payload_err = self._extract_error(resp)
            raise CoinGeckoAPIError(message, status_code=resp.status_code, payload=payload_err) from exc
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise CoinGeckoAPIError("CoinGecko API request failed", status_code=status_code) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise CoinGeckoAPIError("CoinGecko API returned invalid JSON", payload=response.text) from exc

        if not isinstance(payload, dict):
            raise CoinGeckoAPIError("CoinGecko API returned unexpected payload type", payload=payload)
        return payload

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        if value is None:
            return None
        parsed = Decimal(str(value))
        return parsed if parsed.is_finite() else None

    @staticmethod
    def _extract_error(response: Response) -> tuple[str, Any]:
        message = "CoinGecko API request failed"
        try:
            payload = response.json()
            if isinstance(payload, dict):
                status = payload.get("status")
                if isinstance(status, dict) and status.get("error_message"):
                    message = status["error_message"]
                elif payload.get("error"):
                    message = str(payload["error"])
        except ValueError:
            payload = response.text
        return message, payload


__all__ = ["CoinGeckoAPIError", "CoinGeckoClient", "CoinHistory"]
