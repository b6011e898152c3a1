"""Paywall address derivation through the operator's wallet service."""

from __future__ import annotations

from typing import Optional

import httpx

from gatehouse.domain.errors import PaymentBackendError


class WalletAddressClient:
    """Asks the wallet service for the address at a derivation index."""

    def __init__(
        self,
        wallet_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.wallet_url = wallet_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def derive(self, index: int) -> str:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(f"{self.wallet_url}/address", json={"index": index})
                resp.raise_for_status()
                address = (resp.json() or {}).get("address")
        except (httpx.HTTPError, ValueError) as exc:
            raise PaymentBackendError(f"address derivation failed for index {index}: {exc}") from exc
        if not address:
            raise PaymentBackendError(f"wallet returned no address for index {index}")
        return address
