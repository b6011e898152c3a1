"""Transaction lookup against a dcrdata-compatible block explorer."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from gatehouse.domain.errors import PaymentBackendError
from gatehouse.domain.ports.persistence import PaymentRecord

logger = logging.getLogger(__name__)

ATOMS_PER_COIN = Decimal(100_000_000)


class BlockExplorerClient:
    """Finds the first transaction that pays a paywall address in full."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def find_payment(
        self,
        address: str,
        amount: int,
        not_before: Optional[datetime],
        min_confirmations: int,
    ) -> Optional[PaymentRecord]:
        for tx in self._fetch_transactions(address):
            try:
                record = self._qualifying(tx, address, amount, not_before, min_confirmations)
            except (ValueError, TypeError, AttributeError) as exc:
                raise PaymentBackendError(f"malformed transaction for {address}: {exc}") from exc
            if record is not None:
                logger.info("Found payment %s to paywall address %s", record.tx_id, address)
                return record
        return None

    def _fetch_transactions(self, address: str) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/address/{address}/raw"
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.get(url)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PaymentBackendError(f"block explorer lookup failed for {address}: {exc}") from exc
        if data is None:
            return []
        if not isinstance(data, list):
            raise PaymentBackendError(f"unexpected block explorer reply for {address}")
        return data

    @staticmethod
    def _qualifying(
        tx: Dict[str, Any],
        address: str,
        amount: int,
        not_before: Optional[datetime],
        min_confirmations: int,
    ) -> Optional[PaymentRecord]:
        tx_id = tx.get("txid")
        if not tx_id:
            return None
        confirmations = int(tx.get("confirmations") or 0)
        if confirmations < min_confirmations:
            return None
        tx_time = tx.get("time") or tx.get("blocktime")
        if not_before is not None and tx_time is not None:
            if int(tx_time) < int(not_before.timestamp()):
                return None

        received = 0
        for out in tx.get("vout") or []:
            addresses = (out.get("scriptPubKey") or {}).get("addresses") or []
            if address not in addresses:
                continue
            try:
                received += int(Decimal(str(out.get("value", 0))) * ATOMS_PER_COIN)
            except InvalidOperation:
                continue
        if received < amount:
            return None
        return PaymentRecord(tx_id=tx_id, amount=received, confirmations=confirmations)
