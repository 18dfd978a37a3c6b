"""Swap executors used by the liquidation engine.

- SwapExecutor: the capability interface the engine calls
- FakeSwapExecutor: deterministic, scriptable stand-in (tests / paper mode)
- JupiterSwapExecutor: real execution via Jupiter quote + swap, signed
  locally with solders and submitted over RPC
"""
from __future__ import annotations

import asyncio
import base64
import json
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Protocol, Tuple, Union

import httpx
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from sniper_guard.config import JUPITER_API_BASE, JUPITER_API_KEY, RPC_URL
from sniper_guard.core.models import SwapResult
from sniper_guard.exceptions import ExecutionError

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000


class SwapExecutor(Protocol):
    async def swap(
        self,
        wallet_id: str,
        token_id: str,
        output_token: str,
        amount: float,
        slippage_bps: int,
        priority_fee: float,
    ) -> SwapResult:
        ...


@dataclass(frozen=True)
class SwapCall:
    wallet_id: str
    token_id: str
    output_token: str
    amount: float
    slippage_bps: int
    priority_fee: float


Outcome = Union[SwapResult, Exception]


class FakeSwapExecutor:
    """Scriptable executor. Unscripted calls fall back to `default`.

    By default every swap fills fully at a fixed 5% price impact
    (output = amount * 0.95) with a deterministic signature.
    """

    def __init__(self, default: Outcome | None = None, price_impact: float = 0.05) -> None:
        self.default = default
        self.price_impact = price_impact
        self.calls: list[SwapCall] = []
        self._scripts: dict[str, Deque[Outcome]] = {}

    def script(self, wallet_id: str, *outcomes: Outcome) -> "FakeSwapExecutor":
        """Queue outcomes returned (or raised) by successive calls for `wallet_id`."""
        self._scripts.setdefault(wallet_id, deque()).extend(outcomes)
        return self

    def calls_for(self, wallet_id: str) -> list[SwapCall]:
        return [c for c in self.calls if c.wallet_id == wallet_id]

    async def swap(
        self,
        wallet_id: str,
        token_id: str,
        output_token: str,
        amount: float,
        slippage_bps: int,
        priority_fee: float,
    ) -> SwapResult:
        self.calls.append(SwapCall(wallet_id, token_id, output_token, amount, slippage_bps, priority_fee))

        queue = self._scripts.get(wallet_id)
        outcome = queue.popleft() if queue else self.default
        if outcome is None:
            return SwapResult(
                success=True,
                signature=f"fake_{wallet_id[:6]}_{len(self.calls)}",
                output_amount=amount * (1 - self.price_impact),
            )
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def load_keypair(private_key: str) -> Keypair:
    """Keypair from a JSON byte array or a base58 secret key."""
    private_key = private_key.strip()
    if private_key.startswith("["):
        return Keypair.from_bytes(bytes(json.loads(private_key)))
    return Keypair.from_base58_string(private_key)


class JupiterSwapExecutor:
    """Sells tokens for SOL through Jupiter, one wallet keypair per wallet id."""

    def __init__(
        self,
        keypairs: dict[str, Keypair],
        rpc_url: str = RPC_URL,
        api_base: str = JUPITER_API_BASE,
        api_key: str = JUPITER_API_KEY,
        client: httpx.AsyncClient | None = None,
        confirm_timeout_sec: float = 8.0,
    ) -> None:
        self.keypairs = keypairs
        self.rpc_url = rpc_url
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.confirm_timeout_sec = confirm_timeout_sec
        self.logger = logging.getLogger("sniper_guard.jupiter")
        self._client = client
        self._decimals_cache: dict[str, int] = {}

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {}
            if self.api_key:
                headers["x-api-key"] = self.api_key
            self._client = httpx.AsyncClient(headers=headers, timeout=30.0)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _rpc(self, method: str, params: list) -> dict:
        if not self.rpc_url:
            raise ExecutionError("RPC_URL not configured", method=method)
        client = await self._ensure_client()
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            response = await client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise ExecutionError("RPC request failed", method=method, error=str(e)) from e

    async def _get_token_decimals(self, mint: str) -> int:
        cached = self._decimals_cache.get(mint)
        if cached is not None:
            return cached
        result = (await self._rpc("getTokenSupply", [mint])).get("result") or {}
        decimals = int((result.get("value") or {}).get("decimals", 6))
        self._decimals_cache[mint] = decimals
        return decimals

    async def _get_quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> dict:
        client = await self._ensure_client()
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": slippage_bps,
            "onlyDirectRoutes": "false",
            "asLegacyTransaction": "false",
        }
        try:
            response = await client.get(f"{self.api_base}/quote", params=params)
            response.raise_for_status()
            quote = response.json()
        except httpx.HTTPError as e:
            raise ExecutionError("Jupiter quote failed", mint=input_mint, error=str(e)) from e

        self.logger.debug(
            "Jupiter quote: in=%s out=%s route=%s",
            quote.get("inAmount"), quote.get("outAmount"), len(quote.get("routePlan", [])),
        )
        return quote

    async def _build_swap_transaction(self, quote: dict, user_pubkey: str, priority_fee_sol: float) -> bytes:
        client = await self._ensure_client()
        priority_fee_lamports = int(priority_fee_sol * LAMPORTS_PER_SOL)
        payload = {
            "quoteResponse": quote,
            "userPublicKey": user_pubkey,
            "wrapAndUnwrapSol": True,
            "prioritizationFeeLamports": priority_fee_lamports,
            "dynamicComputeUnitLimit": True,
        }
        try:
            response = await client.post(f"{self.api_base}/swap", json=payload)
            response.raise_for_status()
            swap_tx_b64 = response.json().get("swapTransaction")
        except httpx.HTTPError as e:
            raise ExecutionError("Jupiter swap build failed", error=str(e)) from e

        if not swap_tx_b64:
            raise ExecutionError("Jupiter returned no swap transaction")
        return base64.b64decode(swap_tx_b64)

    async def _confirm_signature(self, signature: str) -> Tuple[bool, Any]:
        """
        Best-effort confirmation for a transaction signature.

        Returns:
            (confirmed, err): err is the on-chain error if the transaction
            landed and failed; (False, None) means the timeout elapsed
        """
        deadline = time.monotonic() + self.confirm_timeout_sec
        while time.monotonic() < deadline:
            try:
                result = (await self._rpc(
                    "getSignatureStatuses", [[signature], {"searchTransactionHistory": True}]
                )).get("result") or {}
            except ExecutionError as e:
                self.logger.debug("Signature confirmation error: %s", e)
                result = {}
            value = result.get("value") or []
            status = value[0] if value else None
            if status:
                if status.get("err") is not None:
                    self.logger.warning("Transaction %s failed: %s", signature[:8], status.get("err"))
                    return False, status.get("err")
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return True, None
            await asyncio.sleep(0.4)
        return False, None

    async def swap(
        self,
        wallet_id: str,
        token_id: str,
        output_token: str,
        amount: float,
        slippage_bps: int,
        priority_fee: float,
    ) -> SwapResult:
        keypair = self.keypairs.get(wallet_id)
        if keypair is None:
            raise ExecutionError("No keypair loaded for wallet", wallet=wallet_id[:8])

        output_mint = SOL_MINT if output_token.upper() == "SOL" else output_token
        decimals = await self._get_token_decimals(token_id)
        amount_raw = int(amount * (10 ** decimals))
        if amount_raw <= 0:
            return SwapResult(success=False, error="Amount rounds to zero")

        self.logger.info(
            "🔴 SELL: %s | wallet %s | AmountRaw: %d | Slippage: %d bps",
            token_id[:12], wallet_id[:8], amount_raw, slippage_bps,
        )

        quote = await self._get_quote(token_id, output_mint, amount_raw, slippage_bps)
        tx_bytes = await self._build_swap_transaction(quote, str(keypair.pubkey()), priority_fee)

        try:
            unsigned = VersionedTransaction.from_bytes(tx_bytes)
            signed = VersionedTransaction(unsigned.message, [keypair])
        except Exception as e:
            raise ExecutionError("Transaction signing failed", wallet=wallet_id[:8], error=str(e)) from e

        signature = str(signed.signatures[0])
        tx_b64 = base64.b64encode(bytes(signed)).decode()
        result = await self._rpc(
            "sendTransaction",
            [tx_b64, {"encoding": "base64", "skipPreflight": True, "maxRetries": 3}],
        )
        if "error" in result:
            return SwapResult(success=False, error=f"RPC error: {result['error']}")

        confirmed, chain_err = await self._confirm_signature(signature)
        if chain_err is not None:
            return SwapResult(success=False, signature=signature, error=f"Transaction failed: {chain_err}")
        if not confirmed:
            self.logger.warning("SELL unconfirmed: %s", signature[:16])

        out_sol = int(quote.get("outAmount", 0)) / LAMPORTS_PER_SOL
        in_raw = int(quote.get("inAmount", amount_raw))
        self.logger.info("✅ SELL SUCCESS: %s | TX: %s... | Received: %.4f SOL", token_id[:12], signature[:16], out_sol)

        if 0 < in_raw < amount_raw:
            return SwapResult(
                success=False,
                signature=signature,
                output_amount=out_sol,
                partial_fill=True,
                percentage_sold=in_raw / amount_raw * 100,
            )
        return SwapResult(success=True, signature=signature, output_amount=out_sol)
