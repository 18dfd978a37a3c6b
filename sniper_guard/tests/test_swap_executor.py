"""Tests for the swap executors (Jupiter executor runs against httpx.MockTransport)"""

import asyncio
import base64
import json

import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from sniper_guard.core.models import SwapResult
from sniper_guard.core.swap_executor import (
    SOL_MINT,
    FakeSwapExecutor,
    JupiterSwapExecutor,
    load_keypair,
)
from sniper_guard.exceptions import ExecutionError

API = "https://jup.test/swap/v1"
RPC = "https://rpc.test"
MINT = "MintAAA111"


def run(coro):
    return asyncio.run(coro)


def unsigned_swap_tx(keypair: Keypair) -> VersionedTransaction:
    ix = transfer(TransferParams(from_pubkey=keypair.pubkey(), to_pubkey=Keypair().pubkey(), lamports=1))
    message = MessageV0.try_compile(keypair.pubkey(), [ix], [], Hash.default())
    return VersionedTransaction(message, [keypair])


class FakeChain:
    """Routes Jupiter and RPC requests, recording what was asked."""

    def __init__(self, keypair: Keypair, in_amount: str = "100000000", quote_status: int = 200, tx_err=None):
        self.tx = unsigned_swap_tx(keypair)
        self.in_amount = in_amount
        self.quote_status = quote_status
        self.tx_err = tx_err
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url.startswith(f"{API}/quote"):
            if self.quote_status != 200:
                return httpx.Response(self.quote_status, json={"error": "no route"})
            return httpx.Response(200, json={"inAmount": self.in_amount, "outAmount": "500000000", "routePlan": [{}]})
        if url == f"{API}/swap":
            return httpx.Response(200, json={"swapTransaction": base64.b64encode(bytes(self.tx)).decode()})
        if url == RPC:
            body = json.loads(request.content)
            method = body["method"]
            if method == "getTokenSupply":
                return httpx.Response(200, json={"result": {"value": {"decimals": 6}}})
            if method == "sendTransaction":
                return httpx.Response(200, json={"result": "submitted"})
            if method == "getSignatureStatuses":
                status = {"confirmationStatus": "confirmed", "err": self.tx_err}
                return httpx.Response(200, json={"result": {"value": [status]}})
        return httpx.Response(404)


def make_executor(chain: FakeChain, keypair: Keypair) -> JupiterSwapExecutor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(chain))
    return JupiterSwapExecutor(
        {str(keypair.pubkey()): keypair},
        rpc_url=RPC,
        api_base=API,
        client=client,
        confirm_timeout_sec=1.0,
    )


class TestFakeSwapExecutor:

    def test_default_fill(self):
        executor = FakeSwapExecutor()
        result = run(executor.swap("wallet1", MINT, "SOL", 100.0, 100, 0.001))

        assert result.success is True
        assert result.output_amount == pytest.approx(95.0)
        assert result.signature == "fake_wallet_1"

    def test_scripted_outcomes_in_order(self):
        executor = FakeSwapExecutor().script("w", SwapResult(success=False, error="x"), RuntimeError("down"))

        assert run(executor.swap("w", MINT, "SOL", 1, 100, 0)).error == "x"
        with pytest.raises(RuntimeError):
            run(executor.swap("w", MINT, "SOL", 1, 100, 0))
        assert run(executor.swap("w", MINT, "SOL", 1, 100, 0)).success is True
        assert len(executor.calls_for("w")) == 3


class TestJupiterSwapExecutor:

    def test_full_sell(self):
        keypair = Keypair()
        chain = FakeChain(keypair)
        executor = make_executor(chain, keypair)

        result = run(executor.swap(str(keypair.pubkey()), MINT, "SOL", 100.0, 150, 0.001))

        assert result.success is True
        assert result.output_amount == pytest.approx(0.5)
        assert result.signature == str(chain.tx.signatures[0])

        quote = next(r for r in chain.requests if "/quote" in str(r.url))
        assert quote.url.params["inputMint"] == MINT
        assert quote.url.params["outputMint"] == SOL_MINT
        assert quote.url.params["amount"] == "100000000"
        assert quote.url.params["slippageBps"] == "150"

        swap = json.loads(next(r for r in chain.requests if str(r.url) == f"{API}/swap").content)
        assert swap["userPublicKey"] == str(keypair.pubkey())
        assert swap["prioritizationFeeLamports"] == 1_000_000

    def test_partial_route_reported_as_partial_fill(self):
        keypair = Keypair()
        executor = make_executor(FakeChain(keypair, in_amount="50000000"), keypair)

        result = run(executor.swap(str(keypair.pubkey()), MINT, "SOL", 100.0, 100, 0.001))

        assert result.success is False
        assert result.partial_fill is True
        assert result.percentage_sold == pytest.approx(50.0)

    def test_failed_on_chain_is_not_a_sale(self):
        """A landed-but-failed transaction must come back as a failure so the engine retries"""
        keypair = Keypair()
        err = {"InstructionError": [2, {"Custom": 6001}]}
        chain = FakeChain(keypair, tx_err=err)
        executor = make_executor(chain, keypair)

        result = run(executor.swap(str(keypair.pubkey()), MINT, "SOL", 100.0, 100, 0.001))

        assert result.success is False
        assert result.partial_fill is False
        assert result.output_amount == 0.0
        assert result.signature == str(chain.tx.signatures[0])
        assert "Transaction failed" in result.error
        assert "6001" in result.error

    def test_quote_failure_raises_execution_error(self):
        keypair = Keypair()
        executor = make_executor(FakeChain(keypair, quote_status=500), keypair)

        with pytest.raises(ExecutionError):
            run(executor.swap(str(keypair.pubkey()), MINT, "SOL", 100.0, 100, 0.001))

    def test_unknown_wallet_raises_execution_error(self):
        keypair = Keypair()
        executor = make_executor(FakeChain(keypair), keypair)

        with pytest.raises(ExecutionError):
            run(executor.swap("someone-else", MINT, "SOL", 100.0, 100, 0.001))

    def test_dust_amount_fails_without_quote(self):
        keypair = Keypair()
        chain = FakeChain(keypair)
        executor = make_executor(chain, keypair)

        result = run(executor.swap(str(keypair.pubkey()), MINT, "SOL", 0.0000001, 100, 0.001))

        assert result.success is False
        assert not any("/quote" in str(r.url) for r in chain.requests)


class TestLoadKeypair:

    def test_json_and_base58_formats(self):
        keypair = Keypair()

        from_json = load_keypair(json.dumps(list(bytes(keypair))))
        from_b58 = load_keypair(str(keypair))

        assert from_json.pubkey() == keypair.pubkey()
        assert from_b58.pubkey() == keypair.pubkey()
