"""
Read-only blockchain and market data nodes.

Solana state is read over JSON-RPC; nothing here signs or sends
transactions. Prices come from the public CoinGecko simple price endpoint.
"""

from typing import Any, Dict, Optional

import requests

from chainflow.config.settings import get_settings
from chainflow.engine.context import ExecutionContext
from chainflow.engine.errors import ConfigurationError
from chainflow.engine.nodes.base import NodeHandler, require
from chainflow.utils.time_utils import utc_now

LAMPORTS_PER_SOL = 1_000_000_000

CLUSTER_URLS = {
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
}

LEGACY_SYMBOLS = {
    "Crypto.SOL/USD": "solana",
    "Crypto.BTC/USD": "bitcoin",
    "Crypto.ETH/USD": "ethereum",
}

_BASE58_ALPHABET = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


class SolanaRpcError(RuntimeError):
    pass


def is_valid_address(address: str) -> bool:
    """Cheap shape check for a base58 Solana public key."""
    return isinstance(address, str) and 32 <= len(address) <= 44 and set(address) <= _BASE58_ALPHABET


def rpc_call(rpc_url: str, method: str, params: list, timeout: float) -> Any:
    """
    Perform one JSON-RPC call and return its ``result``.

    Raises:
        SolanaRpcError: If the node answers with an error object.
    """
    response = requests.post(
        rpc_url,
        json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
        timeout=timeout,
    )
    response.raise_for_status()
    body = response.json()
    if body.get("error"):
        error = body["error"]
        raise SolanaRpcError(f"{method} failed: {error.get('message', error)}")
    return body.get("result")


def _balance_lamports(result: Any) -> int:
    # getBalance answers {"context": {...}, "value": lamports}
    if isinstance(result, dict):
        return int(result.get("value") or 0)
    return int(result or 0)


class PythPriceNodeHandler(NodeHandler):
    """
    Fetch a USD price.

    Config: ``{coinId}`` (legacy ``symbol`` such as ``Crypto.SOL/USD`` is
    mapped), defaulting to ``solana``. Soft-fail: errors return price 0 with
    ``error`` set.
    """

    type = "pyth_price"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        coin_id: Optional[str] = node_data.get("coinId")
        if not coin_id and node_data.get("symbol"):
            symbol = node_data["symbol"]
            coin_id = LEGACY_SYMBOLS.get(symbol, symbol)
        coin_id = coin_id or "solana"

        context.logger.info(f"pyth_price: fetching price for {coin_id!r}")
        try:
            response = requests.get(
                get_settings().price_api_url,
                params={"ids": coin_id, "vs_currencies": "usd"},
                timeout=context.http_timeout,
            )
            response.raise_for_status()
            data = response.json()
            if coin_id not in data or data[coin_id].get("usd") is None:
                raise ValueError(f"Coin ID {coin_id!r} not found")
            price = round(float(data[coin_id]["usd"]), 2)
        except Exception as e:
            context.logger.error(f"pyth_price: {e}")
            return {
                "coinId": coin_id,
                "symbol": coin_id.upper(),
                "price": 0,
                "error": str(e),
                "timestamp": utc_now().isoformat(),
            }

        context.logger.info(f"pyth_price: {coin_id} = ${price:.2f}")
        return {
            "coinId": coin_id,
            "symbol": coin_id.upper(),
            "price": price,
            "timestamp": utc_now().isoformat(),
        }


class WalletBalanceNodeHandler(NodeHandler):
    """
    Read the SOL balance of a wallet.

    Config: ``{walletAddress, network=mainnet-beta, customRpcUrl}``. A missing
    or malformed address raises; RPC failures return a zero balance with
    ``error`` set.
    """

    type = "wallet_balance"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        address = require(node_data, "walletAddress")
        if not is_valid_address(address):
            raise ConfigurationError(f"Invalid wallet address format: {address}")

        network = node_data.get("network") or "mainnet-beta"
        rpc_url = node_data.get("customRpcUrl") or CLUSTER_URLS.get(network) or context.rpc_url
        context.logger.info(f"wallet_balance: checking {address} on {network}")

        try:
            lamports = _balance_lamports(
                rpc_call(rpc_url, "getBalance", [address, {"commitment": "confirmed"}], context.http_timeout)
            )
        except Exception as e:
            context.logger.error(f"wallet_balance: {e}")
            return {
                "walletAddress": address,
                "balance": 0,
                "lamports": 0,
                "error": str(e),
                "timestamp": utc_now().isoformat(),
                "network": network,
            }

        balance = lamports / LAMPORTS_PER_SOL
        context.logger.info(f"wallet_balance: {balance} SOL ({lamports} lamports)")
        return {
            "walletAddress": address,
            "balance": balance,
            "lamports": lamports,
            "timestamp": utc_now().isoformat(),
            "network": network,
            "rpcEndpoint": rpc_url,
        }


class SolanaRpcNodeHandler(NodeHandler):
    """
    Run a read-only Solana RPC action.

    Config: ``{action, rpcUrl, address, signature, limit=10}`` with action one
    of getBalance, getAccountInfo, getTransaction, getSignaturesForAddress.
    Soft-fail: ``{success: False, error}``.
    """

    type = "solana_rpc"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        try:
            action = require(node_data, "action")
            rpc_url = node_data.get("rpcUrl") or context.rpc_url
            if not rpc_url:
                raise ConfigurationError("rpcUrl is required")
            context.logger.info(f"solana_rpc: {action}")
            data = self._run_action(action, node_data, rpc_url, context.http_timeout)
        except Exception as e:
            context.logger.error(f"solana_rpc: {e}")
            return {"success": False, "error": str(e), "timestamp": utc_now().isoformat()}

        return {"success": True, "data": data, "timestamp": utc_now().isoformat()}

    def _run_action(self, action: str, node_data: Dict[str, Any], rpc_url: str, timeout: float) -> Any:
        commitment = {"commitment": "confirmed"}
        if action == "getBalance":
            address = require(node_data, "address")
            lamports = _balance_lamports(rpc_call(rpc_url, "getBalance", [address, commitment], timeout))
            return {"balance": lamports / LAMPORTS_PER_SOL}
        if action == "getAccountInfo":
            address = require(node_data, "address")
            result = rpc_call(
                rpc_url, "getAccountInfo", [address, {**commitment, "encoding": "base64"}], timeout
            )
            value = (result or {}).get("value") or {}
            return {
                "owner": value.get("owner"),
                "lamports": value.get("lamports"),
                "executable": value.get("executable"),
            }
        if action == "getTransaction":
            signature = require(node_data, "signature")
            return rpc_call(
                rpc_url,
                "getTransaction",
                [signature, {**commitment, "maxSupportedTransactionVersion": 0}],
                timeout,
            )
        if action == "getSignaturesForAddress":
            address = require(node_data, "address")
            limit = int(node_data.get("limit") or 10)
            return rpc_call(rpc_url, "getSignaturesForAddress", [address, {"limit": limit}], timeout)
        raise ConfigurationError(f"Unknown action: {action}")
