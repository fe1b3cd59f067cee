"""Client for the on-chain verifiable randomness coordinator."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence

from eth_abi import encode
from eth_account import Account
from eth_account.messages import SignableMessage, encode_defunct
from web3 import Web3
from web3.contract import Contract

from raffle.lottery.errors import ValidationError
from raffle.lottery.models import RandomWordsRequest
from raffle.utils.logger import get_logger

logger = get_logger(__name__)

EXTRA_ARGS_V1_TAG = Web3.keccak(text="VRF ExtraArgsV1")[:4]

# Only the parts of the VRF v2.5 coordinator ABI the raffle touches.
VRF_COORDINATOR_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "requestRandomWords",
        "stateMutability": "nonpayable",
        "inputs": [
            {
                "name": "req",
                "type": "tuple",
                "components": [
                    {"name": "keyHash", "type": "bytes32"},
                    {"name": "subId", "type": "uint256"},
                    {"name": "requestConfirmations", "type": "uint16"},
                    {"name": "callbackGasLimit", "type": "uint32"},
                    {"name": "numWords", "type": "uint32"},
                    {"name": "extraArgs", "type": "bytes"},
                ],
            }
        ],
        "outputs": [{"name": "requestId", "type": "uint256"}],
    },
    {
        "type": "event",
        "name": "RandomWordsRequested",
        "anonymous": False,
        "inputs": [
            {"name": "keyHash", "type": "bytes32", "indexed": True},
            {"name": "requestId", "type": "uint256", "indexed": False},
            {"name": "preSeed", "type": "uint256", "indexed": False},
            {"name": "subId", "type": "uint256", "indexed": True},
            {"name": "minimumRequestConfirmations", "type": "uint16", "indexed": False},
            {"name": "callbackGasLimit", "type": "uint32", "indexed": False},
            {"name": "numWords", "type": "uint32", "indexed": False},
            {"name": "extraArgs", "type": "bytes", "indexed": False},
            {"name": "sender", "type": "address", "indexed": True},
        ],
    },
]


def encode_extra_args(native_payment: bool = False) -> bytes:
    """ExtraArgsV1 encoding: 4-byte tag followed by the ABI-encoded flag."""
    return bytes(EXTRA_ARGS_V1_TAG) + encode(["bool"], [native_payment])


def fulfillment_message(raffle_address: str, request_id: int, random_words: Sequence[int]) -> SignableMessage:
    """EIP-191 message the coordinator signs to deliver words over HTTP.

    It commits to the raffle address, the request id and every word, so a
    signature cannot be replayed against another raffle or with other words.
    """
    payload = encode(["address", "uint256", "uint256[]"], [raffle_address, request_id, list(random_words)])
    return encode_defunct(primitive=Web3.keccak(payload))


def sign_fulfillment(private_key: str, raffle_address: str, request_id: int, random_words: Sequence[int]) -> str:
    signed = Account.sign_message(fulfillment_message(raffle_address, request_id, random_words), private_key=private_key)
    return "0x" + bytes(signed.signature).hex()


def recover_fulfillment_signer(
    raffle_address: str, request_id: int, random_words: Sequence[int], signature: bytes
) -> str:
    """Return the address that signed this fulfillment."""
    message = fulfillment_message(raffle_address, request_id, random_words)
    try:
        return Account.recover_message(message, signature=signature)
    except Exception as exc:
        raise ValidationError("Malformed fulfillment signature") from exc


class RandomnessProvider(Protocol):
    def request_random_words(self, request: RandomWordsRequest) -> int:
        """Submit a request and return its id; the words arrive later via callback."""
        ...


class VRFCoordinatorClient:
    """web3.py wrapper that submits randomness requests to the coordinator."""

    def __init__(self, config: Dict[str, Any]):
        blockchain_cfg = config.get("blockchain", {})
        vrf_cfg = config.get("vrf", {})

        self.rpc_url: str = blockchain_cfg.get("rpc_url", "http://127.0.0.1:8545")
        self.rpc_timeout: float = float(blockchain_cfg.get("rpc_timeout", 10.0))
        self.chain_id: int = int(blockchain_cfg.get("chain_id", 31337))
        self.tx_timeout: int = int(blockchain_cfg.get("tx_timeout_seconds", 180))
        self._gas_multiplier = float(blockchain_cfg.get("gas_multiplier", 1.15))
        self.coordinator_address: Optional[str] = vrf_cfg.get("coordinator")

        self._w3: Optional[Web3] = None
        self._contract: Optional[Contract] = None

        private_key = blockchain_cfg.get("operator_private_key")
        self.account = Account.from_key(private_key) if private_key else None
        if self.account:
            logger.info("Operator account loaded: %s", self.account.address)

    def initialize(self) -> None:
        """Connect to the RPC endpoint and bind the coordinator contract."""
        self._w3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.rpc_timeout}))
        if not self._w3.is_connected():  # pragma: no cover - depends on live RPC
            raise ConnectionError(f"Failed to connect to RPC at {self.rpc_url}")
        logger.info("Connected to RPC %s (chain id %s)", self.rpc_url, self.chain_id)

        if not self.coordinator_address:
            raise ValueError("No VRF coordinator address configured")
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(self.coordinator_address),
            abi=VRF_COORDINATOR_ABI,
        )
        logger.info("VRF coordinator bound at %s", self.coordinator_address)

    def close(self) -> None:
        self._contract = None
        self._w3 = None

    def _ensure_contract(self) -> Contract:
        if not self._contract:
            raise RuntimeError("VRF coordinator not initialised")
        return self._contract

    def _ensure_web3(self) -> Web3:
        if not self._w3:
            raise RuntimeError("Web3 provider not initialised")
        return self._w3

    def request_random_words(self, request: RandomWordsRequest) -> int:
        """Send ``requestRandomWords`` and return the request id from the receipt.

        Blocks until the transaction is mined; raises if it reverts.
        """
        if not self.account:
            raise ValueError("Operator account not configured")
        contract = self._ensure_contract()
        w3 = self._ensure_web3()

        tx_function = contract.functions.requestRandomWords(
            (
                request.key_hash,
                request.subscription_id,
                request.request_confirmations,
                request.callback_gas_limit,
                request.num_words,
                request.extra_args,
            )
        )
        gas_estimate = tx_function.estimate_gas({"from": self.account.address})
        txn = tx_function.build_transaction(
            {
                "from": self.account.address,
                "gas": int(gas_estimate * self._gas_multiplier),
                "gasPrice": w3.eth.gas_price,
                "nonce": w3.eth.get_transaction_count(self.account.address),
                "chainId": self.chain_id,
            }
        )
        signed = self.account.sign_transaction(txn)
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("Sent requestRandomWords transaction %s", tx_hash.hex())

        receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
        if int(receipt["status"]) != 1:
            raise RuntimeError(f"requestRandomWords reverted in {tx_hash.hex()}")

        logs = contract.events.RandomWordsRequested().process_receipt(receipt)
        if not logs:
            raise RuntimeError(f"No RandomWordsRequested event in {tx_hash.hex()}")
        request_id = int(logs[0]["args"]["requestId"])
        logger.info("Randomness request %s confirmed in block %s", request_id, receipt["blockNumber"])
        return request_id

    def get_client_status(self) -> Dict[str, Any]:
        return {
            "rpcUrl": self.rpc_url,
            "chainId": self.chain_id,
            "coordinator": self.coordinator_address,
            "operator": self.account.address if self.account else None,
        }
