#!/usr/bin/env python3
"""Destination-side relay of accepted transfers.

This module builds the acceptTransfer call for a source event, optionally
wraps it as a multisig proposal, signs it with the federator key, submits it
to the destination Bridge and waits for inclusion.
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.types import TxParams, TxReceipt

from .errors import RevertedError, SigningError, rpc_errors
from .models import CrossEvent, ReceiptOutcome
from .transaction_id import validate_event

if TYPE_CHECKING:
    from .config import GasPolicyConfig
    from .utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)


class RelayExecutor:
    """Submits acceptTransfer instructions to the destination Bridge."""

    def __init__(
        self,
        contract_util: "ContractUtility",
        bridge_address: str,
        private_key: str,
        gas_policy: "GasPolicyConfig",
        multisig_address: str | None = None,
        receipt_timeout: int = 300
    ) -> None:
        """
        Initialize the RelayExecutor.

        Args:
            contract_util: Connected utility for the destination ledger
            bridge_address: Address of the destination Bridge contract
            private_key: Federator signing key
            gas_policy: Gas price policy for the destination chain
            multisig_address: Multisig to propose calls to instead of calling the Bridge (optional)
            receipt_timeout: Seconds to wait for a transaction receipt
        """
        self.contract_util: ContractUtility = contract_util
        self.w3: Web3 = contract_util.w3
        self.account: LocalAccount = Account.from_key(private_key)
        self.gas_policy = gas_policy
        self.receipt_timeout = receipt_timeout

        self.bridge: Contract = contract_util.get_contract("Bridge", bridge_address)
        self.bridge_address: str = self.bridge.address
        self.multisig: Contract | None = (
            contract_util.get_contract("MultiSigWallet", multisig_address)
            if multisig_address
            else None
        )

        self._chain_id: int | None = None

        mode = "multisig proposal" if self.multisig else "direct"
        logger.info(f"RelayExecutor initialized in {mode} mode")
        logger.info(f"  Bridge Address: {self.bridge_address}")
        logger.info(f"  Federator Address: {self.account.address}")

    async def get_chain_id(self) -> int:
        """Chain ID of the destination ledger, fetched once."""
        if self._chain_id is None:
            with rpc_errors("Fetching destination chain id"):
                self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

    async def is_already_processed(self, tx_id: bytes) -> bool:
        """
        Ask the destination Bridge whether a transfer id was already accepted.

        Must be called before every submission attempt.

        Raises:
            RpcError: If the call fails
        """
        with rpc_errors("Reading processed flag"):
            return bool(self.bridge.functions.processed(tx_id).call())

    async def remote_transaction_id(self, event: CrossEvent) -> bytes:
        """Transaction id computed by the destination Bridge's getTransactionId."""
        with rpc_errors("Reading remote transaction id"):
            return bytes(self.bridge.functions.getTransactionId(
                Web3.to_bytes(hexstr=event.block_hash),
                Web3.to_bytes(hexstr=event.transaction_hash),
                event.recipient,
                event.amount,
                event.log_index,
            ).call())

    def apply_gas_policy(self, base_gas_price: int, chain_id: int) -> int:
        """
        Apply the chain gas price policy.

        Args:
            base_gas_price: Gas price suggested by the node
            chain_id: Destination chain ID

        Returns:
            The multiplied price on the primary network, the base price elsewhere
        """
        if chain_id != self.gas_policy.primary_chain_id:
            return base_gas_price
        return int(Decimal(base_gas_price) * Decimal(str(self.gas_policy.multiplier)))

    def _accept_transfer_call(self, event: CrossEvent) -> tuple[str, list[Any]]:
        args: list[Any] = [
            event.token_address,
            event.recipient,
            event.amount,
            event.symbol,
            Web3.to_bytes(hexstr=event.block_hash),
            Web3.to_bytes(hexstr=event.transaction_hash),
            event.log_index,
            event.decimals,
            event.granularity,
        ]
        if event.extra_data:
            return "acceptTransferAt", [*args, event.extra_data]
        return "acceptTransfer", args

    def _sign_and_send(self, contract_call: Any, gas_price: int, chain_id: int) -> bytes:
        with rpc_errors("Preparing destination transaction"):
            nonce = self.w3.eth.get_transaction_count(self.account.address, "pending")
            # build_transaction estimates gas, so a reverting call fails here
            tx: TxParams = contract_call.build_transaction({
                "from": self.account.address,
                "nonce": nonce,
                "gasPrice": gas_price,
                "chainId": chain_id,
                "value": 0,
            })

        try:
            signed = self.account.sign_transaction(tx)
        except Exception as e:
            raise SigningError(f"Could not sign transaction with nonce {nonce}: {e}") from e

        with rpc_errors("Sending destination transaction"):
            return bytes(self.w3.eth.send_raw_transaction(signed.raw_transaction))

    async def submit(self, event: CrossEvent) -> ReceiptOutcome:
        """
        Relay a source event to the destination Bridge.

        With a multisig configured the call is proposed to it and this method
        returns once the proposal is mined; co-signers execute it later.

        Args:
            event: A ready, not yet processed source event

        Returns:
            ReceiptOutcome of the mined transaction

        Raises:
            AlreadyProcessed: If the Bridge reports the transfer as already processed
            SigningError: If the transaction cannot be signed
            RevertedError: If the destination rejects the call
            RpcTimeoutError: If a request or the receipt wait times out
            RpcError: On any other network failure
        """
        validate_event(event)
        chain_id = await self.get_chain_id()

        with rpc_errors("Fetching destination gas price"):
            base_gas_price = int(self.w3.eth.gas_price)
        gas_price = self.apply_gas_policy(base_gas_price, chain_id)

        fn_name, args = self._accept_transfer_call(event)

        match self.multisig:
            case None:
                logger.info(f"Submitting {fn_name} for {event} with gas price {gas_price}")
                contract_call = getattr(self.bridge.functions, fn_name)(*args)
                proposed = False
            case multisig:
                data = self.bridge.encode_abi(fn_name, args=args)
                logger.info(
                    f"Proposing {fn_name} for {event} to multisig {multisig.address} "
                    f"with gas price {gas_price}"
                )
                contract_call = multisig.functions.submitTransaction(self.bridge_address, 0, data)
                proposed = True

        tx_hash = self._sign_and_send(contract_call, gas_price, chain_id)
        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Transaction sent: {tx_hash_hex}")

        with rpc_errors(f"Waiting for receipt of {tx_hash_hex}"):
            receipt: TxReceipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )

        if (status := receipt.get("status", 0)) != 1:
            raise RevertedError(f"Transaction {tx_hash_hex} failed with status={status}")

        logger.info(f"Transaction {tx_hash_hex} confirmed in block {receipt['blockNumber']}")
        return ReceiptOutcome(
            transaction_hash=tx_hash_hex,
            block_number=receipt["blockNumber"],
            gas_price=gas_price,
            proposed=proposed,
        )
