import json
from functools import lru_cache
from pathlib import Path

from web3 import Web3

CONTRACTS_DIR = Path(__file__).resolve().parent.parent / "contracts"


@lru_cache(maxsize=None)
def _load_abi(contract_name: str) -> tuple:
    contract_path = CONTRACTS_DIR / f"{contract_name}.json"
    with contract_path.open() as file:
        contract_data = json.load(file)
    return tuple(contract_data["abi"])


class ContractUtility:
    """Connection to one ledger plus the contract ABIs bundled with the package."""

    def __init__(self, rpc_url: str, request_timeout: int = 30):
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: HTTP RPC endpoint of the ledger
            request_timeout: Timeout in seconds applied to every RPC request
        """
        self.rpc_url = rpc_url
        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))

    def get_contract_abi(self, contract_name: str) -> list:
        """Fetches ABI of the given contract from the package contracts folder"""
        return list(_load_abi(contract_name))

    def get_contract(self, contract_name: str, address: str):
        """Bind the named ABI to an address on this utility's ledger."""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name),
        )
