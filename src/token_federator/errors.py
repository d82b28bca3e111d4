"""
Error taxonomy for the federator.

Every failure the relay loop reacts to is expressed as a subclass of
FederatorError so the orchestrator can classify it without inspecting
library-specific exception types.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import requests
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception


class FederatorError(Exception):
    """Base class for all federator errors."""


class ConfigError(FederatorError, ValueError):
    """Required configuration is missing or invalid. Fatal at startup."""


class RpcError(FederatorError):
    """A network call to a ledger failed. Retried on the next tick."""


class RpcTimeoutError(RpcError):
    """A network call or receipt wait timed out. Retried on the next tick."""


class PolicyError(FederatorError):
    """The confirmation table for a chain is missing or malformed."""


class InvalidEventError(FederatorError):
    """A source event carries malformed data and can never be relayed."""


class AlreadyProcessed(FederatorError):
    """The destination ledger already accepted this transfer."""


class InsufficientConfirmations(FederatorError):
    """The event is not deep enough in the source chain yet."""

    def __init__(self, confirmations: int, required: int) -> None:
        super().__init__(f"{confirmations} of {required} confirmations")
        self.confirmations = confirmations
        self.required = required


class SigningError(FederatorError):
    """The relay credential could not sign the transaction."""


class RevertedError(FederatorError):
    """The destination ledger rejected the instruction."""


# Cycle-fatal categories: the rest of the batch is abandoned
CYCLE_FATAL_ERRORS = (RpcError, SigningError, RevertedError, PolicyError)


@contextmanager
def rpc_errors(action: str) -> Iterator[None]:
    """
    Translate web3 and transport exceptions raised inside the block.

    Args:
        action: Short description of the call, used in the error message

    Raises:
        AlreadyProcessed: Pre-flight revert reporting an already processed transfer
        RevertedError: Any other contract revert
        RpcTimeoutError: Request or receipt timeout
        RpcError: Any other transport or node failure
    """
    try:
        yield
    except FederatorError:
        raise
    except ContractLogicError as e:
        reason = str(e)
        if "already processed" in reason.lower():
            raise AlreadyProcessed(f"{action}: {reason}") from e
        raise RevertedError(f"{action} reverted: {reason}") from e
    except (TimeExhausted, requests.exceptions.Timeout, TimeoutError) as e:
        raise RpcTimeoutError(f"{action} timed out: {e}") from e
    except (Web3Exception, requests.exceptions.RequestException, OSError) as e:
        raise RpcError(f"{action} failed: {e}") from e
