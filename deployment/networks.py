import os
import time
from typing import Any, Dict, List, Optional

import click
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address, to_hex
from hexbytes import HexBytes
from web3 import EthereumTesterProvider, HTTPProvider, Web3
from web3.exceptions import TimeExhausted

from deployment.constants import (
    CONFIRMATION_POLL_LATENCY,
    DEPLOYER_PRIVATE_KEY_ENVVAR,
    EPHEMERAL_NETWORKS,
    LOCAL_NETWORKS,
    LOCAL_RPC_URLS,
    REQUIRED_CONFIRMATIONS,
)


class ConfirmationTimeout(TimeoutError):
    """Raised when a transaction is not confirmed within the allotted time."""


class TransactionFailed(RuntimeError):
    """Raised when a confirmed transaction reverted."""


def is_local_network(network_name: str) -> bool:
    return network_name in LOCAL_NETWORKS


def is_ephemeral_network(network_name: str) -> bool:
    return network_name in EPHEMERAL_NETWORKS


def warn_if_ephemeral(network_name: str) -> None:
    if is_ephemeral_network(network_name):
        click.secho(
            f"WARNING: You are deploying to the '{network_name}' network, which is created "
            "and destroyed with every run; nothing deployed here will persist. "
            "Use '--network localhost' against a running node instead.",
            fg="yellow",
            err=True,
        )


class Web3Network:
    """
    JSON-RPC client for a single network, signing as a single deployer account.

    On local networks the first node-managed account is used; elsewhere the
    deployer key is read from the environment and transactions are signed locally.
    """

    def __init__(
        self,
        w3: Web3,
        name: str,
        account: Optional[LocalAccount] = None,
        required_confirmations: int = REQUIRED_CONFIRMATIONS,
        poll_latency: float = CONFIRMATION_POLL_LATENCY,
    ):
        self.w3 = w3
        self.name = name
        self._account = account
        self.required_confirmations = required_confirmations
        self.poll_latency = poll_latency
        self._nonce = None

    @property
    def chain_id(self) -> int:
        return self.w3.eth.chain_id

    @property
    def is_local(self) -> bool:
        return is_local_network(self.name)

    def get_signer(self) -> ChecksumAddress:
        if self._account is not None:
            return self._account.address
        if not self.is_local:
            raise ValueError(
                f"No deployer account for '{self.name}'; set {DEPLOYER_PRIVATE_KEY_ENVVAR}."
            )
        accounts = self.w3.eth.accounts
        if not accounts:
            raise ValueError(f"Node for '{self.name}' does not manage any accounts.")
        return to_checksum_address(accounts[0])

    def _next_nonce(self, sender: ChecksumAddress) -> int:
        """
        Hands out consecutive nonces for locally signed transactions.

        The node's pending count only moves the counter forward; it may lag behind
        submissions that are still propagating.
        """
        pending = self.w3.eth.get_transaction_count(sender, "pending")
        if self._nonce is None or pending > self._nonce:
            self._nonce = pending
        nonce = self._nonce
        self._nonce += 1
        return nonce

    def _send(self, transaction) -> HexBytes:
        """Submits a contract constructor or function call without waiting for it."""
        sender = self.get_signer()
        if self._account is None:
            return transaction.transact({"from": sender})

        nonce = self._next_nonce(sender)
        try:
            tx = transaction.build_transaction({"from": sender, "nonce": nonce})
            signed = self._account.sign_transaction(tx)
            return self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception:
            # resync with the node on the next submission
            self._nonce = None
            raise

    def deploy(self, abi: List[Dict], bytecode: str, *args) -> HexBytes:
        factory = self.w3.eth.contract(abi=abi, bytecode=bytecode)
        return self._send(factory.constructor(*args))

    def transact(self, abi: List[Dict], address: ChecksumAddress, method: str, *args) -> HexBytes:
        contract = self.w3.eth.contract(address=address, abi=abi)
        return self._send(getattr(contract.functions, method)(*args))

    def call(self, abi: List[Dict], address: ChecksumAddress, method: str, *args) -> Any:
        contract = self.w3.eth.contract(address=address, abi=abi)
        return getattr(contract.functions, method)(*args).call()

    def await_confirmation(self, tx_hash: HexBytes, timeout: float):
        """Blocks until the transaction has the required confirmations or the timeout expires."""
        deadline = time.monotonic() + timeout
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=self.poll_latency
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(
                f"Transaction {to_hex(tx_hash)} not mined within {timeout} seconds."
            ) from e

        if receipt["status"] == 0:
            raise TransactionFailed(f"Transaction {to_hex(tx_hash)} reverted.")

        while self.w3.eth.block_number - receipt["blockNumber"] + 1 < self.required_confirmations:
            if time.monotonic() > deadline:
                raise ConfirmationTimeout(
                    f"Transaction {to_hex(tx_hash)} did not reach "
                    f"{self.required_confirmations} confirmations within {timeout} seconds."
                )
            time.sleep(self.poll_latency)

        return receipt


def connect(network_name: str, rpc_url: Optional[str] = None) -> Web3Network:
    """Connects to a network by name and loads the deployer account for it."""
    if is_ephemeral_network(network_name):
        provider = EthereumTesterProvider()
    else:
        rpc_url = rpc_url or LOCAL_RPC_URLS.get(network_name)
        if not rpc_url:
            raise ValueError(f"No RPC URL configured for network '{network_name}'.")
        provider = HTTPProvider(rpc_url)

    w3 = Web3(provider)
    if not w3.is_connected():
        raise ConnectionError(f"Cannot connect to '{network_name}' network.")

    account = None
    private_key = os.environ.get(DEPLOYER_PRIVATE_KEY_ENVVAR)
    if private_key:
        account = Account.from_key(private_key)
    elif not is_local_network(network_name):
        raise ValueError(
            f"Deploying to '{network_name}' requires the {DEPLOYER_PRIVATE_KEY_ENVVAR} "
            "environment variable."
        )

    return Web3Network(w3=w3, name=network_name, account=account)
