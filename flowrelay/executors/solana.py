"""SOL transfers signed with the user's wallet key."""

from __future__ import annotations

import functools
import logging
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, Optional

try:
    from solana.rpc.async_api import AsyncClient
    from solana.rpc.commitment import Confirmed
    from solders.keypair import Keypair
    from solders.message import Message
    from solders.pubkey import Pubkey
    from solders.system_program import TransferParams, transfer
    from solders.transaction import Transaction
except ImportError:  # pragma: no cover - solana not installed
    AsyncClient = None  # type: ignore

from ..actions import ActionKind, SolanaMetadata, WalletCredential
from ..constants import LAMPORTS_PER_SOL
from .base import ActionExecutor, ExecutionResult

logger = logging.getLogger(__name__)

SOLANA_RPC_URL = "https://api.mainnet-beta.solana.com"

# (private key, destination address, lamports) -> transaction signature
TransferSender = Callable[[str, str, int], Awaitable[str]]


def to_lamports(amount: str) -> Optional[int]:
    """Convert a SOL amount to lamports; ``None`` if not a positive number."""
    try:
        value = Decimal(amount.strip())
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    lamports = int((value * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_DOWN))
    return lamports if lamports > 0 else None


async def send_sol(
    private_key: str,
    destination: str,
    lamports: int,
    rpc_url: str = SOLANA_RPC_URL,
    timeout: float = 30.0,
) -> str:
    """Sign and submit a system transfer, waiting for confirmation."""
    if AsyncClient is None:
        raise ImportError("solana and solders packages are required for SOL transfers")

    keypair = Keypair.from_base58_string(private_key)
    instruction = transfer(
        TransferParams(
            from_pubkey=keypair.pubkey(),
            to_pubkey=Pubkey.from_string(destination),
            lamports=lamports,
        )
    )
    async with AsyncClient(rpc_url, timeout=timeout) as client:
        blockhash = (await client.get_latest_blockhash()).value.blockhash
        message = Message.new_with_blockhash([instruction], keypair.pubkey(), blockhash)
        transaction = Transaction([keypair], message, blockhash)
        signature = (await client.send_transaction(transaction)).value
        await client.confirm_transaction(signature, commitment=Confirmed)
    return str(signature)


class SolanaExecutor(ActionExecutor):
    kind = ActionKind.SOLANA
    platform = "solana"
    label = "Solana"
    failure_prefix = "Solana transfer failed:"
    metadata_model = SolanaMetadata
    credential_model = WalletCredential

    def __init__(
        self,
        rpc_url: str = SOLANA_RPC_URL,
        sender: Optional[TransferSender] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.rpc_url = rpc_url
        self._sender = sender or functools.partial(
            send_sol, rpc_url=rpc_url, timeout=self.timeout
        )

    async def execute(
        self,
        secret: WalletCredential,
        metadata: SolanaMetadata,
        context: Dict[str, Any],
    ) -> ExecutionResult:
        destination = self.render("to", metadata.to, context)
        amount = self.render("amount", metadata.amount, context)

        lamports = to_lamports(amount)
        if lamports is None:
            return ExecutionResult.failed(
                f"{self.failure_prefix} invalid amount {amount!r}"
            )

        signature = await self._sender(secret.private_key, destination, lamports)
        logger.info(f"Transferred {amount} SOL to {destination}: {signature}")
        return ExecutionResult.ok()
