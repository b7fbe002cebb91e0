"""
Solana payment signer
Builds a versioned USDC transfer paid for by the settling facilitator and
signs it with the sender's key only
"""

import base64
import struct
from typing import Any, Dict, List, Optional

import base58
import httpx
import structlog
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from uplink.config import DEFAULT_SOLANA_FEE_PAYER, DEFAULT_SOLANA_RPC_URL
from uplink.errors import NetworkError, SigningError, ValidationError
from uplink.payments.amounts import to_atomic_units
from uplink.payments.models import PaymentPayload, encode_payment_payload
from uplink.payments.networks import Network

logger = structlog.get_logger()

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
COMPUTE_BUDGET_PROGRAM_ID = "ComputeBudget111111111111111111111111111111"

COMPUTE_UNIT_LIMIT = 40_000
COMPUTE_UNIT_PRICE_MICROLAMPORTS = 1

# SPL token instruction tags
CREATE_ATA_DISCRIMINATOR = 0
TRANSFER_CHECKED_DISCRIMINATOR = 12

# Offset of the decimals byte in an SPL mint account
MINT_DECIMALS_OFFSET = 44


class SolanaRpc:
    """Minimal async Solana JSON-RPC client"""

    def __init__(
        self,
        rpc_url: str = DEFAULT_SOLANA_RPC_URL,
        timeout: float = 30.0,
        commitment: str = "confirmed",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.commitment = commitment
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._request_id = 0

    async def aclose(self) -> None:
        await self.client.aclose()

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Execute one JSON-RPC call and return its result"""
        self._request_id += 1
        body = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        try:
            response = await self.client.post(self.rpc_url, json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise NetworkError(f"Solana RPC {method} timed out after {self.timeout}s") from e
        except (httpx.HTTPError, ValueError) as e:
            raise NetworkError(f"Solana RPC {method} failed: {e}") from e

        if "error" in data:
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise NetworkError(f"Solana RPC {method} error: {message}")

        return data.get("result")

    async def get_latest_blockhash(self) -> str:
        result = await self.call("getLatestBlockhash", [{"commitment": self.commitment}])
        return result["value"]["blockhash"]

    async def get_account_info(self, pubkey: "str | Pubkey") -> Optional[Dict[str, Any]]:
        """Return the account as {owner, data: bytes, lamports}, or None if it does not exist"""
        result = await self.call(
            "getAccountInfo",
            [str(pubkey), {"encoding": "base64", "commitment": self.commitment}],
        )
        value = (result or {}).get("value")
        if value is None:
            return None

        data = value.get("data") or ["", "base64"]
        raw = base64.b64decode(data[0]) if isinstance(data, list) else b""
        return {
            "owner": value.get("owner"),
            "lamports": value.get("lamports", 0),
            "data": raw,
        }


def load_keypair(private_key: str) -> Keypair:
    """
    Load a keypair from hex (with or without 0x) or base58.

    32-byte keys are treated as seeds, 64-byte keys as full secret keys.
    """
    key = private_key.strip()
    try:
        if key.startswith("0x"):
            key_bytes = bytes.fromhex(key[2:])
        elif len(key) in (64, 128) and all(c in "0123456789abcdefABCDEF" for c in key):
            key_bytes = bytes.fromhex(key)
        else:
            key_bytes = base58.b58decode(key)

        if len(key_bytes) == 32:
            return Keypair.from_seed(key_bytes)
        return Keypair.from_bytes(key_bytes)
    except Exception as e:
        raise ValidationError(f"Invalid Solana private key: {e}") from e


def get_associated_token_address(owner: Pubkey, mint: Pubkey, token_program: Pubkey) -> Pubkey:
    """Derive the associated token account for owner/mint under token_program"""
    address, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID),
    )
    return address


def build_create_ata_instruction(
    funder: Pubkey,
    ata: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey,
) -> Instruction:
    """Create the recipient's associated token account, funded by the sender"""
    accounts = [
        AccountMeta(funder, is_signer=True, is_writable=True),
        AccountMeta(ata, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=False, is_writable=False),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(Pubkey.from_string(SYSTEM_PROGRAM_ID), is_signer=False, is_writable=False),
        AccountMeta(token_program, is_signer=False, is_writable=False),
    ]
    return Instruction(
        Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID),
        bytes([CREATE_ATA_DISCRIMINATOR]),
        accounts,
    )


def build_transfer_checked_instruction(
    source: Pubkey,
    mint: Pubkey,
    destination: Pubkey,
    authority: Pubkey,
    amount: int,
    decimals: int,
    token_program: Pubkey,
) -> Instruction:
    """SPL TransferChecked: tag, u64 amount, u8 decimals"""
    data = struct.pack("<BQB", TRANSFER_CHECKED_DISCRIMINATOR, amount, decimals)
    accounts = [
        AccountMeta(source, is_signer=False, is_writable=True),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(destination, is_signer=False, is_writable=True),
        AccountMeta(authority, is_signer=True, is_writable=False),
    ]
    return Instruction(token_program, data, accounts)


class SolanaSigner:
    """
    Signs USDC transfers on Solana.

    The facilitator that settles the payment is the transaction fee payer,
    and the fee payer is part of the signed message: a header is only valid
    for the fee payer it was built for.
    """

    def __init__(
        self,
        private_key: str,
        rpc_url: str = DEFAULT_SOLANA_RPC_URL,
        default_fee_payer: str = DEFAULT_SOLANA_FEE_PAYER,
        rpc: Optional[SolanaRpc] = None,
        timeout: float = 30.0,
    ):
        self.keypair = load_keypair(private_key)
        self.rpc = rpc or SolanaRpc(rpc_url, timeout=timeout)
        self.default_fee_payer = default_fee_payer
        self.mint = Pubkey.from_string(Network.SOLANA.spec.usdc_address)

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    async def aclose(self) -> None:
        await self.rpc.aclose()

    async def detect_token_program(self) -> "tuple[Pubkey, int]":
        """Return the mint's token program (standard or Token-2022) and its decimals"""
        mint_info = await self.rpc.get_account_info(self.mint)
        if mint_info is None:
            raise SigningError(f"USDC mint {self.mint} not found")

        if mint_info["owner"] == TOKEN_2022_PROGRAM_ID:
            program = Pubkey.from_string(TOKEN_2022_PROGRAM_ID)
        else:
            program = Pubkey.from_string(TOKEN_PROGRAM_ID)

        data = mint_info["data"]
        if len(data) <= MINT_DECIMALS_OFFSET:
            raise SigningError("USDC mint account data is malformed")
        return program, data[MINT_DECIMALS_OFFSET]

    async def build_transfer_instructions(
        self,
        destination: Pubkey,
        amount_atomic: int,
    ) -> List[Instruction]:
        """
        Assemble the transfer in the order facilitators require:
        compute limit, compute price, optional ATA creation, transfer.
        """
        sender = self.keypair.pubkey()
        token_program, decimals = await self.detect_token_program()

        source_ata = get_associated_token_address(sender, self.mint, token_program)
        destination_ata = get_associated_token_address(destination, self.mint, token_program)

        instructions = [
            set_compute_unit_limit(COMPUTE_UNIT_LIMIT),
            set_compute_unit_price(COMPUTE_UNIT_PRICE_MICROLAMPORTS),
        ]

        if await self.rpc.get_account_info(destination_ata) is None:
            logger.info("solana_destination_ata_missing", ata=str(destination_ata))
            instructions.append(
                build_create_ata_instruction(
                    sender, destination_ata, destination, self.mint, token_program
                )
            )

        instructions.append(
            build_transfer_checked_instruction(
                source_ata,
                self.mint,
                destination_ata,
                sender,
                amount_atomic,
                decimals,
                token_program,
            )
        )
        return instructions

    def partially_sign(self, message: MessageV0) -> VersionedTransaction:
        """Sign with the sender key, leaving the fee payer slot empty"""
        sender = self.keypair.pubkey()
        num_signers = message.header.num_required_signatures
        signer_keys = list(message.account_keys[:num_signers])
        if sender not in signer_keys:
            raise SigningError(f"Wallet {sender} is not in the required signers list")

        signatures = [Signature.default()] * num_signers
        signatures[signer_keys.index(sender)] = self.keypair.sign_message(
            to_bytes_versioned(message)
        )
        return VersionedTransaction.populate(message, signatures)

    async def sign_payment(
        self,
        to: str,
        amount: str,
        source_network: str,
        destination_network: str,
        fee_payer: Optional[str] = None,
    ) -> str:
        """
        Build and partially sign a USDC transfer, returned as a base64 x402 header.

        Args:
            to: Address the transfer pays (intermediate wallet or bridge deposit)
            amount: Gross decimal amount
            source_network: Network the funds leave from
            destination_network: Network the recipient is on
            fee_payer: Facilitator fee payer; falls back to the default fee payer

        Returns:
            Base64-encoded JSON envelope
        """
        fee_payer = fee_payer or self.default_fee_payer
        try:
            amount_atomic = to_atomic_units(amount)
            destination = Pubkey.from_string(to)
            fee_payer_key = Pubkey.from_string(fee_payer)

            blockhash = await self.rpc.get_latest_blockhash()
            instructions = await self.build_transfer_instructions(destination, amount_atomic)

            message = MessageV0.try_compile(
                fee_payer_key,
                instructions,
                [],
                Hash.from_string(blockhash),
            )
            transaction = self.partially_sign(message)
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"Failed to sign Solana payment: {e}") from e

        payload_data = {
            "transaction": base64.b64encode(bytes(transaction)).decode(),
        }
        if source_network != destination_network:
            payload_data["destinationNetwork"] = destination_network
            payload_data["destinationAddress"] = to

        logger.debug(
            "solana_payment_signed",
            network=source_network,
            to=to,
            amount_atomic=amount_atomic,
            fee_payer=fee_payer,
        )
        return encode_payment_payload(
            PaymentPayload(network=source_network, payload=payload_data)
        )
