"""
Solana legacy message compilation and wire serialization.

Message layout:
    header (3 bytes)
    compact-u16 account count + 32-byte keys
    32-byte recent blockhash
    compact-u16 instruction count + instructions

Each instruction is a program-index byte, a compact-u16 prefixed list of
account indices and compact-u16 prefixed opaque data.
"""

import base64
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from chainkit.codec import b58decode, b58encode, encode_compact_u16, pack_u32_le, pack_u64_le
from chainkit.core.errors import CodecError

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
SPL_TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
SPL_TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
COMPUTE_BUDGET_PROGRAM_ID = "ComputeBudget111111111111111111111111111111"

TOKEN_PROGRAM_IDS = (SPL_TOKEN_PROGRAM_ID, SPL_TOKEN_2022_PROGRAM_ID)

PUBKEY_LENGTH = 32
SIGNATURE_LENGTH = 64


@dataclass(frozen=True)
class AccountMeta:
    pubkey: str
    is_signer: bool
    is_writable: bool


@dataclass(frozen=True)
class Instruction:
    """A program invocation; ``data`` is base64 encoded."""
    program_id: str
    accounts: Tuple[AccountMeta, ...]
    data: str

    @property
    def data_bytes(self) -> bytes:
        return base64.b64decode(self.data)


@dataclass(frozen=True)
class MessageHeader:
    num_required_signatures: int
    num_readonly_signed_accounts: int
    num_readonly_unsigned_accounts: int

    def to_bytes(self) -> bytes:
        return bytes([
            self.num_required_signatures,
            self.num_readonly_signed_accounts,
            self.num_readonly_unsigned_accounts,
        ])


def is_valid_solana_address(address: str) -> bool:
    """A Solana address is 32-44 base58 characters decoding to 32 bytes."""
    if not isinstance(address, str) or not 32 <= len(address) <= 44:
        return False
    try:
        return len(b58decode(address)) == PUBKEY_LENGTH
    except CodecError:
        return False


def decode_pubkey(address: str) -> bytes:
    key = b58decode(address)
    if len(key) != PUBKEY_LENGTH:
        raise CodecError(f"public key must be {PUBKEY_LENGTH} bytes: {address}")
    return key


def compile_account_keys(
    fee_payer: str,
    instructions: Sequence[Instruction],
) -> Tuple[MessageHeader, List[str]]:
    """
    Build the deduplicated, ordered account list for a message.

    Order: fee payer, other signer+writable, signer+readonly,
    non-signer+writable, non-signer+readonly. Repeated mentions OR their
    permissions together, and every program id is added as a readonly
    non-signer if not already present.

    Returns:
        Tuple of (header, ordered account keys)
    """
    metas: Dict[str, List[bool]] = {fee_payer: [True, True]}

    for ix in instructions:
        if ix.program_id not in metas:
            metas[ix.program_id] = [False, False]
        for account in ix.accounts:
            existing = metas.get(account.pubkey)
            if existing is None:
                metas[account.pubkey] = [account.is_signer, account.is_writable]
            else:
                existing[0] = existing[0] or account.is_signer
                existing[1] = existing[1] or account.is_writable

    signers_writable: List[str] = []
    signers_readonly: List[str] = []
    non_signers_writable: List[str] = []
    non_signers_readonly: List[str] = []

    for pubkey, (is_signer, is_writable) in metas.items():
        if pubkey == fee_payer:
            continue
        if is_signer:
            (signers_writable if is_writable else signers_readonly).append(pubkey)
        else:
            (non_signers_writable if is_writable else non_signers_readonly).append(pubkey)

    ordered = [fee_payer] + signers_writable + signers_readonly + non_signers_writable + non_signers_readonly
    header = MessageHeader(
        num_required_signatures=1 + len(signers_writable) + len(signers_readonly),
        num_readonly_signed_accounts=len(signers_readonly),
        num_readonly_unsigned_accounts=len(non_signers_readonly),
    )
    return header, ordered


def serialize_message(
    fee_payer: str,
    recent_blockhash: str,
    instructions: Sequence[Instruction],
) -> bytes:
    """Serialize a legacy message ready for ed25519 signing."""
    header, account_keys = compile_account_keys(fee_payer, instructions)
    index = {pubkey: i for i, pubkey in enumerate(account_keys)}

    blockhash = b58decode(recent_blockhash)
    if len(blockhash) != 32:
        raise CodecError(f"recent blockhash must be 32 bytes: {recent_blockhash}")

    parts = [header.to_bytes(), encode_compact_u16(len(account_keys))]
    parts.extend(decode_pubkey(pubkey) for pubkey in account_keys)
    parts.append(blockhash)

    parts.append(encode_compact_u16(len(instructions)))
    for ix in instructions:
        parts.append(bytes([index[ix.program_id]]))
        parts.append(encode_compact_u16(len(ix.accounts)))
        parts.append(bytes(index[account.pubkey] for account in ix.accounts))
        data = ix.data_bytes
        parts.append(encode_compact_u16(len(data)))
        parts.append(data)

    return b"".join(parts)


def serialize_transaction(signatures: Sequence[bytes], message: bytes) -> bytes:
    """Prefix a message with its compact-u16 counted 64-byte signatures."""
    parts = [encode_compact_u16(len(signatures))]
    for signature in signatures:
        if len(signature) != SIGNATURE_LENGTH:
            raise CodecError(f"Invalid signature length: {len(signature)}, expected {SIGNATURE_LENGTH}")
        parts.append(bytes(signature))
    parts.append(message)
    return b"".join(parts)


def signature_to_txid(signature: bytes) -> str:
    """The transaction id is the base58 of the fee payer's signature."""
    return b58encode(signature)


# ============================================================================
# Instruction encoders
# ============================================================================

def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def system_transfer(from_pubkey: str, to_pubkey: str, lamports: int) -> Instruction:
    """System program Transfer: u32 index 2 followed by the u64 amount."""
    return Instruction(
        program_id=SYSTEM_PROGRAM_ID,
        accounts=(
            AccountMeta(from_pubkey, is_signer=True, is_writable=True),
            AccountMeta(to_pubkey, is_signer=False, is_writable=True),
        ),
        data=_b64(pack_u32_le(2) + pack_u64_le(lamports)),
    )


def token_transfer(
    source: str,
    destination: str,
    owner: str,
    amount: int,
    program_id: str = SPL_TOKEN_PROGRAM_ID,
) -> Instruction:
    """SPL token Transfer: u8 index 3 followed by the u64 amount."""
    return Instruction(
        program_id=program_id,
        accounts=(
            AccountMeta(source, is_signer=False, is_writable=True),
            AccountMeta(destination, is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=True, is_writable=False),
        ),
        data=_b64(bytes([3]) + pack_u64_le(amount)),
    )


def set_compute_unit_limit(units: int) -> Instruction:
    return Instruction(COMPUTE_BUDGET_PROGRAM_ID, (), _b64(bytes([2]) + pack_u32_le(units)))


def set_compute_unit_price(micro_lamports: int) -> Instruction:
    return Instruction(COMPUTE_BUDGET_PROGRAM_ID, (), _b64(bytes([3]) + pack_u64_le(micro_lamports)))
