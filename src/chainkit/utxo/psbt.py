"""
BIP-174 partially signed transactions for segwit inputs.

Holds the unsigned transaction together with the per-input data needed to
compute signature hashes (BIP-143 for P2WPKH, BIP-341 key path for P2TR),
accepts raw 64-byte r||s signatures from an external signer and extracts
the final witness transaction.

Serialized maps written here:
    global:  0x00 unsigned tx
    input:   0x01 witness utxo, 0x02 partial sig, 0x06 bip32 derivation,
             0x13 taproot key sig, 0x17 taproot internal key
    output:  empty
"""

import base64
import binascii
import struct
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from ecdsa import SECP256k1
from ecdsa.util import sigencode_der

from chainkit.core.errors import PsbtError, UnsupportedAddressTypeError
from chainkit.hashing import double_sha256, sha256, tagged_hash
from chainkit.utxo.script import ScriptType, detect_script_type

PSBT_MAGIC = b"psbt\xff"

PSBT_GLOBAL_UNSIGNED_TX = 0x00
PSBT_IN_WITNESS_UTXO = 0x01
PSBT_IN_PARTIAL_SIG = 0x02
PSBT_IN_BIP32_DERIVATION = 0x06
PSBT_IN_TAP_KEY_SIG = 0x13
PSBT_IN_TAP_INTERNAL_KEY = 0x17

TX_VERSION = 2
SEQUENCE_RBF = 0xFFFFFFFD
SEQUENCE_FINAL = 0xFFFFFFFF

SIGHASH_DEFAULT = 0x00
SIGHASH_ALL = 0x01


def encode_compact_size(value: int) -> bytes:
    """Bitcoin variable length integer."""
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", value)
    if value <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", value)
    return b"\xff" + struct.pack("<Q", value)


def read_compact_size(data: bytes, offset: int) -> Tuple[int, int]:
    """
    Returns:
        Tuple of (value, offset after the integer)
    """
    if offset >= len(data):
        raise PsbtError("unexpected end of data")
    prefix = data[offset]
    if prefix < 0xFD:
        return prefix, offset + 1
    width, fmt = {0xFD: (2, "<H"), 0xFE: (4, "<I"), 0xFF: (8, "<Q")}[prefix]
    if offset + 1 + width > len(data):
        raise PsbtError("unexpected end of data")
    return struct.unpack_from(fmt, data, offset + 1)[0], offset + 1 + width


def _var_bytes(data: bytes) -> bytes:
    return encode_compact_size(len(data)) + data


def _read_var_bytes(data: bytes, offset: int) -> Tuple[bytes, int]:
    length, offset = read_compact_size(data, offset)
    if offset + length > len(data):
        raise PsbtError("unexpected end of data")
    return data[offset:offset + length], offset + length


def der_signature(signature: bytes) -> bytes:
    """
    DER encode a 64-byte r||s ECDSA signature.

    ``s`` is normalised to the lower half of the curve order, which relay
    policy requires.
    """
    order = SECP256k1.order
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    if s > order // 2:
        s = order - s
    return sigencode_der(r, s, order)


@dataclass(frozen=True)
class PsbtInput:
    """
    A spent output plus its signing state.

    ``txid`` is in display (big-endian) order. ``public_key`` is the 33-byte
    compressed key for P2WPKH and the 32-byte x-only internal key for P2TR.
    """
    txid: str
    vout: int
    value: int
    script_pubkey: bytes
    sequence: int = SEQUENCE_RBF
    public_key: Optional[bytes] = None
    partial_sig: Optional[bytes] = None
    tap_key_sig: Optional[bytes] = None

    @property
    def script_type(self) -> ScriptType:
        script_type = detect_script_type(self.script_pubkey)
        if script_type is None:
            raise UnsupportedAddressTypeError(f"Unsupported scriptPubKey: {self.script_pubkey.hex()}")
        return script_type

    @property
    def outpoint(self) -> bytes:
        return bytes.fromhex(self.txid)[::-1] + struct.pack("<I", self.vout)

    @property
    def is_signed(self) -> bool:
        if self.script_type is ScriptType.P2TR:
            return self.tap_key_sig is not None
        return self.partial_sig is not None and self.public_key is not None

    def witness(self) -> List[bytes]:
        if not self.is_signed:
            raise PsbtError(f"Input {self.txid}:{self.vout} is not signed")
        if self.script_type is ScriptType.P2TR:
            return [self.tap_key_sig]
        return [self.partial_sig, self.public_key]


@dataclass(frozen=True)
class PsbtOutput:
    value: int
    script_pubkey: bytes

    def serialize(self) -> bytes:
        return struct.pack("<Q", self.value) + _var_bytes(self.script_pubkey)


@dataclass(frozen=True)
class Psbt:
    """Immutable PSBT; signing returns a new instance."""
    inputs: Tuple[PsbtInput, ...]
    outputs: Tuple[PsbtOutput, ...]
    version: int = TX_VERSION
    locktime: int = 0

    # Transaction serialization

    def unsigned_tx(self) -> bytes:
        """Non-witness serialization with empty scriptSigs."""
        parts = [struct.pack("<I", self.version), encode_compact_size(len(self.inputs))]
        for txin in self.inputs:
            parts.append(txin.outpoint + b"\x00" + struct.pack("<I", txin.sequence))
        parts.append(encode_compact_size(len(self.outputs)))
        parts.extend(output.serialize() for output in self.outputs)
        parts.append(struct.pack("<I", self.locktime))
        return b"".join(parts)

    def txid(self) -> str:
        """Segwit txid: the witness data does not contribute."""
        return double_sha256(self.unsigned_tx())[::-1].hex()

    def extract(self) -> bytes:
        """
        Serialize the final witness transaction.

        Raises:
            PsbtError: If any input lacks its signature
        """
        witnesses = [txin.witness() for txin in self.inputs]

        parts = [struct.pack("<I", self.version), b"\x00\x01", encode_compact_size(len(self.inputs))]
        for txin in self.inputs:
            parts.append(txin.outpoint + b"\x00" + struct.pack("<I", txin.sequence))
        parts.append(encode_compact_size(len(self.outputs)))
        parts.extend(output.serialize() for output in self.outputs)
        for items in witnesses:
            parts.append(encode_compact_size(len(items)))
            parts.extend(_var_bytes(item) for item in items)
        parts.append(struct.pack("<I", self.locktime))
        return b"".join(parts)

    # Signature hashes

    def sighashes(self) -> List[bytes]:
        return [self.sighash(index) for index in range(len(self.inputs))]

    def sighash(self, index: int) -> bytes:
        if self.inputs[index].script_type is ScriptType.P2TR:
            return self._taproot_sighash(index)
        return self._segwit_v0_sighash(index)

    def _segwit_v0_sighash(self, index: int) -> bytes:
        """BIP-143 with SIGHASH_ALL."""
        txin = self.inputs[index]
        hash_prevouts = double_sha256(b"".join(i.outpoint for i in self.inputs))
        hash_sequence = double_sha256(b"".join(struct.pack("<I", i.sequence) for i in self.inputs))
        hash_outputs = double_sha256(b"".join(output.serialize() for output in self.outputs))

        # P2PKH template over the witness program
        script_code = b"\x19\x76\xa9\x14" + txin.script_pubkey[2:22] + b"\x88\xac"

        preimage = b"".join([
            struct.pack("<I", self.version),
            hash_prevouts,
            hash_sequence,
            txin.outpoint,
            script_code,
            struct.pack("<Q", txin.value),
            struct.pack("<I", txin.sequence),
            hash_outputs,
            struct.pack("<I", self.locktime),
            struct.pack("<I", SIGHASH_ALL),
        ])
        return double_sha256(preimage)

    def _taproot_sighash(self, index: int) -> bytes:
        """BIP-341 key path spend with SIGHASH_DEFAULT and no annex."""
        sha_prevouts = sha256(b"".join(i.outpoint for i in self.inputs))
        sha_amounts = sha256(b"".join(struct.pack("<Q", i.value) for i in self.inputs))
        sha_scriptpubkeys = sha256(b"".join(_var_bytes(i.script_pubkey) for i in self.inputs))
        sha_sequences = sha256(b"".join(struct.pack("<I", i.sequence) for i in self.inputs))
        sha_outputs = sha256(b"".join(output.serialize() for output in self.outputs))

        preimage = b"".join([
            b"\x00",  # epoch
            bytes([SIGHASH_DEFAULT]),
            struct.pack("<I", self.version),
            struct.pack("<I", self.locktime),
            sha_prevouts,
            sha_amounts,
            sha_scriptpubkeys,
            sha_sequences,
            sha_outputs,
            b"\x00",  # spend type: key path, no annex
            struct.pack("<I", index),
        ])
        return tagged_hash("TapSighash", preimage)

    # Signing

    def with_signatures(self, signatures: Sequence[bytes]) -> "Psbt":
        """
        Attach one 64-byte r||s signature per input.

        P2WPKH signatures are DER encoded with SIGHASH_ALL appended; P2TR
        signatures are used as-is under SIGHASH_DEFAULT.
        """
        if len(signatures) != len(self.inputs):
            raise PsbtError(f"Expected {len(self.inputs)} signature(s), got {len(signatures)}")

        inputs = []
        for txin, signature in zip(self.inputs, signatures):
            if len(signature) != 64:
                raise PsbtError(f"Invalid signature length: {len(signature)}, expected 64")
            if txin.script_type is ScriptType.P2TR:
                inputs.append(replace(txin, tap_key_sig=bytes(signature)))
            else:
                if txin.public_key is None:
                    raise PsbtError(f"Input {txin.txid}:{txin.vout} has no public key")
                inputs.append(replace(txin, partial_sig=der_signature(signature) + bytes([SIGHASH_ALL])))
        return replace(self, inputs=tuple(inputs))

    @property
    def is_complete(self) -> bool:
        return all(txin.is_signed for txin in self.inputs)

    # PSBT container

    def serialize(self) -> bytes:
        parts = [PSBT_MAGIC]
        parts.append(_key_value(bytes([PSBT_GLOBAL_UNSIGNED_TX]), self.unsigned_tx()))
        parts.append(b"\x00")

        for txin in self.inputs:
            witness_utxo = struct.pack("<Q", txin.value) + _var_bytes(txin.script_pubkey)
            parts.append(_key_value(bytes([PSBT_IN_WITNESS_UTXO]), witness_utxo))

            if txin.script_type is ScriptType.P2TR:
                if txin.public_key is not None:
                    parts.append(_key_value(bytes([PSBT_IN_TAP_INTERNAL_KEY]), _x_only(txin.public_key)))
                if txin.tap_key_sig is not None:
                    parts.append(_key_value(bytes([PSBT_IN_TAP_KEY_SIG]), txin.tap_key_sig))
            elif txin.public_key is not None:
                if txin.partial_sig is not None:
                    parts.append(_key_value(bytes([PSBT_IN_PARTIAL_SIG]) + txin.public_key, txin.partial_sig))
                # Unknown master fingerprint, empty path; keeps the key across round trips
                parts.append(_key_value(bytes([PSBT_IN_BIP32_DERIVATION]) + txin.public_key, b"\x00" * 4))
            parts.append(b"\x00")

        parts.extend(b"\x00" for _ in self.outputs)
        return b"".join(parts)

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode("ascii")

    @classmethod
    def parse(cls, data: bytes) -> "Psbt":
        """
        Parse a serialized PSBT.

        Raises:
            PsbtError: On bad magic, truncation or missing witness utxos
        """
        if not data.startswith(PSBT_MAGIC):
            raise PsbtError("Invalid PSBT magic")

        offset = len(PSBT_MAGIC)
        global_map, offset = _read_map(data, offset)
        unsigned = global_map.get(bytes([PSBT_GLOBAL_UNSIGNED_TX]))
        if unsigned is None:
            raise PsbtError("PSBT has no unsigned transaction")

        version, raw_inputs, outputs, locktime = _parse_unsigned_tx(unsigned)

        inputs = []
        for txid, vout, sequence in raw_inputs:
            entries, offset = _read_map(data, offset)
            witness_utxo = entries.get(bytes([PSBT_IN_WITNESS_UTXO]))
            if witness_utxo is None or len(witness_utxo) < 9:
                raise PsbtError(f"Input {txid}:{vout} has no witness utxo")
            value = struct.unpack_from("<Q", witness_utxo)[0]
            script_pubkey, _ = _read_var_bytes(witness_utxo, 8)

            public_key = entries.get(bytes([PSBT_IN_TAP_INTERNAL_KEY]))
            partial_sig = None
            for key, entry in entries.items():
                if key[0] == PSBT_IN_BIP32_DERIVATION and public_key is None:
                    public_key = key[1:]
                elif key[0] == PSBT_IN_PARTIAL_SIG:
                    public_key = key[1:]
                    partial_sig = entry

            inputs.append(PsbtInput(
                txid=txid,
                vout=vout,
                value=value,
                script_pubkey=script_pubkey,
                sequence=sequence,
                public_key=public_key,
                partial_sig=partial_sig,
                tap_key_sig=entries.get(bytes([PSBT_IN_TAP_KEY_SIG])),
            ))

        for _ in outputs:
            _, offset = _read_map(data, offset)

        return cls(tuple(inputs), tuple(outputs), version, locktime)

    @classmethod
    def from_base64(cls, text: str) -> "Psbt":
        try:
            data = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError):
            raise PsbtError("PSBT is not valid base64")
        return cls.parse(data)


def _x_only(public_key: bytes) -> bytes:
    return public_key[1:] if len(public_key) == 33 else public_key


def _key_value(key: bytes, value: bytes) -> bytes:
    return _var_bytes(key) + _var_bytes(value)


def _read_map(data: bytes, offset: int) -> Tuple[Dict[bytes, bytes], int]:
    entries: Dict[bytes, bytes] = {}
    while True:
        key_length, offset = read_compact_size(data, offset)
        if key_length == 0:
            return entries, offset
        key = data[offset:offset + key_length]
        offset += key_length
        value, offset = _read_var_bytes(data, offset)
        entries[key] = value


def _parse_unsigned_tx(data: bytes) -> Tuple[int, List[Tuple[str, int, int]], List[PsbtOutput], int]:
    try:
        version = struct.unpack_from("<I", data, 0)[0]
        count, offset = read_compact_size(data, 4)

        inputs = []
        for _ in range(count):
            txid = data[offset:offset + 32][::-1].hex()
            vout = struct.unpack_from("<I", data, offset + 32)[0]
            script_sig, offset = _read_var_bytes(data, offset + 36)
            if script_sig:
                raise PsbtError("Unsigned transaction has a non-empty scriptSig")
            sequence = struct.unpack_from("<I", data, offset)[0]
            offset += 4
            inputs.append((txid, vout, sequence))

        count, offset = read_compact_size(data, offset)
        outputs = []
        for _ in range(count):
            value = struct.unpack_from("<Q", data, offset)[0]
            script, offset = _read_var_bytes(data, offset + 8)
            outputs.append(PsbtOutput(value, script))

        locktime = struct.unpack_from("<I", data, offset)[0]
    except struct.error as e:
        raise PsbtError(f"Truncated unsigned transaction: {e}")
    return version, inputs, outputs, locktime
