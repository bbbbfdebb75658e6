"""BIP143 (segwit v0) signature hashes.

The three hashes shared by every input of a transaction (prevouts, sequences,
outputs) are memoized on their content, so asking for the sighash of each
input in turn doesn't rehash the whole transaction.
"""
import logging
import os
import struct
from functools import lru_cache
from typing import Tuple

from revault_tx.ds.OutPoint import OutPoint
from revault_tx.ds.Transaction import Transaction
from revault_tx.ds.TxOut import TxOut
from revault_tx.params.Params import Params
from revault_tx.utils.Errors import SignatureHashError
from revault_tx.utils.Utils import Utils

logging.basicConfig(
    level=getattr(logging, os.environ.get(Params.LOG_LEVEL_ENV, 'INFO')),
    format=Params.LOG_FORMAT)
logger = logging.getLogger(__name__)

SIGHASH_NONE = 0x02
SIGHASH_SINGLE = 0x03

ZERO_HASH = b'\x00' * 32


@lru_cache(maxsize=256)
def _hash_prevouts(outpoints: Tuple[OutPoint, ...]) -> bytes:
    return Utils.sha256d(b''.join(Transaction.serialize_outpoint(o) for o in outpoints))


@lru_cache(maxsize=256)
def _hash_sequence(sequences: Tuple[int, ...]) -> bytes:
    return Utils.sha256d(b''.join(struct.pack('<I', s) for s in sequences))


@lru_cache(maxsize=256)
def _hash_outputs(txouts: Tuple[TxOut, ...]) -> bytes:
    return Utils.sha256d(b''.join(Transaction.serialize_txout(o) for o in txouts))


def signature_hash_preimage(tx: Transaction, input_index: int, amount: int,
                            script_code: bytes, sighash_type: int) -> bytes:
    if not 0 <= input_index < len(tx.txins):
        raise SignatureHashError(f"Input index '{input_index}' out of bounds.")

    base_type = sighash_type & 0x1f
    anyonecanpay = bool(sighash_type & Params.SIGHASH_ANYONECANPAY)
    txin = tx.txins[input_index]

    hash_prevouts = ZERO_HASH
    if not anyonecanpay:
        hash_prevouts = _hash_prevouts(tuple(t.to_spend for t in tx.txins))

    hash_sequence = ZERO_HASH
    if not anyonecanpay and base_type not in (SIGHASH_SINGLE, SIGHASH_NONE):
        hash_sequence = _hash_sequence(tuple(t.sequence for t in tx.txins))

    hash_outputs = ZERO_HASH
    if base_type not in (SIGHASH_SINGLE, SIGHASH_NONE):
        hash_outputs = _hash_outputs(tuple(tx.txouts))
    elif base_type == SIGHASH_SINGLE and input_index < len(tx.txouts):
        hash_outputs = Utils.sha256d(Transaction.serialize_txout(tx.txouts[input_index]))

    return (struct.pack('<i', tx.version)
            + hash_prevouts
            + hash_sequence
            + Transaction.serialize_outpoint(txin.to_spend)
            + Utils.ser_string(script_code)
            + struct.pack('<q', amount)
            + struct.pack('<I', txin.sequence)
            + hash_outputs
            + struct.pack('<I', tx.locktime)
            + struct.pack('<I', sighash_type))


def bip143_sighash(tx: Transaction, input_index: int, amount: int,
                   script_code: bytes, sighash_type: int) -> bytes:
    return Utils.sha256d(
        signature_hash_preimage(tx, input_index, amount, script_code, sighash_type))


def signature_hash(tx: Transaction, input_index: int, previous_txout: TxOut,
                   script_code: bytes, is_anyonecanpay: bool) -> bytes:
    """The digest to sign for spending `previous_txout` with the input at
    `input_index`, signing with either ALL or ALL|ANYONECANPAY.

    `script_code` is the script actually being satisfied: the witness script
    for a P2WSH output, the P2PKH script for a P2WPKH one.
    """
    sighash_type = Params.SIGHASH_ALL_ANYONECANPAY if is_anyonecanpay \
        else Params.SIGHASH_ALL
    sighash = bip143_sighash(tx, input_index, previous_txout.value, script_code,
                             sighash_type)
    logger.debug(f'[sighash] input {input_index} of {tx.id}: {sighash.hex()}')
    return sighash
