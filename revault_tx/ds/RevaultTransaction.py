"""The transactions of the Revault protocol.

Each class wraps the plain `Transaction` of one step of the protocol. The
constructors only take the role-tagged prevouts and txouts the step may
consume and create, and the per-class `signature_hash` only accepts the
previous outputs the step may spend:

    Unvault           spends a vault txo, creates an unvault and a cpfp txo
    Cancel            spends an unvault txo, creates a vault txo
    Emergency         spends a vault txo, creates an emergency txo
    UnvaultEmergency  spends an unvault txo, creates an emergency txo
    Spend             spends unvault txos, creates spend and change txos

Cancel and both emergency transactions may spend an additional fee-bumping
input. Vault and FeeBump transactions are built by an external wallet and only
wrapped here.
"""
import logging
import os
import struct
from typing import List, Optional, Sequence, Tuple

from revault_tx.consensus.Consensus import verify_revault_transaction
from revault_tx.consensus.Sighash import signature_hash
from revault_tx.ds.OutPoint import OutPoint
from revault_tx.ds.Prevouts import FeeBumpPrevout, RevaultPrevout, UnvaultPrevout, VaultPrevout
from revault_tx.ds.Transaction import Transaction
from revault_tx.ds.TxIn import TxIn
from revault_tx.ds.TxOuts import (
    CancelPrevTxout, CpfpTxOut, EmergencyPrevTxout, EmergencyTxOut, RevaultTxOut,
    SpendTxOutput, UnvaultEmerPrevTxout, UnvaultTxOut, VaultTxOut)
from revault_tx.params.Params import Params
from revault_tx.utils.Errors import (
    SignatureHashError, TransactionCreationError, TransactionEncodingError)

logging.basicConfig(
    level=getattr(logging, os.environ.get(Params.LOG_LEVEL_ENV, 'INFO')),
    format=Params.LOG_FORMAT)
logger = logging.getLogger(__name__)


def create_tx(inputs: Sequence[Tuple[RevaultPrevout, int]],
              txouts: Sequence[RevaultTxOut]) -> Transaction:
    """Assemble a transaction from (prevout, sequence) pairs and outputs, in
    the given order."""
    return Transaction(
        version=Params.TX_VERSION,
        txins=[TxIn(to_spend=prevout.outpoint(), sequence=sequence)
               for prevout, sequence in inputs],
        txouts=[txout.get_txout() for txout in txouts],
        locktime=Params.TX_LOCKTIME)


def _check_role(variant: str, value, role: type, error=TransactionCreationError):
    if not isinstance(value, role):
        logger.info(f'[ds] {variant}: refusing {value!r}, expected a {role.__name__}')
        raise error(f'{variant} can not use {value!r}: expected a {role.__name__}.')


def _check_sequence(variant: str, sequence):
    if not isinstance(sequence, int) or not 0 <= sequence <= Params.SEQUENCE_FINAL:
        logger.info(f'[ds] {variant}: refusing sequence {sequence!r}')
        raise TransactionCreationError(
            f'{variant} can not use sequence {sequence!r}: not a 32 bits unsigned integer.')


def _revault_inputs(variant: str, prevout: RevaultPrevout, prevout_role: type,
                    feebump_input: Optional[FeeBumpPrevout]):
    """The inputs of a revaulting transaction: the spent txo and the optional
    fee bumping one, last. They all signal for RBF."""
    _check_role(variant, prevout, prevout_role)
    inputs = [(prevout, Params.RBF_SEQUENCE)]
    if feebump_input is not None:
        _check_role(variant, feebump_input, FeeBumpPrevout)
        inputs.append((feebump_input, Params.RBF_SEQUENCE))
    return inputs


class RevaultTransaction(object):

    def __init__(self, transaction: Transaction):
        if not isinstance(transaction, Transaction):
            raise TransactionCreationError(f'Expected a Transaction, got {transaction!r}')
        self._transaction = transaction

    def inner_tx(self) -> Transaction:
        return self._transaction

    def inner_tx_mut(self) -> Transaction:
        """The wrapped transaction, whose inputs' witnesses can be replaced in place."""
        return self._transaction

    def into_prevout(self, vout: int) -> OutPoint:
        """A reference to one of our outputs, to wrap in a role-tagged prevout."""
        return OutPoint(self.txid(), vout)

    def txid(self) -> str:
        return self._transaction.id

    def serialize(self) -> bytes:
        return self._transaction.serialize()

    def hex(self) -> str:
        try:
            return self.serialize().hex()
        except (struct.error, ValueError, TypeError) as e:
            logger.error(f'[ds] could not encode {type(self).__name__}: {e}')
            raise TransactionEncodingError(f'Transaction serialization error: {e}')

    def verify(self, previous_transactions):
        """Check the transaction against the ones it spends.

        :raises TransactionVerificationError: if it would not be valid.
        """
        verify_revault_transaction(self, previous_transactions)

    def _signature_hash(self, input_index: int, previous_txout: RevaultTxOut,
                        script_code: bytes, is_anyonecanpay: bool) -> bytes:
        return signature_hash(self._transaction, input_index,
                              previous_txout.inner_txout(), script_code, is_anyonecanpay)

    def __eq__(self, other):
        return type(self) is type(other) and self._transaction == other._transaction

    def __repr__(self):
        return f'{type(self).__name__}({self.hex()})'


class VaultTransaction(RevaultTransaction):
    """The funding transaction, creating a vault txo. Never built here."""

    @classmethod
    def from_hex(cls, hex_tx: str) -> 'VaultTransaction':
        return cls(Transaction.from_hex(hex_tx))


class FeeBumpTransaction(RevaultTransaction):
    """A wallet transaction whose output is used to bump a revaulting transaction's
    feerate. Never built here."""

    @classmethod
    def from_hex(cls, hex_tx: str) -> 'FeeBumpTransaction':
        return cls(Transaction.from_hex(hex_tx))


class UnvaultTransaction(RevaultTransaction):

    @classmethod
    def new(cls, vault_input: Tuple[VaultPrevout, int], unvault_txout: UnvaultTxOut,
            cpfp_txout: CpfpTxOut) -> 'UnvaultTransaction':
        """An unvault transaction spending a vault txo with the given sequence,
        creating the unvault txo and its CPFP anchor."""
        prevout, sequence = vault_input
        _check_role('Unvault', prevout, VaultPrevout)
        _check_role('Unvault', unvault_txout, UnvaultTxOut)
        _check_role('Unvault', cpfp_txout, CpfpTxOut)
        _check_sequence('Unvault', sequence)

        return cls(create_tx([(prevout, sequence)], [unvault_txout, cpfp_txout]))

    def signature_hash(self, input_index: int, previous_txout: VaultTxOut,
                       script_code: bytes) -> bytes:
        """The digest to sign for the vault input. Always SIGHASH_ALL."""
        _check_role('Unvault', previous_txout, VaultTxOut, SignatureHashError)
        return self._signature_hash(input_index, previous_txout, script_code, False)


class CancelTransaction(RevaultTransaction):

    @classmethod
    def new(cls, unvault_input: UnvaultPrevout, feebump_input: Optional[FeeBumpPrevout],
            vault_txout: VaultTxOut) -> 'CancelTransaction':
        """A cancel transaction, sending an unvault txo back to a vault."""
        inputs = _revault_inputs('Cancel', unvault_input, UnvaultPrevout, feebump_input)
        _check_role('Cancel', vault_txout, VaultTxOut)

        return cls(create_tx(inputs, [vault_txout]))

    def signature_hash(self, input_index: int, previous_txout: CancelPrevTxout,
                       script_code: bytes, is_anyonecanpay: bool) -> bytes:
        _check_role('Cancel', previous_txout, CancelPrevTxout, SignatureHashError)
        return self._signature_hash(input_index, previous_txout, script_code,
                                    is_anyonecanpay)


class EmergencyTransaction(RevaultTransaction):

    @classmethod
    def new(cls, vault_input: VaultPrevout, feebump_input: Optional[FeeBumpPrevout],
            emer_txout: EmergencyTxOut) -> 'EmergencyTransaction':
        """An emergency transaction, sending a vault txo to The Emergency Script."""
        inputs = _revault_inputs('Emergency', vault_input, VaultPrevout, feebump_input)
        _check_role('Emergency', emer_txout, EmergencyTxOut)

        return cls(create_tx(inputs, [emer_txout]))

    def signature_hash(self, input_index: int, previous_txout: EmergencyPrevTxout,
                       script_code: bytes, is_anyonecanpay: bool) -> bytes:
        _check_role('Emergency', previous_txout, EmergencyPrevTxout, SignatureHashError)
        return self._signature_hash(input_index, previous_txout, script_code,
                                    is_anyonecanpay)


class UnvaultEmergencyTransaction(RevaultTransaction):

    @classmethod
    def new(cls, unvault_input: UnvaultPrevout, feebump_input: Optional[FeeBumpPrevout],
            emer_txout: EmergencyTxOut) -> 'UnvaultEmergencyTransaction':
        """An emergency transaction, sending an unvault txo to The Emergency Script."""
        inputs = _revault_inputs('UnvaultEmergency', unvault_input, UnvaultPrevout,
                                 feebump_input)
        _check_role('UnvaultEmergency', emer_txout, EmergencyTxOut)

        return cls(create_tx(inputs, [emer_txout]))

    def signature_hash(self, input_index: int, previous_txout: UnvaultEmerPrevTxout,
                       script_code: bytes, is_anyonecanpay: bool) -> bytes:
        _check_role('UnvaultEmergency', previous_txout, UnvaultEmerPrevTxout,
                    SignatureHashError)
        return self._signature_hash(input_index, previous_txout, script_code,
                                    is_anyonecanpay)


class SpendTransaction(RevaultTransaction):

    @classmethod
    def new(cls, unvault_inputs: List[UnvaultPrevout], spend_txouts: List[SpendTxOutput],
            sequence: int) -> 'SpendTransaction':
        """A spend transaction, paying out of unvault txos once their relative
        timelock (`sequence`, set on every input) has matured. A `VaultTxOut` among
        the outputs is the change."""
        if not unvault_inputs:
            raise TransactionCreationError('Spend needs at least one input.')
        if not spend_txouts:
            raise TransactionCreationError('Spend needs at least one output.')
        for prevout in unvault_inputs:
            _check_role('Spend', prevout, UnvaultPrevout)
        for txout in spend_txouts:
            _check_role('Spend', txout, SpendTxOutput)
        _check_sequence('Spend', sequence)

        return cls(create_tx([(prevout, sequence) for prevout in unvault_inputs],
                             spend_txouts))

    def signature_hash(self, input_index: int, previous_txout: UnvaultTxOut,
                       script_code: bytes) -> bytes:
        """The digest to sign for an unvault input. Always SIGHASH_ALL."""
        _check_role('Spend', previous_txout, UnvaultTxOut, SignatureHashError)
        return self._signature_hash(input_index, previous_txout, script_code, False)
