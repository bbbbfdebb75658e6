import hashlib

import ecdsa
import pytest
from ecdsa.util import sigencode_der_canonize

from revault_tx.ds.OutPoint import OutPoint
from revault_tx.ds.Transaction import Transaction
from revault_tx.ds.TxIn import TxIn
from revault_tx.ds.TxOut import TxOut
from revault_tx.params.Params import Params
from revault_tx.script import descriptors

CSV_VALUE = 42


def privkey(secret: int) -> ecdsa.SigningKey:
    return ecdsa.SigningKey.from_secret_exponent(secret, curve=ecdsa.SECP256k1)


def pubkey(signing_key: ecdsa.SigningKey) -> bytes:
    return signing_key.get_verifying_key().to_string('compressed')


def sign(signing_key: ecdsa.SigningKey, sighash: bytes) -> bytes:
    """Low-S DER signature of a 32 bytes digest, without the sighash type."""
    return signing_key.sign_digest_deterministic(
        sighash, hashfunc=hashlib.sha256, sigencode=sigencode_der_canonize)


class Stakeholders(object):
    """The participants of a deployment, with deterministic keys."""

    def __init__(self, n_managers=2, n_non_managers=3, n_emergency=2):
        secret = 1
        self.managers = [privkey(secret + i) for i in range(n_managers)]
        secret += n_managers
        self.non_managers = [privkey(secret + i) for i in range(n_non_managers)]
        secret += n_non_managers
        self.cosigners = [privkey(secret + i) for i in range(n_non_managers)]
        secret += n_non_managers
        self.emergency = [privkey(secret + i) for i in range(n_emergency)]
        secret += n_emergency
        self.feebump = privkey(secret)

        self.vault_descriptor = descriptors.vault_descriptor(
            [pubkey(k) for k in self.managers + self.non_managers])
        self.unvault_descriptor = descriptors.unvault_descriptor(
            [pubkey(k) for k in self.non_managers], [pubkey(k) for k in self.managers],
            [pubkey(k) for k in self.cosigners], CSV_VALUE)
        self.cpfp_descriptor = descriptors.unvault_cpfp_descriptor(
            [pubkey(k) for k in self.managers])
        self.emergency_descriptor = descriptors.emergency_descriptor(
            [pubkey(k) for k in self.emergency])
        self.feebump_descriptor = descriptors.feebump_descriptor(pubkey(self.feebump))

    @property
    def participants(self):
        return self.managers + self.non_managers


@pytest.fixture
def stakeholders():
    return Stakeholders()


def external_tx(pk_script: bytes, value: int, seed: int = 0) -> Transaction:
    """A transaction created by some wallet, paying `value` to `pk_script`."""
    funding = OutPoint(hashlib.sha256(bytes([seed])).hexdigest(), 0)
    return Transaction(version=Params.TX_VERSION,
                       txins=[TxIn(to_spend=funding, sequence=Params.RBF_SEQUENCE)],
                       txouts=[TxOut(value=value, pk_script=pk_script)])


# BIP143, native P2WPKH example
BIP143_UNSIGNED_TX = (
    '0100000002fff7f7881a8099afa6940d42d1e7f6362bec38171ea3edf433541db4e4ad969f0000000000eeff'
    'ffffef51e1b804cc89d182d279655c3aa89e815b1b309fe287d9b2b55d57b90ec68a0100000000ffffffff02'
    '202cb206000000001976a9148280b37df378db99f66f85c95a783a76ac7a6d5988ac9093510d000000001976'
    'a9143bde42dbee7e4dbe6a21b2d50ce2f0167faa815988ac11000000')
BIP143_PUBKEY_HASH = '1d0f172a0ecb48aee1be1f2687d2963ae33f71a1'
BIP143_AMOUNT = 600000000
BIP143_PRIVKEY = '619c335025c7f4012e556c2a58b2506e30b8511b53ade95ea316fd8c3286feb9'
BIP143_PUBKEY = '025476c2e83188368da1ff3e292e7acafcdb3566bb0ad253f62fc70f07aeee6357'
