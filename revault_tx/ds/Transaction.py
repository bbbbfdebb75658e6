import logging
import os
import struct
from io import BytesIO
from typing import List, NamedTuple

from revault_tx.ds.OutPoint import OutPoint
from revault_tx.ds.TxIn import TxIn
from revault_tx.ds.TxOut import TxOut
from revault_tx.params.Params import Params
from revault_tx.utils.Errors import TxDeserializationError
from revault_tx.utils.Utils import Utils

logging.basicConfig(
    level=getattr(logging, os.environ.get(Params.LOG_LEVEL_ENV, 'INFO')),
    format=Params.LOG_FORMAT)
logger = logging.getLogger(__name__)


class Transaction(NamedTuple):
    version: int
    txins: List[TxIn]
    txouts: List[TxOut]

    locktime: int = Params.TX_LOCKTIME

    @property
    def has_witness(self) -> bool:
        return any(txin.witness for txin in self.txins)

    @property
    def id(self) -> str:
        """The txid, which commits to everything but the witnesses."""
        return Utils.sha256d(self.serialize(with_witness=False))[::-1].hex()

    @property
    def wtxid(self) -> str:
        return Utils.sha256d(self.serialize())[::-1].hex()

    # ——————————————————consensus encoding——————————————————

    @staticmethod
    def serialize_outpoint(outpoint: OutPoint) -> bytes:
        return bytes.fromhex(outpoint.txid)[::-1] + struct.pack('<I', outpoint.txout_idx)

    @staticmethod
    def serialize_txout(txout: TxOut) -> bytes:
        return struct.pack('<q', txout.value) + Utils.ser_string(txout.pk_script)

    def serialize(self, with_witness: bool = True) -> bytes:
        """Network serialization, with the BIP144 witness encoding if any input
        carries a witness and `with_witness` is set."""
        with_witness = with_witness and self.has_witness

        raw = struct.pack('<i', self.version)
        if with_witness:
            # marker and flag
            raw += b'\x00\x01'

        raw += Utils.ser_compact_size(len(self.txins))
        for txin in self.txins:
            raw += self.serialize_outpoint(txin.to_spend)
            raw += Utils.ser_string(txin.signature_script)
            raw += struct.pack('<I', txin.sequence)

        raw += Utils.ser_compact_size(len(self.txouts))
        for txout in self.txouts:
            raw += self.serialize_txout(txout)

        if with_witness:
            for txin in self.txins:
                raw += Utils.ser_compact_size(len(txin.witness))
                for item in txin.witness:
                    raw += Utils.ser_string(item)

        raw += struct.pack('<I', self.locktime)
        return raw

    @classmethod
    def deserialize(cls, raw: bytes) -> 'Transaction':
        f = BytesIO(raw)

        version = struct.unpack('<i', Utils.read_exact(f, 4))[0]

        with_witness = False
        n_txins = Utils.deser_compact_size(f)
        if n_txins == 0:
            # Either the BIP144 marker or a transaction without inputs. We
            # never deal with the latter.
            flag = struct.unpack('<B', Utils.read_exact(f, 1))[0]
            if flag != 0x01:
                raise TxDeserializationError(f'Unknown segwit flag {flag}')
            with_witness = True
            n_txins = Utils.deser_compact_size(f)

        txins = []
        for _ in range(n_txins):
            txid = Utils.read_exact(f, 32)[::-1].hex()
            txout_idx = struct.unpack('<I', Utils.read_exact(f, 4))[0]
            signature_script = Utils.deser_string(f)
            sequence = struct.unpack('<I', Utils.read_exact(f, 4))[0]
            txins.append(TxIn(to_spend=OutPoint(txid, txout_idx),
                              signature_script=signature_script,
                              sequence=sequence))

        txouts = []
        for _ in range(Utils.deser_compact_size(f)):
            value = struct.unpack('<q', Utils.read_exact(f, 8))[0]
            txouts.append(TxOut(value=value, pk_script=Utils.deser_string(f)))

        if with_witness:
            for i, txin in enumerate(txins):
                witness = tuple(Utils.deser_string(f)
                                for _ in range(Utils.deser_compact_size(f)))
                txins[i] = txin._replace(witness=witness)
            if not any(txin.witness for txin in txins):
                raise TxDeserializationError('Superfluous witness record')

        locktime = struct.unpack('<I', Utils.read_exact(f, 4))[0]

        if f.read(1):
            raise TxDeserializationError('Trailing data after transaction')

        return cls(version=version, txins=txins, txouts=txouts, locktime=locktime)

    @classmethod
    def from_hex(cls, hex_tx: str) -> 'Transaction':
        try:
            raw = bytes.fromhex(hex_tx)
        except ValueError as e:
            logger.info(f'[ds] invalid transaction hex: {e}')
            raise TxDeserializationError(f'Invalid hex: {e}')
        return cls.deserialize(raw)

    def validate_basics(self):
        """Sanity checks which libbitcoinconsensus-style verification does not
        perform on its own."""
        if not self.txins:
            raise TxDeserializationError('Missing txins')
        if not self.txouts:
            raise TxDeserializationError('Missing txouts')
        if any(not 0 <= txout.value <= Params.MAX_MONEY for txout in self.txouts):
            raise TxDeserializationError('Output value out of range')
        if sum(txout.value for txout in self.txouts) > Params.MAX_MONEY:
            raise TxDeserializationError('Spend value too high')
