import logging
import os
from typing import Dict, Optional, Tuple

from revault_tx.ds.RevaultTransaction import RevaultTransaction
from revault_tx.params.Params import Params
from revault_tx.script.BaseSatisfier import BaseSatisfier
from revault_tx.script.descriptors import Descriptor
from revault_tx.utils.Errors import InputSatisfactionError, SatisfactionError
from revault_tx.utils.Utils import Utils

logging.basicConfig(
    level=getattr(logging, os.environ.get(Params.LOG_LEVEL_ENV, 'INFO')),
    format=Params.LOG_FORMAT)
logger = logging.getLogger(__name__)


# A DER-encoded signature along with its sighash type
BitcoinSig = Tuple[bytes, int]


class RevaultInputSatisfier(BaseSatisfier):
    """The signatures collected for one input, queried by the descriptor."""

    def __init__(self, sequence: int):
        self.pkhashmap: Dict[bytes, bytes] = {}
        self.sigmap: Dict[bytes, BitcoinSig] = {}
        self.sequence = sequence

    def insert_sig(self, pubkey: bytes, sig: bytes,
                   is_anyonecanpay: bool) -> Optional[BitcoinSig]:
        """Store the signature for this key, returning the one it replaces if any."""
        self.pkhashmap[Utils.hash160(pubkey)] = pubkey
        previous = self.sigmap.get(pubkey)
        self.sigmap[pubkey] = (sig, Params.SIGHASH_ALL_ANYONECANPAY if is_anyonecanpay
                               else Params.SIGHASH_ALL)
        return previous

    def lookup_sig(self, pubkey):
        return self.sigmap.get(pubkey)

    def lookup_pkh_sig(self, keyhash):
        pubkey = self.pkhashmap.get(keyhash)
        if pubkey is None:
            return None
        sig = self.sigmap.get(pubkey)
        if sig is None:
            return None
        return pubkey, sig

    def check_older(self, csv):
        # The sequence is set to the CSV of the unvault script by the spend
        # transaction, anything else is a mistake.
        return csv == self.sequence


class RevaultSatisfier(object):
    """Fills the witness of one input of a Revault transaction once enough
    signatures have been collected for the descriptor of the output it spends."""

    def __init__(self, transaction: RevaultTransaction, input_index: int,
                 descriptor: Descriptor):
        txins = transaction.inner_tx().txins
        if not 0 <= input_index < len(txins):
            logger.info(f'[satisfier] input index {input_index} out of bounds '
                        f'for {transaction.txid()}')
            raise InputSatisfactionError(f"Input index '{input_index}' out of bounds.")

        self.transaction = transaction
        self.input_index = input_index
        self.descriptor = descriptor
        self.satisfier = RevaultInputSatisfier(txins[input_index].sequence)

    def insert_sig(self, pubkey: bytes, sig: bytes,
                   is_anyonecanpay: bool) -> Optional[BitcoinSig]:
        return self.satisfier.insert_sig(pubkey, sig, is_anyonecanpay)

    def satisfy(self):
        """Set the witness of the input.

        :raises InputSatisfactionError: if we don't have what it takes yet.
        """
        tx = self.transaction.inner_tx_mut()
        try:
            txin = self.descriptor.satisfy(tx.txins[self.input_index], self.satisfier)
        except SatisfactionError as e:
            logger.info(f'[satisfier] input {self.input_index} of '
                        f'{self.transaction.txid()}: {e.msg}')
            raise InputSatisfactionError(f'Script satisfaction error: {e.msg}.')

        tx.txins[self.input_index] = txin
        logger.debug(f'[satisfier] input {self.input_index} of '
                     f'{self.transaction.txid()} satisfied')
