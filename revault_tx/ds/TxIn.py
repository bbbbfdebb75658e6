from typing import NamedTuple, Tuple

from revault_tx.ds.OutPoint import OutPoint
from revault_tx.params.Params import Params


class TxIn(NamedTuple):
    """Inputs to a Transaction."""

    # A reference to the output we're spending.
    # Outpoint consist of [txid, txout_idx]
    to_spend: OutPoint

    # define scriptSig (unlocking script) here. Always empty for the native
    # segwit outputs we spend.
    signature_script: bytes = b''

    # A sender-defined sequence number which allows us replacement of the txn
    # if desired, and encodes the relative locktime of the input.
    sequence: int = Params.SEQUENCE_FINAL

    # The witness stack, empty until the input is satisfied.
    witness: Tuple[bytes, ...] = ()
