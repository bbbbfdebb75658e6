from typing import NamedTuple


class OutPoint(NamedTuple):
    """Used to represent the specific output within a transaction."""

    # The ID of the transaction holding the output, as a big-endian hex string
    # (the way explorers and bitcoind display it).
    txid: str

    txout_idx: int

    def __str__(self):
        return f'{self.txid}:{self.txout_idx}'
