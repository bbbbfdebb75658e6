from typing import NamedTuple


class TxOut(NamedTuple):
    """Outputs from a Transaction."""
    # The number of satoshis this awards.
    value: int = 0

    # define pk_script(scriptPublicKey) here
    pk_script: bytes = b''
