"""Role-tagged transaction outputs.

A role-tagged txout is either an output we create (it materializes into the
plain `TxOut` of a new transaction with `get_txout()`) or the output a
transaction input spends (its value and script feed the sighash computation
through `inner_txout()`).
"""
from revault_tx.ds.TxOut import TxOut


class RevaultTxOut(object):

    def __init__(self, txout: TxOut):
        if not isinstance(txout, TxOut):
            raise TypeError(f'Expected a TxOut, got {txout!r}')
        self._txout = txout

    def inner_txout(self) -> TxOut:
        return self._txout

    def get_txout(self) -> TxOut:
        """Get the plain output to include in a transaction."""
        return TxOut(value=self._txout.value, pk_script=self._txout.pk_script)

    def __eq__(self, other):
        return type(self) is type(other) and self._txout == other._txout

    def __hash__(self):
        return hash((type(self).__name__, self._txout))

    def __repr__(self):
        return f'{type(self).__name__}(value={self._txout.value}, ' \
               f'pk_script={self._txout.pk_script.hex()})'


# Capabilities: which spent outputs a given transaction may request a
# signature hash for. Only the legal role classes inherit from them.

class CancelPrevTxout(RevaultTxOut):
    """CancelTransaction can only spend UnvaultTxOut and FeeBumpTxOut txouts."""


class EmergencyPrevTxout(RevaultTxOut):
    """EmergencyTransaction can only spend VaultTxOut and FeeBumpTxOut txouts."""


class UnvaultEmerPrevTxout(RevaultTxOut):
    """UnvaultEmergencyTransaction can only spend UnvaultTxOut and FeeBumpTxOut txouts."""


class SpendTxOutput(RevaultTxOut):
    """Outputs a SpendTransaction may create: external destinations and vault change."""


class VaultTxOut(EmergencyPrevTxout, SpendTxOutput):
    """A vault txo: created by a deposit or a cancel transaction, or as the
    change of a spend transaction."""


class UnvaultTxOut(CancelPrevTxout, UnvaultEmerPrevTxout):
    """The unvault txo, paying to the unvault descriptor."""


class CpfpTxOut(RevaultTxOut):
    """The unvault transaction's anchor, spendable by any manager to bump its
    feerate with CPFP."""


class SpendTxOut(SpendTxOutput):
    """A spend transaction destination, externally controlled."""


class EmergencyTxOut(RevaultTxOut):
    """The output paying to The Emergency Script."""


class FeeBumpTxOut(CancelPrevTxout, EmergencyPrevTxout, UnvaultEmerPrevTxout):
    """A wallet txo used as an additional input of a revaulting transaction."""


class ExternalTxOut(RevaultTxOut):
    """Any other txo: deposits come from those."""
