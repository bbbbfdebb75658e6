import logging
import os
from typing import Iterable

from revault_tx.ds.Transaction import Transaction
from revault_tx.params.Params import Params
from revault_tx.script.script import verify_script
from revault_tx.utils.Errors import ScriptVerifyError, TransactionVerificationError

logging.basicConfig(
    level=getattr(logging, os.environ.get(Params.LOG_LEVEL_ENV, 'INFO')),
    format=Params.LOG_FORMAT)
logger = logging.getLogger(__name__)


def verify_revault_transaction(revault_tx, previous_transactions: Iterable):
    """Check every input of `revault_tx` against the output it spends, looked
    up in `previous_transactions` (Revault transactions or plain ones).

    :raises TransactionVerificationError: for the first input whose previous
        output can't be found or whose witness doesn't satisfy its script.
    """
    previous_transactions = [
        prev if isinstance(prev, Transaction) else prev.inner_tx()
        for prev in previous_transactions]
    tx = revault_tx.inner_tx()
    serialized_tx = tx.serialize()

    for index, txin in enumerate(tx.txins):
        outpoint = txin.to_spend
        spent_txout = None
        for prev_tx in previous_transactions:
            if prev_tx.id == outpoint.txid and outpoint.txout_idx < len(prev_tx.txouts):
                spent_txout = prev_tx.txouts[outpoint.txout_idx]
                break

        if spent_txout is None:
            logger.info(f'[consensus] input {index} of {tx.id}: '
                        f'unresolved previous output {outpoint}')
            raise TransactionVerificationError(
                f"Unresolved input: previous output '{outpoint}' of input "
                f"'{index}' not found in the previous transactions.", index)

        try:
            verify_script(spent_txout.pk_script, spent_txout.value, serialized_tx, index)
        except ScriptVerifyError as e:
            logger.info(f'[consensus] input {index} of {tx.id} failed verification: {e.msg}')
            raise TransactionVerificationError(
                f"Script verification error: {e.code} ({e.reason}) at input '{index}'.",
                index)

    logger.debug(f'[consensus] {tx.id} verified')
