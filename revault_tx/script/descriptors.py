"""Spending policies and the output descriptors built from them.

A policy is a small tree of key checks, thresholds, conjunctions, disjunctions
and relative timelocks. It compiles to a witness script and knows how to build
a witness for it out of the signatures a `BaseSatisfier` holds.

Compilation:

    pk(K)            <K> CHECKSIG
    pk_h(K)          DUP HASH160 <hash160(K)> EQUALVERIFY CHECKSIG
    thresh(k, X..)   X1 (TOALTSTACK Xi FROMALTSTACK ADD)* <k> EQUAL
    and(A, B)        A' B          (A' is the VERIFY form of A)
    or(A, B)         IF A ELSE B ENDIF
    older(n)         <n> CHECKSEQUENCEVERIFY

The witness items are listed bottom of the stack first, so the part of the
script which executes first gets its satisfaction at the end of the list.
"""
import logging
import os
from typing import List, Optional, Sequence

from revault_tx.ds.TxIn import TxIn
from revault_tx.params.Params import Params
from revault_tx.script import opcodes
from revault_tx.script.BaseSatisfier import BaseSatisfier
from revault_tx.script.scriptBuild import (
    Script, push_data, push_int, make_p2wsh_script, make_p2wpkh_script, make_pk_script)
from revault_tx.utils.Errors import ScriptCreationError, SatisfactionError
from revault_tx.utils.Utils import Utils

logging.basicConfig(
    level=getattr(logging, os.environ.get(Params.LOG_LEVEL_ENV, 'INFO')),
    format=Params.LOG_FORMAT)
logger = logging.getLogger(__name__)


def _encode_sig(bitcoin_sig) -> bytes:
    sig, sighash_type = bitcoin_sig
    return sig + bytes([sighash_type])


def _check_pubkey(pubkey: bytes):
    # Segwit only relays compressed keys.
    if not isinstance(pubkey, bytes) or len(pubkey) != 33 or pubkey[0] not in (2, 3):
        raise ScriptCreationError(f'Invalid compressed public key: {pubkey!r}')


class Policy(object):

    def script(self, verify: bool = False) -> bytes:
        raise NotImplementedError

    def satisfy(self, satisfier: BaseSatisfier) -> Optional[List[bytes]]:
        """The witness items satisfying this policy, or None."""
        raise NotImplementedError

    def keys(self) -> List[bytes]:
        return []


class Key(Policy):

    def __init__(self, pubkey: bytes, hashed: bool = False):
        _check_pubkey(pubkey)
        self.pubkey = pubkey
        self.hashed = hashed

    @property
    def keyhash(self) -> bytes:
        return Utils.hash160(self.pubkey)

    def script(self, verify=False):
        checksig = 'OP_CHECKSIGVERIFY' if verify else 'OP_CHECKSIG'
        if self.hashed:
            return Script('OP_DUP OP_HASH160').parse() + push_data(self.keyhash) \
                + Script('OP_EQUALVERIFY ' + checksig).parse()
        return push_data(self.pubkey) + Script(checksig).parse()

    def satisfy(self, satisfier):
        if self.hashed:
            # The policy compiler uses the key hash in the script, so we need
            # the satisfier to tell us which key it is.
            res = satisfier.lookup_pkh_sig(self.keyhash)
            if res is None:
                return None
            pubkey, bitcoin_sig = res
            return [_encode_sig(bitcoin_sig), pubkey]

        bitcoin_sig = satisfier.lookup_sig(self.pubkey)
        if bitcoin_sig is None:
            return None
        return [_encode_sig(bitcoin_sig)]

    def dissatisfy(self) -> List[bytes]:
        # An empty signature makes CHECKSIG push false without failing.
        if self.hashed:
            return [b'', self.pubkey]
        return [b'']

    def keys(self):
        return [self.pubkey]

    def __str__(self):
        return f"{'pk_h' if self.hashed else 'pk'}({self.pubkey.hex()})"


class Threshold(Policy):

    def __init__(self, k: int, keys: Sequence[Key]):
        if not keys:
            raise ScriptCreationError('Threshold over an empty set of keys')
        if not all(isinstance(key, Key) for key in keys):
            raise ScriptCreationError('Thresholds are only supported over keys')
        if not 1 <= k <= len(keys):
            raise ScriptCreationError(f'Invalid threshold {k} of {len(keys)}')
        if len(set(key.pubkey for key in keys)) != len(keys):
            raise ScriptCreationError('Duplicate key in threshold')
        self.k = k
        self.subs = list(keys)

    def script(self, verify=False):
        if len(self.subs) == 1:
            return self.subs[0].script(verify)

        script = self.subs[0].script()
        for sub in self.subs[1:]:
            script += Script('OP_TOALTSTACK').parse() + sub.script() \
                + Script('OP_FROMALTSTACK OP_ADD').parse()
        return script + push_int(self.k) \
            + Script('OP_EQUALVERIFY' if verify else 'OP_EQUAL').parse()

    def satisfy(self, satisfier):
        sats = [sub.satisfy(satisfier) for sub in self.subs]
        if sum(sat is not None for sat in sats) < self.k:
            return None

        # Exactly k subs must be satisfied for the sum to match.
        chosen = []
        satisfied = 0
        for sub, sat in zip(self.subs, sats):
            if sat is not None and satisfied < self.k:
                chosen.append(sat)
                satisfied += 1
            else:
                chosen.append(sub.dissatisfy())

        witness = []
        for sat in reversed(chosen):
            witness += sat
        return witness

    def keys(self):
        return [key.pubkey for key in self.subs]

    def __str__(self):
        return f"thresh({self.k},{','.join(str(s) for s in self.subs)})"


class And(Policy):

    def __init__(self, left: Policy, right: Policy):
        self.left = left
        self.right = right

    def script(self, verify=False):
        return self.left.script(verify=True) + self.right.script(verify)

    def satisfy(self, satisfier):
        left = self.left.satisfy(satisfier)
        right = self.right.satisfy(satisfier)
        if left is None or right is None:
            return None
        return right + left

    def keys(self):
        return self.left.keys() + self.right.keys()

    def __str__(self):
        return f'and({self.left},{self.right})'


class Or(Policy):

    def __init__(self, left: Policy, right: Policy):
        self.left = left
        self.right = right

    def script(self, verify=False):
        script = Script('OP_IF').parse() + self.left.script() \
            + Script('OP_ELSE').parse() + self.right.script() \
            + Script('OP_ENDIF').parse()
        if verify:
            script += Script('OP_VERIFY').parse()
        return script

    def satisfy(self, satisfier):
        left = self.left.satisfy(satisfier)
        if left is not None:
            return left + [b'\x01']

        right = self.right.satisfy(satisfier)
        if right is not None:
            return right + [b'']

        return None

    def keys(self):
        return self.left.keys() + self.right.keys()

    def __str__(self):
        return f'or({self.left},{self.right})'


class Older(Policy):

    def __init__(self, csv: int):
        if not 0 < csv < Params.SEQUENCE_LOCKTIME_DISABLE_FLAG:
            raise ScriptCreationError(f'Invalid relative locktime: {csv}')
        self.csv = csv

    def script(self, verify=False):
        script = push_int(self.csv) + bytes([opcodes.OP_CHECKSEQUENCEVERIFY])
        if verify:
            script += Script('OP_VERIFY').parse()
        return script

    def satisfy(self, satisfier):
        if satisfier.check_older(self.csv):
            return []
        return None

    def __str__(self):
        return f'older({self.csv})'


# ——————————————————————descriptors——————————————————————

class Descriptor(object):

    def script_pubkey(self) -> bytes:
        raise NotImplementedError

    def script_code(self) -> bytes:
        """The script committed to by the BIP143 signature hash."""
        raise NotImplementedError

    def get_witness(self, satisfier: BaseSatisfier) -> Optional[List[bytes]]:
        raise NotImplementedError

    def satisfy(self, txin: TxIn, satisfier: BaseSatisfier) -> TxIn:
        """Get the input with its witness filled from the satisfier's signatures.

        Raises SatisfactionError if they are not enough to spend this output."""
        witness = self.get_witness(satisfier)
        if witness is None:
            logger.debug(f'[descriptor] could not satisfy {self} for {txin.to_spend}')
            raise SatisfactionError('could not satisfy')
        return txin._replace(witness=tuple(witness))


class WshDescriptor(Descriptor):

    def __init__(self, policy: Policy):
        self.policy = policy
        self._witness_script = policy.script()
        if len(self._witness_script) > Params.MAX_SCRIPT_SIZE:
            raise ScriptCreationError('Witness script too large')

    def witness_script(self) -> bytes:
        return self._witness_script

    def script_pubkey(self):
        return make_p2wsh_script(self._witness_script)

    def script_code(self):
        return self._witness_script

    def get_witness(self, satisfier):
        witness = self.policy.satisfy(satisfier)
        if witness is None:
            return None
        return witness + [self._witness_script]

    def keys(self):
        return self.policy.keys()

    def __str__(self):
        return f'wsh({self.policy})'


class WpkhDescriptor(Descriptor):

    def __init__(self, pubkey: bytes):
        _check_pubkey(pubkey)
        self.pubkey = pubkey

    def script_pubkey(self):
        return make_p2wpkh_script(self.pubkey)

    def script_code(self):
        return make_pk_script(Utils.hash160(self.pubkey))

    def get_witness(self, satisfier):
        bitcoin_sig = satisfier.lookup_sig(self.pubkey)
        if bitcoin_sig is None:
            return None
        return [_encode_sig(bitcoin_sig), self.pubkey]

    def keys(self):
        return [self.pubkey]

    def __str__(self):
        return f'wpkh({self.pubkey.hex()})'


# ——————————————————————protocol descriptors——————————————————————

def _all_of(pubkeys, hashed=False) -> Threshold:
    if not pubkeys:
        raise ScriptCreationError('No keys provided')
    return Threshold(len(pubkeys), [Key(pk, hashed) for pk in pubkeys])


def vault_descriptor(participants: Sequence[bytes]) -> WshDescriptor:
    """The vault output: all the participants' signatures are needed."""
    return WshDescriptor(_all_of(participants))


def unvault_descriptor(non_managers: Sequence[bytes], managers: Sequence[bytes],
                       cosigners: Sequence[bytes], csv_value: int) -> WshDescriptor:
    """The unvault output: either all the participants (revaulting), or the
    managers along with the cosigning servers after `csv_value` blocks (spending).
    """
    if len(non_managers) != len(cosigners):
        raise ScriptCreationError('Need as many cosigners as non-managers')

    cosigners_and_csv = And(_all_of(cosigners, hashed=True), Older(csv_value))
    return WshDescriptor(And(_all_of(managers),
                             Or(_all_of(non_managers), cosigners_and_csv)))


def unvault_cpfp_descriptor(managers: Sequence[bytes]) -> WshDescriptor:
    """The unvault anchor output, spendable by any manager."""
    if not managers:
        raise ScriptCreationError('No keys provided')
    return WshDescriptor(Threshold(1, [Key(pk) for pk in managers]))


def emergency_descriptor(emergency_keys: Sequence[bytes]) -> WshDescriptor:
    """The Emergency Script, a deep-vault N-of-N."""
    return WshDescriptor(_all_of(emergency_keys))


def feebump_descriptor(pubkey: bytes) -> WpkhDescriptor:
    return WpkhDescriptor(pubkey)
