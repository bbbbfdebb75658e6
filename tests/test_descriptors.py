import pytest

from conftest import CSV_VALUE, privkey, pubkey
from revault_tx.ds.OutPoint import OutPoint
from revault_tx.ds.TxIn import TxIn
from revault_tx.params.Params import Params
from revault_tx.script import descriptors
from revault_tx.script.BaseSatisfier import BaseSatisfier
from revault_tx.script.descriptors import And, Key, Older, Or, Threshold, WpkhDescriptor, \
    WshDescriptor
from revault_tx.script.scriptBuild import Script, make_pk_script
from revault_tx.utils.Errors import SatisfactionError, ScriptCreationError
from revault_tx.utils.Utils import Utils

KEY_A = pubkey(privkey(100))
KEY_B = pubkey(privkey(101))
KEY_C = pubkey(privkey(102))


class DictSatisfier(BaseSatisfier):

    def __init__(self, sigs, sequence=Params.SEQUENCE_FINAL):
        self.sigs = sigs
        self.sequence = sequence

    def lookup_sig(self, pubkey):
        if pubkey in self.sigs:
            return self.sigs[pubkey], Params.SIGHASH_ALL

    def lookup_pkh_sig(self, keyhash):
        for pubkey, sig in self.sigs.items():
            if Utils.hash160(pubkey) == keyhash:
                return pubkey, (sig, Params.SIGHASH_ALL)

    def check_older(self, csv):
        return csv == self.sequence


def test_key_scripts():
    assert Key(KEY_A).script() == Script(KEY_A.hex() + ' OP_CHECKSIG').parse()
    assert Key(KEY_A).script(verify=True) == Script(KEY_A.hex() + ' OP_CHECKSIGVERIFY').parse()
    assert Key(KEY_A, hashed=True).script() == make_pk_script(Utils.hash160(KEY_A))

    with pytest.raises(ScriptCreationError):
        Key(b'\x04' + b'\x01' * 64)
    with pytest.raises(ScriptCreationError):
        Key(KEY_A[:20])


def test_threshold_script():
    script = Threshold(2, [Key(KEY_A), Key(KEY_B)]).script()
    assert script == Script(
        f'{KEY_A.hex()} OP_CHECKSIG OP_TOALTSTACK {KEY_B.hex()} OP_CHECKSIG OP_FROMALTSTACK '
        'OP_ADD OP_2 OP_EQUAL').parse()
    # a single key is just the key check
    assert Threshold(1, [Key(KEY_A)]).script() == Key(KEY_A).script()

    for k, keys in ((0, [Key(KEY_A)]), (2, [Key(KEY_A)]), (1, []),
                    (1, [Key(KEY_A), Key(KEY_A)]), (1, [Older(3)])):
        with pytest.raises(ScriptCreationError):
            Threshold(k, keys)


def test_and_or_older_scripts():
    policy = And(Threshold(1, [Key(KEY_A)]), Or(Key(KEY_B), Older(CSV_VALUE)))
    assert policy.script() == Script(
        f'{KEY_A.hex()} OP_CHECKSIGVERIFY OP_IF {KEY_B.hex()} OP_CHECKSIG OP_ELSE '
        '2a OP_CHECKSEQUENCEVERIFY OP_ENDIF').parse()
    assert str(policy) == f'and(thresh(1,pk({KEY_A.hex()})),or(pk({KEY_B.hex()}),older(42)))'

    assert Older(CSV_VALUE).script(verify=True) == \
        Script('2a OP_CHECKSEQUENCEVERIFY OP_VERIFY').parse()
    for csv in (0, -1, Params.SEQUENCE_LOCKTIME_DISABLE_FLAG):
        with pytest.raises(ScriptCreationError):
            Older(csv)


def test_threshold_witness_order():
    policy = Threshold(1, [Key(KEY_A), Key(KEY_B)])

    # the first key is checked first, so its satisfaction is on top
    assert policy.satisfy(DictSatisfier({KEY_B: b'sigb'})) == [b'sigb\x01', b'']
    assert policy.satisfy(DictSatisfier({KEY_A: b'siga', KEY_B: b'sigb'})) == [b'', b'siga\x01']
    assert policy.satisfy(DictSatisfier({})) is None

    hashed = Threshold(2, [Key(KEY_A, hashed=True), Key(KEY_B, hashed=True)])
    assert hashed.satisfy(DictSatisfier({KEY_A: b'siga', KEY_B: b'sigb'})) == \
        [b'sigb\x01', KEY_B, b'siga\x01', KEY_A]


def test_and_or_witness_order():
    policy = And(Key(KEY_A), Or(Key(KEY_B), And(Key(KEY_C), Older(CSV_VALUE))))

    sigs = {KEY_A: b'siga', KEY_B: b'sigb', KEY_C: b'sigc'}
    assert policy.satisfy(DictSatisfier(sigs)) == [b'sigb\x01', b'\x01', b'siga\x01']

    sigs = {KEY_A: b'siga', KEY_C: b'sigc'}
    assert policy.satisfy(DictSatisfier(sigs, CSV_VALUE)) == \
        [b'sigc\x01', b'', b'siga\x01']
    assert policy.satisfy(DictSatisfier(sigs, CSV_VALUE + 1)) is None


def test_base_satisfier_provides_nothing():
    satisfier = BaseSatisfier()
    assert satisfier.lookup_sig(KEY_A) is None
    assert satisfier.lookup_pkh_sig(Utils.hash160(KEY_A)) is None
    assert Key(KEY_A).satisfy(satisfier) is None
    assert Key(KEY_A, hashed=True).satisfy(satisfier) is None
    assert Or(Key(KEY_A), Older(CSV_VALUE)).satisfy(satisfier) is None


def test_wsh_descriptor():
    descriptor = WshDescriptor(Threshold(2, [Key(KEY_A), Key(KEY_B)]))
    witness_script = descriptor.witness_script()

    assert descriptor.script_code() == witness_script
    assert descriptor.script_pubkey() == b'\x00\x20' + Utils.sha256(witness_script)
    assert descriptor.keys() == [KEY_A, KEY_B]
    assert str(descriptor).startswith('wsh(thresh(2,pk(')

    txin = TxIn(to_spend=OutPoint('a' * 64, 0))
    satisfied = descriptor.satisfy(txin, DictSatisfier({KEY_A: b'siga', KEY_B: b'sigb'}))
    assert satisfied.witness == (b'sigb\x01', b'siga\x01', witness_script)
    assert satisfied.to_spend == txin.to_spend
    assert txin.witness == ()

    with pytest.raises(SatisfactionError):
        descriptor.satisfy(txin, DictSatisfier({KEY_A: b'siga'}))


def test_wpkh_descriptor():
    descriptor = WpkhDescriptor(KEY_A)
    assert descriptor.script_pubkey() == b'\x00\x14' + Utils.hash160(KEY_A)
    assert descriptor.script_code() == make_pk_script(Utils.hash160(KEY_A))

    txin = TxIn(to_spend=OutPoint('a' * 64, 0))
    assert descriptor.satisfy(txin, DictSatisfier({KEY_A: b'siga'})).witness == \
        (b'siga\x01', KEY_A)
    with pytest.raises(SatisfactionError):
        descriptor.satisfy(txin, DictSatisfier({KEY_B: b'sigb'}))


def test_protocol_descriptors(stakeholders):
    keys = [pubkey(k) for k in stakeholders.participants]
    assert stakeholders.vault_descriptor.keys() == keys

    managers = [pubkey(k) for k in stakeholders.managers]
    non_managers = [pubkey(k) for k in stakeholders.non_managers]
    cosigners = [pubkey(k) for k in stakeholders.cosigners]
    assert stakeholders.unvault_descriptor.keys() == managers + non_managers + cosigners
    assert str(stakeholders.unvault_descriptor).endswith(f'older({CSV_VALUE})))))')

    with pytest.raises(ScriptCreationError):
        descriptors.unvault_descriptor(non_managers, managers, cosigners[1:], CSV_VALUE)
    with pytest.raises(ScriptCreationError):
        descriptors.unvault_descriptor(non_managers, [], cosigners, CSV_VALUE)
    with pytest.raises(ScriptCreationError):
        descriptors.unvault_descriptor(non_managers, managers, cosigners, 0)
    with pytest.raises(ScriptCreationError):
        descriptors.vault_descriptor([])
    with pytest.raises(ScriptCreationError):
        descriptors.unvault_cpfp_descriptor([])
    with pytest.raises(ScriptCreationError):
        descriptors.emergency_descriptor([])
