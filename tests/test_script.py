import ecdsa
import pytest

from conftest import (
    BIP143_AMOUNT, BIP143_PRIVKEY, BIP143_PUBKEY, BIP143_PUBKEY_HASH, BIP143_UNSIGNED_TX,
    CSV_VALUE, privkey, pubkey, sign)
from revault_tx.consensus.Sighash import bip143_sighash
from revault_tx.ds.OutPoint import OutPoint
from revault_tx.ds.Transaction import Transaction
from revault_tx.ds.TxIn import TxIn
from revault_tx.ds.TxOut import TxOut
from revault_tx.params.Params import Params
from revault_tx.script.script import Tokenizer, verify_script
from revault_tx.script.scriptBuild import Script, make_p2wpkh_script, make_p2wsh_script, \
    make_pk_script
from revault_tx.utils.Errors import ScriptVerifyError
from revault_tx.utils.Utils import Utils

BIP143_SCRIPT_CODE = make_pk_script(bytes.fromhex(BIP143_PUBKEY_HASH))


def spending_tx(witness=(), sequence=Params.SEQUENCE_FINAL, version=2, signature_script=b'',
                locktime=0):
    return Transaction(version=version,
                       txins=[TxIn(to_spend=OutPoint('f' * 64, 0), signature_script=signature_script,
                                   sequence=sequence, witness=tuple(witness))],
                       txouts=[TxOut(1000, b'\x51')], locktime=locktime)


def run_wsh(witness_script, stack=(), **kwargs):
    tx = spending_tx(witness=list(stack) + [witness_script], **kwargs)
    verify_script(make_p2wsh_script(witness_script), 2000, tx.serialize(), 0)


def signed_p2wpkh_tx(amount=BIP143_AMOUNT):
    signing_key = ecdsa.SigningKey.from_string(bytes.fromhex(BIP143_PRIVKEY),
                                               curve=ecdsa.SECP256k1)
    tx = Transaction.from_hex(BIP143_UNSIGNED_TX)
    sighash = bip143_sighash(tx, 1, amount, BIP143_SCRIPT_CODE, Params.SIGHASH_ALL)
    witness = (sign(signing_key, sighash) + bytes([Params.SIGHASH_ALL]),
               bytes.fromhex(BIP143_PUBKEY))
    tx.txins[1] = tx.txins[1]._replace(witness=witness)
    return tx


def test_p2wpkh_spend():
    tx = signed_p2wpkh_tx()
    pk_script = make_p2wpkh_script(bytes.fromhex(BIP143_PUBKEY))
    assert pk_script.hex() == '00141d0f172a0ecb48aee1be1f2687d2963ae33f71a1'

    verify_script(pk_script, BIP143_AMOUNT, tx.serialize(), 1)

    # The amount is committed to
    with pytest.raises(ScriptVerifyError) as excinfo:
        verify_script(pk_script, BIP143_AMOUNT + 1, tx.serialize(), 1)
    assert excinfo.value.code == 'ERR_SCRIPT'


def test_tampered_signature():
    tx = signed_p2wpkh_tx()
    sig, key = tx.txins[1].witness
    tampered = sig[:10] + bytes([sig[10] ^ 1]) + sig[11:]
    tx.txins[1] = tx.txins[1]._replace(witness=(tampered, key))

    with pytest.raises(ScriptVerifyError) as excinfo:
        verify_script(make_p2wpkh_script(key), BIP143_AMOUNT, tx.serialize(), 1)
    assert excinfo.value.code == 'ERR_SCRIPT'


def test_wrong_key():
    tx = signed_p2wpkh_tx()
    other_key = ecdsa.SigningKey.from_secret_exponent(7, curve=ecdsa.SECP256k1) \
        .get_verifying_key().to_string('compressed')

    with pytest.raises(ScriptVerifyError):
        verify_script(make_p2wpkh_script(other_key), BIP143_AMOUNT, tx.serialize(), 1)


def test_oracle_error_codes():
    tx = signed_p2wpkh_tx()
    pk_script = make_p2wpkh_script(bytes.fromhex(BIP143_PUBKEY))

    with pytest.raises(ScriptVerifyError) as excinfo:
        verify_script(pk_script, BIP143_AMOUNT, tx.serialize(), 2)
    assert excinfo.value.code == 'ERR_TX_INDEX'

    with pytest.raises(ScriptVerifyError) as excinfo:
        verify_script(pk_script, BIP143_AMOUNT, tx.serialize()[:-3], 1)
    assert excinfo.value.code == 'ERR_TX_DESERIALIZE'

    # the input spending the P2WPKH output has no signature
    with pytest.raises(ScriptVerifyError) as excinfo:
        verify_script(pk_script, BIP143_AMOUNT, tx.serialize(), 0)
    assert excinfo.value.code == 'ERR_SCRIPT'


def test_witness_script_must_match_the_program():
    script = Script('OP_1').parse()
    run_wsh(script)

    tx = spending_tx(witness=[script])
    with pytest.raises(ScriptVerifyError):
        verify_script(make_p2wsh_script(Script('OP_2').parse()), 2000, tx.serialize(), 0)
    with pytest.raises(ScriptVerifyError):
        verify_script(make_p2wsh_script(script), 2000, spending_tx().serialize(), 0)


def test_segwit_requires_an_empty_signature_script():
    script = Script('OP_1').parse()
    with pytest.raises(ScriptVerifyError):
        run_wsh(script, signature_script=Script('OP_1').parse())


def test_clean_stack():
    run_wsh(Script('OP_2 OP_3 OP_ADD OP_5 OP_EQUAL').parse())
    with pytest.raises(ScriptVerifyError):
        run_wsh(Script('OP_2 OP_3 OP_ADD OP_6 OP_EQUAL').parse())
    with pytest.raises(ScriptVerifyError):
        run_wsh(Script('OP_1 OP_1').parse())


def test_minimal_if():
    script = Script('OP_IF OP_1 OP_ELSE OP_2 OP_ENDIF').parse()
    run_wsh(script, [b'\x01'])
    run_wsh(script, [b''])
    with pytest.raises(ScriptVerifyError):
        run_wsh(script, [b'\x02'])
    with pytest.raises(ScriptVerifyError):
        run_wsh(Script('OP_1 OP_IF OP_1').parse())


def test_altstack_and_threshold_arithmetic():
    run_wsh(Script('OP_1 OP_TOALTSTACK OP_1 OP_FROMALTSTACK OP_ADD OP_2 OP_EQUAL').parse())
    run_wsh(Script('OP_3 OP_DUP OP_DROP OP_SIZE OP_NIP OP_1 OP_EQUAL').parse())


def test_hash_ops():
    data = b'revault'
    run_wsh(Script('OP_SHA256 ' + Utils.sha256(data).hex() + ' OP_EQUAL').parse(), [data])
    run_wsh(Script('OP_HASH160 ' + Utils.hash160(data).hex() + ' OP_EQUAL').parse(), [data])
    with pytest.raises(ScriptVerifyError):
        run_wsh(Script('OP_HASH256 ' + Utils.sha256(data).hex() + ' OP_EQUALVERIFY OP_1')
                .parse(), [data])


def test_disabled_opcode_in_unexecuted_branch():
    with pytest.raises(ScriptVerifyError):
        run_wsh(Script('OP_0 OP_IF OP_CAT OP_ENDIF OP_1').parse())


def test_check_sequence_verify():
    script = Script('2a OP_CHECKSEQUENCEVERIFY').parse()
    run_wsh(script, sequence=CSV_VALUE)
    run_wsh(script, sequence=CSV_VALUE + 1)

    with pytest.raises(ScriptVerifyError):
        run_wsh(script, sequence=CSV_VALUE - 1)
    with pytest.raises(ScriptVerifyError):
        run_wsh(script, sequence=CSV_VALUE, version=1)
    with pytest.raises(ScriptVerifyError):
        run_wsh(script, sequence=Params.SEQUENCE_FINAL)
    # time based relative locks don't satisfy a height based one
    with pytest.raises(ScriptVerifyError):
        run_wsh(script, sequence=Params.SEQUENCE_LOCKTIME_TYPE_FLAG | CSV_VALUE)


def test_check_multisig():
    key_a, key_b, key_c = privkey(200), privkey(201), privkey(202)
    script = Script(f'OP_1 {pubkey(key_a).hex()} {pubkey(key_b).hex()} OP_2 '
                    'OP_CHECKMULTISIG').parse()
    sighash = bip143_sighash(spending_tx(), 0, 2000, script, Params.SIGHASH_ALL)

    def multisig_sig(key):
        return sign(key, sighash) + bytes([Params.SIGHASH_ALL])

    # either key is enough
    run_wsh(script, [b'', multisig_sig(key_a)])
    run_wsh(script, [b'', multisig_sig(key_b)])

    # the extra operand must be empty
    with pytest.raises(ScriptVerifyError):
        run_wsh(script, [b'\x01', multisig_sig(key_a)])
    # a failing non-empty signature aborts the script
    with pytest.raises(ScriptVerifyError):
        run_wsh(script, [b'', multisig_sig(key_c)])
    # an empty one just pushes false
    with pytest.raises(ScriptVerifyError):
        run_wsh(script, [b'', b''])


def test_check_locktime_verify():
    script = Script('64 OP_CHECKLOCKTIMEVERIFY').parse()
    run_wsh(script, sequence=Params.RBF_SEQUENCE, locktime=100)
    run_wsh(script, sequence=Params.RBF_SEQUENCE, locktime=101)

    with pytest.raises(ScriptVerifyError):
        run_wsh(script, sequence=Params.RBF_SEQUENCE, locktime=99)
    # a final input disables the transaction's locktime
    with pytest.raises(ScriptVerifyError):
        run_wsh(script, sequence=Params.SEQUENCE_FINAL, locktime=100)
    # a time based locktime doesn't satisfy a height based one
    with pytest.raises(ScriptVerifyError):
        run_wsh(script, sequence=Params.RBF_SEQUENCE, locktime=500000001)


def test_bare_scripts():
    tx = spending_tx(signature_script=Script('OP_1').parse())
    verify_script(Script('OP_1 OP_EQUAL').parse(), 0, tx.serialize(), 0)

    with pytest.raises(ScriptVerifyError):
        verify_script(Script('OP_2 OP_EQUAL').parse(), 0, tx.serialize(), 0)
    with pytest.raises(ScriptVerifyError):
        verify_script(Script('OP_RETURN').parse(), 0, spending_tx().serialize(), 0)

    # only pushes in the scriptSig
    tx = spending_tx(signature_script=Script('OP_1 OP_DUP').parse())
    with pytest.raises(ScriptVerifyError):
        verify_script(Script('OP_EQUAL').parse(), 0, tx.serialize(), 0)


def test_tokenizer():
    pk_hash = bytes.fromhex('1d0f172a0ecb48aee1be1f2687d2963ae33f71a1')
    tokens = Tokenizer(make_pk_script(pk_hash))

    assert str(tokens) == \
        'OP_DUP OP_HASH160 1d0f172a0ecb48aee1be1f2687d2963ae33f71a1 OP_EQUALVERIFY OP_CHECKSIG'
    assert len(tokens) == 5
    assert tokens[2] == Tokenizer.OP_LITERAL
    assert tokens.get_value(2) == pk_hash

    assert str(Tokenizer(Script('OP_0 OP_16 OP_1NEGATE 2a OP_CHECKSEQUENCEVERIFY').parse())) \
        == 'OP_0 OP_16 OP_1NEGATE 2a OP_CHECKSEQUENCEVERIFY'

    expanded = Tokenizer(make_pk_script(pk_hash), expand_verify=True)
    assert len(expanded) == 6
    assert str(expanded) == str(tokens)

    with pytest.raises(ScriptVerifyError):
        Tokenizer(bytes([20]) + pk_hash[:10])
