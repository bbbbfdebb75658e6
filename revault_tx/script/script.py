"""Script verification.

`verify_script` has the contract of libbitcoinconsensus' verify(): given the
spent output's script and amount, the serialized spending transaction and the
input index, it either returns or raises a `ScriptVerifyError` carrying an
error code. It supports native segwit v0 outputs (P2WPKH and P2WSH) and bare
scripts without signature checks, which is all the protocol ever spends.
"""
import hashlib
import logging
import os

import ecdsa
from ecdsa import BadSignatureError, MalformedPointError
from ecdsa.der import UnexpectedDER
from ecdsa.util import sigdecode_der

from revault_tx.consensus.Sighash import bip143_sighash
from revault_tx.ds.Transaction import Transaction
from revault_tx.params.Params import Params
from revault_tx.script import opcodes
from revault_tx.script.scriptBuild import get_witness_program, make_pk_script
from revault_tx.utils.Errors import ScriptVerifyError, TxDeserializationError
from revault_tx.utils.Utils import Utils

logging.basicConfig(
    level=getattr(logging, os.environ.get(Params.LOG_LEVEL_ENV, 'INFO')),
    format=Params.LOG_FORMAT)
logger = logging.getLogger(__name__)

# two main classes in this package
__all__ = ['Script', 'Tokenizer', 'verify_script']

# libbitcoinconsensus-like error codes
ERR_SCRIPT = 'ERR_SCRIPT'
ERR_TX_INDEX = 'ERR_TX_INDEX'
ERR_TX_DESERIALIZE = 'ERR_TX_DESERIALIZE'

SIGVERSION_BASE = 0
SIGVERSION_WITNESS_V0 = 1

# Convenient constants used to set the result of stack computing process
Zero = b''
One = b'\x01'

LOCKTIME_THRESHOLD = 500000000

VALID_SIGHASH_TYPES = (0x01, 0x02, 0x03, 0x81, 0x82, 0x83)


def _fail(reason):
    raise ScriptVerifyError(ERR_SCRIPT, reason)


def _cast_to_bool(vch: bytes) -> bool:
    for i, byte in enumerate(vch):
        if byte != 0:
            # negative zero is still false
            if i == len(vch) - 1 and byte == 0x80:
                return False
            return True
    return False


def _to_num(vch: bytes, max_size: int = 4) -> int:
    try:
        return Utils.decode_script_num(vch, max_size=max_size)
    except ValueError as e:
        _fail(str(e))


# ——————————————————————stack functions—————————————————————————

def _stack_op(stack, count, func):
    """Replaces the top `count` items of the stack by the ones in the list
    returned by the callable function."""
    if len(stack) < count:
        _fail('stack underflow')
    args = stack[-count:]
    stack[-count:] = []

    # add each returned item onto the stack
    stack.extend(func(*args))


def _math_op(stack, count, func):
    """Replaces the top `count` items of the stack, read as script numbers, by
    the result of the callable function (an int or a bool)."""
    if len(stack) < count:
        _fail('stack underflow')
    args = [_to_num(vch) for vch in stack[-count:]]
    stack[-count:] = []

    result = func(*args)
    if isinstance(result, bool):
        stack.append(One if result else Zero)
    else:
        stack.append(Utils.encode_script_num(result))


def _hash_op(stack, func):
    """Replaces the top item of the stack with the result of the callable func."""
    if len(stack) < 1:
        _fail('stack underflow')
    stack.append(func(stack.pop()))


def _sha1(data):
    return hashlib.sha1(data).digest()


# ————————————————————tool class producing tokens[]——————————————————————————

class Tokenizer(object):
    """
    Tokenize a script into (opcode, bytes, value) tokens for the stack machine.
    Pushes, including OP_0, OP_1NEGATE and OP_1 to OP_16, are OP_LITERAL tokens
    whose value is the pushed data.
    """

    OP_LITERAL = 0x1ff

    ### Init part
    def __init__(self, script: bytes, expand_verify: bool = False):
        self._script = script
        self._expand_verify = expand_verify
        self._tokens = []
        self._process(script)

    # map used to split the *VERIFY opcodes into their base opcode and OP_VERIFY.
    _Verify = {
        opcodes.OP_EQUALVERIFY: opcodes.OP_EQUAL,
        opcodes.OP_NUMEQUALVERIFY: opcodes.OP_NUMEQUAL,
        opcodes.OP_CHECKSIGVERIFY: opcodes.OP_CHECKSIG,
        opcodes.OP_CHECKMULTISIGVERIFY: opcodes.OP_CHECKMULTISIG,
    }

    # Get the original bytes used for the opcode and value
    def get_bytes(self, index) -> bytes:
        return self._tokens[index][1]

    # Get the value for a literal.
    def get_value(self, index) -> bytes:
        return self._tokens[index][2]

    def _process(self, script):
        """Parse the script into tokens."""
        while script:
            opcode = script[0]
            opcode_bytes = script[:1]
            script = script[1:]
            value = None
            verify = False

            if opcode == opcodes.OP_0:
                value = b''
                opcode = Tokenizer.OP_LITERAL

            elif 1 <= opcode <= opcodes.OP_PUSHDATA4:
                pushdata_length = opcode
                if opcodes.OP_PUSHDATA1 <= opcode <= opcodes.OP_PUSHDATA4:
                    op_length = [1, 2, 4][opcode - opcodes.OP_PUSHDATA1]
                    if len(script) < op_length:
                        raise ScriptVerifyError(ERR_SCRIPT, 'truncated pushdata length')
                    pushdata_length = int.from_bytes(script[:op_length], 'little')
                    opcode_bytes += script[:op_length]
                    script = script[op_length:]

                # The data to be pushed
                value = script[:pushdata_length]
                opcode_bytes += value
                # Remove the data to be pushed from the script
                script = script[pushdata_length:]
                if len(value) != pushdata_length:
                    raise ScriptVerifyError(
                        ERR_SCRIPT,
                        'The pushdata opcode does not match the length of the data to be pushed')
                opcode = Tokenizer.OP_LITERAL

            elif opcode == opcodes.OP_1NEGATE:
                opcode = Tokenizer.OP_LITERAL
                value = b'\x81'

            elif opcodes.OP_1 <= opcode <= opcodes.OP_16:
                value = bytes([opcode - opcodes.OP_1 + 1])
                opcode = Tokenizer.OP_LITERAL

            elif self._expand_verify and opcode in self._Verify:
                opcode = self._Verify[opcode]
                verify = True

            self._tokens.append((opcode, opcode_bytes, value))
            if verify:
                self._tokens.append((opcodes.OP_VERIFY, b'', None))

    def __len__(self):
        return len(self._tokens)

    def __getitem__(self, index):
        return self._tokens[index][0]

    def __iter__(self):
        for (opcode, bytes, value) in self._tokens:
            yield opcode

    def __str__(self):
        output = []
        for (opcode, bytes, value) in self._tokens:
            if not bytes:
                continue
            # OP_0, OP_1NEGATE and OP_1 to OP_16 keep their name
            if opcode == Tokenizer.OP_LITERAL and 0 < bytes[0] <= opcodes.OP_PUSHDATA4:
                output.append(value.hex())
            else:
                output.append(opcodes.get_opcode_name(bytes[0]))
        return " ".join(output)


# —————————————————————— main stack Process————————————————————

class Script(object):
    """Checks the inputs of a transaction against the outputs they spend."""

    def __init__(self, transaction: Transaction):
        self._transaction = transaction

    def verify_input(self, input_index: int, pk_script: bytes, amount: int):
        """Raise a ScriptVerifyError unless the input at `input_index` validly
        spends an output of `amount` satoshis locked by `pk_script`."""
        txin = self._transaction.txins[input_index]
        witness_program = get_witness_program(pk_script)

        if witness_program is None:
            if txin.witness:
                _fail('witness unexpected')
            if not all(t == Tokenizer.OP_LITERAL
                       for t in Tokenizer(txin.signature_script)):
                _fail('signature script is not push only')
            stack = []
            self.process(stack, txin.signature_script, input_index, amount,
                         SIGVERSION_BASE)
            self.process(stack, pk_script, input_index, amount, SIGVERSION_BASE)
            if not stack or not _cast_to_bool(stack[-1]):
                _fail('script evaluated without error but finished with a '
                      'false/empty top stack element')
            return

        version, program = witness_program
        if txin.signature_script:
            _fail('witness requires empty scriptSig')

        if version != 0:
            # Reserved for soft-fork upgrades, anyone can spend for now.
            logger.debug(f'[script] unknown witness version {version}')
            return

        witness = list(txin.witness)
        if len(program) == Params.WITNESS_V0_SCRIPTHASH_SIZE:
            if not witness:
                _fail('witness program was passed an empty witness')
            script = witness.pop()
            if Utils.sha256(script) != program:
                _fail('witness program hash mismatch')
        elif len(program) == Params.WITNESS_V0_KEYHASH_SIZE:
            if len(witness) != 2:
                _fail('witness program hash mismatch')
            script = make_pk_script(program)
        else:
            _fail('witness program has incorrect length')

        if any(len(item) > Params.MAX_SCRIPT_ELEMENT_SIZE for item in witness):
            _fail('push value size limit exceeded')

        stack = witness
        self.process(stack, script, input_index, amount, SIGVERSION_WITNESS_V0)

        # segwit scripts must leave exactly one true element
        if len(stack) != 1:
            _fail('stack size must be exactly one after execution')
        if not _cast_to_bool(stack[-1]):
            _fail('script evaluated without error but finished with a '
                  'false/empty top stack element')

    def check_signature(self, signature, public_key, script_code, input_index,
                        amount, sigversion) -> bool:
        if not signature:
            return False

        hash_type = signature[-1]
        signature = signature[:-1]
        if hash_type not in VALID_SIGHASH_TYPES:
            _fail('signature hash type missing or not understood')
        if sigversion != SIGVERSION_WITNESS_V0:
            _fail('only segwit v0 signatures are supported')
        if len(public_key) != 33 or public_key[0] not in (2, 3):
            _fail('using non-compressed keys in segwit')

        sighash = bip143_sighash(self._transaction, input_index, amount,
                                 script_code, hash_type)
        try:
            # get the key for verify
            verifying_key = ecdsa.VerifyingKey.from_string(
                public_key, curve=ecdsa.SECP256k1)
            return verifying_key.verify_digest(signature, sighash,
                                               sigdecode=sigdecode_der)
        except (BadSignatureError, UnexpectedDER, MalformedPointError) as e:
            logger.debug(f'[script] signature check failed: {e!r}')
            return False

    def check_sequence(self, csv: int, input_index: int) -> bool:
        """BIP112: the input's relative locktime must be at least `csv`, of the
        same type."""
        tx_sequence = self._transaction.txins[input_index].sequence

        if self._transaction.version < 2:
            return False
        if tx_sequence & Params.SEQUENCE_LOCKTIME_DISABLE_FLAG:
            return False

        mask = Params.SEQUENCE_LOCKTIME_TYPE_FLAG | Params.SEQUENCE_LOCKTIME_MASK
        tx_masked = tx_sequence & mask
        csv_masked = csv & mask
        type_flag = Params.SEQUENCE_LOCKTIME_TYPE_FLAG
        if (tx_masked < type_flag) != (csv_masked < type_flag):
            return False

        return csv_masked <= tx_masked

    def check_locktime(self, locktime: int, input_index: int) -> bool:
        """BIP65."""
        tx_locktime = self._transaction.locktime
        if (tx_locktime < LOCKTIME_THRESHOLD) != (locktime < LOCKTIME_THRESHOLD):
            return False
        if locktime > tx_locktime:
            return False
        return self._transaction.txins[input_index].sequence != Params.SEQUENCE_FINAL

    def process(self, stack, script, input_index, amount, sigversion):
        """Run `script` on `stack`. Lots of the process in the method is the
        regular process of the bitcoin script language."""
        if len(script) > Params.MAX_SCRIPT_SIZE:
            _fail('script is too big')

        tokens = Tokenizer(script, expand_verify=True)

        # stack of entered if statments' condition values
        ifstack = []
        altstack = []

        op_count = 0
        # offset of the current token in the script, and start of the script
        # code committed to by signatures
        position = 0
        codeseparator = 0

        for pc in range(0, len(tokens)):
            opcode = tokens[pc]
            opcode_bytes = tokens.get_bytes(pc)
            position += len(opcode_bytes)
            executing = False not in ifstack

            if opcode == Tokenizer.OP_LITERAL:
                value = tokens.get_value(pc)
                if len(value) > Params.MAX_SCRIPT_ELEMENT_SIZE:
                    _fail('push value size limit exceeded')
                if executing:
                    stack.append(value)
                continue

            # expanded VERIFYs don't count
            if opcode_bytes:
                op_count += 1
                if op_count > Params.MAX_OPS_PER_SCRIPT:
                    _fail('operation limit exceeded')

            # these fail even in an unexecuted branch
            if opcode in opcodes.DISABLED_OPCODES:
                _fail('attempted to use a disabled opcode')
            if opcode in (opcodes.OP_VERIF, opcodes.OP_VERNOTIF):
                _fail('bad opcode')

            ### Flow Control

            if opcode in (opcodes.OP_IF, opcodes.OP_NOTIF):
                condition = False
                if executing:
                    if len(stack) < 1:
                        _fail('invalid OP_IF construction')
                    value = stack.pop()
                    if sigversion == SIGVERSION_WITNESS_V0 and value not in (Zero, One):
                        _fail('OP_IF/NOTIF argument must be minimal')
                    condition = _cast_to_bool(value)
                    if opcode == opcodes.OP_NOTIF:
                        condition = not condition
                ifstack.append(condition)
                continue

            elif opcode == opcodes.OP_ELSE:
                if len(ifstack) == 0:
                    _fail('invalid OP_IF construction')
                ifstack[-1] = not ifstack[-1]
                continue

            elif opcode == opcodes.OP_ENDIF:
                if len(ifstack) == 0:
                    _fail('invalid OP_IF construction')
                ifstack.pop()
                continue

            # we are in a branch with a false condition
            if not executing:
                continue

            if opcode == opcodes.OP_NOP:
                pass

            elif opcode == opcodes.OP_VERIFY:
                if len(stack) < 1:
                    _fail('stack underflow')
                if not _cast_to_bool(stack.pop()):
                    _fail('script failed an OP_VERIFY operation')

            elif opcode == opcodes.OP_RETURN:
                _fail('OP_RETURN was encountered')

            ### Stack Operations

            elif opcode == opcodes.OP_TOALTSTACK:
                if len(stack) < 1:
                    _fail('stack underflow')
                altstack.append(stack.pop())

            elif opcode == opcodes.OP_FROMALTSTACK:
                if len(altstack) < 1:
                    _fail('altstack underflow')
                stack.append(altstack.pop())

            elif opcode == opcodes.OP_IFDUP:
                if len(stack) < 1:
                    _fail('stack underflow')
                if _cast_to_bool(stack[-1]):
                    stack.append(stack[-1])

            elif opcode == opcodes.OP_DEPTH:
                stack.append(Utils.encode_script_num(len(stack)))

            elif opcode == opcodes.OP_DROP:
                _stack_op(stack, 1, lambda x: [])

            elif opcode == opcodes.OP_DUP:
                _stack_op(stack, 1, lambda x: [x, x])

            elif opcode == opcodes.OP_NIP:
                _stack_op(stack, 2, lambda x1, x2: [x2])

            elif opcode == opcodes.OP_OVER:
                _stack_op(stack, 2, lambda x1, x2: [x1, x2, x1])

            elif opcode in (opcodes.OP_PICK, opcodes.OP_ROLL):
                if len(stack) < 2:
                    _fail('stack underflow')
                n = _to_num(stack.pop())
                if not 0 <= n < len(stack):
                    _fail('invalid stack operation')
                if opcode == opcodes.OP_PICK:
                    stack.append(stack[-n - 1])
                else:
                    stack.append(stack.pop(-n - 1))

            elif opcode == opcodes.OP_ROT:
                _stack_op(stack, 3, lambda x1, x2, x3: [x2, x3, x1])

            elif opcode == opcodes.OP_SWAP:
                _stack_op(stack, 2, lambda x1, x2: [x2, x1])

            elif opcode == opcodes.OP_TUCK:
                _stack_op(stack, 2, lambda x1, x2: [x2, x1, x2])

            elif opcode == opcodes.OP_2DROP:
                _stack_op(stack, 2, lambda x1, x2: [])

            elif opcode == opcodes.OP_2DUP:
                _stack_op(stack, 2, lambda x1, x2: [x1, x2, x1, x2])

            elif opcode == opcodes.OP_3DUP:
                _stack_op(stack, 3, lambda x1, x2, x3: [x1, x2, x3, x1, x2, x3])

            elif opcode == opcodes.OP_2OVER:
                _stack_op(stack, 4, lambda x1, x2, x3, x4: [x1, x2, x3, x4, x1, x2])

            elif opcode == opcodes.OP_2ROT:
                _stack_op(stack, 6,
                          lambda x1, x2, x3, x4, x5, x6: [x3, x4, x5, x6, x1, x2])

            elif opcode == opcodes.OP_2SWAP:
                _stack_op(stack, 4, lambda x1, x2, x3, x4: [x3, x4, x1, x2])

            ### Splice Operations

            elif opcode == opcodes.OP_SIZE:
                if len(stack) < 1:
                    _fail('stack underflow')
                stack.append(Utils.encode_script_num(len(stack[-1])))

            ### Bitwise Logic Operations

            elif opcode == opcodes.OP_EQUAL:
                _stack_op(stack, 2, lambda x1, x2: [One if x1 == x2 else Zero])

            ### Arithmetic Operations

            elif opcode == opcodes.OP_1ADD:
                _math_op(stack, 1, lambda a: a + 1)

            elif opcode == opcodes.OP_1SUB:
                _math_op(stack, 1, lambda a: a - 1)

            elif opcode == opcodes.OP_NEGATE:
                _math_op(stack, 1, lambda a: -a)

            elif opcode == opcodes.OP_ABS:
                _math_op(stack, 1, lambda a: abs(a))

            elif opcode == opcodes.OP_NOT:
                _math_op(stack, 1, lambda a: a == 0)

            elif opcode == opcodes.OP_0NOTEQUAL:
                _math_op(stack, 1, lambda a: a != 0)

            elif opcode == opcodes.OP_ADD:
                _math_op(stack, 2, lambda a, b: a + b)

            elif opcode == opcodes.OP_SUB:
                _math_op(stack, 2, lambda a, b: a - b)

            elif opcode == opcodes.OP_BOOLAND:
                _math_op(stack, 2, lambda a, b: a != 0 and b != 0)

            elif opcode == opcodes.OP_BOOLOR:
                _math_op(stack, 2, lambda a, b: a != 0 or b != 0)

            elif opcode == opcodes.OP_NUMEQUAL:
                _math_op(stack, 2, lambda a, b: a == b)

            elif opcode == opcodes.OP_NUMNOTEQUAL:
                _math_op(stack, 2, lambda a, b: a != b)

            elif opcode == opcodes.OP_LESSTHAN:
                _math_op(stack, 2, lambda a, b: a < b)

            elif opcode == opcodes.OP_GREATERTHAN:
                _math_op(stack, 2, lambda a, b: a > b)

            elif opcode == opcodes.OP_LESSTHANOREQUAL:
                _math_op(stack, 2, lambda a, b: a <= b)

            elif opcode == opcodes.OP_GREATERTHANOREQUAL:
                _math_op(stack, 2, lambda a, b: a >= b)

            elif opcode == opcodes.OP_MIN:
                _math_op(stack, 2, lambda a, b: min(a, b))

            elif opcode == opcodes.OP_MAX:
                _math_op(stack, 2, lambda a, b: max(a, b))

            elif opcode == opcodes.OP_WITHIN:
                _math_op(stack, 3, lambda x, omin, omax: omin <= x < omax)

            ### Crypto Operations

            elif opcode == opcodes.OP_RIPEMD160:
                _hash_op(stack, Utils.ripemd160)

            elif opcode == opcodes.OP_SHA1:
                _hash_op(stack, _sha1)

            elif opcode == opcodes.OP_SHA256:
                _hash_op(stack, Utils.sha256)

            elif opcode == opcodes.OP_HASH160:
                _hash_op(stack, Utils.hash160)

            elif opcode == opcodes.OP_HASH256:
                _hash_op(stack, Utils.sha256d)

            elif opcode == opcodes.OP_CODESEPARATOR:
                codeseparator = position

            elif opcode == opcodes.OP_CHECKSIG:
                if len(stack) < 2:
                    _fail('stack underflow')

                # the public_key and signature are the values on top of the stack
                public_key = stack.pop()
                signature = stack.pop()

                valid = self.check_signature(signature, public_key,
                                             script[codeseparator:], input_index,
                                             amount, sigversion)
                if not valid and signature:
                    _fail('signature must be zero for failed CHECK(MULTI)SIG operation')

                stack.append(One if valid else Zero)

            elif opcode == opcodes.OP_CHECKMULTISIG:
                if len(stack) < 1:
                    _fail('stack underflow')

                # get all the public keys
                count = _to_num(stack.pop())
                if not 0 <= count <= Params.MAX_PUBKEYS_PER_MULTISIG:
                    _fail('pubkey count out of range')
                op_count += count
                if op_count > Params.MAX_OPS_PER_SCRIPT:
                    _fail('operation limit exceeded')
                if len(stack) < count + 1:
                    _fail('stack underflow')
                public_keys = [stack.pop() for _ in range(count)]

                # get all the signatures
                sig_count = _to_num(stack.pop())
                if not 0 <= sig_count <= count:
                    _fail('signature count out of range')
                if len(stack) < sig_count + 1:
                    _fail('stack underflow')
                signatures = [stack.pop() for _ in range(sig_count)]

                # due to a bug in the original client, discard an extra operand
                if stack.pop() != Zero:
                    _fail('CHECKMULTISIG dummy argument not null')

                # signatures must match the keys in order
                valid = True
                key_index = 0
                for signature in signatures:
                    while key_index < len(public_keys):
                        matched = self.check_signature(
                            signature, public_keys[key_index], script[codeseparator:],
                            input_index, amount, sigversion)
                        key_index += 1
                        if matched:
                            break
                    else:
                        valid = False
                        break

                if not valid and any(signatures):
                    _fail('signature must be zero for failed CHECK(MULTI)SIG operation')

                stack.append(One if valid else Zero)

            ### Locktime Operations

            elif opcode == opcodes.OP_CHECKLOCKTIMEVERIFY:
                if len(stack) < 1:
                    _fail('stack underflow')
                locktime = _to_num(stack[-1], max_size=5)
                if locktime < 0:
                    _fail('negative locktime')
                if not self.check_locktime(locktime, input_index):
                    _fail('locktime requirement not satisfied')

            elif opcode == opcodes.OP_CHECKSEQUENCEVERIFY:
                if len(stack) < 1:
                    _fail('stack underflow')
                csv = _to_num(stack[-1], max_size=5)
                if csv < 0:
                    _fail('negative locktime')
                # the disable flag makes it a NOP
                if not csv & Params.SEQUENCE_LOCKTIME_DISABLE_FLAG \
                        and not self.check_sequence(csv, input_index):
                    _fail('locktime requirement not satisfied')

            elif opcode == opcodes.OP_NOP1 or opcodes.OP_NOP4 <= opcode <= opcodes.OP_NOP10:
                pass

            else:
                _fail(f'bad opcode {opcodes.get_opcode_name(opcode)}')

            if len(stack) + len(altstack) > Params.MAX_STACK_SIZE:
                _fail('stack size limit exceeded')

        if ifstack:
            _fail('invalid OP_IF construction')


def verify_script(script_pubkey: bytes, amount: int, spending_tx: bytes,
                  input_index: int):
    """Verify the input at `input_index` of the serialized `spending_tx` spends
    an output of `amount` satoshis locked by `script_pubkey`.

    :raises ScriptVerifyError: with an ERR_* code if it does not.
    """
    try:
        tx = Transaction.deserialize(spending_tx)
        tx.validate_basics()
    except TxDeserializationError as e:
        raise ScriptVerifyError(ERR_TX_DESERIALIZE, e.msg)

    if not 0 <= input_index < len(tx.txins):
        raise ScriptVerifyError(ERR_TX_INDEX, f'no input at index {input_index}')

    Script(tx).verify_input(input_index, script_pubkey, amount)
