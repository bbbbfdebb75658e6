import struct

from revault_tx.script import opcodes
from revault_tx.utils.Errors import ScriptCreationError
from revault_tx.utils.Utils import Utils


def push_data(data: bytes) -> bytes:
    """Minimal push of `data` onto the stack."""
    length = len(data)
    if length == 0:
        return bytes([opcodes.OP_0])
    if length == 1 and 1 <= data[0] <= 16:
        return bytes([opcodes.OP_1 + data[0] - 1])
    if length == 1 and data[0] == 0x81:
        return bytes([opcodes.OP_1NEGATE])
    if length < opcodes.OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xff:
        return bytes([opcodes.OP_PUSHDATA1, length]) + data
    if length <= 0xffff:
        return bytes([opcodes.OP_PUSHDATA2]) + struct.pack('<H', length) + data
    return bytes([opcodes.OP_PUSHDATA4]) + struct.pack('<I', length) + data


def push_int(n: int) -> bytes:
    if n == 0:
        return bytes([opcodes.OP_0])
    if n == -1:
        return bytes([opcodes.OP_1NEGATE])
    if 1 <= n <= 16:
        return bytes([opcodes.OP_1 + n - 1])
    return push_data(Utils.encode_script_num(n))


def make_p2wsh_script(witness_script: bytes) -> bytes:
    return Script('OP_0').parse() + push_data(Utils.sha256(witness_script))


def make_p2wpkh_script(pubkey: bytes) -> bytes:
    return Script('OP_0').parse() + push_data(Utils.hash160(pubkey))


def make_pk_script(pk_hash: bytes) -> bytes:
    """P2PKH script, which is also the BIP143 script code of a P2WPKH output."""
    pubkey_script = Script('OP_DUP OP_HASH160').parse()
    pubkey_script += push_data(pk_hash)
    pubkey_script += Script('OP_EQUALVERIFY OP_CHECKSIG').parse()

    return pubkey_script


def get_witness_program(pk_script: bytes):
    """(version, program) if `pk_script` is a witness output, None otherwise."""
    if not 4 <= len(pk_script) <= 42:
        return None
    version = pk_script[0]
    if version != opcodes.OP_0 and not opcodes.OP_1 <= version <= opcodes.OP_16:
        return None
    if pk_script[1] + 2 != len(pk_script):
        return None
    return (0 if version == opcodes.OP_0 else version - opcodes.OP_1 + 1,
            pk_script[2:])


class Script:
    """
    This class represents a Bitcoin script, written as text.

    Opcodes are given by name, anything else is taken to be hex data to push,
    e.g. Script('OP_DUP OP_HASH160 1d0f...71a1 OP_EQUALVERIFY OP_CHECKSIG').
    """

    def __init__(self, script):
        """
        :param script: The script as a string.
        """
        self.script = script

    def parse(self) -> bytes:
        """
        Parses and serializes a script.

        :return: The serialized script, as bytes.
        """
        serialized_data = b''
        for element in self.script.split():
            if element in opcodes.OPCODES_BY_NAME:
                serialized_data += bytes([opcodes.OPCODES_BY_NAME[element]])
                continue

            # if there is some hex data in the script which is not an opcode
            try:
                serialized_data += push_data(bytes.fromhex(element))
            except ValueError:
                raise ScriptCreationError(
                    'Unexpected instruction in script : {}'.format(element))

        return serialized_data
