class Params:
    # Version of every transaction we create. BIP68 relative locks are only
    # enforced for version >= 2.
    TX_VERSION = int(2)

    # We don't use absolute timelocks.
    # TODO: anti fee-sniping (set it to the current height) once the callers
    # stop relying on the txids of the presigned transactions.
    TX_LOCKTIME = int(0)

    # TxIn's sequence to set for the tx to be bip125-replaceable.
    RBF_SEQUENCE = int(0xFFFFFFFF - 2)

    # Final, non-replaceable sequence. Disables relative locktime for the input.
    SEQUENCE_FINAL = int(0xFFFFFFFF)

    # The number of satoshis per coin. #realname COIN
    SATS_PER_COIN = int(100e6)

    TOTAL_COINS = int(21_000_000)

    # The maximum number of satoshis that will ever exist.
    MAX_MONEY = SATS_PER_COIN * TOTAL_COINS

    # The only two signature hash types the protocol ever uses.
    SIGHASH_ALL = int(0x01)
    SIGHASH_ANYONECANPAY = int(0x80)
    SIGHASH_ALL_ANYONECANPAY = SIGHASH_ALL | SIGHASH_ANYONECANPAY

    # BIP68 / BIP112 sequence fields.
    SEQUENCE_LOCKTIME_DISABLE_FLAG = int(1 << 31)
    SEQUENCE_LOCKTIME_TYPE_FLAG = int(1 << 22)
    SEQUENCE_LOCKTIME_MASK = int(0x0000FFFF)

    # Script interpreter limits (as enforced by the reference client).
    MAX_SCRIPT_SIZE = int(10000)
    MAX_SCRIPT_ELEMENT_SIZE = int(520)
    MAX_OPS_PER_SCRIPT = int(201)
    MAX_STACK_SIZE = int(1000)
    MAX_PUBKEYS_PER_MULTISIG = int(20)

    # Witness program sizes for version 0.
    WITNESS_V0_KEYHASH_SIZE = int(20)
    WITNESS_V0_SCRIPTHASH_SIZE = int(32)

    # Environment variable holding the logging level name.
    LOG_LEVEL_ENV = 'RT_LOG_LEVEL'
    LOG_FORMAT = '[%(asctime)s][%(module)s:%(lineno)d] %(levelname)s %(message)s'
