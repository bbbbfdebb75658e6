

class RevaultError(Exception):
    def __init__(self, msg):
        super().__init__(msg)
        self.msg = msg

class TransactionCreationError(RevaultError):
    pass

class TransactionEncodingError(RevaultError):
    pass

class SignatureHashError(RevaultError):
    pass

class InputSatisfactionError(RevaultError):
    pass

class TransactionVerificationError(RevaultError):
    def __init__(self, msg, input_index=None):
        super().__init__(msg)
        self.input_index = input_index

class ScriptCreationError(RevaultError):
    pass

class SatisfactionError(RevaultError):
    pass

class ScriptVerifyError(RevaultError):
    def __init__(self, code, reason=''):
        super().__init__(f'{code}: {reason}' if reason else code)
        self.code = code
        self.reason = reason

class TxDeserializationError(RevaultError):
    pass
