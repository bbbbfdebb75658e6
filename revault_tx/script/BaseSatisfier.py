class BaseSatisfier(object):
    """Signature oracle queried by the descriptors while building a witness.

    Signatures are (DER-encoded signature, sighash type) pairs."""

    def lookup_sig(self, pubkey):
        return None

    def lookup_pkh_sig(self, keyhash):
        return None

    def check_older(self, csv):
        return False
