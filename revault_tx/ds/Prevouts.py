"""Role-tagged references to previous transaction outputs.

Each class wraps an `OutPoint` and only records which protocol role the
referenced output plays, so that transaction constructors can accept the
inputs they are allowed to spend and nothing else.
"""
from revault_tx.ds.OutPoint import OutPoint


class RevaultPrevout(object):

    def __init__(self, outpoint: OutPoint):
        if not isinstance(outpoint, OutPoint):
            raise TypeError(f'Expected an OutPoint, got {outpoint!r}')
        self._outpoint = outpoint

    def outpoint(self) -> OutPoint:
        return self._outpoint

    def __eq__(self, other):
        return type(self) is type(other) and self._outpoint == other._outpoint

    def __hash__(self):
        return hash((type(self).__name__, self._outpoint))

    def __repr__(self):
        return f'{type(self).__name__}({self._outpoint})'


class VaultPrevout(RevaultPrevout):
    """A vault txo spent by the unvault transaction and the emergency transaction."""


class UnvaultPrevout(RevaultPrevout):
    """An unvault txo spent by the cancel, unvault emergency and spend transactions."""


class FeeBumpPrevout(RevaultPrevout):
    """A wallet txo spent by a revaulting (cancel and emergency) transaction to bump
    its feerate."""
