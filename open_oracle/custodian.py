"""
Fund custodian: moves assets and native currency between participants and
the oracle's escrow address.
"""
import logging

from .errors import TransferFailure
from .ledger import Ledger, NATIVE_ASSET

logger = logging.getLogger(__name__)


class FundCustodian:
    def __init__(self, ledger: Ledger, escrow_address: bytes):
        self.ledger = ledger
        self.escrow_address = escrow_address
        self.forfeited_native = 0

    def move_asset(self, asset: bytes, frm: bytes, to: bytes, amount: int):
        """Move `amount` of `asset`; outbound when `frm` is the escrow.

        Any other source must have approved the escrow address to pull.
        Failures propagate as TransferFailure.
        """
        if amount == 0:
            return
        if frm == self.escrow_address:
            self.ledger.transfer(asset, frm, to, amount)
        else:
            self.ledger.transfer_from(self.escrow_address, asset, frm, to, amount)

    def pull_native(self, frm: bytes, amount: int):
        """Take native currency attached to a call into escrow."""
        if amount == 0:
            return
        self.ledger.transfer(NATIVE_ASSET, frm, self.escrow_address, amount)

    def send_native_strict(self, to: bytes, amount: int):
        if amount == 0:
            return
        self.ledger.send_native(self.escrow_address, to, amount)

    def move_native(self, to: bytes, amount: int) -> bool:
        """Best-effort native payout out of escrow.

        A rejected payment is retried as wrapped native. If that also
        fails the amount stays in escrow as forfeited. Returns whether
        the recipient was paid in either form.
        """
        if amount == 0:
            return True
        try:
            self.ledger.send_native(self.escrow_address, to, amount)
            return True
        except TransferFailure as e:
            logger.warning(f"Native payment of {amount} to {to.hex()[:8]} rejected: {e.reason}")

        try:
            with self.ledger.isolated():
                self.ledger.wrap_native(self.escrow_address, amount)
                self.ledger.transfer(self.ledger.wrapped_native, self.escrow_address, to, amount)
            logger.info(f"Paid {amount} to {to.hex()[:8]} as wrapped native")
            return True
        except TransferFailure as e:
            self.forfeited_native += amount
            logger.warning(f"Wrapped fallback to {to.hex()[:8]} failed ({e.reason}); forfeited {amount}")
            return False
