"""
Fee treasury: the protocol's accrued cut, held in the oracle's escrow until
withdrawn to the configured recipient.
"""
import logging

from .custodian import FundCustodian
from .errors import AccessDenied, ConfigValidation
from .report_state import ZERO_ADDRESS

logger = logging.getLogger(__name__)


class FeeTreasury:
    """
    Two independent pools:
    - per-asset protocol fees taken from disputes
    - native currency swept from reporter rewards when a dispute occurred
      and the report did not opt to keep the fee

    Withdrawals may be triggered by anyone; funds always go to the
    recipient. Only the owner may change the recipient.
    """

    def __init__(self, custodian: FundCustodian, owner: bytes, recipient: bytes):
        if recipient == ZERO_ADDRESS:
            raise ConfigValidation("fee recipient cannot be the zero address")
        self.custodian = custodian
        self.owner = owner
        self.recipient = recipient
        self.protocol_fees: dict[bytes, int] = {}
        self.native_fees = 0

    def credit_protocol_fee(self, asset: bytes, amount: int):
        if amount:
            self.protocol_fees[asset] = self.protocol_fees.get(asset, 0) + amount

    def credit_native(self, amount: int):
        self.native_fees += amount

    def withdraw_protocol_fees(self, asset: bytes) -> int:
        amount = self.protocol_fees.get(asset, 0)
        if amount == 0:
            return 0
        self.protocol_fees[asset] = 0
        self.custodian.move_asset(asset, self.custodian.escrow_address, self.recipient, amount)
        logger.info(f"Withdrew {amount} of {asset.hex()[:8]} protocol fees to {self.recipient.hex()[:8]}")
        return amount

    def withdraw_native_fees(self) -> int:
        amount = self.native_fees
        if amount == 0:
            return 0
        self.native_fees = 0
        self.custodian.send_native_strict(self.recipient, amount)
        logger.info(f"Withdrew {amount} native fees to {self.recipient.hex()[:8]}")
        return amount

    def _only_owner(self, caller: bytes):
        if caller != self.owner:
            raise AccessDenied("caller is not the owner", caller=caller.hex())

    def update_fee_recipient(self, caller: bytes, new_recipient: bytes) -> bytes:
        """Set a new recipient; returns the previous one."""
        self._only_owner(caller)
        if new_recipient == ZERO_ADDRESS:
            raise ConfigValidation("fee recipient cannot be the zero address")
        old = self.recipient
        self.recipient = new_recipient
        return old

    def transfer_ownership(self, caller: bytes, new_owner: bytes) -> bytes:
        self._only_owner(caller)
        if new_owner == ZERO_ADDRESS:
            raise ConfigValidation("owner cannot be the zero address")
        old = self.owner
        self.owner = new_owner
        return old

    def snapshot(self) -> tuple:
        return dict(self.protocol_fees), self.native_fees, self.recipient, self.owner

    def restore(self, snap: tuple):
        protocol_fees, self.native_fees, self.recipient, self.owner = snap
        self.protocol_fees = dict(protocol_fees)
