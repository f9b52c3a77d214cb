"""
Host ledger: account balances for native currency and fungible assets,
spending allowances, deployed contract hooks and the block clock.

The oracle never owns this state; it only moves value through it. Tests
fund accounts directly the same way genesis tooling pre-mines balances.
"""
import copy
import time
import logging
from contextlib import contextmanager
from typing import Optional

from .errors import TransferFailure

logger = logging.getLogger(__name__)

# Reserved addresses
NATIVE_ASSET = b'\x00' * 20
WRAPPED_NATIVE_ADDRESS = b'\x00' * 19 + b'\x0E'

DEFAULT_BLOCK_TIME = 12  # seconds


class Clock:
    """Block height and timestamp of the host chain."""

    def __init__(self, timestamp: Optional[int] = None, block_number: int = 1):
        self.timestamp = int(timestamp if timestamp is not None else time.time())
        self.block_number = block_number

    def advance(self, seconds: int = 0, blocks: int = 0):
        """Move time forward without coupling seconds and blocks."""
        if seconds < 0 or blocks < 0:
            raise ValueError("Clock cannot move backwards")
        self.timestamp += seconds
        self.block_number += blocks

    def mine(self, blocks: int = 1, block_time: int = DEFAULT_BLOCK_TIME):
        """Produce `blocks` blocks, each `block_time` seconds apart."""
        self.advance(seconds=blocks * block_time, blocks=blocks)

    def now(self, time_unit) -> int:
        """Current tick in the given time unit."""
        if time_unit.value == 'seconds':
            return self.timestamp
        return self.block_number

    def __repr__(self) -> str:
        return f"Clock(timestamp={self.timestamp}, block={self.block_number})"


class Ledger:
    def __init__(self, clock: Optional[Clock] = None,
                 wrapped_native: bytes = WRAPPED_NATIVE_ADDRESS):
        self.clock = clock or Clock()
        self.wrapped_native = wrapped_native
        # {address: {'balances': {asset: int}, 'allowances': {spender: {asset: int}}, 'nonce': int}}
        self.accounts: dict[bytes, dict] = {}
        # (asset, address) pairs that refuse incoming transfers
        self.blocked: set[tuple[bytes, bytes]] = set()
        # address -> contract object; `receive(sender, amount)` is its native hook
        self.contracts: dict[bytes, object] = {}
        # Undo entries for writes made inside isolated() blocks
        self._undo: list[tuple] = []
        self._depth = 0

    # ==========================================================================
    # ACCOUNT MANAGEMENT
    # ==========================================================================

    def _get_account(self, addr: bytes) -> dict:
        account = self.accounts.get(addr)
        if account is None:
            account = {'balances': {}, 'allowances': {}, 'nonce': 0}
            self.accounts[addr] = account
            self._log('account', addr)
        return account

    def get_account(self, address: bytes) -> dict:
        """Public read-only copy of an account."""
        return copy.deepcopy(self._get_account(address))

    def balance_of(self, address: bytes, asset: bytes = NATIVE_ASSET) -> int:
        account = self.accounts.get(address)
        if account is None:
            return 0
        return account['balances'].get(asset, 0)

    def _set_balance(self, address: bytes, asset: bytes, amount: int):
        balances = self._get_account(address)['balances']
        self._log('balance', address, asset, balances.get(asset))
        balances[asset] = amount

    def _credit(self, address: bytes, asset: bytes, amount: int):
        self._set_balance(address, asset, self.balance_of(address, asset) + amount)

    def _debit(self, address: bytes, asset: bytes, amount: int):
        available = self.balance_of(address, asset)
        if available < amount:
            raise TransferFailure(
                "insufficient balance",
                asset=asset.hex(),
                account=address.hex(),
                available=available,
                required=amount,
            )
        self._set_balance(address, asset, available - amount)

    def mint(self, address: bytes, amount: int, asset: bytes = NATIVE_ASSET):
        """Create balance out of thin air. Used for funding."""
        if amount < 0:
            raise ValueError("Cannot mint a negative amount")
        self._credit(address, asset, amount)

    def get_nonce(self, address: bytes) -> int:
        return self._get_account(address)['nonce']

    def increment_nonce(self, address: bytes):
        account = self._get_account(address)
        self._log('nonce', address, account['nonce'])
        account['nonce'] += 1

    # ==========================================================================
    # ASSET TRANSFERS
    # ==========================================================================

    def approve(self, owner: bytes, spender: bytes, asset: bytes, amount: int):
        allowances = self._get_account(owner)['allowances']
        self._log('allowance', owner, spender, asset, allowances.get(spender, {}).get(asset))
        allowances.setdefault(spender, {})[asset] = amount

    def allowance(self, owner: bytes, spender: bytes, asset: bytes) -> int:
        account = self.accounts.get(owner)
        if account is None:
            return 0
        return account['allowances'].get(spender, {}).get(asset, 0)

    def block(self, asset: bytes, address: bytes):
        """Make `address` refuse incoming transfers of `asset`."""
        self._log('blocked', (asset, address), (asset, address) in self.blocked)
        self.blocked.add((asset, address))

    def unblock(self, asset: bytes, address: bytes):
        self._log('blocked', (asset, address), (asset, address) in self.blocked)
        self.blocked.discard((asset, address))

    def transfer(self, asset: bytes, frm: bytes, to: bytes, amount: int):
        """Move an asset balance. Raises TransferFailure, changing nothing."""
        if amount < 0:
            raise TransferFailure("negative transfer amount", amount=amount)
        if (asset, to) in self.blocked:
            raise TransferFailure("recipient blocked", asset=asset.hex(), recipient=to.hex())
        self._debit(frm, asset, amount)
        self._credit(to, asset, amount)

    def transfer_from(self, spender: bytes, asset: bytes, frm: bytes, to: bytes, amount: int):
        """Allowance-authorized pull of `amount` from `frm`."""
        approved = self.allowance(frm, spender, asset)
        if approved < amount:
            raise TransferFailure(
                "insufficient allowance",
                asset=asset.hex(),
                owner=frm.hex(),
                approved=approved,
                required=amount,
            )
        self.transfer(asset, frm, to, amount)
        self.approve(frm, spender, asset, approved - amount)

    # ==========================================================================
    # NATIVE CURRENCY
    # ==========================================================================

    def deploy(self, address: bytes, contract: object):
        """Attach contract code to an address."""
        self.contracts[address] = contract

    def code_at(self, address: bytes) -> Optional[object]:
        return self.contracts.get(address)

    def send_native(self, frm: bytes, to: bytes, amount: int):
        """Pay native currency, running the recipient's receive hook.

        A hook that raises rejects the payment; every ledger change made
        during the attempt is undone before TransferFailure propagates.
        """
        try:
            with self.isolated():
                self.transfer(NATIVE_ASSET, frm, to, amount)
                hook = getattr(self.contracts.get(to), 'receive', None)
                if hook is not None:
                    hook(frm, amount)
        except TransferFailure:
            raise
        except Exception as e:
            raise TransferFailure("native payment rejected", recipient=to.hex(), error=str(e)) from e

    def wrap_native(self, holder: bytes, amount: int):
        """Convert native currency into the wrapped-native asset 1:1."""
        self.transfer(NATIVE_ASSET, holder, self.wrapped_native, amount)
        self._credit(holder, self.wrapped_native, amount)

    # ==========================================================================
    # CHECKPOINTS
    # ==========================================================================

    def _log(self, *entry):
        if self._depth:
            self._undo.append(entry)

    def _revert(self, mark: int):
        while len(self._undo) > mark:
            kind, *args = self._undo.pop()
            if kind == 'account':
                self.accounts.pop(args[0], None)
            elif kind == 'balance':
                address, asset, old = args
                balances = self.accounts[address]['balances']
                if old is None:
                    balances.pop(asset, None)
                else:
                    balances[asset] = old
            elif kind == 'allowance':
                owner, spender, asset, old = args
                allowances = self.accounts[owner]['allowances']
                if old is not None:
                    allowances[spender][asset] = old
                else:
                    allowances[spender].pop(asset, None)
                    if not allowances[spender]:
                        del allowances[spender]
            elif kind == 'nonce':
                address, old = args
                self.accounts[address]['nonce'] = old
            elif kind == 'blocked':
                key, was_blocked = args
                if was_blocked:
                    self.blocked.add(key)
                else:
                    self.blocked.discard(key)

    @contextmanager
    def isolated(self):
        """Undo every ledger write made in the block if it raises.

        Blocks nest: an inner failure rolls back only the inner writes.
        Only the entries actually touched are recorded, so the cost does
        not depend on how many accounts exist.
        """
        mark = len(self._undo)
        self._depth += 1
        try:
            yield self
        except Exception:
            self._revert(mark)
            raise
        finally:
            self._depth -= 1
            if not self._depth:
                self._undo.clear()
