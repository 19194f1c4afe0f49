"""
Anchor-layer token balances and per-contract withdraw ledgers.

`BalanceTable` maps (account, token) -> amount. `AnchorBank` wraps it with
transfers and optional receive hooks so contract-like recipients (auctions,
escrow vaults, misbehaving bidders) can refuse funds or call back into the
protocol while being paid.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional, Tuple

from ..errors import InvalidParameter, PaymentFailure
from .identities import Amount, AnchorAccount, NATIVE_TOKEN, TokenAddress, anchor_account


logger = logging.getLogger(__name__)

# hook(sender, token, amount); raising refuses the payment.
ReceiveHook = Callable[[AnchorAccount, TokenAddress, Amount], None]


class BalanceTable:
    """
    Balance table mapping (account, token) -> amount.

    Zero entries are dropped to keep the table sparse.
    """

    def __init__(self) -> None:
        self._balances: Dict[Tuple[AnchorAccount, TokenAddress], Amount] = {}

    def get(self, account: AnchorAccount, token: TokenAddress = NATIVE_TOKEN) -> Amount:
        """Get balance for (account, token). Returns 0 if not found."""
        return self._balances.get((account, token), 0)

    def set(self, account: AnchorAccount, token: TokenAddress, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        if amount == 0:
            self._balances.pop((account, token), None)
        else:
            self._balances[(account, token)] = amount

    def add(self, account: AnchorAccount, token: TokenAddress, delta: int) -> None:
        """
        Add delta to balance.

        Raises:
            ValueError: If resulting balance would be negative
        """
        current = self.get(account, token)
        new_balance = current + delta
        if new_balance < 0:
            raise ValueError(f"Insufficient balance: {current} + {delta} = {new_balance} < 0")
        self.set(account, token, new_balance)

    def total(self, token: TokenAddress = NATIVE_TOKEN) -> Amount:
        return sum(v for (_, t), v in self._balances.items() if t == token)

    def get_all_balances(self) -> Dict[Tuple[AnchorAccount, TokenAddress], Amount]:
        return dict(self._balances)

    def restore(self, balances: Dict[Tuple[AnchorAccount, TokenAddress], Amount]) -> None:
        """Replace every entry with a copy taken by `get_all_balances`."""
        self._balances = {k: v for k, v in balances.items() if v}

    def __repr__(self) -> str:
        return f"BalanceTable({len(self._balances)} entries)"


class AnchorBank:
    """The anchor layer's ledger of token balances."""

    def __init__(self) -> None:
        self._table = BalanceTable()
        self._hooks: Dict[AnchorAccount, ReceiveHook] = {}
        self._lock = threading.RLock()

    def balance_of(self, account: AnchorAccount, token: TokenAddress = NATIVE_TOKEN) -> Amount:
        return self._table.get(anchor_account(account), anchor_account(token, name="token"))

    def mint(self, account: AnchorAccount, amount: Amount, token: TokenAddress = NATIVE_TOKEN) -> None:
        """Credit new funds to an account (faucet / test setup)."""
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidParameter(f"mint amount must be a positive int: {amount!r}")
        with self._lock:
            self._table.add(anchor_account(account), anchor_account(token, name="token"), amount)

    def set_receive_hook(self, account: AnchorAccount, hook: Optional[ReceiveHook]) -> None:
        account = anchor_account(account)
        if hook is None:
            self._hooks.pop(account, None)
        else:
            self._hooks[account] = hook

    def transfer(
        self,
        sender: AnchorAccount,
        recipient: AnchorAccount,
        amount: Amount,
        token: TokenAddress = NATIVE_TOKEN,
    ) -> None:
        """
        Move `amount` of `token` from sender to recipient.

        The recipient's receive hook runs after the balances move, with the
        bank lock held. If it raises, every balance is restored to its value
        before this transfer (including moves the hook made itself) and
        `PaymentFailure` is raised.
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise InvalidParameter(f"transfer amount must be a non-negative int: {amount!r}")
        sender = anchor_account(sender, name="sender")
        recipient = anchor_account(recipient, name="recipient")
        token = anchor_account(token, name="token")
        if amount == 0:
            return

        with self._lock:
            available = self._table.get(sender, token)
            if available < amount:
                raise PaymentFailure(f"insufficient balance: {sender} has {available}, needs {amount}")
            hook = self._hooks.get(recipient)
            snapshot = self._table.get_all_balances() if hook is not None else None
            self._table.add(sender, token, -amount)
            self._table.add(recipient, token, amount)
            if hook is None:
                return
            try:
                hook(sender, token, amount)
            except Exception as exc:
                self._table.restore(snapshot)
                logger.warning("payment of %d from %s refused by %s: %s", amount, sender, recipient, exc)
                raise PaymentFailure(f"recipient {recipient} refused payment: {exc}") from exc

    def total_supply(self, token: TokenAddress = NATIVE_TOKEN) -> Amount:
        return self._table.total(token)

    def __repr__(self) -> str:
        return f"AnchorBank({self._table!r})"


class WithdrawLedger:
    """
    Pull-payment ledger: identity -> amount owed by one contract.

    Entries are only ever zeroed by `take`, which callers invoke strictly
    before the matching payout.
    """

    def __init__(self) -> None:
        self._owed: Dict[AnchorAccount, Amount] = {}

    def owed(self, account: AnchorAccount) -> Amount:
        return self._owed.get(account, 0)

    def credit(self, account: AnchorAccount, amount: Amount) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValueError(f"credit must be a non-negative int: {amount!r}")
        if amount:
            self._owed[account] = self._owed.get(account, 0) + amount

    def debit(self, account: AnchorAccount, amount: Amount) -> None:
        """Undo a prior credit (rollback of a failed unit)."""
        current = self._owed.get(account, 0)
        if amount > current:
            raise ValueError(f"debit exceeds owed amount: {amount} > {current}")
        if current - amount:
            self._owed[account] = current - amount
        else:
            self._owed.pop(account, None)

    def take(self, account: AnchorAccount) -> Amount:
        """Zero the entry and return what it held."""
        return self._owed.pop(account, 0)

    def total_owed(self) -> Amount:
        return sum(self._owed.values())

    def entries(self) -> Dict[AnchorAccount, Amount]:
        return dict(self._owed)
