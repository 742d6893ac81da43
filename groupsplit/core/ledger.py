"""
Balance accumulation and greedy debt matching.

Both functions are synchronous and in-memory. Money is Decimal throughout;
nothing here rounds.
"""
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from groupsplit.core.exceptions import ArithmeticInvariantViolation
from groupsplit.core.utils import ZERO, to_decimal

Transfer = Tuple[int, int, Decimal]


def accumulate_balances(expenses: Iterable, paid_settlements: Iterable = ()) -> Dict[int, Decimal]:
    """
    Fold a group's ledger into one signed balance per user.

    ``expenses`` items need ``paid_by``, ``amount`` and ``splits`` (items with
    ``user_id`` and ``amount``). ``paid_settlements`` items need
    ``from_user_id``, ``to_user_id`` and ``amount``.

    Positive means the user is owed money, negative means they owe. Keys keep
    the order users were first seen in, which the matcher relies on.
    """
    balances: Dict[int, Decimal] = {}

    for expense in expenses:
        payer = expense.paid_by
        balances[payer] = balances.get(payer, ZERO) + to_decimal(expense.amount)

        for split in expense.splits:
            balances[split.user_id] = balances.get(split.user_id, ZERO) - to_decimal(split.amount)

    # A paid settlement is a transfer that already happened
    for settlement in paid_settlements:
        amount = to_decimal(settlement.amount)
        balances[settlement.from_user_id] = balances.get(settlement.from_user_id, ZERO) + amount
        balances[settlement.to_user_id] = balances.get(settlement.to_user_id, ZERO) - amount

    return balances


def match_debts(balances: Dict[int, Decimal]) -> List[Transfer]:
    """
    Greedy two-pointer sweep from debtors to creditors.

    Returns ``(from_user_id, to_user_id, amount)`` tuples in emission order.
    Debtors and creditors are visited in the balance mapping's order. Raises
    ``ArithmeticInvariantViolation`` if the balances are not zero-sum.
    """
    debtors: List[List] = []
    creditors: List[List] = []

    for uid, bal in balances.items():
        bal = to_decimal(bal)
        if bal < 0:
            debtors.append([uid, -bal])
        elif bal > 0:
            creditors.append([uid, bal])

    total_debt = sum((amt for _, amt in debtors), ZERO)
    total_credit = sum((amt for _, amt in creditors), ZERO)

    if total_debt != total_credit:
        raise ArithmeticInvariantViolation(total_debt, total_credit)

    transfers: List[Transfer] = []
    d = c = 0

    while d < len(debtors) and c < len(creditors):
        debtor = debtors[d]
        creditor = creditors[c]

        amt = min(debtor[1], creditor[1])

        if amt > 0:
            transfers.append((debtor[0], creditor[0], amt))

        debtor[1] -= amt
        creditor[1] -= amt

        if debtor[1] == 0:
            d += 1
        if creditor[1] == 0:
            c += 1

    return transfers
