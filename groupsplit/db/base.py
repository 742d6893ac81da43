# Import every model so relationship() strings resolve and metadata is complete.
from groupsplit.db.session import Base  # noqa: F401
from groupsplit.models.user import User  # noqa: F401
from groupsplit.models.group import Group  # noqa: F401
from groupsplit.models.group_member import GroupMember  # noqa: F401
from groupsplit.models.expense import Expense  # noqa: F401
from groupsplit.models.expense_split import ExpenseSplit  # noqa: F401
from groupsplit.models.settlement import Settlement, SettlementStatus  # noqa: F401
