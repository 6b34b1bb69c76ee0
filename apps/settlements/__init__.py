"""
Settlements App - Shared Expenses and Who Owes Whom

This app records group expenses and keeps a minimal set of pending
settlements (debtor pays creditor) in sync with them. Every expense
change recomputes the group's settlements in the same transaction;
paid settlements are kept as history.
"""
