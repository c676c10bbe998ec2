"""BudgetFlow: multi-level budget approval workflow service."""
