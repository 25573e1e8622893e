from .service import BudgetService, budget_usage
