# haatbazaar/modules/expenses/exceptions.py
from haatbazaar.core.exceptions import NotFoundError, ValidationFailedError


class ExpenseError(Exception):
    """Base exception for expense tracking errors."""
    pass


class ExpenseProjectNotFoundError(ExpenseError, NotFoundError):
    def __init__(self, project_id: str):
        super().__init__("Project not found")
        self.project_id = project_id


class ExpenseNotFoundError(ExpenseError, NotFoundError):
    def __init__(self, expense_id: str):
        super().__init__("Expense not found")
        self.expense_id = expense_id


class InvalidExpenseFilterError(ExpenseError, ValidationFailedError):
    def __init__(self, reason: str):
        super().__init__(reason)
