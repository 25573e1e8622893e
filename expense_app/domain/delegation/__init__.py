"""Expense delegation between users of one organization."""
