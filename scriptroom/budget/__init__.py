from .costs import VideoCostModel, cost_model_from_config, per_second_cost, zero_cost
from .ledger import BudgetDecision, BudgetLedger

__all__ = [
    "BudgetDecision",
    "BudgetLedger",
    "VideoCostModel",
    "cost_model_from_config",
    "per_second_cost",
    "zero_cost",
]
