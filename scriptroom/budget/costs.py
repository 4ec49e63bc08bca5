"""Cost models for video generation"""

from typing import Callable

VideoCostModel = Callable[[int], float]


def zero_cost(duration: int) -> float:
    """Placeholder deployments never charge."""
    return 0.0


def per_second_cost(rate: float) -> VideoCostModel:
    """Flat per-second pricing, e.g. per_second_cost(0.25) for a 5s clip costs $1.25"""
    if rate < 0:
        raise ValueError("rate must be non-negative")

    def _cost(duration: int) -> float:
        return round(rate * duration, 4)

    return _cost


def cost_model_from_config(rate: float) -> VideoCostModel:
    return per_second_cost(rate) if rate > 0 else zero_cost
