"""Stateless helpers shared across the application."""

from .formatting import (
    calculate_percentage,
    format_duration,
    format_number,
    format_timer,
    generate_uuid,
    get_random_items,
    shuffle,
)
from .storage import LocalStore

__all__ = [
    "calculate_percentage",
    "format_duration",
    "format_number",
    "format_timer",
    "generate_uuid",
    "get_random_items",
    "shuffle",
    "LocalStore",
]
