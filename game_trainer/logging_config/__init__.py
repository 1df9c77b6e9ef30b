"""Structured logging helpers for the game trainer."""

from .helpers import LogConstantMixin, log_constant
from .log_constants import LogConstant
from .logger import configure_logging

__all__ = ["LogConstant", "LogConstantMixin", "log_constant", "configure_logging"]
