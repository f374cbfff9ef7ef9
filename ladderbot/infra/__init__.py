"""
Infrastructure package.

This package contains the async SDK wrappers and logging configuration.
"""

from ladderbot.infra.async_execution import AsyncExchange
from ladderbot.infra.async_info import AsyncInfo
from ladderbot.infra.logging_cfg import CycleLogFile, build_logger, log_event

__all__ = [
    "AsyncExchange",
    "AsyncInfo",
    "CycleLogFile",
    "build_logger",
    "log_event",
]
