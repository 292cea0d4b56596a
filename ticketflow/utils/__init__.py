"""Utility modules"""
from .logger import get_logger, setup_logging, set_correlation_id, get_correlation_id
from .idgen import generate_id, generate_correlation_id, IdFactory
from .time import utc_now, format_iso, parse_iso, Clock

__all__ = [
    "get_logger",
    "setup_logging",
    "set_correlation_id",
    "get_correlation_id",
    "generate_id",
    "generate_correlation_id",
    "IdFactory",
    "utc_now",
    "format_iso",
    "parse_iso",
    "Clock",
]
