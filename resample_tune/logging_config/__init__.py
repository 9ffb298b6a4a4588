"""
Logging Configuration Module
============================

Responsibility:
- Root logger setup shared by every engine.
- Coloured console output and a rotating UTF-8 log file.
"""

from .logging_config import LoggingConfigurator

__all__ = ['LoggingConfigurator']
