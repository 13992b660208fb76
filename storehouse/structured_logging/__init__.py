"""
Structured logging package for the storehouse real-time service.

All imports should use explicit paths like
'from storehouse.structured_logging.enhanced_logging_config import get_logger'.

The package is named 'structured_logging' rather than 'logging' so it never
shadows the standard library module.
"""

__all__: list[str] = []
