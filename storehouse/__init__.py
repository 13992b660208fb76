"""
Storehouse real-time service.

Connection tracking, per-company chat broadcast and order notification
push for the storehouse management dashboard.
"""

__version__ = "0.1.0"
