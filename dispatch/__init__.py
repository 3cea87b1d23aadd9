"""Dispatch - order lifecycle and delivery tracking API"""

__version__ = "1.0.0"
