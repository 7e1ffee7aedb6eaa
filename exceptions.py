"""
Custom exceptions for the Incentive Tracker.

This module defines specific exception types for different error scenarios,
so adapters can translate backend failures into one vocabulary and the
session layer can decide between rollback and a visible message.
"""


class IncentiveError(Exception):
    """Base exception for incentive-tracker errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(IncentiveError):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: str = None, value=None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, details)
        self.field = field
        self.value = value


class StoreError(IncentiveError):
    """Raised when a read or write against the backing store fails."""

    def __init__(self, message: str, operation: str = None, table: str = None):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details)
        self.operation = operation
        self.table = table


class ConfigurationError(IncentiveError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, setting_key: str = None):
        details = {}
        if setting_key:
            details["setting_key"] = setting_key
        super().__init__(message, details)
        self.setting_key = setting_key
