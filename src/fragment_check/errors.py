# -*- coding: utf-8 -*-
"""Exception types raised by fragment_check."""

from __future__ import annotations

from fragment_check.result import DatabaseError


class FragmentCheckError(Exception):
    """Base class for fragment_check errors."""


class ConfigurationError(FragmentCheckError):
    """Exception raised for invalid settings."""


class DatabaseConnectionError(FragmentCheckError):
    """Exception raised when the database cannot be reached or the pool fails."""


class StatementRejectedError(FragmentCheckError):
    """Exception raised when the database rejects a check statement."""

    def __init__(self, error: DatabaseError):
        super().__init__(error.message)
        self.error = error
