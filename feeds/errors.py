"""Exceptions raised by calendar backends."""


class BackendWriteError(Exception):
    """A backend record or term store refused or failed a write."""
