"""
Domain errors raised by the services and mapped to HTTP responses in main.py.
"""


class QBankError(Exception):
    """Base error carrying a human readable reason."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(QBankError):
    """A hierarchy node or question could not be found in any known source."""

    status_code = 404


class BadRequestError(QBankError):
    """A structural or business-rule violation."""

    status_code = 400


class StoreError(Exception):
    """A store-level failure while probing one hierarchy variant."""
