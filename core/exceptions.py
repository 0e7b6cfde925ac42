from abc import ABC


class BaseCustomException(Exception, ABC):
    """
    Base class for all custom exceptions.

    Parameters
    ----------
    message : str | None
        Error message, falls back to the default message of the class
    cause : BaseException | None
        Underlying error that triggered this one
    """

    def __init__(self, message: str | None = None, cause: BaseException | None = None):
        self.message = message or self.get_default_message()
        self.cause = cause
        super().__init__(self.message)

    def get_default_message(self) -> str:
        """
        Return default error message.

        Returns
        -------
        str
            Default error message
        """
        return "error.unknown"

    def get_status_code(self) -> int:
        """
        Return HTTP status code for exception.

        Returns
        -------
        int
            HTTP status code
        """
        return 500


class NotFoundException(BaseCustomException):
    """Not found exception (404)."""

    def get_status_code(self) -> int:
        return 404


class BadGatewayException(BaseCustomException):
    """Upstream service failure (502)."""

    def get_status_code(self) -> int:
        return 502


class ServiceUnavailableException(BaseCustomException):
    """Upstream service cannot be reached or is gone (503)."""

    def get_status_code(self) -> int:
        return 503


class ChainNotConfiguredException(NotFoundException):
    """Chain is missing from the configuration."""

    def get_default_message(self) -> str:
        return "error.chain.not_configured"


class GatewayUnreachable(BadGatewayException):
    """Gateway could not be dialed or the discovery call failed."""

    def get_default_message(self) -> str:
        return "error.gateway.unreachable"


class GatewayRejected(BadGatewayException):
    """Gateway answered with an application-level error message."""

    def get_default_message(self) -> str:
        return "error.gateway.rejected"


class DialError(ServiceUnavailableException):
    """Node channel could not be established."""

    def get_default_message(self) -> str:
        return "error.node.dial_failed"


class SubscriptionError(BadGatewayException):
    """Event stream could not be opened."""

    def get_default_message(self) -> str:
        return "error.subscription.failed"


class QueryError(BadGatewayException):
    """Historical event query failed."""

    def get_default_message(self) -> str:
        return "error.query.failed"


class ConnectionClosed(ServiceUnavailableException):
    """Operation issued through a connection that was already closed."""

    def get_default_message(self) -> str:
        return "error.connection.closed"


class InvalidStateException(BaseCustomException):
    """Operation is not allowed in the current connection state."""

    def get_default_message(self) -> str:
        return "error.connection.invalid_state"
