import logging
import sys
from typing import Annotated

from dishka import FromComponent, Provider, Scope, provide

from core.environment.config import Settings

LOGGER_NAME = "eventpool_client"


def configure_logging(level: str = "INFO", stream=sys.stdout) -> logging.Logger:
    """
    Configure console logging once and return the application logger.

    Parameters
    ----------
    level : str
        Root logging level name
    stream : TextIO
        Stream the console handler writes to

    Returns
    -------
    logging.Logger
        Application logger
    """
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level.upper(),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.StreamHandler(stream)
            ]
        )

    return logging.getLogger(LOGGER_NAME)


class LoggerProvider(Provider):
    """
    Provider for logging configuration and logger instances.

    Configures logging to output to console (stdout) at the configured level.
    """
    component = "logger"

    @provide(scope=Scope.APP)
    def get_logger(
        self,
        settings: Annotated[Settings, FromComponent("environment")]
    ) -> logging.Logger:
        """
        Provide configured logger instance.

        Parameters
        ----------
        settings : Settings
            Application settings

        Returns
        -------
        logging.Logger
            Configured logger that writes to console
        """
        return configure_logging(settings.log_level)
