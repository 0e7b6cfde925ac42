from dishka import Provider, Scope, provide

from core.environment.config import Settings, load_settings


class EnvironmentProvider(Provider):
    """
    Provider for environment configuration.

    Parameters
    ----------
    settings : Settings | None
        Prebuilt settings, loaded from the environment when omitted
    """

    component = "environment"
    scope = Scope.APP

    def __init__(self, settings: Settings | None = None):
        super().__init__()
        self._settings = settings

    @provide
    def get_environment(self) -> Settings:
        """
        Provide application settings.

        Returns
        -------
        Settings
            Application settings instance
        """
        return self._settings or load_settings()
