import os

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from core.exceptions import ChainNotConfiguredException


class GatewaySettings(BaseModel):
    """
    Discovery gateway settings.

    Attributes
    ----------
    address : str
        Gateway host, may carry an ``http://`` prefix
    port : int
        Gateway port
    enabled : bool
        Ask the gateway for a node before falling back to the direct address
    timeout : float
        Deadline of the discovery call in seconds
    """
    address: str = "localhost"
    port: int = 50051
    enabled: bool = True
    timeout: float = Field(default=5.0, gt=0)


class NodeSettings(BaseModel):
    """
    Event pool node settings.

    Attributes
    ----------
    fallback_address : str
        Node dialed when the gateway is disabled or fails
    dial_timeout : float
        Seconds to wait for the node channel to become ready, 0 dials lazily
    """
    fallback_address: str = "localhost:9090"
    dial_timeout: float = Field(default=5.0, ge=0)


class ChainConfig(BaseModel):
    """
    Per-chain subscription defaults.

    Attributes
    ----------
    chain_id : int
        Numeric chain identifier sent to the event pool
    contract_address : str
        Contract whose events are followed
    event_signature : str
        Event signature to match
    gateway_chain_id : str | None
        Identifier the gateway knows the chain by, defaults to ``chain_id``
    """
    chain_id: int
    contract_address: str
    event_signature: str
    gateway_chain_id: str | None = None

    def get_gateway_chain_id(self) -> str:
        return self.gateway_chain_id or str(self.chain_id)


class Settings(BaseSettings):
    """
    Application settings using Pydantic Settings.

    Values are read from init arguments, environment variables (nested
    fields separated by ``__``), the ``.env`` file and finally the YAML
    file named by ``CONFIG_PATH``.

    Attributes
    ----------
    gateway : GatewaySettings
        Discovery gateway settings
    node : NodeSettings
        Direct node settings
    chain : str
        Name of the chain served by this instance
    chains : dict[str, ChainConfig]
        Known chains by name
    log_level : str
        Root logging level
    """

    gateway: GatewaySettings = GatewaySettings()
    node: NodeSettings = NodeSettings()
    chain: str = "polygon"
    chains: dict[str, ChainConfig] = {}
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE", ".env"),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        yaml_file=os.getenv("CONFIG_PATH", "config/config.yaml"),
        case_sensitive=False,
        extra="ignore"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def get_gateway_addr(self) -> str:
        """
        Get the gateway address in ``host:port`` form.

        Returns
        -------
        str
            Gateway address
        """
        return f"{self.gateway.address}:{self.gateway.port}"

    def get_chain_config(self, name: str | None = None) -> ChainConfig:
        """
        Get configuration for a chain.

        Parameters
        ----------
        name : str | None
            Chain name, defaults to the served chain

        Returns
        -------
        ChainConfig
            Chain configuration

        Raises
        ------
        ChainNotConfiguredException
            If the chain is not present in ``chains``
        """
        name = name or self.chain
        chain = self.chains.get(name)
        if chain is None:
            raise ChainNotConfiguredException(f"chain {name} not found in configuration")
        return chain


def load_settings(config_path: str | None = None, **values) -> Settings:
    """
    Build settings, optionally reading a specific YAML file.

    Parameters
    ----------
    config_path : str | None
        YAML file to read instead of the ``CONFIG_PATH`` default
    **values
        Explicit overrides, highest priority

    Returns
    -------
    Settings
        Application settings
    """
    if config_path is None:
        return Settings(**values)

    class FileSettings(Settings):
        model_config = SettingsConfigDict(yaml_file=config_path)

    return FileSettings(**values)
