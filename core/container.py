import grpc
from dishka import AsyncContainer, make_async_container
from dishka.integrations.fastapi import FastapiProvider

from core.environment.config import Settings
from core.environment.providers import EnvironmentProvider
from core.logging.providers import LoggerProvider
from eventpool.gateway import ChannelFactory
from eventpool.providers import EventPoolProvider


def build_container(
    settings: Settings | None = None,
    channel_factory: ChannelFactory = grpc.aio.insecure_channel
) -> AsyncContainer:
    """
    Build the application container.

    Parameters
    ----------
    settings : Settings | None
        Prebuilt settings, loaded from the environment when omitted
    channel_factory : ChannelFactory
        Creates gRPC channels for gateway and node targets

    Returns
    -------
    AsyncContainer
        Application container
    """
    return make_async_container(
        FastapiProvider(),
        EnvironmentProvider(settings),
        LoggerProvider(),
        EventPoolProvider(channel_factory)
    )


container = build_container()
