import logging
from typing import Callable

import grpc

from core.exceptions import GatewayRejected, GatewayUnreachable
from eventpool import wire
from eventpool.address import normalize_address

ChannelFactory = Callable[[str], grpc.aio.Channel]

GATEWAY_TIMEOUT = 5.0


class GatewayResolver:
    """
    Asks the discovery gateway which node serves a chain.

    Every resolution opens its own channel to the gateway and closes it
    before returning. No retries are made.

    Parameters
    ----------
    logger : logging.Logger
        Logger instance
    channel_factory : ChannelFactory
        Creates a channel for a ``host:port`` target
    timeout : float
        Deadline of the discovery call in seconds
    """

    def __init__(
        self,
        logger: logging.Logger,
        channel_factory: ChannelFactory = grpc.aio.insecure_channel,
        timeout: float = GATEWAY_TIMEOUT
    ):
        self.logger = logger
        self.channel_factory = channel_factory
        self.timeout = timeout

    async def resolve_node(self, gateway_address: str, chain_id: str) -> str:
        """
        Resolve the node address for a chain.

        Parameters
        ----------
        gateway_address : str
            Gateway ``host:port``, an ``http://`` prefix is stripped
        chain_id : str
            Chain identifier as known by the gateway

        Returns
        -------
        str
            Normalized node address

        Raises
        ------
        GatewayUnreachable
            If the gateway cannot be dialed or the call fails
        GatewayRejected
            If the gateway reports an error or an empty address
        """
        target = normalize_address(gateway_address)
        self.logger.info(f"Connecting to gateway at {target}")

        try:
            async with self.channel_factory(target) as channel:
                response = await wire.GatewayServiceStub(channel).GetNodeForChain(
                    wire.GetNodeRequest(chain_id=chain_id),
                    timeout=self.timeout
                )
        except grpc.RpcError as e:
            raise GatewayUnreachable(
                f"failed to get node from gateway: {e.code().name} {e.details()}",
                cause=e
            ) from e
        except OSError as e:
            raise GatewayUnreachable(f"failed to connect to gateway: {e}", cause=e) from e

        if response.error_message:
            raise GatewayRejected(f"gateway error: {response.error_message}")

        node_address = normalize_address(response.node_address)
        if not node_address:
            raise GatewayRejected("gateway returned an empty node address")

        self.logger.info(f"Gateway returned node address: {node_address}")
        return node_address
