"""
Message classes and stubs of the gateway and event pool services.

``event_pool.proto`` is compiled when this module is imported, through
grpcio-tools, so no generated ``_pb2`` modules are checked in.
"""
import grpc

event_pool_pb2, event_pool_pb2_grpc = grpc.protos_and_services("eventpool/event_pool.proto")

PACKAGE = "proto"

GET_NODE_FOR_CHAIN = f"/{PACKAGE}.GatewayService/GetNodeForChain"
STREAM_EVENTS = f"/{PACKAGE}.EventService/StreamEvents"
GET_EVENTS = f"/{PACKAGE}.EventService/GetEvents"

# int32 fields of the requests
INT32_MAX = 2 ** 31 - 1

GetNodeRequest = event_pool_pb2.GetNodeRequest
GetNodeResponse = event_pool_pb2.GetNodeResponse
StreamEventsRequest = event_pool_pb2.StreamEventsRequest
Event = event_pool_pb2.Event
GetEventsRequest = event_pool_pb2.GetEventsRequest
EventData = event_pool_pb2.EventData
GetEventsResponse = event_pool_pb2.GetEventsResponse

GatewayServiceStub = event_pool_pb2_grpc.GatewayServiceStub
EventServiceStub = event_pool_pb2_grpc.EventServiceStub

GatewayServiceServicer = event_pool_pb2_grpc.GatewayServiceServicer
EventServiceServicer = event_pool_pb2_grpc.EventServiceServicer
add_GatewayServiceServicer_to_server = event_pool_pb2_grpc.add_GatewayServiceServicer_to_server
add_EventServiceServicer_to_server = event_pool_pb2_grpc.add_EventServiceServicer_to_server
