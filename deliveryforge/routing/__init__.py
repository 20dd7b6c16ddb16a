"""Channel message routing — dispatcher and sinks."""

from deliveryforge.routing.dispatcher import ChannelDispatcher, SinkDispatchError

__all__ = ["ChannelDispatcher", "SinkDispatchError"]
