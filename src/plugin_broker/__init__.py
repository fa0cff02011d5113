"""Plugin broker - resolves workspace plugins into runnable sidecar descriptors.

Given plugin references supplied by a workspace controller, the broker
fetches plugin metadata from registries, downloads extension artifacts into
the shared plugins volume, wires sidecar containers and reports the result
back over a JSON-RPC control channel.

Key modules:

- :mod:`plugin_broker.broker` - Pipeline driver and lifecycle events
- :mod:`plugin_broker.registry` - Plugin meta.yaml fetching
- :mod:`plugin_broker.validation` - Meta validation and classification by kind
- :mod:`plugin_broker.marketplace` - Extension URL resolution and marketplace queries
- :mod:`plugin_broker.materializer` - Artifact download and placement under /plugins
- :mod:`plugin_broker.sidecar` - Sidecar ports, endpoints, env and volumes
- :mod:`plugin_broker.injector` - Remote runtime injection from the editor plugin
- :mod:`plugin_broker.events` - In-process event bus
- :mod:`plugin_broker.tunnel` - JSON-RPC WebSocket control channel
"""

__version__ = "0.4.0"
