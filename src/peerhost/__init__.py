"""peerhost - Addon host for long-running peer nodes.

peerhost loads third-party addons into a peer node and hands each one a
narrow, permission-gated API onto the node's shared services. Addons never
see each other's storage: every store they open is namespaced by the
addon's own bound identity.

Key modules:

- :mod:`peerhost.addons` - Addon host, per-addon API facade, manifests, resolvers
- :mod:`peerhost.storage` - Scoped storage gateway and local storage engines
- :mod:`peerhost.events` - Synchronous publish/subscribe event bus
- :mod:`peerhost.identity` - Node identity providers
- :mod:`peerhost.node` - Runtime wiring for a complete node
- :mod:`peerhost.config` - YAML configuration
"""

__version__ = "0.1.0"
