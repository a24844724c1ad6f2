"""ddo_listener - storage provider daemon for on-chain DDO allocations."""

__version__ = "0.1.0"
