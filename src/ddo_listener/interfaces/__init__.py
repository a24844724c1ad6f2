"""Protocol interfaces for ddo_listener components."""

from ddo_listener.interfaces.fetcher import FileFetcher
from ddo_listener.interfaces.session import ChainSession
from ddo_listener.interfaces.submitter import DealSubmitter

__all__ = ["ChainSession", "DealSubmitter", "FileFetcher"]
