"""shopsync — LAN master/client synchronization for the shop-floor job tracker."""

__version__ = "1.1.0"
