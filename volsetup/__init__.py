"""volsetup — provision Volatility 2.6.1 onto a Python 3 Debian system."""

__version__ = "0.1.0"
