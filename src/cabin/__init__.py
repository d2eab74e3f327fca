"""cabin: a terminal chat client for cabal-style peer-to-peer chat."""

__version__ = "0.1.0"
