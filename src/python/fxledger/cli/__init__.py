"""fxledger command line interface."""
