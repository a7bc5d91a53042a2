"""skilleval command line interface."""
