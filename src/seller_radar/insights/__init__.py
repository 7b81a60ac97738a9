"""Property catalogue and cached market data collaborators."""
