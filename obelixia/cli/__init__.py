"""ObelixIA command-line interface."""
