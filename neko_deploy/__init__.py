"""Deploy a local directory to a Nekoweb site with chunked big uploads."""

__version__ = "0.1.0"
