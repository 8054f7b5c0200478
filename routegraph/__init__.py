"""routegraph: map changed source files to the application routes they affect."""

__version__ = "0.1.0"
