"""api-sequencer: build, run and share sequences of REST API calls."""

__version__ = "0.1.0"
