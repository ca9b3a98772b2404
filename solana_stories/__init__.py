"""SolanaStories: children's story sessions backed by a language model."""

__version__ = "0.1.0"
