"""DocSync - Drive to Dify knowledge-base synchronization."""

__version__ = "0.1.0"
