"""fileclaim: file-claim coordination for agents editing one checkout."""

__version__ = "0.1.0"
