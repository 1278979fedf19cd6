"""aieditor-core: provider abstraction and streaming clients for the AiEditor assistant."""

__version__ = "0.3.0"
