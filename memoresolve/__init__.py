"""Entity resolution and disambiguation engine for a conversational assistant."""

__version__ = "0.3.0"
