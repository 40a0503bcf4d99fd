"""Write Python values and dataclasses as XML, or write XML token by token."""

__version__ = "0.1.0"
__all__ = ["marshal", "tokens"]