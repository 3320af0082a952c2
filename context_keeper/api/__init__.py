from .service import ContextKeeper

__all__ = ["ContextKeeper"]
