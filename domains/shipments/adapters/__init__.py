# domains/shipments/adapters/__init__.py
from .base import CarrierAdapter
from .correios import CorreiosAdapter
from .provider import get_adapter, register_adapter, reset_adapters

register_adapter("br.correios", CorreiosAdapter)


__all__ = [
    "CarrierAdapter",
    "CorreiosAdapter",
    "get_adapter",
    "register_adapter",
    "reset_adapters",
]
