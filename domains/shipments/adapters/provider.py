from __future__ import annotations

import threading
from typing import Dict, Type

from .base import CarrierAdapter

# 어댑터 레지스트리
_REGISTRY: Dict[str, Type[CarrierAdapter]] = {}

# 프로세스 단위로 공유되는 인스턴스 (토큰 캐시를 같이 쓰기 위함)
_INSTANCES: Dict[str, CarrierAdapter] = {}
_INSTANCES_LOCK = threading.Lock()


def _norm(code: str) -> str:
    return (code or "").strip().lower().replace("-", "_").replace(" ", "")


# 흔한 별칭 → 표준 코드
_ALIASES = {
    "correios": "br.correios",
    "sro": "br.correios",
    "ect": "br.correios",
}


def register_adapter(code: str, adapter_cls: Type[CarrierAdapter]) -> None:
    """캐리어 코드(별칭 포함)에 어댑터 클래스를 등록."""
    _REGISTRY[_norm(code)] = adapter_cls


def _resolve(code: str) -> str:
    return _norm(_ALIASES.get(_norm(code), code))


def get_adapter(code: str) -> CarrierAdapter:
    """캐리어 코드/별칭으로 공유 어댑터 인스턴스를 반환."""
    key = _resolve(code)
    cls = _REGISTRY.get(key)
    if not cls:
        raise ImportError(f"No adapter registered for carrier '{code}' (key='{key}')")
    with _INSTANCES_LOCK:
        inst = _INSTANCES.get(key)
        if inst is None:
            inst = _INSTANCES[key] = cls()
        return inst


def reset_adapters() -> None:
    """공유 인스턴스 폐기 (설정 변경/테스트용)."""
    with _INSTANCES_LOCK:
        _INSTANCES.clear()
