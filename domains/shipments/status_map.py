from domains.orders.models import OrderStatus

DELIVERED_CODES = frozenset({"BDE", "BDI"})
IN_TRANSIT_CODES = frozenset({"DO", "RO"})
POSTED_CODE = "PO"


def _norm(code: str, description: str):
    return (code or "").strip().upper(), (description or "").lower()


def is_delivered(code: str, description: str) -> bool:
    c, d = _norm(code, description)
    return "entregue" in d or c in DELIVERED_CODES


def map_event(code: str, description: str) -> OrderStatus:
    """
    운송사 이벤트(코드 + 설명) → 주문 상태. 위에서부터 먼저 맞는 규칙이 이긴다.
    설명 문구가 1차 신호, 코드는 보조 신호.
    """
    c, d = _norm(code, description)
    if is_delivered(c, d):
        return OrderStatus.DELIVERED
    if "saiu para entrega" in d or "out for delivery" in d:
        return OrderStatus.OUT_FOR_DELIVERY
    if (
        "em trânsito" in d
        or "em transito" in d
        or "encaminhado" in d
        or c in IN_TRANSIT_CODES
    ):
        return OrderStatus.IN_TRANSIT
    if "postado" in d or "postagem" in d or c == POSTED_CODE:
        return OrderStatus.SHIPPED
    return OrderStatus.PROCESSING
