class CarrierError(Exception):
    """운송사 API 호출 실패 (네트워크/타임아웃/5xx 등)"""


class CarrierAuthError(CarrierError):
    """운송사 인증 실패"""


class TrackingDataError(ValueError):
    """이벤트 날짜/시간을 해석할 수 없음"""


class OrderNotTrackableError(Exception):
    """주문이 없거나 운송장 번호가 없음"""

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Pedido {order_id} não encontrado ou sem código de rastreamento")
