# domains/shipments/adapters/base.py
from typing import Any, Dict, Iterable, Optional


class CarrierAdapter:
    """
    각 운송사 어댑터의 최소 공통 인터페이스.

    조회 결과(RawTrackingResult)는 아래 형태의 dict 로 통일한다.
        {"codigo": "<운송장>", "eventos": [{"codigo", "local", "descricao", "data", "hora"}, ...]}
    data/hora 는 운송사가 준 현지 날짜/시간 문자열 그대로 둔다 (합치는 건 reconciler 몫).
    """

    code = ""

    def authenticate(self) -> Optional[str]:
        """
        (옵션) bearer 토큰 발급. 인증이 없는 운송사는 None.
        """
        return None

    def track_one(self, tracking_number: str) -> Optional[Dict[str, Any]]:
        """
        운송장 1건 조회. 운송사에 없는 운송장이면 None.
        """
        return None

    def track_many(self, tracking_numbers: Iterable[str]) -> Dict[str, Optional[Dict[str, Any]]]:
        """
        여러 건 조회 → {운송장: 결과 | None}.
        기본 구현은 track_one 반복. 일괄 조회 API가 있으면 오버라이드.
        """
        return {code: self.track_one(code) for code in tracking_numbers}
