# domains/shipments/adapters/correios.py
from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests
from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..exceptions import CarrierAuthError, CarrierError
from .base import CarrierAdapter

logger = logging.getLogger(__name__)

CORREIOS_URLS = {
    "HOMOLOGACAO": "https://apihom.correios.com.br",
    "PRODUCAO": "https://api.correios.com.br",
}

# 응답에 만료 정보가 없을 때 쓰는 토큰 수명
_DEFAULT_TOKEN_TTL = timedelta(minutes=30)


class CorreiosAdapter(CarrierAdapter):
    """
    Correios(브라질 우정) SRO 추적 API 어댑터.

    bearer 토큰은 인스턴스(= 프로세스 공유 인스턴스)에 캐시되고,
    만료 margin 안으로 들어오면 lock 안에서 한 번만 재발급한다.
    """

    code = "br.correios"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        id_correios: Optional[str] = None,
        codigo_acesso: Optional[str] = None,
        cartao_postagem: Optional[str] = None,
        timeout: Optional[float] = None,
        token_margin_seconds: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        cfg = getattr(settings, "CORREIOS", {}) or {}
        ambiente = str(cfg.get("ambiente") or "HOMOLOGACAO").upper()

        self.base_url = (base_url or CORREIOS_URLS.get(ambiente, CORREIOS_URLS["HOMOLOGACAO"])).rstrip("/")
        self.id_correios = id_correios if id_correios is not None else cfg.get("id", "")
        self.codigo_acesso = codigo_acesso if codigo_acesso is not None else cfg.get("codigo_acesso", "")
        self.cartao_postagem = (
            cartao_postagem if cartao_postagem is not None else cfg.get("cartao_postagem", "")
        )
        self.timeout = float(timeout if timeout is not None else cfg.get("timeout", 30))
        self.token_margin = timedelta(
            seconds=int(
                token_margin_seconds
                if token_margin_seconds is not None
                else cfg.get("token_margin_seconds", 300)
            )
        )
        self.session = session or requests.Session()

        # (token, expires_at) 를 튜플 하나로 교체해서 읽는 쪽이 반쯤 바뀐 값을 보지 않게 한다
        self._token_state: Optional[Tuple[str, Any]] = None
        self._token_lock = threading.Lock()

    # ------------------------------------------------------------------
    # 인증
    # ------------------------------------------------------------------
    def authenticate(self) -> str:
        """
        새 토큰을 발급받아 캐시에 넣고 반환.
        카드(cartão de postagem) 인증이 실패하면 계약 단위 인증(/token/v1/autentica)으로 한 번 더 시도.
        """
        data = None
        if self.cartao_postagem:
            try:
                data = self._request_token(
                    "/token/v1/autentica/cartaopostagem", {"numero": self.cartao_postagem}
                )
            except CarrierAuthError as e:
                logger.warning("Correios posting-card authentication failed (%s), trying direct", e)
        if data is None:
            data = self._request_token("/token/v1/autentica")

        self._token_state = (data["token"], self._expiry_from(data))
        logger.info("Correios token obtained (expires at %s)", self._token_state[1])
        return data["token"]

    def _request_token(self, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            res = self.session.post(
                url,
                json=body,
                auth=(self.id_correios, self.codigo_acesso),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            res.raise_for_status()
            data = res.json()
        except requests.RequestException as e:
            logger.error("Correios authentication failed: %s %s", url, e)
            raise CarrierAuthError("Falha na autenticação com os Correios") from e
        except ValueError as e:
            raise CarrierAuthError("Resposta de autenticação inválida dos Correios") from e

        if not isinstance(data, dict) or not data.get("token"):
            raise CarrierAuthError("Resposta de autenticação sem token")
        return data

    def _expiry_from(self, data: Dict[str, Any]):
        now = timezone.now()
        expires_in = data.get("expiresIn")
        if expires_in:
            try:
                return now + timedelta(seconds=int(expires_in))
            except (TypeError, ValueError):
                pass
        expira_em = data.get("expiraEm")
        if expira_em:
            dt = parse_datetime(str(expira_em))
            if dt is not None:
                if timezone.is_naive(dt):
                    dt = timezone.make_aware(dt)
                return dt
        return now + _DEFAULT_TOKEN_TTL

    def _token_fresh(self, state) -> bool:
        if not state:
            return False
        _, expires_at = state
        return timezone.now() < expires_at - self.token_margin

    def get_token(self) -> str:
        """
        유효한 토큰 반환. 재발급은 single-flight:
        동시에 여러 호출이 와도 authenticate() 는 한 번만 돈다.
        """
        state = self._token_state
        if self._token_fresh(state):
            return state[0]
        with self._token_lock:
            state = self._token_state
            if self._token_fresh(state):
                return state[0]
            return self.authenticate()

    def invalidate_token(self, token: str) -> None:
        """401 받은 토큰 폐기. 그 사이 다른 호출이 이미 갱신했다면 건드리지 않는다."""
        with self._token_lock:
            if self._token_state and self._token_state[0] == token:
                self._token_state = None

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    def _get(self, path: str, params=None) -> requests.Response:
        url = f"{self.base_url}{path}"
        for attempt in (1, 2):
            token = self.get_token()
            try:
                res = self.session.get(
                    url,
                    params=params,
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Bearer {token}",
                    },
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                logger.error("Correios request failed: %s %s", url, e)
                raise CarrierError(f"Falha na comunicação com os Correios: {e}") from e

            if res.status_code == 401 and attempt == 1:
                logger.warning("Correios token rejected, re-authenticating")
                self.invalidate_token(token)
                continue
            return res
        return res

    @staticmethod
    def _json(res: requests.Response) -> Dict[str, Any]:
        if not (200 <= res.status_code < 300):
            raise CarrierError(f"Correios respondeu {res.status_code}: {res.text[:200]}")
        try:
            return res.json() or {}
        except ValueError as e:
            raise CarrierError("Resposta inválida dos Correios") from e

    # ------------------------------------------------------------------
    # 추적
    # ------------------------------------------------------------------
    def track_one(self, tracking_number: str) -> Optional[Dict[str, Any]]:
        logger.info("Tracking object %s", tracking_number)
        res = self._get(f"/srorastro/v1/objetos/{tracking_number}", params={"resultado": "T"})
        if res.status_code == 404:
            return None
        data = self._json(res)

        objetos = data.get("objetos")
        if objetos is None:
            # 구버전 응답: 객체 하나가 그대로 온다
            return self.normalize_object(data, tracking_number)
        for obj in objetos:
            if (obj.get("codObjeto") or obj.get("codigo")) == tracking_number:
                return self.normalize_object(obj, tracking_number)
        return self.normalize_object(objetos[0], tracking_number) if objetos else None

    def track_many(self, tracking_numbers: Iterable[str]) -> Dict[str, Optional[Dict[str, Any]]]:
        codes = [c for c in dict.fromkeys(tracking_numbers) if c]
        if not codes:
            return {}
        logger.info("Tracking %d objects in batch", len(codes))

        params: List[Tuple[str, str]] = [("codigosObjetos", c) for c in codes]
        params.append(("resultado", "T"))
        data = self._json(self._get("/srorastro/v1/objetos", params=params))

        out: Dict[str, Optional[Dict[str, Any]]] = {c: None for c in codes}
        for obj in data.get("objetos") or []:
            code = obj.get("codObjeto") or obj.get("codigo")
            if code in out:
                out[code] = self.normalize_object(obj, code)
        return out

    # ------------------------------------------------------------------
    # 응답 정규화
    # ------------------------------------------------------------------
    def normalize_object(self, obj: Dict[str, Any], tracking_number: str) -> Dict[str, Any]:
        eventos = [self.normalize_event(e) for e in (obj.get("eventos") or [])]
        return {
            "codigo": obj.get("codObjeto") or obj.get("codigo") or tracking_number,
            "eventos": eventos,
            "mensagem": obj.get("mensagem", ""),
        }

    @staticmethod
    def normalize_event(e: Dict[str, Any]) -> Dict[str, Any]:
        """
        평탄한 형태({codigo, local, descricao, data, hora})는 그대로,
        SRO v1 형태(dtHrCriado, unidade.endereco)는 평탄화한다.
        """
        data = e.get("data")
        hora = e.get("hora")
        if not data and e.get("dtHrCriado"):
            raw = str(e["dtHrCriado"])
            data, _, hora = raw.partition("T")

        local = e.get("local")
        if local is None:
            unidade = e.get("unidade") or {}
            endereco = unidade.get("endereco") or {}
            cidade = endereco.get("cidade") or ""
            uf = endereco.get("uf") or ""
            local = " - ".join(p for p in (cidade, uf) if p) or unidade.get("nome") or ""

        return {
            "codigo": e.get("codigo") or "",
            "local": local,
            "descricao": e.get("descricao") or "",
            "data": data or "",
            "hora": hora or "",
            "detalhe": e.get("detalhe") or "",
        }
