# tests/test_shipments_correios_adapter.py
import threading
import time

import pytest
import requests

from domains.shipments.adapters import CorreiosAdapter, get_adapter
from domains.shipments.exceptions import CarrierAuthError, CarrierError


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """post → 토큰 발급, get → gets 에 쌓인 응답을 순서대로"""

    def __init__(self, gets=(), auth_delay=0.0, expires_in=3600):
        self.gets = list(gets)
        self.auth_delay = auth_delay
        self.expires_in = expires_in
        self.posts = []
        self.get_calls = []
        self._lock = threading.Lock()

    def post(self, url, json=None, auth=None, headers=None, timeout=None):
        with self._lock:
            self.posts.append({"url": url, "json": json, "auth": auth})
            n = len(self.posts)
        if self.auth_delay:
            time.sleep(self.auth_delay)
        return FakeResponse(200, {"token": f"tok-{n}", "expiresIn": self.expires_in})

    def get(self, url, params=None, headers=None, timeout=None):
        self.get_calls.append({"url": url, "params": params, "headers": headers})
        res = self.gets.pop(0)
        if isinstance(res, Exception):
            raise res
        return res


def _adapter(session, **kw):
    return CorreiosAdapter(
        base_url="https://correios.test",
        id_correios="empresa",
        codigo_acesso="segredo",
        cartao_postagem="0067599079",
        session=session,
        **kw,
    )


SRO_OBJECT = {
    "codObjeto": "AM699556402BR",
    "eventos": [
        {
            "codigo": "BDE",
            "descricao": "Objeto entregue ao destinatário",
            "dtHrCriado": "2024-01-10T14:30:00",
            "unidade": {"nome": "CDD Centro", "endereco": {"cidade": "CURITIBA", "uf": "PR"}},
        },
        {
            "codigo": "PO",
            "descricao": "Objeto postado",
            "data": "08/01/2024",
            "hora": "09:00",
            "local": "SAO PAULO - SP",
        },
    ],
}


# ─────────────────────────────────────────────────────────────
# 토큰
# ─────────────────────────────────────────────────────────────
def test_authenticate_posts_card_with_basic_auth():
    session = FakeSession()
    adapter = _adapter(session)

    assert adapter.authenticate() == "tok-1"

    call = session.posts[0]
    assert call["url"] == "https://correios.test/token/v1/autentica/cartaopostagem"
    assert call["json"] == {"numero": "0067599079"}
    assert call["auth"] == ("empresa", "segredo")


def test_token_is_reused_while_fresh():
    session = FakeSession()
    adapter = _adapter(session)

    assert adapter.get_token() == "tok-1"
    assert adapter.get_token() == "tok-1"
    assert len(session.posts) == 1


def test_token_inside_margin_is_refreshed():
    # 만료까지 60초, margin 300초 → 매번 재발급
    session = FakeSession(expires_in=60)
    adapter = _adapter(session)

    adapter.get_token()
    adapter.get_token()

    assert len(session.posts) == 2


def test_concurrent_refresh_authenticates_once():
    session = FakeSession(auth_delay=0.05)
    adapter = _adapter(session)
    barrier = threading.Barrier(4)
    tokens = []

    def worker():
        barrier.wait()
        tokens.append(adapter.get_token())

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(session.posts) == 1
    assert tokens == ["tok-1"] * 4


def test_invalidate_ignores_stale_token():
    session = FakeSession()
    adapter = _adapter(session)
    adapter.get_token()

    adapter.invalidate_token("tok-antigo")

    assert adapter.get_token() == "tok-1"
    assert len(session.posts) == 1


def test_auth_failure_raises_carrier_auth_error():
    class Refused(FakeSession):
        def post(self, *a, **kw):
            return FakeResponse(401, {"msgs": ["credenciais inválidas"]})

    with pytest.raises(CarrierAuthError):
        _adapter(Refused()).authenticate()


def test_auth_response_without_token_is_rejected():
    class Empty(FakeSession):
        def post(self, *a, **kw):
            return FakeResponse(200, {})

    with pytest.raises(CarrierAuthError):
        _adapter(Empty()).get_token()


def test_card_auth_failure_falls_back_to_direct_auth():
    class CardRefused(FakeSession):
        def post(self, url, json=None, auth=None, headers=None, timeout=None):
            if url.endswith("/cartaopostagem"):
                self.posts.append({"url": url, "json": json, "auth": auth})
                return FakeResponse(401, {"msgs": ["cartão inválido"]})
            return super().post(url, json=json, auth=auth, headers=headers, timeout=timeout)

    session = CardRefused()

    assert _adapter(session).authenticate() == "tok-2"
    assert [p["url"] for p in session.posts] == [
        "https://correios.test/token/v1/autentica/cartaopostagem",
        "https://correios.test/token/v1/autentica",
    ]
    assert session.posts[1]["json"] is None
    assert session.posts[1]["auth"] == ("empresa", "segredo")


def test_without_card_uses_direct_auth():
    session = FakeSession()
    adapter = CorreiosAdapter(
        base_url="https://correios.test",
        id_correios="empresa",
        codigo_acesso="segredo",
        cartao_postagem="",
        session=session,
    )

    assert adapter.get_token() == "tok-1"
    assert [p["url"] for p in session.posts] == ["https://correios.test/token/v1/autentica"]


# ─────────────────────────────────────────────────────────────
# 조회
# ─────────────────────────────────────────────────────────────
def test_401_refreshes_token_and_retries_once():
    session = FakeSession(gets=[FakeResponse(401, {}), FakeResponse(200, {"objetos": [SRO_OBJECT]})])
    adapter = _adapter(session)

    result = adapter.track_one("AM699556402BR")

    assert result["codigo"] == "AM699556402BR"
    assert len(session.posts) == 2
    auth_headers = [c["headers"]["Authorization"] for c in session.get_calls]
    assert auth_headers == ["Bearer tok-1", "Bearer tok-2"]


def test_second_401_surfaces_as_carrier_error():
    session = FakeSession(gets=[FakeResponse(401, {}), FakeResponse(401, {})])

    with pytest.raises(CarrierError):
        _adapter(session).track_one("AM699556402BR")
    assert len(session.posts) == 2


def test_track_one_normalizes_events():
    session = FakeSession(gets=[FakeResponse(200, {"objetos": [SRO_OBJECT]})])

    result = _adapter(session).track_one("AM699556402BR")

    call = session.get_calls[0]
    assert call["url"] == "https://correios.test/srorastro/v1/objetos/AM699556402BR"
    assert call["params"] == {"resultado": "T"}

    first, second = result["eventos"]
    assert first["data"] == "2024-01-10"
    assert first["hora"] == "14:30:00"
    assert first["local"] == "CURITIBA - PR"
    assert first["codigo"] == "BDE"
    assert second["local"] == "SAO PAULO - SP"
    assert second["data"] == "08/01/2024"


def test_track_one_accepts_bare_object():
    session = FakeSession(gets=[FakeResponse(200, SRO_OBJECT)])

    result = _adapter(session).track_one("AM699556402BR")

    assert len(result["eventos"]) == 2


def test_track_one_not_found_is_none():
    session = FakeSession(gets=[FakeResponse(404, {})])

    assert _adapter(session).track_one("XX000000000BR") is None


def test_server_error_raises_carrier_error():
    session = FakeSession(gets=[FakeResponse(500, {"erro": "indisponível"})])

    with pytest.raises(CarrierError):
        _adapter(session).track_one("AM699556402BR")


def test_network_error_raises_carrier_error():
    session = FakeSession(gets=[requests.ConnectionError("timeout")])

    with pytest.raises(CarrierError):
        _adapter(session).track_one("AM699556402BR")


def test_track_many_maps_every_requested_code():
    session = FakeSession(gets=[FakeResponse(200, {"objetos": [SRO_OBJECT]})])

    results = _adapter(session).track_many(["AM699556402BR", "QQ000000000BR", "AM699556402BR"])

    assert set(results) == {"AM699556402BR", "QQ000000000BR"}
    assert results["QQ000000000BR"] is None
    assert len(results["AM699556402BR"]["eventos"]) == 2

    params = session.get_calls[0]["params"]
    assert params == [
        ("codigosObjetos", "AM699556402BR"),
        ("codigosObjetos", "QQ000000000BR"),
        ("resultado", "T"),
    ]


def test_track_many_empty_skips_network():
    session = FakeSession()

    assert _adapter(session).track_many([]) == {}
    assert session.posts == [] and session.get_calls == []


# ─────────────────────────────────────────────────────────────
# 레지스트리
# ─────────────────────────────────────────────────────────────
def test_get_adapter_shares_instance_across_aliases():
    adapter = get_adapter("br.correios")

    assert isinstance(adapter, CorreiosAdapter)
    assert get_adapter("correios") is adapter
    assert get_adapter("SRO") is adapter


def test_get_adapter_unknown_carrier():
    with pytest.raises(ImportError):
        get_adapter("kr.cjlogistics")
