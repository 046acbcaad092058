from types import SimpleNamespace

import deepl
import pytest
import requests

from rw_translator_core import TranslationConfig, TranslationError
from translation_backends import (
    CachedTranslator, DeepLTranslator, GoogleTranslator, TranslationCache,
    create_backend, normalize_google_code
)
from conftest import FakeBackend


class FakeResponse:
    def __init__(self, payload=None, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


def html_response(body=b"<html>rate limited</html>"):
    """Vraie réponse requests dont le corps n'est pas du JSON"""
    response = requests.Response()
    response.status_code = 200
    response._content = body
    response.encoding = "utf-8"
    return response


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append(params)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def config():
    return TranslationConfig(max_retries=1, retry_backoff=0)


@pytest.mark.parametrize("raw, expected", [
    ("zh_cn", "zh-CN"),
    ("EN", "en"),
    ("pt-br", "pt-BR"),
    ("fr", "fr"),
])
def test_normalize_google_code(raw, expected):
    assert normalize_google_code(raw) == expected


def test_google_joins_chunks(config):
    payload = [[["Bonjour ", "Hello ", None], ["le monde", "world", None]], None, "en"]
    session = FakeSession([FakeResponse(payload)])

    result = GoogleTranslator(config, session).translate("Hello world", "zh_cn", "fr")

    assert result == "Bonjour le monde"
    assert session.requests[0] == {"client": "gtx", "sl": "zh-CN", "tl": "fr", "dt": "t", "q": "Hello world"}


@pytest.mark.parametrize("response", [
    FakeResponse({"error": "quota"}),
    FakeResponse([None]),
    FakeResponse([]),
])
def test_google_malformed_response_raises(config, response):
    translator = GoogleTranslator(config, FakeSession([response]))

    with pytest.raises(TranslationError) as excinfo:
        translator.translate("Hello", "en", "fr")

    assert excinfo.value.text == "Hello"
    assert (excinfo.value.source_lang, excinfo.value.target_lang) == ("en", "fr")


def test_google_retries_network_errors(config):
    session = FakeSession([requests.ConnectionError("down"), FakeResponse([[["Salut", "Hi"]]])])

    assert GoogleTranslator(config, session).translate("Hi", "en", "fr") == "Salut"
    assert len(session.requests) == 2


def test_google_gives_up_after_retries(config):
    session = FakeSession([FakeResponse(status=503), requests.Timeout("slow")])

    with pytest.raises(TranslationError):
        GoogleTranslator(config, session).translate("Hi", "en", "fr")

    assert len(session.requests) == 2


def test_deepl_maps_language_codes(config):
    calls = []

    def translate_text(text, source_lang, target_lang):
        calls.append((text, source_lang, target_lang))
        return SimpleNamespace(text="Hello")

    translator = DeepLTranslator("fake-key:fx", config)
    translator.translator = SimpleNamespace(translate_text=translate_text)

    assert translator.translate("你好", "zh_cn", "en") == "Hello"
    assert calls == [("你好", "ZH", "EN-US")]


def test_deepl_errors_become_translation_errors(config):
    def translate_text(text, source_lang, target_lang):
        raise deepl.DeepLException("quota exceeded")

    translator = DeepLTranslator("fake-key:fx", config)
    translator.translator = SimpleNamespace(translate_text=translate_text)

    with pytest.raises(TranslationError):
        translator.translate("Hi", "en", "fr")


def test_cached_translator_calls_backend_once():
    backend = FakeBackend()
    cached = CachedTranslator(backend)

    assert cached.translate("Hi", "en", "fr") == "T(Hi)"
    assert cached.translate("Hi", "en", "fr") == "T(Hi)"
    assert cached.translate("Hi", "en", "de") == "T(Hi)"

    assert backend.calls == ["Hi", "Hi"]
    assert cached.cache.get_stats() == {"hits": 1, "misses": 2}


def test_cached_translator_does_not_cache_failures():
    backend = FakeBackend(fail_on={"Hi"})
    cached = CachedTranslator(backend)

    for _ in range(2):
        with pytest.raises(TranslationError):
            cached.translate("Hi", "en", "fr")

    assert backend.calls == ["Hi", "Hi"]


def test_cache_clear_resets_stats():
    cache = TranslationCache()
    cache.set("k", "v")
    cache.get("k")

    cache.clear()

    assert cache.get("k") is None
    assert cache.get_stats() == {"hits": 0, "misses": 1}


def test_create_backend(config):
    assert isinstance(create_backend(config).backend, GoogleTranslator)

    with pytest.raises(ValueError):
        create_backend(TranslationConfig(backend="deepl"))

    with pytest.raises(ValueError):
        create_backend(TranslationConfig(backend="babelfish"))


def test_google_unparseable_body_is_not_retried():
    config = TranslationConfig(max_retries=2, retry_backoff=0)
    session = FakeSession([html_response(), html_response(), html_response()])

    with pytest.raises(TranslationError) as excinfo:
        GoogleTranslator(config, session).translate("Hi", "en", "fr")

    assert len(session.requests) == 1
    assert "illisible" in str(excinfo.value)
