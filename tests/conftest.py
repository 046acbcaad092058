import io
import threading
import zipfile

import pytest

from rw_translator_core import (
    ITranslationBackend, RewriteOptions, MergeMode, TranslationError, TranslationConfig
)


class FakeBackend(ITranslationBackend):
    """Backend déterministe: 'Hello' -> 'T(Hello)', sans réseau"""

    def __init__(self, fail_on=(), on_call=None):
        self.calls = []
        self.fail_on = set(fail_on)
        self.on_call = on_call
        self._lock = threading.Lock()

    def translate(self, text, source_lang, target_lang):
        with self._lock:
            self.calls.append(text)
        if self.on_call:
            self.on_call(text)
        if text in self.fail_on:
            raise TranslationError("service indisponible", text, source_lang, target_lang)
        return f"T({text})"


def build_zip(entries):
    """Construit une archive en mémoire; une valeur None crée une entrée répertoire"""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, data in entries.items():
            if data is None:
                archive.writestr(zipfile.ZipInfo(name), b"")
            else:
                archive.writestr(name, data)
    return buffer.getvalue()


def read_zip(data):
    """Retourne [(nom, contenu)] dans l'ordre des entrées"""
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return [(info.filename, archive.read(info)) for info in archive.infolist()]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def add_options():
    return RewriteOptions(source_lang="en", target_lang="fr", mode=MergeMode.ADD)


@pytest.fixture
def replace_options():
    return RewriteOptions(source_lang="en", target_lang="fr", mode=MergeMode.REPLACE)


@pytest.fixture
def config():
    return TranslationConfig(source_lang="en", target_lang="fr", max_workers=3)
