#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
RW Mod Translator - Backends de traduction
Implémentations du service de traduction utilisé par le moteur (Google, DeepL)
et cache thread-safe partagé entre les workers.
"""

from __future__ import annotations

import time
import logging
import threading
from typing import Dict, Optional

import requests
import deepl

from rw_translator_core import ITranslationBackend, TranslationConfig, TranslationError

logger = logging.getLogger(__name__)

GOOGLE_TRANSLATE_URL = "https://translate.googleapis.com/translate_a/single"

# Codes DeepL pour les langues dont le code brut diffère
DEEPL_SOURCE_CODES = {"zh_cn": "ZH", "zh_tw": "ZH", "zh": "ZH", "en_us": "EN", "en_gb": "EN"}
DEEPL_TARGET_CODES = {
    "en": "EN-US", "en_us": "EN-US", "en_gb": "EN-GB",
    "pt": "PT-PT", "pt_br": "PT-BR",
    "zh": "ZH-HANS", "zh_cn": "ZH-HANS", "zh_tw": "ZH-HANT",
}


def normalize_google_code(lang: str) -> str:
    """Convertit un code du type 'zh_cn' en code Google ('zh-CN')"""
    code = lang.strip().replace("_", "-")
    if "-" in code:
        base, region = code.split("-", 1)
        return f"{base.lower()}-{region.upper()}"
    return code.lower()


class TranslationCache:
    """Cache de traduction thread-safe"""

    def __init__(self):
        self._cache: Dict[str, str] = {}
        self._stats = {"hits": 0, "misses": 0}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        """Récupère une traduction du cache"""
        with self._lock:
            if key in self._cache:
                self._stats["hits"] += 1
                return self._cache[key]
            self._stats["misses"] += 1
            return None

    def set(self, key: str, value: str) -> None:
        """Stocke une traduction dans le cache"""
        with self._lock:
            self._cache[key] = value

    def clear(self) -> None:
        """Vide le cache"""
        with self._lock:
            self._cache.clear()
            self._stats = {"hits": 0, "misses": 0}

    def get_stats(self) -> Dict[str, int]:
        """Retourne les statistiques du cache"""
        with self._lock:
            return self._stats.copy()


class GoogleTranslator(ITranslationBackend):
    """Backend utilisant l'endpoint public Google Translate (client gtx)"""

    def __init__(self, config: TranslationConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        params = {
            "client": "gtx",
            "sl": normalize_google_code(source_lang),
            "tl": normalize_google_code(target_lang),
            "dt": "t",
            "q": text,
        }

        attempts = max(1, self.config.max_retries + 1)
        last_error: Optional[Exception] = None

        response = None
        for attempt in range(1, attempts + 1):
            try:
                response = self.session.get(
                    GOOGLE_TRANSLATE_URL, params=params, timeout=self.config.request_timeout
                )
                response.raise_for_status()
                break
            except requests.RequestException as e:
                response = None
                last_error = e
                logger.warning(f"Erreur réseau Google (tentative {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    time.sleep(self.config.retry_backoff * attempt)

        if response is None:
            raise TranslationError(
                f"Échec de la requête Google: {last_error}", text, source_lang, target_lang
            )

        try:
            payload = response.json()
        except ValueError as e:
            # JSON invalide (requests.JSONDecodeError en hérite) : inutile de réessayer
            raise TranslationError(
                f"Réponse Google illisible: {e}", text, source_lang, target_lang
            ) from e

        return self._parse_response(payload, text, source_lang, target_lang)

    @staticmethod
    def _parse_response(payload, text: str, source_lang: str, target_lang: str) -> str:
        """Extrait le texte traduit de la réponse [[["seg", "src", ...], ...], ...]"""
        try:
            chunks = payload[0]
            return "".join(chunk[0] for chunk in chunks if chunk and chunk[0])
        except (IndexError, TypeError, KeyError) as e:
            raise TranslationError(
                f"Format de réponse Google inattendu: {e}", text, source_lang, target_lang
            ) from e


class DeepLTranslator(ITranslationBackend):
    """Backend utilisant l'API DeepL"""

    def __init__(self, api_key: str, config: TranslationConfig):
        self.translator = deepl.Translator(auth_key=api_key)
        self.config = config

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        source = DEEPL_SOURCE_CODES.get(source_lang.lower(), source_lang.upper())
        target = DEEPL_TARGET_CODES.get(target_lang.lower(), target_lang.upper())
        try:
            result = self.translator.translate_text(text, source_lang=source, target_lang=target)
        except deepl.DeepLException as e:
            raise TranslationError(f"Erreur DeepL: {e}", text, source_lang, target_lang) from e
        return result.text


class CachedTranslator(ITranslationBackend):
    """Enveloppe un backend avec le cache de traduction"""

    def __init__(self, backend: ITranslationBackend, cache: Optional[TranslationCache] = None):
        self.backend = backend
        self.cache = cache or TranslationCache()

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        cache_key = f"{source_lang}|{target_lang}|{text}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        translated = self.backend.translate(text, source_lang, target_lang)
        self.cache.set(cache_key, translated)
        return translated


def create_backend(config: TranslationConfig, deepl_key: Optional[str] = None) -> CachedTranslator:
    """Construit le backend demandé par la configuration"""
    if config.backend == "deepl":
        if not deepl_key:
            raise ValueError("Clé API DeepL manquante (DEEPL_API_KEY)")
        backend: ITranslationBackend = DeepLTranslator(deepl_key, config)
    elif config.backend == "google":
        backend = GoogleTranslator(config)
    else:
        raise ValueError(f"Backend de traduction inconnu: {config.backend}")

    logger.debug(f"Backend de traduction: {config.backend}")
    return CachedTranslator(backend)
