#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
RW Mod Translator - Core Engine
Traduction des champs texte des fichiers de configuration (.ini, .template, .txt)
contenus dans une archive de mod, avec préservation des placeholders.
"""

from __future__ import annotations

import io
import os
import re
import json
import zlib
import shutil
import zipfile
import tempfile
import argparse
import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field, fields
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed

import deepl
import chardet
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS
# ============================================================================

QUALIFYING_EXTENSIONS = frozenset({"ini", "template", "txt"})
ARCHIVE_EXTENSIONS = (".zip", ".rwmod")

TRANSLATABLE_FIELDS: Tuple[str, ...] = (
    "displayText", "displayDescription", "text", "description", "isLockedMessage",
    "isLockedAltMessage", "isLockedAlt2Message", "showMessageToPlayer",
    "showMessageToAllPlayers", "showMessageToAllEnemyPlayers", "showQuickWarLogToPlayer",
    "showQuickWarLogToAllPlayers", "displayName", "displayNameShort", "title",
)

# Ordre fixe de synthèse des champs d'affichage depuis le nom de la section core
FALLBACK_FIELDS: Tuple[str, ...] = ("displayText", "displayDescription")

TRIPLE_QUOTES: Tuple[str, ...] = ('"""', "'''")

# Seuls \r\n, \r et \n terminent une ligne (pas \x0c, \x85 ni \u2028)
LINE_BREAK_PATTERN = re.compile(r"\r\n|\r|\n")

ProgressCallback = Callable[[int, int], None]

# ============================================================================
# ERRORS
# ============================================================================

class RWTranslatorError(Exception):
    """Erreur de base du traducteur"""


class ArchiveReadError(RWTranslatorError):
    """Archive d'entrée illisible ou malformée"""


class ArchiveWriteError(RWTranslatorError):
    """Impossible d'écrire l'archive de sortie"""


class FileIOError(RWTranslatorError):
    """Lecture ou écriture d'un fichier de configuration impossible"""


class OperationCancelled(RWTranslatorError):
    """Traduction annulée avant la fin"""


class TranslationError(RWTranslatorError):
    """Échec du service de traduction ou réponse inexploitable"""

    def __init__(self, message: str, text: str = "", source_lang: str = "", target_lang: str = ""):
        super().__init__(message)
        self.text = text
        self.source_lang = source_lang
        self.target_lang = target_lang
        # Renseigné par le réécrivain quand l'erreur interrompt un fichier
        self.field_name: Optional[str] = None


class ConfigParseAnomaly(RWTranslatorError):
    """Anomalie de structure non bloquante (valeur multi-ligne non terminée)"""

    def __init__(self, path: str, line_number: int, field_name: str, message: str):
        super().__init__(f"{path}:{line_number} [{field_name}] {message}")
        self.path = path
        self.line_number = line_number
        self.field_name = field_name

# ============================================================================
# CONFIGURATION AND DATA CLASSES
# ============================================================================

class MergeMode(str, Enum):
    """Manière de réinsérer la traduction par rapport à l'original"""
    ADD = "add"
    REPLACE = "replace"


@dataclass
class TranslationConfig:
    """Configuration pour la traduction"""
    source_lang: str = "zh_cn"
    target_lang: str = "en"
    mode: str = "add"
    backend: str = "google"
    max_workers: int = 0
    parallel_translation: bool = True
    fault_policy: str = "field"
    core_section_match: str = "exact"
    request_timeout: float = 15.0
    max_retries: int = 2
    retry_backoff: float = 1.0
    clear_cache: bool = False

    def resolved_workers(self) -> int:
        """Nombre de workers effectif (0 = nombre de processeurs)"""
        return self.max_workers if self.max_workers > 0 else (os.cpu_count() or 1)


@dataclass(frozen=True)
class RewriteOptions:
    """Paramètres immuables d'une opération, partagés par tous les workers"""
    source_lang: str
    target_lang: str
    mode: MergeMode = MergeMode.ADD
    fault_policy: str = "field"
    core_section_match: str = "exact"
    fields: Tuple[str, ...] = TRANSLATABLE_FIELDS


@dataclass
class ProcessingResult:
    """Résultat d'une opération de traitement"""
    success: bool
    message: str
    data: Optional[Any] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class FailureRecord:
    """Échec de traduction enregistré avec son contexte"""
    path: str
    field_name: str
    source_lang: str
    target_lang: str
    message: str

    def describe(self) -> str:
        return f"{self.path} [{self.field_name}] ({self.source_lang}->{self.target_lang}): {self.message}"


@dataclass
class CoreNameState:
    """Suivi du champ name de la section core pour la synthèse des champs d'affichage"""
    name_value: Optional[str] = None
    anchor_index: Optional[int] = None
    indent: str = ""
    display_text_found: bool = False
    display_description_found: bool = False

    def is_found(self, field_name: str) -> bool:
        if field_name == "displayText":
            return self.display_text_found
        return self.display_description_found


@dataclass
class RewriteOutcome:
    """Lignes réécrites d'un fichier et ce qui s'est passé pendant la réécriture"""
    lines: List[str]
    translated_fields: int = 0
    failures: List[FailureRecord] = field(default_factory=list)
    anomalies: List[ConfigParseAnomaly] = field(default_factory=list)


@dataclass
class BatchReport:
    """Bilan d'une passe de traduction sur un répertoire"""
    total_files: int = 0
    translated_files: int = 0
    failed_files: List[str] = field(default_factory=list)
    failures: List[FailureRecord] = field(default_factory=list)
    anomalies: List[ConfigParseAnomaly] = field(default_factory=list)
    output_file: Optional[Path] = None


@dataclass
class Segment:
    """Morceau de texte, littéral ou placeholder protégé"""
    text: str
    is_placeholder: bool = False

# ============================================================================
# ABSTRACT INTERFACES
# ============================================================================

class ITranslationBackend(ABC):
    """Interface du service de traduction"""

    @abstractmethod
    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        """Traduit un segment de texte, lève TranslationError en cas d'échec"""
        pass


class IFileHandler(ABC):
    """Interface pour la gestion des fichiers"""

    @abstractmethod
    def can_handle(self, file_path: Path) -> bool:
        """Vérifie si ce handler peut traiter le fichier"""
        pass

    @abstractmethod
    def process_file(self, file_path: Path, label: Optional[str] = None) -> ProcessingResult:
        """Traite un fichier spécifique"""
        pass

# ============================================================================
# CORE COMPONENTS
# ============================================================================

class TextSegmenter:
    """Découpage des valeurs en segments et détection des clés de référence"""

    # ${...} / %{...} avec deux niveaux d'accolades imbriquées, ou \n / \N
    PLACEHOLDER_PATTERN = re.compile(
        r"[$%]\{(?:[^{}]|\{(?:[^{}]|\{[^{}]*\})*\})*\}|\\[nN]"
    )
    SKIP_PATTERN = re.compile(r"^(i:)?[a-zA-Z0-9_.-]+(\.[a-zA-Z0-9_.-]+)+$")

    def split(self, text: str) -> List[Segment]:
        """Découpe un texte en segments littéraux et placeholders, dans l'ordre"""
        segments: List[Segment] = []
        last_end = 0

        for match in self.PLACEHOLDER_PATTERN.finditer(text):
            if match.start() > last_end:
                self._append_literal(segments, text[last_end:match.start()])
            segments.append(Segment(match.group(), is_placeholder=True))
            last_end = match.end()

        if last_end < len(text):
            self._append_literal(segments, text[last_end:])

        return segments

    @staticmethod
    def _append_literal(segments: List[Segment], text: str) -> None:
        if not text:
            return
        if segments and not segments[-1].is_placeholder:
            segments[-1].text += text
        else:
            segments.append(Segment(text))

    def is_reference_token(self, value: str) -> bool:
        """Vrai si la valeur est une clé pointée (Faction.Player.Name, i:Some.Key)"""
        return bool(self.SKIP_PATTERN.match(value.strip()))


class ProgressTracker:
    """Compteur de fichiers terminés partagé entre les workers"""

    def __init__(self, total: int, callback: Optional[ProgressCallback] = None):
        self.total = total
        self._callback = callback
        self._completed = 0
        self._lock = threading.Lock()

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    def advance(self) -> int:
        """Incrémente le compteur et notifie le callback sous le verrou"""
        with self._lock:
            self._completed += 1
            if self._callback:
                self._callback(self._completed, self.total)
            return self._completed


class ConfigFileHandler(IFileHandler):
    """Réécriture ligne à ligne des fichiers de configuration du mod"""

    COMMENT_PATTERN = re.compile(r"^\s*#")
    HEADER_PATTERN = re.compile(r"^\s*\[([^\]]*)\]\s*(?:#.*)?$")
    FIELD_PATTERN = re.compile(r"^(?P<indent>\s*)(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*:(?P<value>.*)$")

    def __init__(self, translator: ITranslationBackend, options: RewriteOptions,
                 segmenter: Optional[TextSegmenter] = None):
        self.translator = translator
        self.options = options
        self.segmenter = segmenter or TextSegmenter()
        self._fields = frozenset(options.fields)

    def can_handle(self, file_path: Path) -> bool:
        return file_path.suffix.lower().lstrip(".") in QUALIFYING_EXTENSIONS

    def process_file(self, file_path: Path, label: Optional[str] = None) -> ProcessingResult:
        """Lit, réécrit et sauvegarde un fichier de configuration"""
        label = label or str(file_path)
        logger.info(f"Début du traitement: {label}")

        try:
            text = self._read_text(file_path)
        except FileIOError as e:
            return ProcessingResult(success=False, message=str(e), errors=[str(e)])

        try:
            lines = self.split_lines(text)
            outcome = self.rewrite_lines(lines, label)
        except TranslationError as e:
            # Politique "file" : le fichier reste intact sur le disque
            failure = FailureRecord(
                path=label,
                field_name=e.field_name or "*",
                source_lang=self.options.source_lang,
                target_lang=self.options.target_lang,
                message=str(e)
            )
            return ProcessingResult(
                success=False,
                message=f"Traduction abandonnée pour {label}: {e}",
                data=RewriteOutcome(lines=[], failures=[failure]),
                errors=[failure.describe()]
            )

        new_text = "\n".join(outcome.lines)
        if text.endswith(("\n", "\r")) and outcome.lines:
            new_text += "\n"

        if outcome.lines != lines:
            try:
                file_path.write_text(new_text, encoding="utf-8", newline="\n")
            except OSError as e:
                error = FileIOError(f"Écriture impossible de {label}: {e}")
                return ProcessingResult(success=False, message=str(error), errors=[str(error)])

        logger.info(f"Fin du traitement: {label} ({outcome.translated_fields} champs traduits)")
        return ProcessingResult(
            success=True,
            message=f"{outcome.translated_fields} champs traduits",
            data=outcome,
            errors=[failure.describe() for failure in outcome.failures]
        )

    @staticmethod
    def split_lines(text: str) -> List[str]:
        """Découpe le texte sur les fins de ligne \\r\\n, \\r et \\n uniquement"""
        if not text:
            return []
        lines = LINE_BREAK_PATTERN.split(text)
        if lines[-1] == "":
            lines.pop()
        return lines

    @staticmethod
    def _read_text(file_path: Path) -> str:
        """Lit un fichier en UTF-8, avec détection d'encodage en secours"""
        try:
            raw = file_path.read_bytes()
        except OSError as e:
            raise FileIOError(f"Lecture impossible de {file_path}: {e}") from e

        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError:
            encoding = chardet.detect(raw).get("encoding") or "utf-8"
            logger.debug(f"Encodage détecté pour {file_path.name}: {encoding}")
            try:
                return raw.decode(encoding)
            except (UnicodeDecodeError, LookupError) as e:
                raise FileIOError(f"Encodage illisible pour {file_path}: {e}") from e

    def rewrite_lines(self, lines: List[str], source_path: str = "<mémoire>") -> RewriteOutcome:
        """Applique la traduction aux lignes d'un fichier et retourne les nouvelles lignes"""
        output: List[str] = []
        outcome = RewriteOutcome(lines=output)
        state = CoreNameState()
        in_core = False

        i = 0
        while i < len(lines):
            raw = lines[i]

            if self.COMMENT_PATTERN.match(raw):
                output.append(raw)
                i += 1
                continue

            header = self.HEADER_PATTERN.match(raw)
            if header:
                in_core = self._is_core_header(header.group(1).strip())
                output.append(raw)
                i += 1
                continue

            match = self.FIELD_PATTERN.match(raw)
            if not match:
                output.append(raw)
                i += 1
                continue

            indent, key = match.group("indent"), match.group("key")
            value = match.group("value").strip()

            if in_core:
                if key == "name":
                    state.name_value = value
                    state.anchor_index = len(output)
                    state.indent = indent
                elif key == "displayText":
                    state.display_text_found = True
                elif key == "displayDescription":
                    state.display_description_found = True

            if key not in self._fields:
                output.append(raw)
                i += 1
                continue

            end, text, quote = self._read_value(lines, i, key, value, source_path, outcome)
            raw_block = lines[i:end + 1]
            i = end + 1

            if not text.strip():
                # Valeur vide : la paire est émise avec une traduction vide
                output.extend(self._emit(indent, key, text, "", quote))
                continue

            if self.segmenter.is_reference_token(text):
                logger.debug(f"Champ {key} conservé tel quel (ligne {end + 1})")
                output.extend(raw_block)
                continue

            try:
                translated = self._translate_value(text)
            except TranslationError as e:
                self._record_failure(outcome, source_path, key, e)
                if self.options.fault_policy == "file":
                    e.field_name = key
                    raise
                output.extend(raw_block)
                continue

            output.extend(self._emit(indent, key, text, translated, quote))
            outcome.translated_fields += 1
            logger.debug(f"Champ {key}: '{text}' -> '{translated}'")

        self._synthesize_display_fields(output, state, source_path, outcome)
        return outcome

    def _is_core_header(self, name: str) -> bool:
        if self.options.core_section_match == "substring":
            return "core" in name
        return name == "core"

    def _read_value(self, lines: List[str], start: int, key: str, value: str,
                    source_path: str, outcome: RewriteOutcome) -> Tuple[int, str, str]:
        """Retourne (index de la dernière ligne consommée, texte sans guillemets, guillemet)"""
        marker = next((m for m in TRIPLE_QUOTES if m in value), None)
        if marker is None:
            text, quote = self._unquote(value)
            return start, text, quote

        collected = [value]
        end = start
        if value.count(marker) < 2:
            j = start + 1
            while j < len(lines) and marker not in lines[j]:
                collected.append(lines[j])
                j += 1
            if j < len(lines):
                collected.append(lines[j])
                end = j
            else:
                end = len(lines) - 1
                anomaly = ConfigParseAnomaly(
                    source_path, start + 1, key, f"valeur {marker} non terminée en fin de fichier"
                )
                outcome.anomalies.append(anomaly)
                logger.warning(f"Anomalie: {anomaly}")

        text = "\n".join(collected).replace(marker, "").strip()
        return end, text, marker

    @staticmethod
    def _unquote(value: str) -> Tuple[str, str]:
        """Retire une paire de guillemets simples ou doubles englobants"""
        for marker in TRIPLE_QUOTES:
            if len(value) >= 6 and value.startswith(marker) and value.endswith(marker):
                return value[3:-3].strip(), marker
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            return value[1:-1], value[0]
        return value, ""

    def _translate_value(self, text: str) -> str:
        """Traduit les segments littéraux et recolle les placeholders à leur place"""
        parts: List[str] = []
        for segment in self.segmenter.split(text):
            if segment.is_placeholder or not segment.text.strip():
                parts.append(segment.text)
                continue

            core = segment.text.strip()
            leading = segment.text[:len(segment.text) - len(segment.text.lstrip())]
            trailing = segment.text[len(segment.text.rstrip()):]
            translated = self.translator.translate(core, self.options.source_lang, self.options.target_lang)
            parts.append(f"{leading}{translated}{trailing}")

        return "".join(parts)

    def _emit(self, indent: str, key: str, original: str, translated: str, quote: str) -> List[str]:
        """Produit les deux lignes selon le mode de fusion"""
        if self.options.mode == MergeMode.ADD:
            return [
                f"{indent}{key}: {quote}{original}{quote}",
                f"{indent}{key}_{self.options.target_lang}: {quote}{translated}{quote}",
            ]
        return [
            f"{indent}{key}: {quote}{translated}{quote}",
            f"{indent}{key}_{self.options.source_lang}: {quote}{original}{quote}",
        ]

    def _record_failure(self, outcome: RewriteOutcome, source_path: str,
                        field_name: str, error: TranslationError) -> None:
        failure = FailureRecord(
            path=source_path,
            field_name=field_name,
            source_lang=self.options.source_lang,
            target_lang=self.options.target_lang,
            message=str(error)
        )
        outcome.failures.append(failure)
        logger.error(f"Erreur de traduction: {failure.describe()}")

    def _synthesize_display_fields(self, output: List[str], state: CoreNameState,
                                   source_path: str, outcome: RewriteOutcome) -> None:
        """Crée displayText / displayDescription depuis le name de la section core"""
        if state.anchor_index is None or state.name_value is None:
            return

        missing = [name for name in FALLBACK_FIELDS if not state.is_found(name)]
        if not missing:
            return

        name, quote = self._unquote(state.name_value)
        if not name.strip() or self.segmenter.is_reference_token(name):
            return

        try:
            translated = self._translate_value(name)
        except TranslationError as e:
            for field_name in missing:
                self._record_failure(outcome, source_path, field_name, e)
            return

        inserted: List[str] = []
        for field_name in missing:
            inserted.extend(self._emit(state.indent, field_name, name, translated, quote))
            logger.debug(f"Champ core {field_name} synthétisé: '{name}' -> '{translated}'")

        position = state.anchor_index + 1
        output[position:position] = inserted
        outcome.translated_fields += len(missing)


class ArchiveCodec:
    """Extraction et reconstruction des archives zip de mod"""

    def extract(self, stream: BinaryIO, destination: Path) -> List[zipfile.ZipInfo]:
        """Extrait l'archive dans destination et retourne le manifeste des entrées"""
        root = destination.resolve()
        if not stream.seekable():
            stream = io.BytesIO(stream.read())

        try:
            with zipfile.ZipFile(stream, "r") as archive:
                manifest = archive.infolist()
                for info in manifest:
                    target = self._safe_target(root, info.filename)
                    if info.is_dir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(info) as source, open(target, "wb") as output:
                        shutil.copyfileobj(source, output)
        except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, OSError) as e:
            raise ArchiveReadError(f"Lecture de l'archive impossible: {e}") from e

        logger.info(f"Extraction réussie: {len(manifest)} entrées")
        return manifest

    @staticmethod
    def _safe_target(root: Path, name: str) -> Path:
        target = (root / name).resolve()
        if target != root and root not in target.parents:
            raise ArchiveReadError(f"Entrée hors du répertoire de travail: {name}")
        return target

    def repack(self, source_dir: Path, stream: BinaryIO,
               manifest: Optional[List[zipfile.ZipInfo]] = None) -> int:
        """Réécrit le répertoire de travail dans une archive, dans l'ordre du manifeste"""
        written = set()
        try:
            with zipfile.ZipFile(stream, "w", zipfile.ZIP_DEFLATED) as archive:
                for info in manifest or []:
                    name = info.filename
                    if name in written:
                        continue
                    path = source_dir / name
                    if info.is_dir():
                        archive.writestr(self._entry_info(name, info), b"")
                    elif path.is_file():
                        archive.writestr(self._entry_info(name, info), path.read_bytes())
                    else:
                        continue
                    written.add(name)

                for path in sorted(p for p in source_dir.rglob("*") if p.is_file()):
                    name = path.relative_to(source_dir).as_posix()
                    if name not in written:
                        archive.write(path, name)
                        written.add(name)
        except (OSError, ValueError, zipfile.LargeZipFile) as e:
            raise ArchiveWriteError(f"Écriture de l'archive impossible: {e}") from e

        logger.info(f"Archive reconstruite: {len(written)} entrées")
        return len(written)

    @staticmethod
    def _entry_info(name: str, original: zipfile.ZipInfo) -> zipfile.ZipInfo:
        info = zipfile.ZipInfo(name, date_time=original.date_time)
        info.external_attr = original.external_attr
        info.compress_type = zipfile.ZIP_STORED if original.is_dir() else zipfile.ZIP_DEFLATED
        return info

# ============================================================================
# MAIN TRANSLATOR ENGINE
# ============================================================================

class RWModTranslator:
    """Moteur principal de traduction des mods"""

    def __init__(self, config: TranslationConfig, translator: Optional[ITranslationBackend] = None,
                 deepl_key: Optional[str] = None):
        self.config = config
        if translator is None:
            from translation_backends import create_backend
            translator = create_backend(config, deepl_key)
        self.translator = translator
        self.codec = ArchiveCodec()
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Demande l'arrêt de l'opération en cours"""
        self._cancel_event.set()

    def build_options(self, source_lang: Optional[str] = None, target_lang: Optional[str] = None,
                      mode: Optional[str] = None) -> RewriteOptions:
        return RewriteOptions(
            source_lang=source_lang or self.config.source_lang,
            target_lang=target_lang or self.config.target_lang,
            mode=MergeMode(mode or self.config.mode),
            fault_policy=self.config.fault_policy,
            core_section_match=self.config.core_section_match,
        )

    def translate_mod(self, mod_path: Path, output_path: Path, source_lang: Optional[str] = None,
                      target_lang: Optional[str] = None, mode: Optional[str] = None,
                      progress_callback: Optional[ProgressCallback] = None) -> ProcessingResult:
        """Traduit une archive de mod sur disque"""
        if not mod_path.is_file():
            return ProcessingResult(success=False, message=f"Fichier mod introuvable: {mod_path}")

        if mod_path.suffix.lower() not in ARCHIVE_EXTENSIONS:
            return ProcessingResult(
                success=False,
                message=f"Format non supporté: {mod_path.name} (attendu: {', '.join(ARCHIVE_EXTENSIONS)})"
            )

        if output_path.suffix.lower() in ARCHIVE_EXTENSIONS:
            final_path = output_path
            final_path.parent.mkdir(parents=True, exist_ok=True)
        else:
            output_path.mkdir(parents=True, exist_ok=True)
            final_path = output_path / f"{mod_path.stem}_translated{mod_path.suffix}"

        try:
            with open(mod_path, "rb") as source:
                try:
                    output = open(final_path, "wb")
                except OSError as e:
                    raise ArchiveWriteError(f"Création de {final_path} impossible: {e}") from e
                with output:
                    result = self.translate_archive(
                        source, output, source_lang, target_lang, mode, progress_callback
                    )
        except (ArchiveReadError, ArchiveWriteError, OperationCancelled) as e:
            final_path.unlink(missing_ok=True)
            return ProcessingResult(success=False, message=str(e), errors=[str(e)])

        result.data.output_file = final_path
        return result

    def translate_archive(self, input_stream: BinaryIO, output_stream: BinaryIO,
                          source_lang: Optional[str] = None, target_lang: Optional[str] = None,
                          mode: Optional[str] = None,
                          progress_callback: Optional[ProgressCallback] = None) -> ProcessingResult:
        """Extrait, traduit et reconstruit une archive complète"""
        options = self.build_options(source_lang, target_lang, mode)
        self._cancel_event.clear()

        cache = getattr(self.translator, "cache", None)
        if self.config.clear_cache and cache is not None:
            cache.clear()

        with tempfile.TemporaryDirectory(prefix="RWTranslator_") as temp_dir:
            work_dir = Path(temp_dir) / "work_dir"
            work_dir.mkdir()

            manifest = self.codec.extract(input_stream, work_dir)
            report = self.translate_directory(work_dir, options, progress_callback)
            self.codec.repack(work_dir, output_stream, manifest)

        message = (
            f"Traduction terminée: {report.translated_files}/{report.total_files} fichiers traduits "
            f"({options.source_lang} -> {options.target_lang}, mode {options.mode.value})"
        )
        return ProcessingResult(
            success=not report.failed_files,
            message=message,
            data=report,
            errors=[failure.describe() for failure in report.failures]
        )

    def find_config_files(self, root: Path) -> List[Path]:
        """Liste les fichiers de configuration à traduire, dans un ordre stable"""
        return sorted(
            p for p in root.rglob("*")
            if p.is_file() and p.suffix.lower().lstrip(".") in QUALIFYING_EXTENSIONS
        )

    def translate_directory(self, root: Path, options: RewriteOptions,
                            progress_callback: Optional[ProgressCallback] = None) -> BatchReport:
        """Traduit tous les fichiers de configuration d'un répertoire extrait"""
        files = self.find_config_files(root)
        report = BatchReport(total_files=len(files))
        if not files:
            logger.info("Aucun fichier de configuration à traduire")
            return report

        handler = ConfigFileHandler(self.translator, options)
        tracker = ProgressTracker(len(files), progress_callback)

        if self.config.parallel_translation and len(files) > 1:
            self._translate_files_parallel(files, handler, root, report, tracker)
        else:
            self._translate_files_sequential(files, handler, root, report, tracker)

        return report

    def _translate_files_parallel(self, files: List[Path], handler: ConfigFileHandler, root: Path,
                                  report: BatchReport, tracker: ProgressTracker) -> None:
        """Traduction parallèle des fichiers"""
        executor = ThreadPoolExecutor(max_workers=self.config.resolved_workers())
        try:
            futures = {
                executor.submit(self._translate_single_file, handler, file_path, root): file_path
                for file_path in files
            }

            for future in as_completed(futures):
                if self._cancel_event.is_set():
                    raise OperationCancelled("Traduction annulée")
                self._record_result(report, root, futures[future], future.result())
                tracker.advance()
        except KeyboardInterrupt:
            self.cancel()
            raise OperationCancelled("Traduction interrompue par l'utilisateur")
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def _translate_files_sequential(self, files: List[Path], handler: ConfigFileHandler, root: Path,
                                    report: BatchReport, tracker: ProgressTracker) -> None:
        """Traduction séquentielle des fichiers"""
        for file_path in files:
            if self._cancel_event.is_set():
                raise OperationCancelled("Traduction annulée")
            self._record_result(report, root, file_path, self._translate_single_file(handler, file_path, root))
            tracker.advance()

    def _translate_single_file(self, handler: ConfigFileHandler, file_path: Path,
                               root: Path) -> ProcessingResult:
        """Traduit un fichier unique"""
        if self._cancel_event.is_set():
            raise OperationCancelled("Traduction annulée")

        label = file_path.relative_to(root).as_posix()
        if not handler.can_handle(file_path):
            return ProcessingResult(
                success=False,
                message=f"Aucun gestionnaire disponible pour {label}"
            )

        try:
            return handler.process_file(file_path, label)
        except Exception as e:
            logger.exception(f"Erreur inattendue sur {label}")
            return ProcessingResult(
                success=False,
                message=f"Erreur lors du traitement de {label}: {e}",
                errors=[str(e)]
            )

    @staticmethod
    def _record_result(report: BatchReport, root: Path, file_path: Path, result: ProcessingResult) -> None:
        relative = file_path.relative_to(root).as_posix()
        outcome = result.data if isinstance(result.data, RewriteOutcome) else None

        if outcome is not None:
            report.failures.extend(outcome.failures)
            report.anomalies.extend(outcome.anomalies)

        if result.success:
            report.translated_files += 1
            logger.info(f"✓ {relative}")
        else:
            report.failed_files.append(relative)
            if outcome is None:
                report.failures.append(FailureRecord(relative, "*", "", "", result.message))
            logger.error(f"✗ {relative}: {result.message}")

    def get_translation_stats(self) -> Dict[str, Any]:
        """Retourne les statistiques de traduction"""
        cache = getattr(self.translator, "cache", None)
        return {
            "cache_stats": cache.get_stats() if cache is not None else {},
            "config": {
                "source_lang": self.config.source_lang,
                "target_lang": self.config.target_lang,
                "mode": self.config.mode,
                "backend": self.config.backend,
                "workers": self.config.resolved_workers(),
                "parallel": self.config.parallel_translation
            }
        }

# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def validate_environment(config: TranslationConfig, deepl_key: Optional[str] = None) -> List[str]:
    """Valide l'environnement d'exécution"""
    errors = []

    if config.mode not in {m.value for m in MergeMode}:
        errors.append(f"Mode de fusion inconnu: {config.mode}")

    if config.fault_policy not in {"field", "file"}:
        errors.append(f"Politique d'erreur inconnue: {config.fault_policy}")

    if config.core_section_match not in {"exact", "substring"}:
        errors.append(f"Détection de section core inconnue: {config.core_section_match}")

    if config.backend == "deepl":
        if not deepl_key:
            errors.append("Clé API DeepL manquante")
        else:
            try:
                deepl.Translator(auth_key=deepl_key).get_usage()
            except Exception as e:
                errors.append(f"Erreur de connexion DeepL: {e}")
    elif config.backend != "google":
        errors.append(f"Backend de traduction inconnu: {config.backend}")

    return errors


def load_configuration(config_path: Optional[Path] = None) -> TranslationConfig:
    """Charge la configuration depuis un fichier ou utilise les valeurs par défaut"""
    if config_path and config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)

            known = {f.name for f in fields(TranslationConfig)}
            return TranslationConfig(**{k: v for k, v in config_data.items() if k in known})
        except Exception as e:
            logger.warning(f"Erreur lors du chargement de la configuration: {e}")

    return TranslationConfig()

# ============================================================================
# CLI INTERFACE
# ============================================================================

def create_argument_parser() -> argparse.ArgumentParser:
    """Crée le parser d'arguments en ligne de commande"""
    parser = argparse.ArgumentParser(
        description="RW Mod Translator - Traduction des fichiers de configuration d'un mod",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Traduction basique (ajout des champs traduits)
  rw-translator --mod mod.rwmod --output output/ --source zh_cn --target en

  # Remplacement du texte original, avec DeepL
  rw-translator --mod mod.zip --output mod_en.zip --mode replace --backend deepl --deepl-key KEY
        """
    )

    # Arguments principaux
    parser.add_argument("--mod", required=True, type=Path,
                        help="Archive du mod à traduire (.zip ou .rwmod)")
    parser.add_argument("--output", required=True, type=Path,
                        help="Répertoire de sortie ou archive finale")

    # Configuration
    parser.add_argument("--config", type=Path,
                        help="Fichier de configuration JSON")
    parser.add_argument("--source", help="Langue source (ex: zh_cn)")
    parser.add_argument("--target", help="Langue cible (ex: en)")
    parser.add_argument("--mode", choices=[m.value for m in MergeMode],
                        help="add: conserve l'original, replace: remplace le texte")
    parser.add_argument("--backend", choices=["google", "deepl"],
                        help="Service de traduction")
    parser.add_argument("--deepl-key",
                        help="Clé API DeepL (défaut: DEEPL_API_KEY)")
    parser.add_argument("--workers", type=int,
                        help="Nombre de fichiers traités en parallèle")
    parser.add_argument("--fault-policy", choices=["field", "file"],
                        help="Isolation des erreurs de traduction")
    parser.add_argument("--core-match", choices=["exact", "substring"],
                        help="Détection de la section core")

    # Options de traduction
    parser.add_argument("--no-parallel", action="store_true",
                        help="Désactive la traduction parallèle")
    parser.add_argument("--clear-cache", action="store_true",
                        help="Vide le cache de traduction")

    # Options de débogage
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Mode verbeux")
    parser.add_argument("--dry-run", action="store_true",
                        help="Simulation sans modification")

    return parser


def setup_logging(verbose: bool = False) -> None:
    """Configure le système de logging"""
    level = logging.DEBUG if verbose else logging.INFO

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)


def log_progress(completed: int, total: int) -> None:
    percent = int(completed / total * 100) if total else 100
    logger.info(f"Progression: {completed} / {total} fichiers ({percent}%)")


def apply_cli_overrides(config: TranslationConfig, args: argparse.Namespace) -> TranslationConfig:
    """Applique les options de la ligne de commande à la configuration"""
    if args.source:
        config.source_lang = args.source
    if args.target:
        config.target_lang = args.target
    if args.mode:
        config.mode = args.mode
    if args.backend:
        config.backend = args.backend
    if args.workers is not None:
        config.max_workers = args.workers
    if args.fault_policy:
        config.fault_policy = args.fault_policy
    if args.core_match:
        config.core_section_match = args.core_match
    if args.no_parallel:
        config.parallel_translation = False
    if args.clear_cache:
        config.clear_cache = True
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Point d'entrée principal"""
    # Chargement des variables d'environnement
    load_dotenv()

    parser = create_argument_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    try:
        config = apply_cli_overrides(load_configuration(args.config), args)
        deepl_key = args.deepl_key or os.getenv('DEEPL_API_KEY')

        validation_errors = validate_environment(config, deepl_key)
        if validation_errors:
            for error in validation_errors:
                logger.error(error)
            return 1

        translator = RWModTranslator(config=config, deepl_key=deepl_key)

        if args.dry_run:
            logger.info("Mode simulation - Aucune modification ne sera effectuée")
            logger.info(f"Mod: {args.mod} -> {args.output}")
            logger.info(f"Langues: {config.source_lang} -> {config.target_lang}, mode {config.mode}")
            return 0

        logger.info(f"Démarrage de la traduction: {args.mod}")
        result = translator.translate_mod(
            mod_path=args.mod,
            output_path=args.output,
            progress_callback=log_progress
        )

        if result.success:
            logger.info(f"✓ Traduction réussie: {result.message}")
            stats = translator.get_translation_stats()
            logger.info(f"Statistiques de cache: {stats['cache_stats']}")
            return 0

        logger.error(f"✗ Traduction échouée: {result.message}")
        for error in result.errors:
            logger.error(f"  - {error}")
        return 1

    except KeyboardInterrupt:
        logger.info("Traduction interrompue par l'utilisateur")
        return 130

    except Exception as e:
        logger.error(f"Erreur fatale: {e}")
        if args.verbose:
            import traceback
            logger.debug(traceback.format_exc())
        return 1


if __name__ == "__main__":
    exit(main())
