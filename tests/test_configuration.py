import json

import pytest

import rw_translator_core
import translate_mod
from rw_translator_core import (
    MergeMode, RWModTranslator, TranslationConfig, load_configuration, validate_environment
)
from conftest import FakeBackend, build_zip


def test_defaults():
    config = TranslationConfig()

    assert (config.source_lang, config.target_lang, config.mode) == ("zh_cn", "en", "add")
    assert config.resolved_workers() >= 1
    assert TranslationConfig(max_workers=5).resolved_workers() == 5


def test_load_configuration_from_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "source_lang": "ru",
        "target_lang": "de",
        "mode": "replace",
        "max_workers": 2,
        "unknown_option": True,
    }), encoding="utf-8")

    config = load_configuration(path)

    assert (config.source_lang, config.target_lang, config.mode) == ("ru", "de", "replace")
    assert config.max_workers == 2


def test_invalid_configuration_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    assert load_configuration(path) == TranslationConfig()
    assert load_configuration(tmp_path / "missing.json") == TranslationConfig()


def test_validate_environment():
    assert validate_environment(TranslationConfig()) == []

    errors = validate_environment(TranslationConfig(mode="merge", fault_policy="never", backend="deepl"))

    assert any("merge" in e for e in errors)
    assert any("never" in e for e in errors)
    assert any("DeepL" in e for e in errors)


def test_build_options_prefers_call_arguments():
    translator = RWModTranslator(TranslationConfig(), translator=FakeBackend())

    options = translator.build_options("en", None, "replace")

    assert (options.source_lang, options.target_lang, options.mode) == ("en", "en", MergeMode.REPLACE)

    with pytest.raises(ValueError):
        translator.build_options(mode="merge")


def test_core_cli_dry_run(tmp_path):
    mod = tmp_path / "mod.rwmod"
    mod.write_bytes(build_zip({"a.ini": b"[unit]\ntitle: Hi\n"}))

    exit_code = rw_translator_core.main(["--mod", str(mod), "--output", str(tmp_path / "out"), "--dry-run"])

    assert exit_code == 0
    assert not (tmp_path / "out").exists()


def test_core_cli_rejects_bad_settings(tmp_path, monkeypatch):
    monkeypatch.delenv("DEEPL_API_KEY", raising=False)
    monkeypatch.setattr(rw_translator_core, "load_dotenv", lambda: None)

    exit_code = rw_translator_core.main([
        "--mod", str(tmp_path / "mod.zip"), "--output", str(tmp_path), "--backend", "deepl"
    ])

    assert exit_code == 1


def test_core_cli_translates(tmp_path, monkeypatch):
    mod = tmp_path / "mod.zip"
    mod.write_bytes(build_zip({"a.ini": b"[unit]\ntitle: Hi\n"}))
    monkeypatch.setattr(
        rw_translator_core.RWModTranslator, "__init__",
        _init_with_fake_backend(rw_translator_core.RWModTranslator.__init__)
    )

    exit_code = rw_translator_core.main([
        "--mod", str(mod), "--output", str(tmp_path / "out"), "--source", "en", "--target", "fr"
    ])

    assert exit_code == 0
    assert (tmp_path / "out" / "mod_translated.zip").is_file()


def test_simplified_cli_checks_inputs(tmp_path):
    exit_code = translate_mod.main([
        str(tmp_path / "missing.rwmod"), "--config", str(tmp_path / "none.json"), "--dry-run"
    ])

    assert exit_code == 1


def test_simplified_cli_dry_run(tmp_path):
    mod = tmp_path / "mod.rwmod"
    mod.write_bytes(build_zip({"a.ini": b"[unit]\ntitle: Hi\n"}))

    exit_code = translate_mod.main([
        str(mod), "--output", str(tmp_path / "out"), "--config", str(tmp_path / "none.json"), "--dry-run"
    ])

    assert exit_code == 0


def _init_with_fake_backend(original_init):
    def __init__(self, config, translator=None, deepl_key=None):
        original_init(self, config, translator=FakeBackend(), deepl_key=deepl_key)
    return __init__
