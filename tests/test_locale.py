from __future__ import annotations

import json
import os

from gatekeeper.core.locale import BUILTIN_MESSAGES, LocaleManager, render_template

from .helpers.fakes import DummyLogger


def test_builtin_catalogs_are_written_once(tmp_path):
    d = str(tmp_path / "locales")
    LocaleManager(locales_dir=d, logger=DummyLogger())
    assert sorted(os.listdir(d)) == ["en.json", "ru.json"]

    with open(os.path.join(d, "en.json"), "w", encoding="utf-8") as f:
        json.dump({"kick-message": "Go away"}, f)
    lm = LocaleManager(locales_dir=d, logger=DummyLogger())
    assert lm.message("kick-message") == "Go away"


def test_russian_catalog_is_selected(tmp_path):
    lm = LocaleManager(locales_dir=str(tmp_path), locale="RU", logger=DummyLogger())
    assert lm.message("list-empty") == BUILTIN_MESSAGES["ru"]["list-empty"]


def test_unknown_locale_falls_back_to_english(tmp_path):
    logger = DummyLogger()
    lm = LocaleManager(locales_dir=str(tmp_path), locale="de", logger=logger)
    assert lm.message("list-empty") == BUILTIN_MESSAGES["en"]["list-empty"]
    assert any("de.json" in m for m in logger.messages("warning"))


def test_missing_key_renders_marker(tmp_path):
    lm = LocaleManager(locales_dir=str(tmp_path), logger=DummyLogger())
    assert lm.message("no-such-key") == "Missing message for key: no-such-key"


def test_corrupt_catalog_uses_builtin(tmp_path):
    d = str(tmp_path)
    os.makedirs(d, exist_ok=True)
    with open(os.path.join(d, "en.json"), "w", encoding="utf-8") as f:
        f.write("{oops")
    logger = DummyLogger()
    lm = LocaleManager(locales_dir=d, logger=logger)
    assert lm.message("kick-message") == BUILTIN_MESSAGES["en"]["kick-message"]
    assert logger.messages("error")


def test_render_substitutes_literally():
    assert render_template("Hi {player}, until {until}", {"player": "{until}", "until": "x"}) == "Hi {until}, until x"
    assert render_template("Hi {player} {other}", {"player": "Steve"}) == "Hi Steve {other}"


def test_client_locale_only_when_enabled(tmp_path):
    d = str(tmp_path)
    lm = LocaleManager(locales_dir=d, logger=DummyLogger())
    assert lm.render("player-added", "ru", player="Steve") == "Player Steve has been added to the whitelist."

    lm.set_locale("en", use_client_locale=True)
    assert lm.render("player-added", "ru", player="Steve") == "Игрок Steve был добавлен в белый список."
    # Unknown client locale falls back to the server locale.
    assert lm.render("player-added", "fr", player="Steve") == "Player Steve has been added to the whitelist."


def test_client_locale_cannot_escape_locales_dir(tmp_path):
    os.makedirs(tmp_path / "config")
    with open(tmp_path / "config" / "gatekeeper.json", "w", encoding="utf-8") as f:
        json.dump({"player-added": "leaked {player}"}, f)
    lm = LocaleManager(locales_dir=str(tmp_path / "locales"), use_client_locale=True, logger=DummyLogger())
    for lang in ["../config/gatekeeper", "..", "en/../ru", "EN.json", "a" * 17]:
        assert lm.render("player-added", lang, player="Steve") == "Player Steve has been added to the whitelist."
    assert lm._client_cache == {}


def test_client_locale_cache_is_bounded(tmp_path):
    lm = LocaleManager(locales_dir=str(tmp_path), use_client_locale=True, logger=DummyLogger())
    for i in range(200):
        lm.message("list-empty", "zz" + chr(97 + i % 26) + chr(97 + i // 26))
    assert len(lm._client_cache) <= 64
    assert lm.message("list-empty", "ru") == BUILTIN_MESSAGES["ru"]["list-empty"]


def test_invalid_configured_locale_falls_back_to_english(tmp_path):
    logger = DummyLogger()
    lm = LocaleManager(locales_dir=str(tmp_path), locale="../ru", logger=logger)
    assert lm.locale == "en"
    assert lm.message("list-empty") == BUILTIN_MESSAGES["en"]["list-empty"]
    assert any("Invalid locale code" in m for m in logger.messages("warning"))
