from __future__ import annotations

import logging
import textwrap
from pathlib import Path

from lunals.config import (
    analysis_defaults,
    analysis_settings,
    client_settings,
    load_config,
    merge_payload,
)


def test_analysis_defaults_reads_toml(tmp_path: Path) -> None:
    (tmp_path / "lunals.toml").write_text(
        textwrap.dedent(
            """
            [analysis]
            strict = true
            integer = false
            unused = false
            """
        ).strip()
        + "\n"
    )
    defaults = analysis_defaults(root=tmp_path)
    assert defaults == {"strict": True, "integer": False, "unused": False}


def test_explicit_config_path_wins_over_root(tmp_path: Path) -> None:
    (tmp_path / "lunals.toml").write_text("[analysis]\nstrict = true\n")
    other = tmp_path / "other.toml"
    other.write_text("[analysis]\ninteger = true\n")
    assert analysis_defaults(root=tmp_path, config_path=other) == {"integer": True}


def test_missing_config_is_empty(tmp_path: Path) -> None:
    assert load_config(root=tmp_path) == {}
    assert analysis_defaults(root=tmp_path) == {}


def test_malformed_config_is_ignored(tmp_path: Path, caplog) -> None:
    (tmp_path / "lunals.toml").write_text("[analysis\nstrict = \n")
    with caplog.at_level(logging.WARNING, logger="lunals.config"):
        assert load_config(root=tmp_path) == {}
    assert "malformed config" in caplog.text


def test_non_table_analysis_section_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "lunals.toml").write_text('analysis = "strict"\n')
    assert analysis_defaults(root=tmp_path) == {}


def test_merge_payload_prefers_explicit_values() -> None:
    merged = merge_payload({"strict": None, "unused": False}, {"strict": True, "unused": True})
    assert merged == {"strict": True, "unused": False}


def test_client_settings_extracts_section() -> None:
    assert client_settings({"lunals": {"strict": True}, "other": {}}) == {"strict": True}
    assert client_settings({"strict": True}) == {"strict": True}
    assert client_settings(None) == {}
    assert client_settings(["strict"]) == {}


def test_analysis_settings_defaults() -> None:
    settings = analysis_settings({})
    assert (settings.strict, settings.integer, settings.unused) == (False, False, True)


def test_analysis_settings_drops_invalid_values(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="lunals.config"):
        settings = analysis_settings({"strict": "yes", "integer": True, "extra": 1})
    assert settings.strict is False
    assert settings.integer is True
    assert "strict" in caplog.text
