"""Tests for DSN composition, parsing and adapter configuration."""

from __future__ import annotations

import pytest

from nova.db import DBConfig, UsageError, compose_dsn, parse_dsn
from nova.db.dsn import pragma_statements


class TestComposeDSN:
    def test_defaults_append_all_parameters(self) -> None:
        dsn = compose_dsn("nova.db", DBConfig())
        assert dsn == "nova.db?_journal_mode=WAL&_cache_size=-2000&_busy_timeout=5000"

    def test_zero_busy_timeout_appends_nothing(self) -> None:
        dsn = compose_dsn("nova.db", DBConfig(busy_timeout_ms=0))
        assert "_busy_timeout" not in dsn
        assert dsn == "nova.db?_journal_mode=WAL&_cache_size=-2000"

    def test_everything_disabled_keeps_base(self) -> None:
        config = DBConfig(wal=False, cache_size=0, busy_timeout_ms=0)
        assert compose_dsn("nova.db", config) == "nova.db"

    def test_existing_query_is_extended_with_ampersand(self) -> None:
        config = DBConfig(wal=False, cache_size=0)
        dsn = compose_dsn("file:nova.db?mode=rwc", config)
        assert dsn == "file:nova.db?mode=rwc&_busy_timeout=5000"


class TestParseDSN:
    def test_pragmas_extracted_in_order(self) -> None:
        parsed = parse_dsn("nova.db?_journal_mode=WAL&_cache_size=-2000&_busy_timeout=5000")
        assert parsed.database == "nova.db"
        assert parsed.uri is False
        assert parsed.pragmas == (
            ("journal_mode", "WAL"),
            ("cache_size", "-2000"),
            ("busy_timeout", "5000"),
        )

    def test_uri_keeps_engine_parameters(self) -> None:
        parsed = parse_dsn("file:nova.db?mode=ro&_busy_timeout=10")
        assert parsed.uri is True
        assert parsed.database == "file:nova.db?mode=ro"
        assert parsed.pragmas == (("busy_timeout", "10"),)

    def test_unknown_underscore_parameter_rejected(self) -> None:
        with pytest.raises(UsageError, match="_bogus"):
            parse_dsn("nova.db?_bogus=1")

    def test_plain_path_rejects_engine_parameters(self) -> None:
        with pytest.raises(UsageError):
            parse_dsn("nova.db?mode=ro")

    @pytest.mark.parametrize(
        "dsn",
        [
            ":memory:",
            "",
            ":memory:?_journal_mode=WAL",
            "file::memory:",
            "file:shared?mode=memory&cache=shared",
        ],
    )
    def test_in_memory_targets_rejected(self, dsn: str) -> None:
        with pytest.raises(UsageError, match="in-memory"):
            parse_dsn(dsn)

    def test_pragma_statements_render(self) -> None:
        parsed = parse_dsn("nova.db?_busy_timeout=250&_foreign_keys=1")
        assert pragma_statements(parsed) == [
            "PRAGMA busy_timeout = 250",
            "PRAGMA foreign_keys = 1",
        ]

    def test_pragma_value_must_be_a_bare_word(self) -> None:
        parsed = parse_dsn("nova.db?_journal_mode=WAL;DROP")
        with pytest.raises(UsageError, match="journal_mode"):
            pragma_statements(parsed)


class TestDBConfig:
    def test_defaults(self) -> None:
        config = DBConfig()
        assert config.max_open_conns == 10
        assert config.debug is False
        assert config.auto_create_table is True
        assert config.wal is True
        assert config.cache_size == -2000
        assert config.busy_timeout_ms == 5000
        assert config.extensions == ()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_open_conns": 0},
            {"busy_timeout_ms": -1},
            {"sample_interval": 0},
        ],
    )
    def test_invalid_values_rejected(self, kwargs: dict) -> None:
        with pytest.raises(UsageError):
            DBConfig(**kwargs)
