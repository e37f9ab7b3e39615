"""Tests for Settings validators and the engine factory."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError
from sqlalchemy import text

from doccontrol.config import Settings, create_app_engine


class TestModelChainParsing:
    def test_comma_separated_string_parsed_to_list(self) -> None:
        s = Settings(litellm_model_chain="model-a,model-b")  # type: ignore[arg-type]
        assert s.litellm_model_chain == ["model-a", "model-b"]

    def test_comma_separated_with_spaces(self) -> None:
        s = Settings(litellm_model_chain="model-a , model-b")  # type: ignore[arg-type]
        assert s.litellm_model_chain == ["model-a", "model-b"]

    def test_json_list_passthrough(self) -> None:
        s = Settings(litellm_model_chain=["model-a", "model-b"])
        assert s.litellm_model_chain == ["model-a", "model-b"]

    def test_env_var_is_comma_separated(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LITELLM_MODEL_CHAIN", "a/one,b/two")
        assert Settings().litellm_model_chain == ["a/one", "b/two"]


class TestModelChainValidation:
    def test_empty_chain_raises(self) -> None:
        with pytest.raises(ValueError, match="at least one model"):
            Settings(litellm_model_chain=[])

    def test_empty_string_raises(self) -> None:
        with pytest.raises(ValueError, match="at least one model"):
            Settings(litellm_model_chain="")  # type: ignore[arg-type]

    def test_duplicate_models_warns(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="doccontrol.config"):
            s = Settings(
                litellm_model_chain=["model-a", "model-a", "model-b"]
            )
        assert "Duplicate models in LITELLM_MODEL_CHAIN" in caplog.text
        # Chain is preserved as-is (no dedup)
        assert s.litellm_model_chain == ["model-a", "model-a", "model-b"]


class TestUploadSettings:
    def test_extensions_normalized(self) -> None:
        s = Settings(allowed_upload_extensions="TXT, .Md")  # type: ignore[arg-type]
        assert s.allowed_upload_extensions == [".txt", ".md"]

    def test_defaults_include_pdf(self) -> None:
        assert ".pdf" in Settings().allowed_upload_extensions

    @pytest.mark.parametrize(
        "field",
        [
            "llm_max_concurrency",
            "apply_max_concurrency",
            "max_candidate_documents",
            "max_upload_size_bytes",
        ],
    )
    def test_positive_ints(self, field: str) -> None:
        with pytest.raises(ValidationError, match="must be >= 1"):
            Settings(**{field: 0})

    @pytest.mark.parametrize("ratio", [0.0, -0.1, 1.5])
    def test_major_ratio_bounds(self, ratio: float) -> None:
        with pytest.raises(ValidationError):
            Settings(major_version_change_ratio=ratio)


class TestCreateAppEngine:
    async def test_wal_mode_set_on_connect(self, tmp_path: Path) -> None:
        """WAL journal mode is set automatically on connection."""
        db_file = tmp_path / "test.db"
        engine = create_app_engine(f"sqlite:///{db_file}")

        async with engine.connect() as conn:
            row = await conn.execute(text("PRAGMA journal_mode"))
            mode = row.scalar()

        await engine.dispose()
        assert mode == "wal"

    async def test_url_conversion(self) -> None:
        """sqlite:/// is converted to sqlite+aiosqlite:///."""
        engine = create_app_engine("sqlite:///data/test.db")
        assert "aiosqlite" in str(engine.url)
        await engine.dispose()

    async def test_already_converted_url_passthrough(self) -> None:
        engine = create_app_engine("sqlite+aiosqlite:///:memory:")
        assert str(engine.url) == "sqlite+aiosqlite:///:memory:"
        await engine.dispose()
