"""Tests for engine configuration and environment settings."""

import pytest
from pydantic import ValidationError

from plansearch.core.config import (
    DEFAULT_PRICING,
    ConfidenceBands,
    DatabaseSettings,
    EngineConfig,
    ModelPricing,
    RetrievalSettings,
    Settings,
    VisionSettings,
)


class TestEngineConfig:

    def test_defaults(self):
        config = EngineConfig()

        assert config.vision_model == "anthropic/claude-haiku-4.5"
        assert config.scoring.station_max_boost == 0.2
        assert config.scoring.index_sheet_penalty == 0.5
        assert config.search.quantity_threshold == 0.2
        assert config.search.default_threshold == 0.3
        assert config.confidence.minimum_acceptable == 0.5

    def test_config_is_immutable(self):
        config = EngineConfig()

        with pytest.raises(ValidationError):
            config.vision_model = "anthropic/claude-sonnet-4.5"

    def test_pricing_for_known_and_unknown_models(self):
        config = EngineConfig(pricing={"acme/vision-1": ModelPricing(input_per_million=1.0, output_per_million=4.0)})

        assert config.pricing_for("acme/vision-1").output_per_million == 4.0
        assert config.pricing_for("acme/other") == DEFAULT_PRICING["anthropic/claude-haiku-4.5"]

    @pytest.mark.parametrize(
        "confidence,level",
        [(0.97, "Excellent"), (0.9, "Good"), (0.7, "Fair"), (0.55, "Poor"), (0.2, "Very Poor")],
    )
    def test_confidence_levels(self, confidence, level):
        assert ConfidenceBands().level(confidence) == level


class TestDatabaseSettings:
    """Test connection URL normalization for asyncpg."""

    def test_postgres_scheme_is_rewritten(self):
        db = DatabaseSettings(DATABASE_URL="postgres://user:pw@db.internal:5432/plans?sslmode=require", USE_LOCAL_DB=True)

        assert db.connection_url == "postgresql+asyncpg://user:pw@db.internal:5432/plans?ssl=require"

    def test_remote_url_used_when_not_local(self):
        db = DatabaseSettings(
            DATABASE_URL="postgresql+asyncpg://local/plans",
            POSTGRES_URL="postgresql://remote.example.com/plans",
            USE_LOCAL_DB=False,
        )

        assert db.connection_url == "postgresql+asyncpg://remote.example.com/plans"

    def test_asyncpg_url_is_unchanged(self):
        db = DatabaseSettings(DATABASE_URL="postgresql+asyncpg://local/plans", USE_LOCAL_DB=True)

        assert db.connection_url == "postgresql+asyncpg://local/plans"


class TestSettings:

    def test_engine_config_reflects_overrides(self):
        settings = Settings(
            vision=VisionSettings(VISION_MODEL="anthropic/claude-sonnet-4.5", VISION_PAGE_DELAY_SECONDS=0.0),
            retrieval=RetrievalSettings(SHEET_TYPE_BOOST=0.5),
        )

        config = settings.engine_config()

        assert config.vision_model == "anthropic/claude-sonnet-4.5"
        assert config.page_delay_seconds == 0.0
        assert config.scoring.sheet_type_boost == 0.5
        assert config.scoring.station_max_boost == 0.2
