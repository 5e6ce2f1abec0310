"""Tests for settings validation and the shared record helpers."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fleet_api.config import FleetSettings, PlatformEnv
from fleet_api.errors import RecordValidationError
from fleet_api.schemas import VendorInput
from fleet_api.services.records import column_values, require_text
from fleet_api.state.database import get_engine, sqlite_path
from fleet_api.state.repository import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, clamp_page, escape_like, new_record_id
from fleet_api.state.tables import VendorTable


class TestFleetSettings:
    def test_defaults(self) -> None:
        settings = FleetSettings()
        assert settings.platform_env == PlatformEnv.DEV
        assert settings.tax_rate == 0.07
        assert settings.totals_max_attempts == 3

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FLEET_TAX_RATE", "0.0825")
        monkeypatch.setenv("FLEET_PLATFORM_ENV", "production")
        settings = FleetSettings()
        assert settings.tax_rate == 0.0825
        assert settings.platform_env == PlatformEnv.PRODUCTION

    @pytest.mark.parametrize("rate", [-0.01, 1.0, 1.5])
    def test_tax_rate_range(self, rate: float) -> None:
        with pytest.raises(ValidationError, match="tax_rate"):
            FleetSettings(tax_rate=rate)

    def test_attempts_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            FleetSettings(totals_max_attempts=0)

    def test_wildcard_origin_with_credentials_rejected(self) -> None:
        with pytest.raises(ValidationError, match="wildcard"):
            FleetSettings(cors_origins=["*"], cors_allow_credentials=True)

    def test_wildcard_origin_without_credentials_allowed(self) -> None:
        settings = FleetSettings(cors_origins=["*"], cors_allow_credentials=False)
        assert settings.cors_origins == ["*"]


class TestColumnValues:
    def test_full_write_drops_none(self) -> None:
        values = column_values(VendorInput(name="Garage", status="Active", contact={"phone": "555"}), VendorTable)
        assert values == {"name": "Garage", "status": "Active", "contact": {"phone": "555"}}

    def test_partial_keeps_only_sent_fields(self) -> None:
        payload = VendorInput.model_validate({"note": None, "type": "Insurance"})
        values = column_values(payload, VendorTable, partial=True)
        assert values == {"note": None, "type": "Insurance"}

    def test_partial_never_clears_required_column(self) -> None:
        payload = VendorInput.model_validate({"name": None})
        assert column_values(payload, VendorTable, partial=True) == {}

    def test_exclude(self) -> None:
        payload = VendorInput(id="ven_1", name="Garage")
        assert column_values(payload, VendorTable, exclude={"id"}) == {"name": "Garage"}


class TestHelpers:
    def test_require_text_strips(self) -> None:
        assert require_text("  INV-9 ", "invoiceNumber") == "INV-9"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_require_text_rejects_blank(self, value: str | None) -> None:
        with pytest.raises(RecordValidationError, match="invoiceNumber is required"):
            require_text(value, "invoiceNumber")

    @pytest.mark.parametrize(
        ("skip", "take", "expected"),
        [
            (None, None, (0, DEFAULT_PAGE_SIZE)),
            (-5, 0, (0, 1)),
            (20, 10_000, (20, MAX_PAGE_SIZE)),
        ],
    )
    def test_clamp_page(self, skip: int | None, take: int | None, expected: tuple[int, int]) -> None:
        assert clamp_page(skip, take) == expected

    def test_escape_like(self) -> None:
        assert escape_like("50%_off\\") == "50\\%\\_off\\\\"

    def test_new_record_id(self) -> None:
        record_id = new_record_id("li")
        assert record_id.startswith("li_")
        assert len(record_id) == 23
        assert new_record_id("li") != record_id


class TestEngineFactory:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("sqlite+aiosqlite:///.fleet/state.db", ".fleet/state.db"),
            ("sqlite+aiosqlite:///:memory:", ":memory:"),
            ("sqlite+aiosqlite://", ":memory:"),
            ("sqlite+aiosqlite:///", ":memory:"),
        ],
    )
    def test_sqlite_path(self, url: str, expected: str) -> None:
        assert sqlite_path(url) == expected

    @pytest.mark.asyncio
    async def test_sqlite_url_opens_local_store(self, tmp_path) -> None:
        db_file = tmp_path / "nested" / "state.db"
        engine = get_engine(f"sqlite+aiosqlite:///{db_file}")
        try:
            assert engine.dialect.name == "sqlite"
            assert db_file.parent.is_dir()
            async with engine.connect() as conn:
                result = await conn.exec_driver_sql("SELECT 1")
                assert result.scalar() == 1
        finally:
            await engine.dispose()
