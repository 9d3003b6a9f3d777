"""
Pytest configuration and fixtures for OData connector tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from odc.cache.kv_cache import InMemoryKVCache
from odc.config import Settings, clear_settings_cache


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "ODATA_ENDPOINT": "https://example.com/odata",
        "ODATA_API_KEY": "",
        "CACHE_DIR": ".test_cache",
        "CACHE_STRATEGY": "sharded",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str], temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide a Settings instance using temp_dir for the cache directory."""
    with patch.dict(os.environ, {"CACHE_DIR": str(temp_dir / "cache")}):
        clear_settings_cache()
        from odc.config import get_settings

        settings = get_settings()
        settings.ensure_directories()
        yield settings
        clear_settings_cache()


@pytest.fixture
def clock() -> FakeClock:
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> InMemoryKVCache:
    """Provide an in-memory backend driven by the fake clock."""
    return InMemoryKVCache(clock=clock)


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


METADATA_XML = """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="4.0" xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx">
  <edmx:DataServices>
    <Schema Namespace="Venio.OData.API.Models" xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityType Name="Document">
        <Key><PropertyRef Name="DocumentId" /></Key>
        <Property Name="DocumentId" Type="Edm.Int32" Nullable="false" />
        <Property Name="Title" Type="Edm.String" />
        <Property Name="IsPrivileged" Type="Edm.Boolean" />
        <Property Name="CreatedOn" Type="Edm.DateTimeOffset" />
        <Property Name="Custom" />
        <NavigationProperty Name="Custodian" Type="Venio.OData.API.Models.Custodian" />
      </EntityType>
      <EntityType Name="Custodian">
        <Key><PropertyRef Name="CustodianId" /></Key>
        <Property Name="CustodianId" Type="Edm.Int64" Nullable="false" />
        <Property Name="Name" Type="Edm.String" />
      </EntityType>
    </Schema>
    <Schema Namespace="Default" xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityContainer Name="Container">
        <EntitySet Name="Documents" EntityType="Venio.OData.API.Models.Document" />
        <EntitySet Name="Custodians" EntityType="Venio.OData.API.Models.Custodian" />
        <EntitySet Name="Orphans" EntityType="Venio.OData.API.Models.Missing" />
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>
"""


@pytest.fixture
def metadata_xml() -> str:
    """Provide a $metadata document with Documents and Custodians entity sets."""
    return METADATA_XML
