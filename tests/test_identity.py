"""Tests for the identity module."""

from __future__ import annotations

from pathlib import Path

import pytest

from resolution_sync.exceptions import AuthenticationRequiredError, ConfigurationError
from resolution_sync.identity import ConfigFileAuthGate, Principal, Role, StaticAuthGate


class TestPrincipal:
    """Tests for Principal."""

    def test_is_admin(self) -> None:
        assert Principal(id="park", role=Role.ADMIN).is_admin
        assert not Principal(id="kim").is_admin

    def test_from_dict_aliases(self) -> None:
        """user_id and display_name are accepted spellings."""
        principal = Principal.from_dict({"user_id": "kim", "display_name": "Kim", "role": "ADMIN"})

        assert principal == Principal(id="kim", role=Role.ADMIN, name="Kim")

    def test_to_dict_roundtrip(self) -> None:
        principal = Principal(id="kim", role=Role.USER, name="Kim", dept="Finance")

        assert Principal.from_dict(principal.to_dict()) == principal

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            Principal.from_dict({"id": "kim", "role": "superuser"})
        with pytest.raises(ValueError):
            Principal.from_dict({"name": "nobody"})


class TestStaticAuthGate:
    """Tests for StaticAuthGate."""

    @pytest.mark.asyncio
    async def test_sign_in_and_out(self) -> None:
        gate = StaticAuthGate()
        assert await gate.is_signed_in() is False

        gate.sign_in(Principal(id="kim"))
        assert (await gate.current_principal()).id == "kim"

        await gate.sign_out()
        with pytest.raises(AuthenticationRequiredError):
            await gate.current_principal()


class TestConfigFileAuthGate:
    """Tests for ConfigFileAuthGate."""

    @pytest.fixture
    def settings(self, temp_dir: Path) -> Path:
        path = temp_dir / "settings.yaml"
        path.write_text(
            """
identity:
  id: "park"
  name: "Park"
  role: "admin"
  dept: "Office"
""",
            encoding="utf-8",
        )
        return path

    @pytest.mark.asyncio
    async def test_reads_identity(self, settings: Path) -> None:
        gate = ConfigFileAuthGate(settings)

        principal = await gate.current_principal()

        assert principal.id == "park"
        assert principal.is_admin
        assert principal.dept == "Office"

    @pytest.mark.asyncio
    async def test_missing_file(self, temp_dir: Path) -> None:
        gate = ConfigFileAuthGate(temp_dir / "missing.yaml")

        assert await gate.is_signed_in() is False

    @pytest.mark.asyncio
    async def test_sign_out_then_in_again(self, settings: Path) -> None:
        gate = ConfigFileAuthGate(settings)
        await gate.current_principal()

        await gate.sign_out()
        with pytest.raises(AuthenticationRequiredError):
            await gate.current_principal()

        assert (await gate.sign_in_again()).id == "park"

    @pytest.mark.asyncio
    async def test_bad_identity_section(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("identity:\n  name: nobody\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            await ConfigFileAuthGate(path).current_principal()

    @pytest.mark.asyncio
    async def test_unreadable_yaml_means_signed_out(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("identity: [broken\n", encoding="utf-8")

        with pytest.raises(AuthenticationRequiredError):
            await ConfigFileAuthGate(path).current_principal()
