"""Tests for chip registry lookups."""

import pytest

from esp_rom_flasher.errors import ConfigurationError, ProtocolError
from esp_rom_flasher.header import FlashGeometry
from esp_rom_flasher.models import (
    DEFAULT_CHIP,
    ChipProfile,
    ChipRegistry,
    FlashStrategy,
    HeaderVariant,
    build_default_registry,
    normalize_chip_tag,
)
from esp_rom_flasher.models.registry import ESP32C3_HEADER


@pytest.fixture
def registry():
    return build_default_registry()


class TestStrategyLookup:
    def test_default_chip_resolves(self, registry):
        strategy = registry.strategy_for(DEFAULT_CHIP)
        assert strategy.tag == "esp32c3"
        assert strategy.header_variant.image_chip_id == 5

    @pytest.mark.parametrize("tag", ["ESP32C3", "esp32-c3", "esp32_c3", " esp32c3 "])
    def test_tag_spellings(self, registry, tag):
        assert registry.strategy_for(tag).tag == "esp32c3"

    def test_unknown_tag(self, registry):
        with pytest.raises(ConfigurationError, match="esp32c3"):
            registry.strategy_for("esp32s9")

    def test_empty_tag(self, registry):
        with pytest.raises(ConfigurationError):
            registry.strategy_for("")

    def test_only_c3_is_flashable(self, registry):
        assert registry.tags() == ["esp32c3"]


class TestIdentify:
    @pytest.mark.parametrize("value", [0x6921506F, 0x1B31506F, 0x4881606F, 0x4361606F])
    def test_esp32c3_detect_values(self, registry, value):
        assert registry.identify(value).name == "ESP32-C3"

    def test_other_chip_identified(self, registry):
        profile = registry.identify(0x00F01D83)
        assert profile.name == "ESP32"
        assert not registry.strategy_for("esp32c3").accepts(profile)

    def test_esp8266_uses_short_status(self, registry):
        assert registry.identify(0xFFF0C101).status_bytes == 2

    def test_unknown_value(self, registry):
        with pytest.raises(ProtocolError, match="0xDEADBEEF"):
            registry.identify(0xDEADBEEF)

    def test_profiles_listed_once(self, registry):
        names = [p.name for p in registry.profiles()]
        assert len(names) == len(set(names))
        assert "ESP32-C3" in names


class TestConstruction:
    def test_duplicate_tag_rejected(self):
        s = FlashStrategy(tag="esp32c3", header_variant=ESP32C3_HEADER)
        with pytest.raises(ValueError):
            ChipRegistry([s, FlashStrategy(tag="ESP32-C3", header_variant=ESP32C3_HEADER)], [])

    def test_duplicate_detect_value_rejected(self):
        a = ChipProfile("A", (1,), ESP32C3_HEADER)
        b = ChipProfile("B", (1, 2), ESP32C3_HEADER)
        with pytest.raises(ValueError):
            ChipRegistry([], [a, b])


def test_normalize_chip_tag():
    assert normalize_chip_tag(" ESP32-C3 ") == "esp32c3"


def test_describe_names_codes():
    geometry = FlashGeometry(spi_mode=2, spi_speed=0xF, flash_size=2)
    assert ESP32C3_HEADER.describe(geometry) == ("dio", "80m", "4MB")


def test_describe_falls_back_to_code():
    variant = HeaderVariant(name="X", image_chip_id=1)
    assert variant.describe(FlashGeometry(0, 3, 7)) == ("qio", "code 3", "code 7")


def test_begin_encrypt_word_per_rom(registry):
    assert registry.identify(0x1B31506F).begin_encrypt_word
    assert not registry.identify(0x00F01D83).begin_encrypt_word
    assert not registry.identify(0xFFF0C101).begin_encrypt_word
