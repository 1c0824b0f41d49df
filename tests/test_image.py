"""Tests for image opening and block streaming."""

import pytest

from esp_rom_flasher.errors import ConfigurationError, ImageReadError
from esp_rom_flasher.image import BLOCK_SIZE, block_count_for, open_image


def _write(tmp_path, name, size):
    path = tmp_path / name
    path.write_bytes(bytes(i & 0xFF for i in range(size)))
    return path


@pytest.mark.parametrize(
    "size,expected",
    [(0, 0), (1, 1), (4095, 1), (4096, 1), (4097, 2), (10000, 3), (8192, 2)],
)
def test_block_count(size, expected):
    assert block_count_for(size, BLOCK_SIZE) == expected


def test_block_count_rejects_zero_block_size():
    with pytest.raises(ValueError):
        block_count_for(10, 0)


class TestBlocks:
    def test_last_block_is_short(self, tmp_path):
        image = open_image(_write(tmp_path, "app.bin", 10000)).unwrap()
        blocks = list(image.blocks())
        assert [b.sequence for b in blocks] == [0, 1, 2]
        assert [b.byte_count for b in blocks] == [4096, 4096, 1808]
        assert blocks[0].is_first and not blocks[1].is_first

    def test_exact_multiple_has_no_empty_block(self, tmp_path):
        image = open_image(_write(tmp_path, "app.bin", 8192)).unwrap()
        blocks = list(image.blocks())
        assert [b.byte_count for b in blocks] == [4096, 4096]
        assert len(blocks) == image.block_count()

    def test_payload_matches_file(self, tmp_path):
        path = _write(tmp_path, "app.bin", 5000)
        image = open_image(path).unwrap()
        data = b"".join(bytes(b.payload) for b in image.blocks())
        assert data == path.read_bytes()

    def test_empty_image(self, tmp_path):
        image = open_image(_write(tmp_path, "empty.bin", 0)).unwrap()
        assert image.size == 0
        assert list(image.blocks()) == []

    def test_single_pass_only(self, tmp_path):
        image = open_image(_write(tmp_path, "app.bin", 100)).unwrap()
        list(image.blocks())
        with pytest.raises(ImageReadError):
            image.blocks()

    def test_file_shrinks_while_streaming(self, tmp_path):
        path = _write(tmp_path, "app.bin", 6000)
        image = open_image(path).unwrap()
        path.write_bytes(b"\x00" * 5000)
        it = image.blocks()
        assert next(it).byte_count == 4096
        with pytest.raises(ImageReadError, match="ended early"):
            next(it)


class TestOpenImage:
    @pytest.mark.parametrize("name", ["app.elf", "APP.ELF", "fw.hex", "fw.uf2"])
    def test_container_formats_rejected(self, tmp_path, name):
        path = _write(tmp_path, name, 16)
        result = open_image(path)
        assert not result.ok
        assert isinstance(result.error, ConfigurationError)

    def test_elf_rejected_even_if_missing(self, tmp_path):
        result = open_image(tmp_path / "missing.elf")
        assert isinstance(result.error, ConfigurationError)

    def test_missing_file(self, tmp_path):
        result = open_image(tmp_path / "missing.bin")
        assert not result.ok
        with pytest.raises(ImageReadError):
            result.unwrap()

    def test_directory_is_not_an_image(self, tmp_path):
        result = open_image(tmp_path)
        assert isinstance(result.error, ImageReadError)

    def test_size_captured(self, tmp_path):
        result = open_image(_write(tmp_path, "app.bin", 1234))
        assert result.ok
        assert result.image.size == 1234
