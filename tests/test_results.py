"""Tests for OperationResult."""

from esp_rom_flasher.core.results import OperationResult


def _flash_result(**kwargs):
    return OperationResult.success(
        "flash",
        chip="ESP32-C3",
        offset=0x10000,
        bytes_len=10000,
        blocks=3,
        block_size=4096,
        flash_params=("dio", "80m", "4MB"),
        elapsed=2.34,
        **kwargs,
    )


class TestOperationResult:
    def test_region_end_exclusive(self):
        assert _flash_result().region == "0x00010000-0x00012710"

    def test_summary_success(self):
        summary = _flash_result().to_summary()
        assert summary.startswith("[SUCCESS] flash")
        assert "Region: 0x00010000-0x00012710" in summary
        assert "10,000 in 3 block(s) of 4096" in summary
        assert "mode dio, freq 80m, size 4MB" in summary
        assert "Elapsed: 2.3s" in summary

    def test_summary_failure(self):
        result = OperationResult.failure("flash", "Timed out", chip="ESP32-C3", offset=0x1000)
        summary = result.to_summary()
        assert summary.startswith("[FAILED] flash")
        assert "Offset: 0x00001000" in summary
        assert "Region" not in summary
        assert "- Timed out" in summary

    def test_warnings_listed(self):
        result = _flash_result()
        result.add_warning("Image is empty; nothing was written")
        assert "    - Image is empty; nothing was written" in result.to_summary()

    def test_to_dict(self):
        data = _flash_result().to_dict()
        assert data == {
            "ok": True,
            "operation": "flash",
            "chip": "ESP32-C3",
            "offset": 0x10000,
            "region": "0x00010000-0x00012710",
            "bytes_len": 10000,
            "blocks": 3,
            "block_size": 4096,
            "flash_params": ["dio", "80m", "4MB"],
            "elapsed": 2.34,
            "warnings": [],
            "errors": [],
        }

    def test_to_dict_failure(self):
        data = OperationResult.failure("flash", "boom").to_dict()
        assert data["ok"] is False
        assert data["region"] is None
        assert data["flash_params"] is None
        assert data["errors"] == ["boom"]
