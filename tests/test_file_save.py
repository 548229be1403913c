"""Tests for export persistence."""

from pathlib import Path

from qualtrics_mcp.app.services.file_save import save_export_to_file


class TestSaveExportToFile:
    """Naming and placement of saved exports."""

    def test_generated_name_in_download_dir(self, tmp_path):
        saved = save_export_to_file("a,b\n", "SV_1", "csv", download_dir=tmp_path)

        assert saved.file_path.parent == tmp_path
        assert saved.file_path.name.startswith("survey_SV_1_")
        assert saved.file_path.suffix == ".csv"
        assert saved.file_path.read_text(encoding="utf-8") == "a,b\n"
        assert saved.size_bytes == 4

    def test_generated_name_includes_suffix(self, tmp_path):
        saved = save_export_to_file("{}", "SV_1", "json", suffix="filtered", download_dir=tmp_path)

        assert saved.file_path.name.startswith("survey_SV_1_filtered_")
        assert saved.file_path.suffix == ".json"

    def test_relative_name_lands_in_download_dir(self, tmp_path):
        saved = save_export_to_file("{}", "SV_1", "json", save_to="wave1.json", download_dir=tmp_path)

        assert saved.file_path == tmp_path / "wave1.json"

    def test_missing_extension_is_added(self, tmp_path):
        saved = save_export_to_file("x", "SV_1", "csv", save_to="wave1", download_dir=tmp_path)

        assert saved.file_path == tmp_path / "wave1.csv"

    def test_absolute_path_is_used_as_is(self, tmp_path):
        target = tmp_path / "nested" / "dir" / "out.json"

        saved = save_export_to_file("{}", "SV_1", "json", save_to=str(target), download_dir=Path("/unused"))

        assert saved.file_path == target
        assert target.exists()

    def test_auto_saved_only_when_large_and_unrequested(self, tmp_path):
        big = "a" * (100 * 1024 + 1)

        auto = save_export_to_file(big, "SV_1", "csv", download_dir=tmp_path)
        requested = save_export_to_file(big, "SV_1", "csv", save_to="big.csv", download_dir=tmp_path)
        small = save_export_to_file("a", "SV_1", "csv", download_dir=tmp_path)

        assert auto.was_auto_saved is True
        assert requested.was_auto_saved is False
        assert small.was_auto_saved is False

    def test_size_mb_is_formatted(self, tmp_path):
        saved = save_export_to_file("a" * (1024 * 1024), "SV_1", "csv", download_dir=tmp_path)

        assert saved.size_mb == "1.00"
