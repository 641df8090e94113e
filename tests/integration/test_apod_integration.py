"""
Integration tests for the APOD cache.

Wires the repository, SQLite store, media store and APOD service
together with only the HTTP transport replaced, and exercises the
command-line runner on top of them.
"""

import pytest
from datetime import date

from apod.cache.apod_database import ApodDatabase
from apod.managers.apod_manager import ApodManager
from apod.models.apod_data import MediaType
from main import parse_args, run


class TestFetchScenario:
    """End-to-end fetch against an empty store."""

    @pytest.mark.asyncio
    async def test_fetch_on_empty_store(
        self, repository, database, fake_http_client, apod_payload_factory
    ):
        """Test the first fetch hits the API with key and date and logs one access."""
        fake_http_client.json_responses["2020-01-01"] = (200, apod_payload_factory("2020-01-01"))

        record = await repository.get(date(2020, 1, 1), await_access=True)

        url, params = fake_http_client.json_calls[0]
        assert params["api_key"] == "test_api_key"
        assert params["date"] == "2020-01-01"
        assert database.count() == 1
        assert database.count_access(record.id) == 1
        assert record.media_type == MediaType.IMAGE

    @pytest.mark.asyncio
    async def test_store_survives_reopen(
        self, tmp_path, repository, fake_http_client, apod_payload_factory
    ):
        """Test cached entries persist in the database file."""
        fake_http_client.json_responses["2020-01-01"] = (200, apod_payload_factory("2020-01-01"))
        record = await repository.get(date(2020, 1, 1), await_access=True)

        reopened = ApodDatabase(tmp_path / "data" / "apod.db")
        try:
            assert reopened.select_by_date(date(2020, 1, 1)) == record
            assert reopened.count_access(record.id) == 1
        finally:
            reopened.close()

    @pytest.mark.asyncio
    async def test_fetch_view_export(
        self, repository, fake_http_client, apod_payload_factory, tmp_path
    ):
        """Test fetching, viewing and exporting one entry through the manager."""
        payload = apod_payload_factory("2021-03-05", title="Example Nebula")
        fake_http_client.json_responses["2021-03-05"] = (200, payload)
        fake_http_client.files[payload["url"]] = b"small"
        fake_http_client.files[payload["hdurl"]] = b"large"
        manager = ApodManager(repository)
        images = []
        exports = []

        record = await manager.set_apod_date(date(2021, 3, 5))
        await manager.load_image(record, images.append)
        await manager.export_image(record, exports.append)
        await repository.wait_for_access_log()

        assert manager.error is None
        assert images == [(tmp_path / "pictures" / "20210305-Example210305_1024.jpg").as_uri()]
        assert exports[0].path.read_bytes() == b"large"
        summaries = await manager.get_all_summaries()
        assert summaries[0].access_count == 1


class TestCommandLine:
    """Test the command-line runner."""

    @pytest.mark.asyncio
    async def test_run_fetch(self, repository, fake_http_client, apod_payload_factory, capsys):
        """Test a successful fetch prints the entry and closes the repository."""
        fake_http_client.json_responses["2020-01-01"] = (200, apod_payload_factory("2020-01-01"))

        exit_code = await run(parse_args(["--date", "2020-01-01"]), repository)

        assert exit_code == 0
        assert "2020-01-01: Betelgeuse Imagined [image]" in capsys.readouterr().out
        assert fake_http_client.closed

    @pytest.mark.asyncio
    async def test_run_api_error(self, repository, capsys):
        """Test API failures exit with status 2."""
        exit_code = await run(parse_args(["--date", "1990-01-01"]), repository)

        assert exit_code == 2
        assert "No APOD available" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_run_export_video(self, repository, fake_http_client, apod_payload_factory):
        """Test exporting a non-image exits with status 3."""
        fake_http_client.json_responses["2020-01-01"] = (
            200,
            apod_payload_factory("2020-01-01", media_type="video"),
        )

        exit_code = await run(parse_args(["--date", "2020-01-01", "--export"]), repository)

        assert exit_code == 3

    @pytest.mark.asyncio
    async def test_run_list(self, repository, fake_http_client, apod_payload_factory, capsys):
        """Test listing prints cached entries with view counts."""
        fake_http_client.json_responses["2020-01-01"] = (200, apod_payload_factory("2020-01-01"))
        await repository.get(date(2020, 1, 1), await_access=True)
        capsys.readouterr()

        exit_code = await run(parse_args(["--list"]), repository)

        output = capsys.readouterr().out
        assert exit_code == 0
        assert "2020-01-01" in output
        assert "   1" in output

    def test_version_output(self, capsys):
        """Test --version prints the full version information."""
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["--version"])

        output = capsys.readouterr().out
        assert exc_info.value.code == 0
        assert "Version: 1.2.0" in output
        assert "- Local image cache with remote URL fallback" in output
        assert "api.nasa.gov/planetary/apod" in output

    def test_parse_args_rejects_bad_date(self):
        """Test malformed dates are rejected by the parser."""
        with pytest.raises(SystemExit):
            parse_args(["--date", "01/01/2020"])
