"""Tests for the s3http command-line interface."""

import pytest

from s3http import cli
from s3http.config import ExportConfig
from s3http.service import InitResult, ServiceContext

from conftest import BUCKET, PART_SIZE, SERVICE_URL


@pytest.fixture
def run(monkeypatch, context):
    """Call cli.main against the fake S3 context, returning the exit code."""
    monkeypatch.setattr(cli, "initialize", lambda path: InitResult(context=context))
    monkeypatch.setattr(cli, "configure_logging", lambda level, fmt: None)

    def _run(*argv):
        return cli.main(list(argv))

    return _run


class TestParseArgs:
    def test_defaults(self):
        args = cli.parse_args(["cat", "/data/x"])
        assert str(args.config) == "s3http.yaml"
        assert args.offset == 0
        assert args.length is None
        assert args.log_level is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.parse_args([])


class TestStat:
    def test_prints_size(self, run, fake_s3, capsysbinary):
        fake_s3.objects["/test-bucket/a.bin"] = b"0123456789"
        assert run("stat", "/data/a.bin") == cli.EXIT_OK
        out = capsysbinary.readouterr().out
        assert b"size=10" in out
        assert b"mtime=1445412480" in out

    def test_missing_object(self, run):
        """Storage errors exit with status 2."""
        assert run("stat", "/data/none.bin") == cli.EXIT_STORAGE

    def test_unknown_export(self, run):
        assert run("stat", "/elsewhere/a.bin") == cli.EXIT_STORAGE


class TestCat:
    def test_whole_object(self, run, fake_s3, capsysbinary):
        data = bytes(range(200))
        fake_s3.objects["/test-bucket/a.bin"] = data
        assert run("cat", "/data/a.bin") == cli.EXIT_OK
        assert capsysbinary.readouterr().out == data

    def test_offset_and_length(self, run, fake_s3, capsysbinary):
        fake_s3.objects["/test-bucket/a.bin"] = b"hello, world"
        assert run("cat", "/data/a.bin", "--offset", "7", "--length", "100") == cli.EXIT_OK
        assert capsysbinary.readouterr().out == b"world"


class TestPut:
    def test_multipart(self, run, fake_s3, tmp_path):
        local = tmp_path / "in.bin"
        local.write_bytes(b"z" * (PART_SIZE * 3))
        assert run("put", str(local), "/data/up.bin") == cli.EXIT_OK
        assert fake_s3.objects["/test-bucket/up.bin"] == b"z" * (PART_SIZE * 3)
        assert len(fake_s3.completed) == 1

    def test_single_shot(self, run, fake_s3, tmp_path):
        local = tmp_path / "in.txt"
        local.write_bytes(b"small")
        assert run("put", str(local), "/data/small.txt", "--single-shot") == cli.EXIT_OK
        assert fake_s3.objects["/test-bucket/small.txt"] == b"small"
        assert fake_s3.calls("POST") == []

    def test_read_only_export(self, run, tmp_path):
        local = tmp_path / "in.txt"
        local.write_bytes(b"x")
        assert run("put", str(local), "/public/x.txt") == cli.EXIT_STORAGE


class TestConfigErrors:
    def test_missing_config_file(self, tmp_path):
        """A config that cannot be loaded exits with status 1."""
        assert cli.main(["--config", str(tmp_path / "none.yaml"), "stat", "/x/y"]) == cli.EXIT_CONFIG

    def test_export_without_credentials(self, monkeypatch, config, http_client, fake_s3):
        config.exports.append(ExportConfig(path="/bare", service_url=SERVICE_URL, bucket=BUCKET))
        context = ServiceContext(config, client=http_client)
        monkeypatch.setattr(cli, "initialize", lambda path: InitResult(context=context))
        monkeypatch.setattr(cli, "configure_logging", lambda level, fmt: None)
        assert cli.main(["stat", "/bare/key"]) == cli.EXIT_CONFIG
        assert fake_s3.requests == []
