"""Smoke tests for the rtc-mesh package.

These tests verify that the installed package is structurally sound: all
subpackages importable and the CLI entry point reachable.
"""

from click.testing import CliRunner

from rtc_mesh.cli import cli


class TestSubpackageImports:
    """Each rtc_mesh subpackage must be importable without error."""

    def test_import_server(self):
        from rtc_mesh.server import RoomRegistry, SignalingRelay, serve  # noqa: F401

    def test_import_client(self):
        from rtc_mesh.client import (  # noqa: F401
            CandidateBuffer,
            MeshController,
            PeerSession,
            SignalingClient,
        )

    def test_import_media(self):
        from rtc_mesh.client.media import LocalMedia  # noqa: F401


class TestCLIEntryPoint:
    """The CLI entry point must be reachable and respond to --help."""

    def test_main_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("server", "join", "devices"):
            assert command in result.output

    def test_join_help(self):
        result = CliRunner().invoke(cli, ["join", "--help"])
        assert result.exit_code == 0
        assert "--room" in result.output
