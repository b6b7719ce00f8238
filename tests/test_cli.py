"""Tests for the rtc-mesh command line."""

from unittest import mock

import pytest
from click.testing import CliRunner

from rtc_mesh.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


class TestServerCommand:
    def test_passes_options_through(self, runner):
        with mock.patch("rtc_mesh.cli.run_server") as run_server:
            result = runner.invoke(cli, ["server", "--host", "0.0.0.0", "--port", "9000"])
        assert result.exit_code == 0
        run_server.assert_called_once_with(host="0.0.0.0", port=9000)

    def test_defaults_come_from_config(self, runner):
        with mock.patch("rtc_mesh.cli.run_server") as run_server:
            result = runner.invoke(cli, ["server"])
        assert result.exit_code == 0
        run_server.assert_called_once_with(host=None, port=None)

    def test_rejects_out_of_range_port(self, runner):
        with mock.patch("rtc_mesh.cli.run_server") as run_server:
            result = runner.invoke(cli, ["server", "--port", "70000"])
        assert result.exit_code != 0
        run_server.assert_not_called()


class TestJoinCommand:
    def test_join_room(self, runner):
        with mock.patch("rtc_mesh.cli.run_join") as run_join:
            result = runner.invoke(
                cli,
                ["join", "--room", "r1", "--member", "alice", "--server", "ws://relay:1"],
            )
        assert result.exit_code == 0
        run_join.assert_called_once_with(
            room_id="r1",
            member_id="alice",
            server="ws://relay:1",
            video=None,
            use_media=True,
        )

    def test_create_room(self, runner):
        with mock.patch("rtc_mesh.cli.run_join") as run_join:
            result = runner.invoke(cli, ["join", "--create", "--no-media"])
        assert result.exit_code == 0
        assert run_join.call_args.kwargs["room_id"] is None
        assert run_join.call_args.kwargs["use_media"] is False

    @pytest.mark.parametrize(
        "args",
        [
            ["join"],
            ["join", "--room", "r1", "--create"],
            ["join", "--room", "  "],
            ["join", "--room", "r1", "--member", ""],
            ["join", "--room", "r1", "--video", "/dev/video0", "--no-media"],
        ],
    )
    def test_invalid_combinations_exit_nonzero(self, runner, args):
        with mock.patch("rtc_mesh.cli.run_join") as run_join:
            result = runner.invoke(cli, args)
        assert result.exit_code != 0
        run_join.assert_not_called()


class TestDevicesCommand:
    def test_lists_sources(self, runner):
        with mock.patch(
            "rtc_mesh.client.media.LocalMedia.enumerate_video_sources",
            return_value=["/dev/video0", "/dev/video2"],
        ):
            result = runner.invoke(cli, ["devices"])
        assert result.exit_code == 0
        assert result.output.splitlines() == ["/dev/video0", "/dev/video2"]

    def test_no_sources(self, runner):
        with mock.patch(
            "rtc_mesh.client.media.LocalMedia.enumerate_video_sources", return_value=[]
        ):
            result = runner.invoke(cli, ["devices"])
        assert "No video sources found" in result.output
