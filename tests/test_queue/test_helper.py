"""Tests for the relayctl-postsuper helper entry point."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from relayctl.core.exceptions import InjectionRejectedError
from relayctl.queue import helper
from relayctl.queue.helper import DEFAULT_POSTSUPER, build_argv, main


class TestBuildArgv:
    @pytest.mark.parametrize("flag", ["-h", "-H", "-d"])
    def test_valid(self, flag: str) -> None:
        assert build_argv([flag, "3F2A1B4C5D"]) == [DEFAULT_POSTSUPER, flag, "3F2A1B4C5D"]

    @pytest.mark.parametrize(
        "args",
        [
            [],
            ["-d"],
            ["-d", "ALL"],
            ["-r", "3F2A1B4C5D"],
            ["-d", "3F2A1B4C5D", "extra"],
            ["-d", "3F2A1B4C5D;id"],
        ],
    )
    def test_rejected(self, args: list[str]) -> None:
        with pytest.raises(InjectionRejectedError):
            build_argv(args)


class TestMain:
    def test_bad_input_exits_2_without_exec(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch.object(helper.os, "execv") as execv:
            assert main(["-d", "ALL"]) == 2
        execv.assert_not_called()
        assert "invalid queue ID" in capsys.readouterr().err

    def test_valid_input_execs_postsuper(self) -> None:
        with patch.object(helper.os, "execv") as execv:
            main(["-H", "4A5B6C7D8E"])
        execv.assert_called_once_with(DEFAULT_POSTSUPER, [DEFAULT_POSTSUPER, "-H", "4A5B6C7D8E"])
