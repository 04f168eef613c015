"""``python -m mal_cli`` hands its exit code to the shell."""

from __future__ import annotations

import runpy
from unittest.mock import patch

import pytest


@pytest.mark.parametrize("code", [0, 2])
def test_module_exits_with_cli_code(code):
    with patch("mal_cli.cli.main", return_value=code) as fake_main, pytest.raises(SystemExit) as exited:
        runpy.run_module("mal_cli.__main__", run_name="__main__")

    fake_main.assert_called_once_with()
    assert exited.value.code == code
