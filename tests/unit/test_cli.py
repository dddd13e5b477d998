"""Tests for the command-line demo."""

import pytest

from bifrax.cli import main


def _error_lines(out):
    return {
        line.split(":")[0]: float(line.split(":")[1])
        for line in out.splitlines()
        if "relative error" in line
    }


def test_cli_prints_comparison_and_errors(capsys):
    assert main(["-N", "64", "-M", "48"]) == 0
    out = capsys.readouterr().out
    lines = out.splitlines()
    assert lines[0].startswith("FourierKernel")
    assert "Computing direct matvec..." in lines
    assert sum(1 for line in lines if "\t" in line) == 48
    errors = _error_lines(out)
    assert set(errors) == {
        "Vector  relative error",
        "Average relative error",
        "Maximum relative error",
    }
    assert errors["Vector  relative error"] < 1e-6


def test_cli_nocheck_skips_oracle(capsys):
    assert main(["-N", "64", "-M", "64", "-nocheck"]) == 0
    out = capsys.readouterr().out
    assert "FourierKernel" in out
    assert "Computing direct matvec..." not in out
    assert "relative error" not in out


@pytest.mark.parametrize(
    "argv",
    [
        ["-N", "0"],
        ["-M", "-3"],
        ["-N", "4", "-M", "4"],
    ],
)
def test_cli_reports_configuration_errors(argv, capsys):
    assert main(argv) == 2
    assert "error" in capsys.readouterr().err


def test_cli_rejects_unknown_flags():
    with pytest.raises(SystemExit) as exc:
        main(["--order", "3"])
    assert exc.value.code == 2
