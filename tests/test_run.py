"""Tests for the application entry point."""

import socket

import pytest

import run


def test_parse_args_defaults():
    args = run.parse_args([])

    assert args.host == "0.0.0.0"
    assert args.port == 2529
    assert args.debug is False


def test_parse_args_overrides():
    args = run.parse_args(["--host", "127.0.0.1", "--port", "9000", "--debug"])

    assert (args.host, args.port, args.debug) == ("127.0.0.1", 9000, True)


def test_bind_failure_exits_nonzero():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        port = busy.getsockname()[1]

        with pytest.raises(SystemExit) as exc:
            run.main(["--host", "127.0.0.1", "--port", str(port)])

    assert exc.value.code == 1
