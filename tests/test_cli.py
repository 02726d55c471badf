"""Tests for the command-line entry point."""

import json
from argparse import Namespace

import main
from clearview.hashing import combined_hash, fnv1a, post_fingerprint


class TestHashCommand:
    def test_prints_all_digests(self, capsys) -> None:
        main.cmd_hash(Namespace(text="hello", post_id=None))
        out = json.loads(capsys.readouterr().out)
        assert out["fnv1a"] == fnv1a("hello")
        assert out["combined"] == combined_hash("hello")
        assert "post_fingerprint" not in out

    def test_includes_post_fingerprint_with_id(self, capsys) -> None:
        main.cmd_hash(Namespace(text="hello", post_id="42"))
        out = json.loads(capsys.readouterr().out)
        assert out["post_fingerprint"] == post_fingerprint("42", "hello")


class TestBenchmarkCommand:
    def test_single_function(self, capsys) -> None:
        main.cmd_benchmark(Namespace(function="fnv1a", text="abc", iterations=10))
        out = capsys.readouterr().out
        assert "fnv1a" in out
        assert "us/call" in out
