"""Tests for the sshping command line front-end."""

import contextlib
import io
import json
import os
import tempfile
import unittest
from unittest import mock

from fakes import FakeDuplexChannel, FakeSession

import sshping
from probe.config import DEFAULTS
from probe.config import TestSelection as Selection
from probe.errors import ConfigError, ConnectError


class _CliTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        patcher = mock.patch(
            "probe.config._config_path",
            return_value=os.path.join(self.tmpdir.name, "config.json"),
        )
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self.tmpdir.cleanup)

    def _parse(self, *argv):
        return sshping.build_parser(dict(DEFAULTS)).parse_args(list(argv))

    def _main(self, *argv, session=None, connect_error=None):
        connect = mock.AsyncMock(return_value=session, side_effect=connect_error)
        out = io.StringIO()
        with mock.patch("sshping.SshSession.connect", new=connect), \
                contextlib.redirect_stdout(out):
            code = sshping.main(list(argv))
        return code, out.getvalue()


class TestParser(_CliTestCase):
    def test_defaults(self):
        args = self._parse("me@host")
        self.assertEqual(args.target, "me@host")
        self.assertEqual(args.run_tests, "both")
        self.assertEqual(args.char_count, 1000)
        self.assertEqual(args.size, 8.0)
        self.assertEqual(args.chunk_size, 1_000_000)
        self.assertEqual(args.echo_cmd, "cat > /dev/null")
        self.assertIsNone(args.echo_timeout)
        self.assertEqual(args.verbose, 0)

    def test_short_flags(self):
        args = self._parse("host", "-r", "echo", "-c", "50", "-t", "2", "-H", "-P", "-vv")
        self.assertEqual(args.run_tests, "echo")
        self.assertEqual(args.char_count, 50)
        self.assertEqual(args.echo_timeout, 2.0)
        self.assertTrue(args.human_readable)
        self.assertTrue(args.ping_summary)
        self.assertEqual(args.verbose, 2)

    def test_stored_defaults_used(self):
        args = sshping.build_parser(dict(DEFAULTS, char_count=77)).parse_args(["host"])
        self.assertEqual(args.char_count, 77)

    def test_build_config_converts_megabytes(self):
        config = sshping.build_config(self._parse("host", "-s", "2.5", "-u", "500000"))
        self.assertEqual(config.size, 2_500_000)
        self.assertEqual(config.chunk_size, 500_000)
        self.assertIs(config.tests, Selection.BOTH)

    def test_build_config_rejects_chunk_over_size(self):
        with self.assertRaises(ConfigError):
            sshping.build_config(self._parse("host", "-s", "1", "-u", "2000000"))

    def test_build_ssh_options(self):
        options = sshping.build_ssh_options(self._parse("me@host:2222", "-i", "/k", "-T", "3"))
        self.assertEqual(options.target.port, 2222)
        self.assertEqual(options.identity, "/k")
        self.assertEqual(options.timeout, 3.0)

    def test_build_ssh_options_bad_timeout(self):
        with self.assertRaises(ConfigError):
            sshping.build_ssh_options(self._parse("host", "-T", "0"))


class TestMain(_CliTestCase):
    def test_json_output(self):
        session = FakeSession()
        code, out = self._main("me@host", "-r", "echo", "-c", "5", "--format", "json", session=session)
        self.assertEqual(code, 0)
        doc = json.loads(out)
        self.assertEqual(doc["target"], "me@host")
        self.assertEqual(doc["echo_test"]["char_sent"], 5)
        self.assertNotIn("speed_test", doc)
        self.assertTrue(session.closed)

    def test_table_output_with_ping_summary(self):
        code, out = self._main(
            "me@host", "-r", "both", "-c", "5", "-s", "0.004", "-u", "1000", "-P",
            session=FakeSession(),
        )
        self.assertEqual(code, 0)
        self.assertIn("Connect time", out)
        self.assertIn("Upload", out)
        self.assertIn("--- me@host sshping statistics ---", out)

    def test_output_file(self):
        path = os.path.join(self.tmpdir.name, "result.json")
        code, _ = self._main("host", "-r", "echo", "-c", "3", "-o", path, session=FakeSession())
        self.assertEqual(code, 0)
        with open(path) as f:
            self.assertEqual(json.load(f)["echo_test"]["char_count"], 3)

    def test_connect_failure_exit_code(self):
        code, _ = self._main("host", connect_error=ConnectError("refused"))
        self.assertEqual(code, 3)

    def test_echo_failure_exit_code(self):
        session = FakeSession(channel=FakeDuplexChannel(close_after=1))
        code, _ = self._main("host", "-r", "echo", "-c", "5", session=session)
        self.assertEqual(code, 4)

    def test_invalid_parameters_exit_code(self):
        code, _ = self._main("host", "-c", "0")
        self.assertEqual(code, 2)

    def test_invalid_target_exit_code(self):
        code, _ = self._main("a@b@c")
        self.assertEqual(code, 2)

    def test_missing_target(self):
        with self.assertRaises(SystemExit) as ctx, contextlib.redirect_stderr(io.StringIO()):
            sshping.main([])
        self.assertEqual(ctx.exception.code, 2)

    def test_interrupt_exit_code(self):
        code, _ = self._main("host", connect_error=KeyboardInterrupt())
        self.assertEqual(code, 130)

    def test_set_and_show_config(self):
        code, _ = self._main("--set-config", "size=32", "--set-config", "delimit=_")
        self.assertEqual(code, 0)
        args = sshping.build_parser(sshping.load_config()).parse_args(["host"])
        self.assertEqual(args.size, 32)
        self.assertEqual(args.delimit, "_")

        code, out = self._main("--show-config")
        self.assertEqual(code, 0)
        self.assertIn("size = 32", out)

    def test_set_unknown_config_key(self):
        code, _ = self._main("--set-config", "server=1")
        self.assertEqual(code, 2)


if __name__ == "__main__":
    unittest.main()
