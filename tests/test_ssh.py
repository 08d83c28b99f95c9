"""Tests for probe.ssh -- target parsing, option resolution and channel adapters."""

import asyncio
import getpass
import os
import tempfile
import unittest

from probe.echo import EchoProbe
from probe.errors import ChannelError, ConfigError, TransferError
from probe.ssh import (
    ShellChannel,
    SftpTransport,
    SshOptions,
    SshTarget,
    resolve_options,
)


class TestSshTarget(unittest.TestCase):
    def test_host_only(self):
        self.assertEqual(SshTarget.parse("example.com"), SshTarget(host="example.com"))

    def test_user_host_port(self):
        t = SshTarget.parse("me@example.com:2222")
        self.assertEqual((t.user, t.host, t.port), ("me", "example.com", 2222))

    def test_str_round_trip(self):
        self.assertEqual(str(SshTarget.parse("me@example.com:2222")), "me@example.com:2222")
        self.assertEqual(str(SshTarget.parse("example.com")), "example.com")

    def test_invalid_formats(self):
        for text in ("", "me@", "a@b@c", "host:", "host:22:33", ":22"):
            with self.subTest(text=text):
                with self.assertRaises(ConfigError):
                    SshTarget.parse(text)

    def test_bad_port(self):
        for text in ("host:abc", "host:0", "host:70000"):
            with self.subTest(text=text):
                with self.assertRaises(ConfigError):
                    SshTarget.parse(text)


class TestResolveOptions(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config = os.path.join(self.tmpdir.name, "ssh_config")
        with open(self.config, "w") as f:
            f.write(
                "Host box\n"
                "    HostName box.example.com\n"
                "    User alice\n"
                "    Port 2200\n"
                "    IdentityFile ~/.ssh/id_box\n"
            )

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_config_values_applied(self):
        opts = resolve_options(SshOptions(target=SshTarget.parse("box"), ssh_config=self.config))
        self.assertEqual(opts.target.host, "box.example.com")
        self.assertEqual(opts.target.user, "alice")
        self.assertEqual(opts.target.port, 2200)
        self.assertEqual(opts.identity, os.path.expanduser("~/.ssh/id_box"))

    def test_explicit_values_win(self):
        opts = resolve_options(SshOptions(
            target=SshTarget.parse("bob@box:22"),
            identity="/keys/other",
            ssh_config=self.config,
        ))
        self.assertEqual(opts.target.user, "bob")
        self.assertEqual(opts.target.port, 22)
        self.assertEqual(opts.identity, "/keys/other")

    def test_defaults_without_config(self):
        opts = resolve_options(SshOptions(target=SshTarget.parse("plain"), ssh_config=None))
        self.assertEqual(opts.target.host, "plain")
        self.assertEqual(opts.target.user, getpass.getuser())
        self.assertEqual(opts.target.port, 22)
        self.assertIsNone(opts.identity)

    def test_missing_config_file_ignored(self):
        missing = os.path.join(self.tmpdir.name, "nope")
        opts = resolve_options(SshOptions(target=SshTarget.parse("box"), ssh_config=missing))
        self.assertEqual(opts.target.host, "box")


class _PipeChannel:
    """Mimics the parts of ``paramiko.Channel`` that ShellChannel uses."""

    def __init__(self):
        self._r, self._w = os.pipe()
        self._pending = 0
        self.buffer = bytearray()
        self.sent = []
        self.closed = False
        self.eof_received = False
        self.ready = True

    def fileno(self):
        return self._r

    def _signal(self):
        os.write(self._w, b"x")
        self._pending += 1

    def feed(self, data):
        self.buffer.extend(data)
        self._signal()

    def remote_close(self):
        self.eof_received = True
        self._signal()

    def recv_ready(self):
        return bool(self.buffer)

    def recv(self, size):
        data = bytes(self.buffer[:size])
        del self.buffer[:size]
        if not self.buffer and self._pending:
            os.read(self._r, self._pending)
            self._pending = 0
        return data

    def send_ready(self):
        return self.ready

    def sendall(self, data):
        if self.closed:
            raise OSError("Socket is closed")
        self.sent.append(data)

    def close(self):
        self.closed = True

    def release(self):
        os.close(self._r)
        os.close(self._w)


class _SlowLink(_PipeChannel):
    """Echoes every write back after a fixed round-trip delay."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def sendall(self, data):
        super().sendall(data)
        asyncio.get_running_loop().call_later(self.delay, self.feed, bytes(data))


class TestShellChannel(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.chan = _PipeChannel()
        self.channel = ShellChannel(self.chan)

    def tearDown(self):
        self.chan.release()

    async def test_read_buffered(self):
        self.chan.feed(b"ab")
        self.assertEqual(await self.channel.read(1), b"a")
        self.assertEqual(await self.channel.read(1), b"b")

    async def test_read_waits_for_data(self):
        asyncio.get_running_loop().call_later(0.01, self.chan.feed, b"z")
        self.assertEqual(await self.channel.read(1), b"z")

    async def test_read_eof(self):
        asyncio.get_running_loop().call_later(0.01, self.chan.remote_close)
        self.assertEqual(await self.channel.read(1), b"")

    async def test_read_cancellable(self):
        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(self.channel.read(1), timeout=0.02)

    async def test_write(self):
        await self.channel.write(b"q")
        self.assertEqual(self.chan.sent, [b"q"])

    async def test_write_after_close(self):
        self.channel.close()
        with self.assertRaises(ChannelError):
            await self.channel.write(b"q")

    async def test_drain_discards_banner(self):
        self.chan.feed(b"Welcome!\r\n$ cat > /dev/null\r\n")
        await self.channel.drain(settle=0.02, limit=1.0)
        self.assertFalse(self.chan.recv_ready())

    async def test_drain_detects_exit(self):
        self.chan.remote_close()
        with self.assertRaises(ChannelError):
            await self.channel.drain(settle=0.02, limit=1.0)

    async def test_write_waits_for_remote_window(self):
        self.chan.ready = False
        await self.channel.write(b"q")
        self.assertEqual(self.chan.sent, [b"q"])

    async def test_drain_waits_past_settle_for_first_output(self):
        asyncio.get_running_loop().call_later(0.1, self.chan.feed, b"$ ")
        await self.channel.drain(settle=0.02, limit=2.0)
        self.assertFalse(self.chan.recv_ready())

    async def test_drain_waits_for_command_echo(self):
        loop = asyncio.get_running_loop()
        self.chan.feed(b"Welcome!\r\n$ ")
        loop.call_later(0.1, self.chan.feed, b"cat > /dev/null\r\n")
        await self.channel.drain(expect=b"cat > /dev/null", settle=0.02, limit=2.0)
        self.assertFalse(self.chan.recv_ready())

    async def test_drain_matches_wrapped_command_echo(self):
        self.chan.feed(b"$ cat > /d \r\nev/null\r\n")
        await self.channel.drain(expect=b"cat > /dev/null", settle=0.02, limit=1.0)
        self.assertFalse(self.chan.recv_ready())

    async def test_drain_warns_when_command_never_echoed(self):
        self.chan.feed(b"Welcome!\r\n")
        with self.assertLogs("probe.ssh", level="WARNING") as logs:
            await self.channel.drain(expect=b"cat > /dev/null", settle=0.02, limit=0.1)
        self.assertTrue(any("did not echo" in line for line in logs.output))

    async def test_drain_without_output_fails(self):
        with self.assertRaises(ChannelError):
            await self.channel.drain(settle=0.02, limit=0.1)


class TestShellChannelLatency(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.chan = _SlowLink(delay=0.1)
        self.channel = ShellChannel(self.chan)

    def tearDown(self):
        self.chan.release()

    async def test_late_command_echo_is_not_counted_as_keystroke_echo(self):
        asyncio.get_running_loop().call_later(0.1, self.chan.feed, b"$ cat > /dev/null\r\n")
        await self.channel.drain(expect=b"cat > /dev/null", settle=0.02, limit=2.0)

        result = await EchoProbe(char_count=3, timeout=2.0).run(self.channel)
        self.assertEqual(result.char_sent, 3)
        self.assertGreaterEqual(result.latency.min, 80_000_000)


class _FakeHandle:
    def __init__(self):
        self.pipelined = False

    def set_pipelined(self, pipelined=True):
        self.pipelined = pipelined


class _FakeSftp:
    def __init__(self):
        self.opened = []
        self.closed = False

    def open(self, path, mode="r"):
        self.opened.append((path, mode))
        return _FakeHandle()

    def remove(self, path):
        raise IOError(f"No such file: {path}")

    def close(self):
        self.closed = True


class TestSftpTransport(unittest.IsolatedAsyncioTestCase):
    async def test_upload_handle_pipelined(self):
        sftp = _FakeSftp()
        remote = await SftpTransport(sftp).open_write("/tmp/x")
        self.assertEqual(sftp.opened, [("/tmp/x", "wb")])
        self.assertTrue(remote._handle.pipelined)

    async def test_download_handle(self):
        sftp = _FakeSftp()
        remote = await SftpTransport(sftp).open_read("/tmp/x")
        self.assertEqual(sftp.opened, [("/tmp/x", "rb")])
        self.assertFalse(remote._handle.pipelined)

    async def test_errors_translated(self):
        with self.assertRaises(TransferError) as ctx:
            await SftpTransport(_FakeSftp()).remove("/tmp/x")
        self.assertIsInstance(ctx.exception.__cause__, OSError)

    def test_close(self):
        sftp = _FakeSftp()
        SftpTransport(sftp).close()
        self.assertTrue(sftp.closed)


if __name__ == "__main__":
    unittest.main()
