"""
paramiko implementation of the probe transport interfaces.

Handles target parsing, ``~/.ssh/config`` lookup and authentication, then
exposes an established connection as a ``Session``: an interactive PTY shell
running the echo command and an SFTP client for the speed test.  All
library errors are translated into the probe error taxonomy at this
boundary.

Usage::

    session = await SshSession.connect(SshOptions(target=SshTarget.parse("me@host")))
    channel = await session.open_duplex("cat > /dev/null")
"""
from __future__ import annotations

import asyncio
import dataclasses
import getpass
import logging
import os
import socket
from dataclasses import dataclass
from typing import Any, Callable, Optional

import paramiko

from .constants import (
    DEFAULT_PORT,
    DEFAULT_SSH_CONFIG,
    DEFAULT_SSH_TIMEOUT,
    DRAIN_READ_SIZE,
    PTY_HEIGHT,
    PTY_TERM,
    PTY_WIDTH,
    SHELL_DRAIN_LIMIT,
    SHELL_SETTLE,
)
from .errors import ChannelError, ConfigError, ConnectError, TransferError

log = logging.getLogger(__name__)

_TARGET_FORMAT = "Invalid target format. Must be [user@]host[:port]"


# ---------------------------------------------------------------------------
# Target and options
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SshTarget:
    """``[user@]host[:port]``; unset parts are filled in by ``resolve_options``."""

    host: str
    user: Optional[str] = None
    port: Optional[int] = None

    @classmethod
    def parse(cls, text: str) -> SshTarget:
        if text.count("@") > 1:
            raise ConfigError(_TARGET_FORMAT)
        user, _, hostport = text.rpartition("@")
        host, sep, port_text = hostport.partition(":")
        if not host or ":" in port_text or (sep and not port_text):
            raise ConfigError(_TARGET_FORMAT)

        port = None
        if sep:
            try:
                port = int(port_text)
            except ValueError as exc:
                raise ConfigError(f"Invalid port: {port_text!r}") from exc
            if not 0 < port < 65536:
                raise ConfigError(f"Port out of range: {port}")

        return cls(host=host, user=user or None, port=port)

    def __str__(self) -> str:
        text = self.host
        if self.user:
            text = f"{self.user}@{text}"
        if self.port is not None:
            text = f"{text}:{self.port}"
        return text


@dataclass(frozen=True)
class SshOptions:
    target: SshTarget
    password: Optional[str] = None
    identity: Optional[str] = None
    ssh_config: Optional[str] = DEFAULT_SSH_CONFIG
    bind_addr: Optional[str] = None
    timeout: float = DEFAULT_SSH_TIMEOUT
    proxy_command: Optional[str] = None


def resolve_options(options: SshOptions) -> SshOptions:
    """
    Fill in host, user, port, identity and proxy command.

    Explicit values win over the ssh config file, which wins over the
    defaults (local user name, port 22).
    """
    target = options.target
    host_config: dict = {}

    if options.ssh_config:
        path = os.path.expanduser(options.ssh_config)
        if os.path.isfile(path):
            log.debug("SSH config: %s", path)
            host_config = paramiko.SSHConfig.from_path(path).lookup(target.host)

    host = host_config.get("hostname", target.host)
    user = target.user or host_config.get("user") or getpass.getuser()
    port = target.port or int(host_config.get("port", DEFAULT_PORT))

    identity = options.identity
    if identity is None and host_config.get("identityfile"):
        identity = host_config["identityfile"][0]
    if identity is not None:
        identity = os.path.expanduser(identity)

    resolved = dataclasses.replace(
        options,
        target=SshTarget(host=host, user=user, port=port),
        identity=identity,
        proxy_command=options.proxy_command or host_config.get("proxycommand"),
    )
    log.debug("User: %s, host: %s, port: %d", user, host, port)
    return resolved


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class SshSession:
    """An authenticated paramiko connection."""

    def __init__(self, client: paramiko.SSHClient, timeout: float = DEFAULT_SSH_TIMEOUT) -> None:
        self._client = client
        self._timeout = timeout

    @classmethod
    async def connect(cls, options: SshOptions) -> SshSession:
        resolved = resolve_options(options)
        client = await asyncio.to_thread(_connect_client, resolved)
        return cls(client, resolved.timeout)

    async def open_duplex(self, command: str) -> ShellChannel:
        log.debug("Starting echo command: %r", command)
        try:
            chan = await asyncio.to_thread(self._open_shell, command)
        except (paramiko.SSHException, OSError) as exc:
            raise ChannelError(f"Cannot open interactive shell: {exc}") from exc

        channel = ShellChannel(chan)
        try:
            await channel.drain(expect=command.encode())
        except ChannelError:
            channel.close()
            raise
        return channel

    async def open_file_transport(self) -> SftpTransport:
        log.debug("Opening SFTP channel")
        try:
            sftp = await asyncio.to_thread(self._client.open_sftp)
        except (paramiko.SSHException, OSError) as exc:
            raise TransferError(f"Cannot open SFTP channel: {exc}") from exc
        return SftpTransport(sftp)

    def close(self) -> None:
        self._client.close()

    # -- Internals ----------------------------------------------------------

    def _open_shell(self, command: str) -> paramiko.Channel:
        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            raise paramiko.SSHException("SSH session is not active")

        chan = transport.open_session(timeout=self._timeout)
        chan.get_pty(term=PTY_TERM, width=PTY_WIDTH, height=PTY_HEIGHT)
        chan.invoke_shell()
        chan.sendall(f"{command}\n".encode())
        return chan


def _connect_client(options: SshOptions) -> paramiko.SSHClient:
    target = options.target
    client = paramiko.SSHClient()
    client.load_system_host_keys()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    try:
        sock = _open_socket(options)
        # Auth order: agent, identity file, default keys, password.
        client.connect(
            hostname=target.host,
            port=target.port or DEFAULT_PORT,
            username=target.user,
            password=options.password,
            key_filename=options.identity,
            passphrase=options.password,
            timeout=options.timeout,
            banner_timeout=options.timeout,
            auth_timeout=options.timeout,
            allow_agent=True,
            look_for_keys=options.identity is None,
            sock=sock,
        )
    except (paramiko.SSHException, OSError) as exc:
        client.close()
        raise ConnectError(f"Failed to connect to {target}: {exc}") from exc

    log.info("Authenticated as %s", target.user)
    return client


def _open_socket(options: SshOptions) -> Any:
    target = options.target
    if options.proxy_command:
        log.debug("Proxy command: %s", options.proxy_command)
        return paramiko.ProxyCommand(options.proxy_command)
    if options.bind_addr:
        log.debug("Binding to %s", options.bind_addr)
        return socket.create_connection(
            (target.host, target.port or DEFAULT_PORT),
            timeout=options.timeout,
            source_address=(options.bind_addr, 0),
        )
    return None


# ---------------------------------------------------------------------------
# Echo channel
# ---------------------------------------------------------------------------

def _wake(waiter: asyncio.Future) -> None:
    if not waiter.done():
        waiter.set_result(None)


_LAYOUT_BYTES = bytes(range(0x21)) + b"\x7f"


def _squeeze(data: bytes) -> bytes:
    """Drop whitespace and control bytes; line editors insert them when wrapping."""
    return bytes(data).translate(None, _LAYOUT_BYTES)


class ShellChannel:
    """
    Interactive shell channel driven from the event loop.

    paramiko signals buffered data and remote close through a pipe returned
    by ``Channel.fileno()``; waiting on it with ``loop.add_reader`` gives a
    suspension point that can be cancelled and that wakes on close as well
    as on data.
    """

    def __init__(self, chan: paramiko.Channel) -> None:
        self._chan = chan
        self._fd = chan.fileno()

    async def write(self, data: bytes) -> None:
        try:
            if self._chan.send_ready():
                self._chan.sendall(data)
            else:
                # Remote window is full; block a worker thread, not the loop.
                await asyncio.to_thread(self._chan.sendall, data)
        except (paramiko.SSHException, OSError) as exc:
            raise ChannelError(f"Write to echo channel failed: {exc}") from exc

    async def read(self, size: int) -> bytes:
        while not self._chan.recv_ready():
            if self._chan.closed or self._chan.eof_received:
                return b""
            await self._readable()
        try:
            return self._chan.recv(size)
        except (paramiko.SSHException, OSError) as exc:
            raise ChannelError(f"Read from echo channel failed: {exc}") from exc

    async def drain(
        self,
        expect: Optional[bytes] = None,
        settle: float = SHELL_SETTLE,
        limit: float = SHELL_DRAIN_LIMIT,
    ) -> None:
        """
        Discard banner, prompt and the echoed command.

        Until the first output arrives (or, with *expect*, until the shell has
        echoed that text back) reads wait for up to *limit* in total.  After
        that the drain ends at the first quiet period of *settle* seconds.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + limit
        target = _squeeze(expect) if expect else b""
        seen = bytearray()

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            started = bool(seen) and target in _squeeze(seen)
            try:
                data = await asyncio.wait_for(
                    self.read(DRAIN_READ_SIZE),
                    timeout=min(settle, remaining) if started else remaining,
                )
            except asyncio.TimeoutError:
                if started:
                    break
                continue
            if not data:
                raise ChannelError("Echo command exited before the test started")
            seen.extend(data)

        if not seen:
            raise ChannelError(f"No output from the remote shell within {limit} s")
        if target not in _squeeze(seen):
            log.warning("Shell did not echo the command back within %s s", limit)
        log.debug("Discarded %d bytes of shell output", len(seen))

    def close(self) -> None:
        self._chan.close()

    async def _readable(self) -> None:
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        loop.add_reader(self._fd, _wake, waiter)
        try:
            await waiter
        finally:
            loop.remove_reader(self._fd)


# ---------------------------------------------------------------------------
# File transport
# ---------------------------------------------------------------------------

async def _sftp_call(func: Callable[..., Any], *args: Any) -> Any:
    try:
        return await asyncio.to_thread(func, *args)
    except (paramiko.SSHException, OSError) as exc:
        raise TransferError(f"SFTP {func.__name__} failed: {exc}") from exc


class SftpFile:
    def __init__(self, handle: paramiko.SFTPFile) -> None:
        self._handle = handle

    async def write(self, data: bytes) -> None:
        await _sftp_call(self._handle.write, data)

    async def read(self, size: int) -> bytes:
        return await _sftp_call(self._handle.read, size)

    async def close(self) -> None:
        await _sftp_call(self._handle.close)


class SftpTransport:
    def __init__(self, sftp: paramiko.SFTPClient) -> None:
        self._sftp = sftp

    async def open_write(self, path: str) -> SftpFile:
        handle = await _sftp_call(self._sftp.open, path, "wb")
        # Acks are collected on close, which the upload timing includes.
        handle.set_pipelined(True)
        return SftpFile(handle)

    async def open_read(self, path: str) -> SftpFile:
        return SftpFile(await _sftp_call(self._sftp.open, path, "rb"))

    async def remove(self, path: str) -> None:
        await _sftp_call(self._sftp.remove, path)

    def close(self) -> None:
        self._sftp.close()
