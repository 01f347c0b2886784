"""SSH tunnel to a SONiC device's Redis, plus remote command execution.

SONiC's Redis listens on 127.0.0.1:6379 inside the switch with no
authentication, so every database connection rides an authenticated SSH
session. A local asyncio listener accepts any number of client connections
and forwards each one over a ``direct-tcpip`` channel.

paramiko is blocking. Short calls (dial, opening channels, sends) run on a
per-tunnel thread pool. Anything that blocks for the life of a connection or
a command, a channel ``recv`` loop or an exec session, gets its own thread so
idle connections can never exhaust the pool. Closing the SSH client closes
every channel, which unblocks pending ``recv`` calls so the forwarding tasks
can finish.
"""
import asyncio
import logging
import shlex
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

import paramiko

from .errors import CommandError, TunnelError
from .types import REDIS_PORT
from .utils.connection import with_retry

logger = logging.getLogger(__name__)

BUFFER_SIZE = 32 * 1024
LOCAL_HOST = "127.0.0.1"


class SSHTunnel:
    """Local TCP port forwarded to the device's Redis over SSH."""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        port: int = 22,
        remote_port: int = REDIS_PORT,
        timeout: float = 30,
        retries: int = 3,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ):
        self.host = host
        self.username = username
        self.password = password
        self.port = port or 22
        self.remote_port = remote_port
        self.timeout = timeout
        self.retries = max(retries, 1)
        self._client_factory = client_factory
        self._ssh: Optional[paramiko.SSHClient] = None
        self._server: Optional[asyncio.AbstractServer] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._tasks: set[asyncio.Task] = set()
        self._writers: set[asyncio.StreamWriter] = set()
        self.local_port = 0

    @property
    def local_addr(self) -> tuple[str, int]:
        return LOCAL_HOST, self.local_port

    @property
    def is_open(self) -> bool:
        return self._server is not None

    async def _dial_once(self) -> paramiko.SSHClient:
        loop = asyncio.get_running_loop()

        def _connect():
            ssh = self._client_factory()
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            ssh.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            return ssh

        return await loop.run_in_executor(self._executor, _connect)

    async def open(self) -> None:
        """Dial SSH and start the local listener on a random port."""
        addr = f"{self.host}:{self.port}"
        logger.warning(f"SSH tunnel to {addr}: host key verification disabled (AutoAddPolicy)")
        self._executor = ThreadPoolExecutor(thread_name_prefix=f"ssh-{self.host}")
        try:
            dial = with_retry(max_attempts=self.retries, min_wait=1, max_wait=10)(self._dial_once)
            self._ssh = await dial()
        except Exception as e:
            self._executor.shutdown(wait=False)
            self._executor = None
            raise TunnelError(f"SSH dial {self.username}@{addr}: {e}") from e

        try:
            self._server = await asyncio.start_server(self._handle, LOCAL_HOST, 0)
        except OSError as e:
            await asyncio.to_thread(self._ssh.close)
            self._ssh = None
            raise TunnelError(f"local listen: {e}") from e

        self.local_port = self._server.sockets[0].getsockname()[1]
        logger.info(f"SSH tunnel {LOCAL_HOST}:{self.local_port} -> {addr} -> 127.0.0.1:{self.remote_port}")

    async def close(self) -> None:
        """Stop accepting, tear down SSH, then wait for every forwarding task."""
        if self._server is None:
            return
        self._server.close()
        if self._ssh is not None:
            # joins paramiko's transport thread
            await asyncio.to_thread(self._ssh.close)
        for writer in list(self._writers):
            writer.close()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._server.wait_closed()
        self._server = None
        self._ssh = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        logger.info(f"SSH tunnel to {self.host} closed")

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._track(asyncio.current_task())
        self._writers.add(writer)
        loop = asyncio.get_running_loop()
        channel = None
        try:
            transport = self._ssh.get_transport() if self._ssh else None
            if transport is None or not transport.is_active():
                return
            peer = writer.get_extra_info("peername") or (LOCAL_HOST, 0)
            try:
                channel = await loop.run_in_executor(
                    self._executor,
                    transport.open_channel,
                    "direct-tcpip",
                    ("127.0.0.1", self.remote_port),
                    peer[:2],
                )
            except (paramiko.SSHException, OSError, EOFError) as e:
                logger.warning(f"Tunnel channel to {self.host} failed: {e}")
                return

            upstream = asyncio.create_task(self._local_to_remote(reader, channel))
            downstream = asyncio.create_task(self._remote_to_local(channel, writer))
            self._track(upstream)
            self._track(downstream)
            # Either direction closing ends the connection
            await asyncio.wait({upstream, downstream}, return_when=asyncio.FIRST_COMPLETED)
            channel.close()
            writer.close()
            await asyncio.gather(upstream, downstream, return_exceptions=True)
        finally:
            if channel is not None:
                channel.close()
            writer.close()
            self._writers.discard(writer)

    async def _local_to_remote(self, reader: asyncio.StreamReader, channel: paramiko.Channel) -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                data = await reader.read(BUFFER_SIZE)
                if not data:
                    break
                await loop.run_in_executor(self._executor, channel.sendall, data)
        except (paramiko.SSHException, OSError, EOFError, RuntimeError) as e:
            logger.debug(f"Tunnel upstream to {self.host} ended: {e}")

    def _pump(self, channel: paramiko.Channel, loop: asyncio.AbstractEventLoop, chunks: asyncio.Queue) -> None:
        """Thread body: read ``channel`` until EOF, handing chunks to the loop."""
        try:
            while True:
                data = channel.recv(BUFFER_SIZE)
                if not data:
                    break
                loop.call_soon_threadsafe(chunks.put_nowait, data)
        except (paramiko.SSHException, OSError, EOFError) as e:
            logger.debug(f"Tunnel channel from {self.host} failed: {e}")
        finally:
            try:
                loop.call_soon_threadsafe(chunks.put_nowait, b"")
            except RuntimeError:
                logger.debug(f"Tunnel to {self.host}: loop closed before channel EOF")

    async def _remote_to_local(self, channel: paramiko.Channel, writer: asyncio.StreamWriter) -> None:
        loop = asyncio.get_running_loop()
        chunks: asyncio.Queue = asyncio.Queue()
        threading.Thread(
            target=self._pump,
            args=(channel, loop, chunks),
            name=f"ssh-{self.host}-recv",
            daemon=True,
        ).start()
        try:
            while True:
                data = await chunks.get()
                if not data:
                    break
                writer.write(data)
                await writer.drain()
        except (OSError, RuntimeError) as e:
            logger.debug(f"Tunnel downstream from {self.host} ended: {e}")

    def _in_thread(self, func: Callable[[], Any], name: str) -> asyncio.Future:
        """Run ``func`` on a dedicated thread; the result lands in a loop future."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def settle(result, error) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def runner() -> None:
            try:
                result = func()
            except Exception as e:
                loop.call_soon_threadsafe(settle, None, e)
            else:
                loop.call_soon_threadsafe(settle, result, None)

        threading.Thread(target=runner, name=name, daemon=True).start()
        return future

    def _require_transport(self) -> paramiko.Transport:
        transport = self._ssh.get_transport() if self._ssh else None
        if transport is None or not transport.is_active():
            raise TunnelError(f"SSH session to {self.host} is not open")
        return transport

    async def exec_command(self, command: str, timeout: Optional[float] = None) -> str:
        """Run ``command`` on the device and return stdout+stderr.

        Raises CommandError on a non-zero exit status or on timeout. If the
        caller is cancelled, the session is closed (sshd hangs up the remote
        process) and this waits for the worker to finish before re-raising
        CancelledError, so no session is left behind.
        """
        transport = self._require_transport()
        loop = asyncio.get_running_loop()
        try:
            channel = await loop.run_in_executor(self._executor, transport.open_session)
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise CommandError(command, f"SSH session: {e}") from e

        def _run() -> tuple[int, str]:
            channel.set_combine_stderr(True)
            channel.exec_command(command)
            chunks = []
            while True:
                data = channel.recv(BUFFER_SIZE)
                if not data:
                    break
                chunks.append(data)
            status = channel.recv_exit_status()
            return status, b"".join(chunks).decode("utf-8", errors="replace")

        future = self._in_thread(_run, f"ssh-{self.host}-exec")
        try:
            status, output = await asyncio.wait_for(asyncio.shield(future), timeout)
        except asyncio.TimeoutError:
            await self._kill_session(channel, future)
            raise CommandError(command, f"timed out after {timeout}s")
        except asyncio.CancelledError:
            await self._kill_session(channel, future)
            raise
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise CommandError(command, str(e)) from e
        finally:
            channel.close()

        if status != 0:
            raise CommandError(command, f"exit status {status}", output)
        return output

    async def _kill_session(self, channel: paramiko.Channel, future: asyncio.Future) -> None:
        logger.warning(f"Killing SSH session on {self.host}")
        channel.close()
        await asyncio.gather(future, return_exceptions=True)

    async def read_file(self, path: str) -> str:
        return await self.exec_command(f"cat {shlex.quote(path)}")
