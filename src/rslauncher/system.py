"""System port and process introspection for rslauncher."""

import re
import socket
import subprocess

from .console import debug


class SystemScanner:
    """Probe local ports and the processes listening on them.

    Process lookups shell out to ``lsof``, ``ss`` and ``ps``. When a tool is
    missing or fails, lookups return None (unknown) rather than raising.
    """

    def __init__(self, probe_timeout: float = 0.5) -> None:
        """Initialize scanner.

        Args:
            probe_timeout: Connect timeout in seconds for liveness probes
        """
        self.probe_timeout = probe_timeout

    def is_port_listening(self, port: int) -> bool:
        """Test whether something accepts TCP connections on a local port.

        Args:
            port: Port number to probe

        Returns:
            True if a listener accepted the connection, False otherwise
        """
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=self.probe_timeout):
                return True
        except OSError:
            return False

    def get_listening_ports(self) -> set[int]:
        """Get all TCP ports currently in LISTEN state.

        Tries multiple methods in order:
        1. ss (Linux, fast)
        2. lsof (macOS/Linux, slower)
        3. netstat (universal, slowest)

        Returns:
            Set of port numbers in use
        """
        ports: set[int] = set()

        ports.update(self._scan_ss())

        if not ports:
            ports.update(self._scan_lsof())

        if not ports:
            ports.update(self._scan_netstat())

        return ports

    def listener_pid(self, port: int) -> int | None:
        """Find the pid of the process listening on a port.

        Args:
            port: Port number

        Returns:
            Pid, or None if it cannot be determined
        """
        pid = self._pid_lsof(port)
        if pid is None:
            pid = self._pid_ss(port)
        debug(f"Listener on port {port}: pid={pid}")
        return pid

    def pid_owner(self, pid: int) -> str | None:
        """Get the account name owning a process.

        Args:
            pid: Process id

        Returns:
            User name, or None if unknown
        """
        output = self._run(["ps", "-o", "user=", "-p", str(pid)])
        if not output:
            return None
        fields = output.split()
        return fields[0] if fields else None

    def terminate_user_processes(self, user: str, patterns: tuple[str, ...]) -> bool:
        """Send SIGTERM to a user's processes matching command-line patterns.

        Only processes owned by ``user`` are signalled (``pkill -u``).

        Args:
            user: Account whose processes are terminated
            patterns: Command-line patterns passed to ``pkill -f``

        Returns:
            True if at least one process was signalled
        """
        signalled = False
        for pattern in patterns:
            try:
                result = subprocess.run(
                    ["pkill", "-u", user, "-f", pattern],
                    capture_output=True,
                    text=True,
                    timeout=5,
                )
            except (subprocess.SubprocessError, FileNotFoundError) as e:
                debug(f"pkill {pattern} failed: {e}")
                continue
            # pkill exits 0 when something matched, 1 when nothing did
            if result.returncode == 0:
                signalled = True
        return signalled

    def _run(self, cmd: list[str], timeout: int = 5) -> str | None:
        """Run a command and return its stdout, or None if it failed."""
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except (subprocess.SubprocessError, FileNotFoundError):
            return None
        if result.returncode != 0:
            return None
        return result.stdout

    def _pid_lsof(self, port: int) -> int | None:
        """Look up the listener pid with lsof."""
        output = self._run(["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN", "-t"])
        if not output:
            return None
        for line in output.splitlines():
            if line.strip().isdigit():
                return int(line.strip())
        return None

    def _pid_ss(self, port: int) -> int | None:
        """Look up the listener pid with ss.

        Without root, ss only reports pids for the caller's own sockets.
        """
        output = self._run(["ss", "-ltnpH"])
        if not output:
            return None
        for line in output.splitlines():
            # Format: LISTEN 0 4096 0.0.0.0:8800 0.0.0.0:* users:(("rserver",pid=123,fd=7))
            if not re.search(rf":{port}\s", line):
                continue
            match = re.search(r"pid=(\d+)", line)
            if match:
                return int(match.group(1))
        return None

    def _scan_ss(self) -> set[int]:
        """Scan ports using ss command (Linux).

        Returns:
            Set of listening ports
        """
        output = self._run(["ss", "-tlnH"])
        ports = set()
        for line in (output or "").splitlines():
            # Format: LISTEN 0 128 127.0.0.1:5432 *:*
            match = re.search(r":(\d+)\s", line)
            if match:
                ports.add(int(match.group(1)))
        return ports

    def _scan_lsof(self) -> set[int]:
        """Scan ports using lsof command (macOS/Linux).

        Returns:
            Set of listening ports
        """
        output = self._run(["lsof", "-iTCP", "-sTCP:LISTEN", "-P", "-n"], timeout=10)
        ports = set()
        for line in (output or "").splitlines()[1:]:  # Skip header
            # NAME column is like: *:5432 (LISTEN)
            match = re.search(r":(\d+)\s", line)
            if match:
                ports.add(int(match.group(1)))
        return ports

    def _scan_netstat(self) -> set[int]:
        """Scan ports using netstat command.

        Returns:
            Set of listening ports
        """
        output = self._run(["netstat", "-tln"], timeout=10)
        ports = set()
        for line in (output or "").splitlines():
            if "LISTEN" in line:
                match = re.search(r":(\d+)\s", line)
                if match:
                    ports.add(int(match.group(1)))
        return ports
