"""SSH transport for executing commands and moving files on guest VMs."""
import logging
import stat
from pathlib import Path
from typing import Optional, Tuple

import paramiko

logger = logging.getLogger(__name__)


class SSHClient:
    """Thin paramiko wrapper bound to one guest."""

    def __init__(
        self,
        host: str,
        port: int = 22,
        username: str = "root",
        private_key_path: Optional[str] = None,
        connect_timeout: float = 10,
        command_timeout: float = 300,
    ):
        """
        Initialize SSH client connection parameters.

        Args:
            host: Guest IP address. Required.
            port: SSH port number. Default: 22.
            username: SSH username. Default: root.
            private_key_path: Path to the private key file. Required.
            connect_timeout: Seconds to wait for the TCP/SSH handshake.
            command_timeout: Seconds a single remote command may run.

        Raises:
            ValueError: If host is empty, port is invalid or the key is missing.
        """
        if not host or not isinstance(host, str):
            raise ValueError("host must be a non-empty string")
        if not isinstance(port, int) or port <= 0 or port > 65535:
            raise ValueError("port must be an integer between 1 and 65535")
        if not username or not isinstance(username, str):
            raise ValueError("username must be a non-empty string")
        if not private_key_path:
            raise ValueError("private_key_path must be provided")

        self.host = host
        self.port = port
        self.username = username
        self.private_key_path = private_key_path
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.client: Optional[paramiko.SSHClient] = None

    @property
    def is_connected(self) -> bool:
        if self.client is None:
            return False
        transport = self.client.get_transport()
        return transport is not None and transport.is_active()

    def connect(self) -> None:
        """
        Establish SSH connection to the guest.

        Unknown host keys are accepted and remembered for the session.

        Raises:
            FileNotFoundError: If private key file does not exist.
            paramiko.AuthenticationException: If authentication fails.
            paramiko.SSHException: If SSH connection fails.
        """
        if self.is_connected:
            logger.debug(f"Already connected to {self.host}")
            return

        key_path = Path(self.private_key_path)
        if not key_path.exists():
            raise FileNotFoundError(f"Private key file not found: {self.private_key_path}")

        self.client = paramiko.SSHClient()
        self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            self.client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                key_filename=str(key_path),
                timeout=self.connect_timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            logger.debug(f"SSH connection established to {self.username}@{self.host}:{self.port}")
        except Exception:
            self.client.close()
            self.client = None
            raise

    def disconnect(self) -> None:
        """Close SSH connection."""
        if self.client:
            self.client.close()
            self.client = None
            logger.debug(f"SSH connection closed to {self.host}")

    def _require_connection(self) -> paramiko.SSHClient:
        if not self.is_connected:
            raise RuntimeError("Not connected to guest. Call connect() first.")
        return self.client

    def execute(self, command: str) -> Tuple[int, str, str]:
        """
        Execute a command on the guest.

        Args:
            command: Shell command to execute. Required.

        Returns:
            Tuple of (exit_code, stdout, stderr).

        Raises:
            ValueError: If command is empty.
            RuntimeError: If not connected or command execution fails.
        """
        if not command or not isinstance(command, str):
            raise ValueError("command must be a non-empty string")

        client = self._require_connection()

        try:
            stdin, stdout, stderr = client.exec_command(command, timeout=self.command_timeout)
            exit_code = stdout.channel.recv_exit_status()
            stdout_text = stdout.read().decode("utf-8", errors="replace")
            stderr_text = stderr.read().decode("utf-8", errors="replace")

            logger.debug(f"Command executed on {self.host}: {command} (exit code: {exit_code})")
            return exit_code, stdout_text, stderr_text
        except Exception as e:
            raise RuntimeError(f"Command execution failed: {e}") from e

    def upload_file(self, local_path: str, remote_path: str) -> None:
        """
        Upload a local file to the guest.

        Raises:
            FileNotFoundError: If local file does not exist.
            RuntimeError: If not connected or upload fails.
        """
        local_file = Path(local_path)
        if not local_file.is_file():
            raise FileNotFoundError(f"Local file not found: {local_path}")

        client = self._require_connection()

        try:
            with client.open_sftp() as sftp:
                sftp.put(str(local_file), remote_path)
            logger.debug(f"File uploaded: {local_path} -> {self.host}:{remote_path}")
        except Exception as e:
            raise RuntimeError(f"File upload failed: {e}") from e

    def download_file(self, remote_path: str, local_path: str) -> None:
        """
        Download a file from the guest.

        Raises:
            RuntimeError: If not connected or download fails.
        """
        client = self._require_connection()

        try:
            with client.open_sftp() as sftp:
                sftp.get(remote_path, local_path)
            logger.debug(f"File downloaded: {self.host}:{remote_path} -> {local_path}")
        except Exception as e:
            raise RuntimeError(f"File download failed: {e}") from e

    def upload_directory(self, local_dir: str, remote_dir: str) -> None:
        """
        Recursively upload a local directory to the guest.

        Raises:
            FileNotFoundError: If local directory does not exist.
            RuntimeError: If not connected or upload fails.
        """
        local_directory = Path(local_dir)
        if not local_directory.is_dir():
            raise FileNotFoundError(f"Local directory not found: {local_dir}")

        client = self._require_connection()

        def ensure_dir(sftp_client, path):
            if not path:
                return
            try:
                sftp_client.stat(path)
            except IOError:
                ensure_dir(sftp_client, "/".join(path.split("/")[:-1]))
                sftp_client.mkdir(path)

        try:
            with client.open_sftp() as sftp:
                ensure_dir(sftp, remote_dir)
                for local_file in sorted(local_directory.rglob("*")):
                    remote_file_path = f"{remote_dir}/{local_file.relative_to(local_directory).as_posix()}"
                    if local_file.is_dir():
                        ensure_dir(sftp, remote_file_path)
                    else:
                        sftp.put(str(local_file), remote_file_path)
            logger.debug(f"Directory uploaded: {local_dir} -> {self.host}:{remote_dir}")
        except Exception as e:
            raise RuntimeError(f"Directory upload failed: {e}") from e

    def download_directory(self, remote_dir: str, local_dir: str) -> None:
        """
        Recursively download a directory from the guest.

        Raises:
            RuntimeError: If not connected or download fails.
        """
        client = self._require_connection()

        def download_recursive(sftp_client, remote_path, local_path: Path):
            local_path.mkdir(parents=True, exist_ok=True)
            for item in sftp_client.listdir_attr(remote_path):
                remote_item_path = f"{remote_path}/{item.filename}"
                local_item_path = local_path / item.filename
                if stat.S_ISDIR(item.st_mode):
                    download_recursive(sftp_client, remote_item_path, local_item_path)
                else:
                    sftp_client.get(remote_item_path, str(local_item_path))

        try:
            with client.open_sftp() as sftp:
                download_recursive(sftp, remote_dir, Path(local_dir))
            logger.debug(f"Directory downloaded: {self.host}:{remote_dir} -> {local_dir}")
        except Exception as e:
            raise RuntimeError(f"Directory download failed: {e}") from e

    def is_remote_directory(self, remote_path: str) -> bool:
        """Return True if the guest path exists and is a directory."""
        client = self._require_connection()
        try:
            with client.open_sftp() as sftp:
                return stat.S_ISDIR(sftp.stat(remote_path).st_mode)
        except IOError:
            return False
