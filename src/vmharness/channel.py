"""Failure-sentinel command channel to a guest: every call returns, none raise."""
import logging
from pathlib import Path
from typing import Tuple

from vmharness.ssh import SSHClient
from vmharness.types import CopyDirection, GuestEndpoint

logger = logging.getLogger(__name__)


class GuestChannel:
    """Runs one command or one transfer per call against a single guest."""

    def __init__(self, endpoint: GuestEndpoint, connect_timeout: float = 10, command_timeout: float = 300):
        self.endpoint = endpoint
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    def _client(self) -> SSHClient:
        return SSHClient(
            host=self.endpoint.address,
            port=self.endpoint.port,
            username=self.endpoint.username,
            private_key_path=str(self.endpoint.key_path),
            connect_timeout=self.connect_timeout,
            command_timeout=self.command_timeout,
        )

    def run_command(self, command: str) -> Tuple[bool, str]:
        """
        Execute a command on the guest.

        Returns:
            Tuple of (success, output). On failure the output is the error
            stream when the guest produced one, otherwise stdout.
        """
        client = None
        try:
            client = self._client()
            client.connect()
            exit_code, stdout, stderr = client.execute(command)
        except Exception as e:
            logger.error(f"Command '{command}' on {self.endpoint.address} failed: {e}")
            return False, str(e)
        finally:
            if client is not None:
                client.disconnect()

        if exit_code != 0:
            output = stderr.strip() or stdout
            logger.error(f"Command '{command}' on {self.endpoint.address} exited with {exit_code}: {output.strip()}")
            return False, output

        return True, stdout

    def copy(self, local_path: Path, remote_path: str, direction: CopyDirection) -> bool:
        """
        Copy a file or directory between this machine and the guest.

        Directories are copied recursively. Remote paths are resolved
        relative to the guest user's home directory.
        """
        client = None
        try:
            client = self._client()
            client.connect()
            if direction is CopyDirection.TO_GUEST:
                if Path(local_path).is_dir():
                    client.upload_directory(str(local_path), remote_path)
                else:
                    client.upload_file(str(local_path), remote_path)
            elif client.is_remote_directory(remote_path):
                client.download_directory(remote_path, str(local_path))
            else:
                client.download_file(remote_path, str(local_path))
        except Exception as e:
            if direction is CopyDirection.TO_GUEST:
                logger.error(f"Copy {local_path} -> {self.endpoint.address}:{remote_path} failed: {e}")
            else:
                logger.error(f"Copy {self.endpoint.address}:{remote_path} -> {local_path} failed: {e}")
            return False
        finally:
            if client is not None:
                client.disconnect()

        return True
