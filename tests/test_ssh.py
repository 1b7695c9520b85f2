import pytest
from unittest.mock import patch, MagicMock

from vmharness.ssh import SSHClient


def _connected_client(key_path):
    client = SSHClient(host="10.0.0.5", private_key_path=str(key_path))
    client.client = MagicMock()
    client.client.get_transport.return_value.is_active.return_value = True
    return client


class TestValidation:
    """Constructor argument checks."""

    def test_empty_host(self):
        with pytest.raises(ValueError, match="host"):
            SSHClient(host="", private_key_path="id_rsa")

    def test_invalid_port(self):
        with pytest.raises(ValueError, match="port"):
            SSHClient(host="10.0.0.5", port=70000, private_key_path="id_rsa")

    def test_missing_key(self):
        with pytest.raises(ValueError, match="private_key_path"):
            SSHClient(host="10.0.0.5")


class TestConnect:
    """Connection setup."""

    def test_missing_key_file(self, tmp_path):
        client = SSHClient(host="10.0.0.5", private_key_path=str(tmp_path / "absent"))
        with pytest.raises(FileNotFoundError):
            client.connect()

    @patch('vmharness.ssh.paramiko.SSHClient')
    def test_accepts_unknown_host_keys(self, mock_paramiko_cls, tmp_path):
        key = tmp_path / "id_rsa"
        key.write_text("key")
        paramiko_client = mock_paramiko_cls.return_value

        client = SSHClient(host="10.0.0.5", username="tester", private_key_path=str(key), connect_timeout=3)
        client.connect()

        policy = paramiko_client.set_missing_host_key_policy.call_args[0][0]
        assert type(policy).__name__ == "AutoAddPolicy"
        kwargs = paramiko_client.connect.call_args.kwargs
        assert kwargs["hostname"] == "10.0.0.5"
        assert kwargs["username"] == "tester"
        assert kwargs["key_filename"] == str(key)
        assert kwargs["timeout"] == 3

    @patch('vmharness.ssh.paramiko.SSHClient')
    def test_failed_connect_resets_client(self, mock_paramiko_cls, tmp_path):
        key = tmp_path / "id_rsa"
        key.write_text("key")
        mock_paramiko_cls.return_value.connect.side_effect = OSError("refused")

        client = SSHClient(host="10.0.0.5", private_key_path=str(key))
        with pytest.raises(OSError):
            client.connect()
        assert client.client is None


class TestExecute:
    """Remote command execution."""

    def test_requires_connection(self):
        client = SSHClient(host="10.0.0.5", private_key_path="id_rsa")
        with pytest.raises(RuntimeError, match="Not connected"):
            client.execute("uptime")

    def test_returns_exit_code_and_streams(self, tmp_path):
        client = _connected_client(tmp_path / "id_rsa")
        stdout = MagicMock()
        stdout.channel.recv_exit_status.return_value = 0
        stdout.read.return_value = b"up 3 days\n"
        stderr = MagicMock()
        stderr.read.return_value = b""
        client.client.exec_command.return_value = (MagicMock(), stdout, stderr)

        assert client.execute("uptime") == (0, "up 3 days\n", "")

    def test_empty_command(self, tmp_path):
        client = _connected_client(tmp_path / "id_rsa")
        with pytest.raises(ValueError):
            client.execute("")


class TestTransfers:
    """SFTP file transfers."""

    def test_upload_missing_local_file(self, tmp_path):
        client = _connected_client(tmp_path / "id_rsa")
        with pytest.raises(FileNotFoundError):
            client.upload_file(str(tmp_path / "absent.sh"), "absent.sh")

    def test_upload_file(self, tmp_path):
        client = _connected_client(tmp_path / "id_rsa")
        local = tmp_path / "run.sh"
        local.write_text("echo")
        sftp = client.client.open_sftp.return_value.__enter__.return_value

        client.upload_file(str(local), "run.sh")

        sftp.put.assert_called_once_with(str(local), "run.sh")

    def test_download_error_is_wrapped(self, tmp_path):
        client = _connected_client(tmp_path / "id_rsa")
        sftp = client.client.open_sftp.return_value.__enter__.return_value
        sftp.get.side_effect = IOError("No such file")

        with pytest.raises(RuntimeError, match="File download failed"):
            client.download_file("state.txt", str(tmp_path / "state.txt"))

    def test_is_remote_directory_missing_path(self, tmp_path):
        client = _connected_client(tmp_path / "id_rsa")
        sftp = client.client.open_sftp.return_value.__enter__.return_value
        sftp.stat.side_effect = IOError("No such file")

        assert client.is_remote_directory("logs") is False
