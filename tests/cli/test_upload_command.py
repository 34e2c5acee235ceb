import base64
import json

import pytest
from block_uploader.cli import build_cli
from block_uploader.models.artifacts import EncryptionArtifacts
from click.testing import CliRunner

SAS_URL = "https://account.blob.core.windows.net/container/payload.bin?sv=2021-08-06&sig=secret"


@pytest.fixture
def patched_storage(monkeypatch, storage):
    built = []

    def build_storage(config, content_type=None):
        built.append((config, content_type))
        return storage

    monkeypatch.setattr("block_uploader.commands.upload.build_storage", build_storage)
    storage.built = built
    return storage


@pytest.fixture
def key_file(tmp_path):
    path = tmp_path / "upload.key"
    path.write_text(base64.b64encode(bytes(range(32))).decode() + "\n")
    return path


def test_upload(data_file, patched_storage):
    """
    GIVEN a file of 10000 bytes
    WHEN it is uploaded with a block size of 3000 bytes
    THEN four blocks are committed in order and the blob equals the file
    """
    runner = CliRunner()
    cli = build_cli()
    result = runner.invoke(cli, ["upload", str(data_file), SAS_URL, "--block-size", "3000", "--threads", "2"])

    assert result.exit_code == 0, result.output
    assert "Uploaded payload.bin in 4 block(s)" in result.output
    assert len(patched_storage.commits) == 1
    url, block_ids, content_type = patched_storage.commits[0]
    assert url == SAS_URL
    assert len(block_ids) == 4
    assert content_type == "application/octet-stream"
    assert patched_storage.committed_blob() == data_file.read_bytes()

    config, _ = patched_storage.built[0]
    assert config.upload.simultaneous_uploads == 2


def test_upload_options_from_config_file(tmp_path, data_file, patched_storage):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("upload:\n  block_size: 2500\n  block_id_prefix: chunk\n  content_type: text/x-test\n")

    runner = CliRunner()
    cli = build_cli()
    result = runner.invoke(cli, ["upload", str(data_file), SAS_URL, "--config-file", str(config_path)])

    assert result.exit_code == 0, result.output
    _, block_ids, content_type = patched_storage.commits[0]
    assert [base64.b64decode(b) for b in block_ids] == [f"chunk{n:05d}".encode() for n in range(4)]
    assert content_type == "text/x-test"


def test_encrypted_upload_and_decrypt(tmp_path, data_file, key_file, patched_storage):
    """
    GIVEN an encryption key
    WHEN a file is uploaded with encryption and the committed blob is decrypted
    THEN the decrypted blob equals the original file
    """
    artifacts_path = tmp_path / "artifacts.json"
    runner = CliRunner()
    cli = build_cli()
    result = runner.invoke(
        cli,
        [
            "upload",
            str(data_file),
            SAS_URL,
            "--block-size",
            "4096",
            "--encryption-key-file",
            str(key_file),
            "--artifacts-file",
            str(artifacts_path),
        ],
    )
    assert result.exit_code == 0, result.output

    artifacts = EncryptionArtifacts.model_validate_json(artifacts_path.read_text())
    assert artifacts.range == ["0-4096", "4096-8192", "8192-10000"]
    assert artifacts.encryption_strategy == "chacha20-poly1305-ietf"

    blob = patched_storage.committed_blob()
    assert len(blob) == data_file.stat().st_size
    assert blob != data_file.read_bytes()

    encrypted_path = tmp_path / "downloaded.bin"
    encrypted_path.write_bytes(blob)
    decrypted_path = tmp_path / "decrypted.bin"
    result = runner.invoke(
        cli,
        [
            "decrypt",
            str(encrypted_path),
            str(decrypted_path),
            "--encryption-key-file",
            str(key_file),
            "--artifacts-file",
            str(artifacts_path),
        ],
    )
    assert result.exit_code == 0, result.output
    assert decrypted_path.read_bytes() == data_file.read_bytes()


def test_encrypted_upload_json_output(data_file, key_file, patched_storage):
    runner = CliRunner()
    cli = build_cli()
    result = runner.invoke(
        cli, ["upload", str(data_file), SAS_URL, "--encryption-key-file", str(key_file), "--json"]
    )

    assert result.exit_code == 0, result.output
    assert '"encryption_strategy": "chacha20-poly1305-ietf"' in result.output
    assert '"block_ids"' in result.output


def test_encrypted_upload_needs_artifacts_destination(data_file, key_file, patched_storage):
    runner = CliRunner()
    cli = build_cli()
    result = runner.invoke(cli, ["upload", str(data_file), SAS_URL, "--encryption-key-file", str(key_file)])

    assert result.exit_code == 2
    assert "--artifacts-file" in result.output
    assert patched_storage.commits == []


def test_upload_failure(data_file, monkeypatch, storage_factory):
    failing = storage_factory(fail_blocks={1})
    monkeypatch.setattr("block_uploader.commands.upload.build_storage", lambda config, content_type=None: failing)

    runner = CliRunner()
    cli = build_cli()
    result = runner.invoke(cli, ["upload", str(data_file), SAS_URL, "--block-size", "3000"])

    assert result.exit_code == 1
    assert "simulated failure for block 1" in result.output
    assert failing.commits == []


def test_decrypt_refuses_to_overwrite(tmp_path, key_file):
    artifacts_path = tmp_path / "artifacts.json"
    artifacts_path.write_text(json.dumps({"iv": [], "at": [], "range": []}))
    encrypted_path = tmp_path / "encrypted.bin"
    encrypted_path.write_bytes(b"")
    output_path = tmp_path / "output.bin"
    output_path.write_bytes(b"keep me")

    runner = CliRunner()
    cli = build_cli()
    result = runner.invoke(
        cli,
        [
            "decrypt",
            str(encrypted_path),
            str(output_path),
            "--encryption-key-file",
            str(key_file),
            "--artifacts-file",
            str(artifacts_path),
        ],
    )

    assert result.exit_code == 1
    assert "already exists" in result.output
    assert output_path.read_bytes() == b"keep me"
