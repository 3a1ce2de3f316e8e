#!/usr/bin/env python3
"""Tests for ODMirror configuration, validators and the CLI front end."""

import json
import stat
import tempfile
from pathlib import Path

import pytest

from odmirror import cli
from odmirror.config import Config
from odmirror.validators import ValidationError, validate_config_value


def test_config_initialization():
    """Test configuration initialization."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config = Config(Path(tmpdir))

        assert config.config_path.exists()
        assert stat.S_IMODE(config.config_path.stat().st_mode) == 0o600

        assert config.workers == 5
        assert config.chunk_size == 10 * 1024 * 1024
        assert config.max_upload_attempts == 10
        assert config.api_base == 'https://api.onedrive.com/v1.0'
        assert config.client_id == ''


def test_config_save_load():
    """Test configuration save and load."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_dir = Path(tmpdir)

        config1 = Config(config_dir)
        config1.set('client_id', 'df3a0308-c302-4962-b115-08bd59526bc5')
        config1.set('workers', '8')
        config1.set('dest_path', '/Backup/Photos/')

        config2 = Config(config_dir)
        assert config2.get('client_id') == 'df3a0308-c302-4962-b115-08bd59526bc5'
        assert config2.workers == 8
        assert config2.dest_path == '/Backup/Photos'


def test_older_config_file_gets_new_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_dir = Path(tmpdir)
        (config_dir / 'config.json').write_text(json.dumps({'workers': 2}))

        config = Config(config_dir)

        assert config.workers == 2
        assert config.max_resume_attempts == 3


def test_invalid_values_are_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = Config(Path(tmpdir))

        with pytest.raises(ValueError, match='workers'):
            config.set('workers', 0)
        with pytest.raises(ValueError, match='chunk_size'):
            config.set('chunk_size', 1000)
        with pytest.raises(ValueError):
            config.set('api_base', 'http://api.onedrive.com/v1.0')
        with pytest.raises(ValueError):
            config.set('dest_path', '/Backup/../etc')

        assert config.workers == 5


def test_hand_edited_invalid_value_is_reported():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_dir = Path(tmpdir)
        (config_dir / 'config.json').write_text(json.dumps({'workers': 'many'}))

        with pytest.raises(ValueError, match='Invalid workers'):
            Config(config_dir).workers


def test_zero_upload_attempts_means_forever():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = Config(Path(tmpdir))
        config.set('max_upload_attempts', 0)
        assert config.max_upload_attempts is None


def test_token_save_load():
    """Test token save and load per account."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config = Config(Path(tmpdir))
        token_data = {
            'access_token': 'test-access-token',
            'refresh_token': 'test-refresh-token',
            'expires_in': 3600
        }

        config.save_token('source', token_data)

        assert config.load_token('source') == token_data
        assert config.load_token('destination') is None
        path = config.token_dir / 'source.json'
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_unknown_account():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = Config(Path(tmpdir))
        with pytest.raises(ValueError, match='Unknown account'):
            config.load_token('other')


def test_corrupt_token_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = Config(Path(tmpdir))
        config.token_dir.mkdir()
        (config.token_dir / 'destination.json').write_text('{not json')
        assert config.load_token('destination') is None


@pytest.mark.parametrize('key,value,expected', [
    ('chunk_size', str(320 * 1024 * 4), 320 * 1024 * 4),
    ('log_level', 'debug', 'DEBUG'),
    ('retry_delay', '2.5', 2.5),
    ('source_path', '/Photos/', '/Photos'),
    ('api_base', 'https://graph.microsoft.com/v1.0/me/', 'https://graph.microsoft.com/v1.0/me'),
    ('unknown_key', 'kept', 'kept'),
])
def test_validators_normalize(key, value, expected):
    assert validate_config_value(key, value) == expected


@pytest.mark.parametrize('key,value', [
    ('workers', True),
    ('workers', 33),
    ('chunk_size', 61 * 1024 * 1024),
    ('log_level', 'LOUD'),
    ('client_id', 'not-a-uuid'),
    ('source_path', 'Photos'),
    ('retry_delay', -1),
])
def test_validators_reject(key, value):
    with pytest.raises(ValidationError):
        validate_config_value(key, value)


class TestCli:

    def test_config_set_and_list(self, tmp_path, capsys):
        assert cli.main(['--config-dir', str(tmp_path), 'config', '--set', 'workers=3']) == 0
        assert cli.main(['--config-dir', str(tmp_path), 'config', '--list']) == 0

        out = capsys.readouterr().out
        assert 'workers = 3' in out
        assert 'source token: ✗ missing' in out

    def test_config_set_invalid(self, tmp_path, capsys):
        assert cli.main(['--config-dir', str(tmp_path), 'config', '--set', 'workers', 'chunk_size=7']) == 1
        out = capsys.readouterr().out
        assert "Invalid format 'workers'" in out
        assert 'chunk_size' in out

    def test_sync_without_tokens(self, tmp_path, capsys):
        status = cli.main(['--config-dir', str(tmp_path), '--log-level', 'ERROR', 'sync'])

        assert status == 1
        assert 'No token for the source account' in capsys.readouterr().out

    def test_no_command(self, tmp_path):
        assert cli.main([]) == 1

    def test_sync_with_dead_token(self, tmp_path, capsys):
        config = Config(tmp_path)
        config.save_token('source', {'access_token': 'old', 'expires_at': 0})
        config.save_token('destination', {'access_token': 'old', 'expires_at': 0})

        status = cli.main(['--config-dir', str(tmp_path), '--log-level', 'ERROR', 'sync'])

        assert status == 1
        assert 'No refresh token available' in capsys.readouterr().out

    @pytest.mark.parametrize('override', [
        ['--workers', '-1'],
        ['--workers', '0'],
        ['--source', 'Photos'],
        ['--dest', '/Backup/../etc'],
        ['--max-attempts', '-5'],
    ])
    def test_sync_rejects_invalid_overrides(self, tmp_path, capsys, override):
        status = cli.main(['--config-dir', str(tmp_path), '--log-level', 'ERROR', 'sync'] + override)

        assert status == 1
        out = capsys.readouterr().out
        assert out.startswith('Error: ')
        assert 'No token' not in out

    def test_option_or_config(self):
        assert cli.option_or_config('workers', None, 5) == 5
        assert cli.option_or_config('workers', 8, 5) == 8
        assert cli.option_or_config('dest_path', '/Backup/', '/') == '/Backup'
        with pytest.raises(ValueError, match='workers'):
            cli.option_or_config('workers', 99, 5)
