# tests/test_config.py
import shutil
from pathlib import Path

import pytest
import yaml

from sheetbender import config
from sheetbender.config import ConfigManager, get_export, get_setting, set_config_file
from sheetbender.defaults import settings
from sheetbender.exporter import ExportJob, Exporter


@pytest.fixture
def test_config_file():
    """Path to test config file."""
    return Path(__file__).parent / 'test.yml'


@pytest.fixture
def writable_config(test_config_file, tmp_path):
    """Copy of the test config that tests may modify."""
    target = tmp_path / 'sheetbender.yml'
    shutil.copy(test_config_file, target)
    return target


@pytest.fixture
def config_manager(test_config_file):
    """Create ConfigManager instance with test config."""
    return ConfigManager(str(test_config_file))


class TestConfigManager:
    """Test ConfigManager class functionality."""

    def test_init_with_valid_config(self, config_manager):
        assert 'settings' in config_manager.config
        assert 'exports' in config_manager.config

    def test_init_with_missing_file(self):
        with pytest.raises(FileNotFoundError):
            ConfigManager('/nonexistent/path/sheetbender.yml')

    def test_settings_applied_globally(self, config_manager):
        """Loading a config merges its settings into the global settings."""
        assert settings['default_timezone'] == '+08:00'
        assert settings['default_chunk_size'] == 50

    def test_nested_settings_merged(self, config_manager):
        """The logging block is merged key by key, not replaced."""
        assert settings['logging']['level'] == 'DEBUG'
        assert settings['logging']['retention_days'] == 14
        assert settings['logging']['directory'] == './logs'

    def test_get_setting_dot_notation(self, config_manager):
        assert config_manager.get_setting('logging.level') == 'DEBUG'
        assert config_manager.get_setting('logging.missing', 'x') == 'x'
        assert config_manager.get_setting('default_timezone') == '+08:00'

    def test_set_setting_saves(self, writable_config):
        manager = ConfigManager(writable_config)
        manager.set_setting('logging.console', False)
        assert settings['logging']['console'] is False

        saved = yaml.safe_load(writable_config.read_text())
        assert saved['settings']['logging']['console'] is False
        assert list(saved)[0] == 'settings'
        assert 'team_avatar' in saved['exports']

    def test_get_export(self, config_manager):
        export = config_manager.get_export('team_avatar')
        assert export['collection'] == 'users'
        assert export['chunk_size'] == 2
        assert export['find']['filter'] == {'age': {'$lte': 14}}

    def test_get_export_missing(self, config_manager):
        with pytest.raises(ValueError, match="Export 'ember_island' not found"):
            config_manager.get_export('ember_island')

    def test_list_exports(self, config_manager):
        assert sorted(config_manager.list_exports()) == ['benders_by_age', 'team_avatar']

    def test_add_export(self, writable_config):
        manager = ConfigManager(writable_config)
        manager.add_export('firebenders', {'collection': 'users', 'columns': ['name'],
                                           'find': {'filter': {'nation': 'fire'}}})
        reloaded = ConfigManager(writable_config)
        assert reloaded.list_exports() == ['benders_by_age', 'firebenders', 'team_avatar']

    def test_add_export_invalid(self, writable_config):
        with pytest.raises(ValueError):
            ConfigManager(writable_config).add_export('broken', {'columns': ['name']})


class TestConfigValidation:
    """Malformed files are rejected with ValueError."""

    @pytest.mark.parametrize('content', [
        '- just\n- a list\n',
        'settings: [1, 2]\n',
        'exports: [1, 2]\n',
        'exports:\n  broken:\n    columns: [name]\n',
        'exports:\n  broken:\n    collection: users\n    columns: []\n',
        'settings: {unclosed\n',
    ])
    def test_invalid(self, tmp_path, content):
        path = tmp_path / 'bad.yml'
        path.write_text(content)
        with pytest.raises(ValueError):
            ConfigManager(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'empty.yml'
        path.write_text('')
        assert ConfigManager(path).config == {}

    def test_search_locations(self, tmp_path, monkeypatch, writable_config):
        """sheetbender.yml in the working directory is found."""
        monkeypatch.chdir(tmp_path)
        assert ConfigManager().config_file == Path('sheetbender.yml')


class TestModuleFunctions:

    def test_get_setting_uses_global_config(self, test_config_file):
        set_config_file(test_config_file)
        assert get_setting('default_chunk_size') == 50

    def test_get_setting_falls_back_to_defaults(self, test_config_file):
        set_config_file(test_config_file)
        assert get_setting('label_delimiter') == ','
        assert get_setting('logging.format').startswith('%(asctime)s')
        assert get_setting('not.a.setting', 'fallback') == 'fallback'

    def test_get_setting_without_config(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(Path, 'home', lambda: tmp_path)
        assert get_setting('default_chunk_size') == 200
        assert config._config_manager is None

    def test_get_export_with_file(self, test_config_file):
        assert get_export('benders_by_age', config_file=test_config_file)['find'] == {'sort': 'age'}

    def test_get_export_without_config(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(Path, 'home', lambda: tmp_path)
        with pytest.raises(FileNotFoundError):
            get_export('team_avatar')

    def test_export_from_config(self, test_config_file, catalog, list_source):
        """A named export runs straight from the config file."""
        set_config_file(test_config_file)
        job = ExportJob.from_dict(get_export('team_avatar'), catalog)
        rows = Exporter(job, list_source).run()
        assert rows[0] == ['Bender', 'Post', 'Team']
        assert rows[1] == ['Katara', 'Healing water', 'Team Avatar']
        assert [row[0] for row in rows[1:]].count('Aang') == 6
