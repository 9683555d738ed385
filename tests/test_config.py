"""
Tests for settings loading, the predefined catalog and logging setup.
"""
import logging

import pytest

from corpus_sync import ContentType, Settings, configure_logging, load_catalog, load_settings
from corpus_sync.catalog import EMERGENCY_DATASET, PredefinedCatalog
from corpus_sync.config import CONFIG_ENV_VAR
from corpus_sync.exceptions import ConfigError, DataImportError


class TestLoadSettings:
    """Tests for YAML settings parsing."""

    def test_defaults(self, monkeypatch):
        """Without a source or env var the defaults are returned."""
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert load_settings() == Settings()

    def test_load_from_file(self, tmp_path):
        yaml_file = tmp_path / "settings.yaml"
        yaml_file.write_text("database_path: corpus.db\nseed_predefined: false\n")

        settings = load_settings(yaml_file)

        assert settings.database_path == "corpus.db"
        assert settings.seed_predefined is False
        assert settings.emergency_fallback is True

    def test_load_from_string(self):
        settings = load_settings("log_level: debug\ndefault_user: amelie\n")
        assert settings.log_level == "debug"
        assert settings.default_user == "amelie"

    def test_load_from_dict(self):
        settings = load_settings({"purge_legacy_ids": True})
        assert settings.purge_legacy_ids is True

    def test_env_var(self, tmp_path, monkeypatch):
        yaml_file = tmp_path / "env.yaml"
        yaml_file.write_text("catalog_path: /srv/catalog.yaml\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(yaml_file))
        assert load_settings().catalog_path == "/srv/catalog.yaml"

    def test_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "missing.yaml")

    def test_invalid_yaml(self):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings("database_path: [unclosed\nother: 1")

    def test_empty_yaml(self, tmp_path):
        yaml_file = tmp_path / "empty.yaml"
        yaml_file.write_text("")
        with pytest.raises(ConfigError, match="Empty"):
            load_settings(yaml_file)

    def test_non_mapping_root(self):
        with pytest.raises(ConfigError, match="mapping"):
            load_settings("- one\n- two\n")

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="Unknown setting"):
            load_settings({"colour": "blue"})

    def test_wrong_type(self):
        with pytest.raises(ConfigError, match="seed_predefined"):
            load_settings({"seed_predefined": "yes"})

    def test_bad_log_level(self):
        with pytest.raises(ConfigError, match="log level"):
            load_settings({"log_level": "chatty"})


class TestCatalog:
    """Tests for the predefined catalog."""

    def test_packaged_catalog(self):
        catalog = load_catalog()
        words = catalog.get(ContentType.WORDS)
        assert words
        assert all(w.is_predefined for w in words)
        assert "verb-1" in catalog.ids(ContentType.VERBS)
        numbers = catalog.get(ContentType.NUMBERS)
        assert all(n.category == "number" for n in numbers)
        sentences = {s.id: s for s in catalog.get(ContentType.SENTENCES)}
        assert sentences["sentence-1"].french == ("Comment allez-vous?", "Comment vas-tu?")
        assert sentences["sentence-2"].french == ("J'ai faim",)

    def test_catalog_from_file(self, tmp_path):
        yaml_file = tmp_path / "catalog.yaml"
        yaml_file.write_text(
            "words:\n"
            "  - id: word-1\n"
            "    english: sun\n"
            "    french: soleil\n"
        )
        catalog = load_catalog(yaml_file)
        assert len(catalog) == 1
        assert catalog.records(ContentType.WORDS)[0]["isPredefined"] is True

    def test_malformed_catalog_yaml(self, tmp_path):
        yaml_file = tmp_path / "catalog.yaml"
        yaml_file.write_text("words: [{id: word-1, english: sun\n")
        with pytest.raises(DataImportError, match="Invalid catalog file"):
            load_catalog(yaml_file)

    def test_record_without_id(self):
        with pytest.raises(DataImportError, match="stable id"):
            PredefinedCatalog.from_mapping({"words": [{"english": "sun", "french": "soleil"}]})

    def test_invalid_record(self):
        with pytest.raises(DataImportError, match="Invalid catalog"):
            PredefinedCatalog.from_mapping({"words": [{"id": "word-1", "english": "sun"}]})

    def test_duplicate_id(self):
        record = {"id": "word-1", "english": "sun", "french": "soleil"}
        with pytest.raises(DataImportError, match="Duplicate"):
            PredefinedCatalog.from_mapping({"words": [record, record]})

    def test_section_must_be_list(self):
        with pytest.raises(DataImportError):
            PredefinedCatalog.from_mapping({"words": {"id": "word-1"}})

    def test_empty(self):
        catalog = PredefinedCatalog.empty()
        assert len(catalog) == 0
        assert catalog.ids(ContentType.SENTENCES) == frozenset()

    def test_emergency_dataset_is_predefined(self):
        for items in EMERGENCY_DATASET.values():
            assert all(item.is_predefined for item in items)


class TestLogging:

    def test_configure_logging_once(self):
        logger = logging.getLogger("corpus_sync")
        before = len(logger.handlers)
        configure_logging("debug")
        configure_logging("INFO")
        assert logger.level == logging.INFO
        assert len(logger.handlers) <= before + 1
