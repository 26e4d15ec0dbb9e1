"""
Tests for the settings loader.

Validates:
- The packaged defaults parse into module configs
- DATABASE_URL overrides the file without changing the checksum
- Unknown sections and unknown module keys are rejected
- Module config validation applies to loaded values
"""

from textwrap import dedent

import pytest
import yaml

from sourcing_config import (
    DEFAULT_SETTINGS_PATH,
    SourcingSettings,
    compute_checksum,
    load_settings,
    parse_settings,
)


def _write(tmp_path, text):
    path = tmp_path / "settings.yaml"
    path.write_text(dedent(text))
    return path


class TestDefaultSettings:

    def test_packaged_defaults(self):
        settings = load_settings(environ={})
        assert settings.database.url == "sqlite:///sourcing.db"
        assert settings.logging.level == "INFO"
        assert settings.requisition.number_prefix == "PR"
        assert settings.rfq.max_reminders == 3
        assert settings.rfq.reminder_interval_days == 3
        assert settings.quotation.pending_review_statuses == ("pending_review",)
        assert settings.quotation.inbox_account == "purchase"

    def test_checksum_matches_file(self):
        with open(DEFAULT_SETTINGS_PATH) as f:
            data = yaml.safe_load(f)
        assert load_settings(environ={}).checksum == compute_checksum(data)

    def test_settings_built_in_code_have_no_checksum(self):
        settings = SourcingSettings()
        assert settings.checksum == ""
        assert settings.rfq.default_validity_days == 30


class TestLoadSettings:

    def test_values_from_file(self, tmp_path):
        path = _write(tmp_path, """
            database:
              url: postgresql://sourcing@db/sourcing
              pool_size: 12
            rfq:
              max_reminders: 1
              reminder_interval_days: 5
            quotation:
              send_acknowledgment: false
        """)
        settings = load_settings(path, environ={})
        assert settings.database.url == "postgresql://sourcing@db/sourcing"
        assert settings.database.pool_size == 12
        assert settings.rfq.max_reminders == 1
        assert settings.rfq.reminder_interval_days == 5
        assert settings.quotation.send_acknowledgment is False
        # Sections left out keep their defaults
        assert settings.requisition.number_prefix == "PR"

    def test_database_url_from_environment(self, tmp_path):
        path = _write(tmp_path, """
            database:
              url: sqlite:///local.db
        """)
        plain = load_settings(path, environ={})
        overridden = load_settings(path, environ={"DATABASE_URL": "sqlite://"})
        assert overridden.database.url == "sqlite://"
        assert overridden.checksum == plain.checksum

    def test_empty_file(self, tmp_path):
        settings = load_settings(_write(tmp_path, ""), environ={})
        assert settings.rfq.max_reminders == 3
        assert settings.checksum == compute_checksum({})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml", environ={})

    def test_settings_load_is_logged(self, captured_logs):
        load_settings(environ={"DATABASE_URL": "sqlite://"})
        (record,) = [r for r in captured_logs() if r["message"] == "settings_loaded"]
        assert record["database_url_overridden"] is True


class TestParseSettings:

    def test_unknown_section(self):
        with pytest.raises(ValueError, match="reporting"):
            parse_settings({"reporting": {}})

    def test_unknown_module_key(self):
        with pytest.raises(TypeError):
            parse_settings({"rfq": {"reminder_every": 2}})

    def test_module_validation_applies(self):
        with pytest.raises(ValueError):
            parse_settings({"rfq": {"default_validity_days": 0}})

    def test_checksum_is_order_independent(self):
        assert compute_checksum({"a": 1, "b": {"c": 2}}) == compute_checksum({"b": {"c": 2}, "a": 1})
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
