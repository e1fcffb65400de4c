from __future__ import annotations

import json
from pathlib import Path

import pytest

from applyflow.core.config import Settings
from applyflow.profile import load_candidate

ROOT = Path(__file__).resolve().parents[1]


class TestSettings:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        settings = Settings.from_yaml(tmp_path / "missing.yaml")

        assert settings.workflow.max_steps == 500
        assert settings.browser.cdp_port is None
        assert settings.api.api_keys == ["test-api-key"]

    def test_partial_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(
            "browser:\n"
            "  cdp_port: 9222\n"
            "workflow:\n"
            "  max_concurrent_runs: 4\n"
            "  submit_applications: false\n"
        )

        settings = Settings.from_yaml(path)

        assert settings.browser.cdp_port == 9222
        assert settings.workflow.max_concurrent_runs == 4
        assert settings.workflow.submit_applications is False
        assert settings.workflow.max_pages_per_target == 10

    def test_empty_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("")

        assert Settings.from_yaml(path).storage.jobs_path == Path("data/jobs.json")

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APPLYFLOW_API__ENVIRONMENT", "production")

        assert Settings().api.is_production

    def test_bundled_settings_load(self) -> None:
        settings = Settings.from_yaml(ROOT / "config" / "settings.yaml")

        assert settings.api.port == 3000
        assert settings.storage.discovery_urls_path == Path("config/discovery_urls.csv")


class TestLoadCandidate:
    def test_yaml(self) -> None:
        candidate = load_candidate(ROOT / "config" / "candidate.yaml")

        assert candidate["personal"]["email"]

    def test_json(self, tmp_path: Path) -> None:
        path = tmp_path / "candidate.json"
        path.write_text(json.dumps({"name": "Jane Smith"}))

        assert load_candidate(path) == {"name": "Jane Smith"}

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "candidate.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ValueError, match="mapping"):
            load_candidate(path)
