from pathlib import Path

import numidium.config as config_module
from numidium.config import Config


def test_load_prefers_local_numidium_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  model: mistral:7b\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    local_cfg = tmp_path / "numidium.yaml"
    local_cfg.write_text(
        (
            "model:\n"
            "  model: codellama:7b\n"
            "router:\n"
            "  stages: [pattern, llm_guided]\n"
            "  execution_threshold: 0.8\n"
        ),
        encoding="utf-8",
    )

    cfg = Config.load()

    assert cfg.model.model == "codellama:7b"
    assert cfg.router.stages == ["pattern", "llm_guided"]
    assert cfg.router.execution_threshold == 0.8


def test_load_falls_back_to_default_path_when_no_local(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  model: mistral:7b\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    cfg = Config.load()

    assert cfg.model.model == "mistral:7b"


def test_defaults_match_context_budget():
    cfg = Config()

    assert cfg.model.provider == "ollama"
    assert cfg.context.max_tokens == 8192
    assert cfg.context.compaction_threshold == 0.8
    assert cfg.context.keep_recent == 4
    assert cfg.router.stages == ["pattern", "classification", "llm_guided"]
    assert cfg.router.execution_threshold == 0.7
    assert cfg.tools.shell.timeout == 30
    assert cfg.permissions.auto_approve_safe is False


def test_env_overrides_nested_settings(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")
    monkeypatch.setenv("NUMIDIUM_ROUTER__CLASSIFICATION_MODEL", "qwen2.5:0.5b")
    monkeypatch.setenv("NUMIDIUM_PERMISSIONS__AUTO_APPROVE_SAFE", "true")

    cfg = Config.load()

    assert cfg.router.classification_model == "qwen2.5:0.5b"
    assert cfg.permissions.auto_approve_safe is True


def test_save_round_trips_through_yaml(tmp_path: Path):
    cfg = Config()
    cfg.model.model = "deepseek-coder:6.7b"
    cfg.tools.shell.allowed_commands = ["ls", "git"]
    target = tmp_path / "nested" / "config.yaml"

    cfg.save(target)
    loaded = Config.from_yaml(target)

    assert loaded.model.model == "deepseek-coder:6.7b"
    assert loaded.tools.shell.allowed_commands == ["ls", "git"]
