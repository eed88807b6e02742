import logging
from datetime import timedelta

import pytest

from tracemesh.cli import find_config_file, load_config, main
from tracemesh.config import AppConfig, CompactorConfig
from tracemesh.distributor_config import DistributorConfig, default_receivers
from tracemesh.querysharding import FrontendConfig


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_find_config_file_with_equals():
    assert find_config_file(["-target=all", "-config.file=a.yaml"]) == "a.yaml"


def test_find_config_file_separate_value():
    assert find_config_file(["--config.file", "b.yaml", "-target", "querier"]) == "b.yaml"


def test_find_config_file_absent():
    assert find_config_file(["-target=all"]) == ""


def test_load_config_defaults():
    assert load_config([]) == AppConfig()


def test_yaml_round_trip(tmp_path):
    original = AppConfig(
        target="querier",
        http_api_prefix="/tempo",
        storage_backend="s3",
        distributor=DistributorConfig(receivers=default_receivers()),
        frontend=FrontendConfig(query_shards=4),
        compactor=CompactorConfig(block_retention=timedelta(hours=2)),
    )
    path = _write(tmp_path, original.to_yaml())
    assert load_config([f"-config.file={path}"]) == original


def test_default_yaml_round_trip(tmp_path):
    path = _write(tmp_path, AppConfig().to_yaml())
    assert load_config(["-config.file", path]) == AppConfig()


def test_flags_override_file(tmp_path):
    path = _write(tmp_path, "target: querier\n")
    config = load_config([f"-config.file={path}", "-target=distributor"])
    assert config.target == "distributor"


def test_bool_flag_without_value():
    config = load_config(["-multitenancy.enabled"])
    assert config.multitenancy_is_enabled() is True


def test_duration_flag():
    config = load_config(["-compactor.compaction.block-retention=1h"])
    assert config.compactor.block_retention == timedelta(hours=1)


def test_unknown_yaml_field_rejected(tmp_path):
    path = _write(tmp_path, "nonsense: 1\n")
    with pytest.raises(ValueError, match="failed to parse configFile"):
        load_config([f"-config.file={path}"])


def test_wrong_yaml_type_rejected(tmp_path):
    path = _write(tmp_path, "server:\n  http_listen_port: abc\n")
    with pytest.raises(ValueError, match="http_listen_port"):
        load_config([f"-config.file={path}"])


def test_missing_file_rejected(tmp_path):
    missing = str(tmp_path / "missing.yaml")
    with pytest.raises(OSError, match="failed to read configFile"):
        load_config([f"-config.file={missing}"])


def test_main_version(capsys):
    assert main(["-version"]) == 0
    assert capsys.readouterr().out.startswith("tempo, version")


def test_main_reports_config_failure(tmp_path, capsys):
    missing = str(tmp_path / "missing.yaml")
    assert main([f"-config.file={missing}"]) == 1
    assert "failed parsing config" in capsys.readouterr().err


def test_main_rejects_unknown_target():
    assert main(["-target=bogus"]) == 1


def test_main_rejects_bad_query_shards(tmp_path):
    path = _write(tmp_path, "query_frontend:\n  query_shards: 1\n")
    assert main([f"-config.file={path}"]) == 1


def test_main_starts_default_target(caplog):
    caplog.set_level(logging.INFO)
    assert main([]) == 0
    assert "Starting Tempo" in caplog.text


def test_main_warns_for_internal_target(caplog):
    caplog.set_level(logging.INFO)
    assert main(["-target=server"]) == 0
    assert "internal module" in caplog.text