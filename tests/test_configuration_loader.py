from pathlib import Path

from cfgsync.configuration import HOME_ENV, load_runtime_configuration, resolve_home_dir


def _write_override(home: Path, content: str) -> None:
    cfg_dir = home / "config"
    cfg_dir.mkdir(parents=True, exist_ok=True)
    (cfg_dir / "local.yml").write_text(content)


def test_defaults_apply_without_home(tmp_path: Path):
    bundle = load_runtime_configuration(tmp_path / "absent")

    assert bundle.status == "missing"
    assert bundle.merged["remote"]["repo"] == "cursor-sync"
    assert bundle.merged["sync"]["batch_size"] == 5
    assert any("remote.owner" in diag.message for diag in bundle.diagnostics)


def test_owner_override_makes_configuration_ready(tmp_path: Path):
    home = tmp_path / "home"
    _write_override(
        home,
        """
        remote:
          owner: octo
        sync:
          batch_size: 3
        """,
    )

    bundle = load_runtime_configuration(home)

    assert bundle.status == "ready"
    assert bundle.merged["remote"]["owner"] == "octo"
    assert bundle.merged["remote"]["token_env"] == "GITHUB_TOKEN"
    assert bundle.merged["sync"]["batch_size"] == 3
    assert home / "config" / "local.yml" in bundle.files_loaded


def test_invalid_types_raise_diagnostics(tmp_path: Path):
    home = tmp_path / "home"
    _write_override(
        home,
        """
        remote:
          owner: octo
        sync:
          batch_size: yes
        """,
    )

    bundle = load_runtime_configuration(home)

    assert bundle.status == "invalid"
    assert any("batch_size" in diag.message for diag in bundle.diagnostics)
    assert bundle.merged["sync"]["batch_size"] == 5


def test_batch_size_below_minimum_is_rejected(tmp_path: Path):
    home = tmp_path / "home"
    _write_override(home, "remote:\n  owner: octo\nsync:\n  batch_size: 0\n")

    bundle = load_runtime_configuration(home)

    assert bundle.status == "invalid"
    assert any("at least 1" in diag.message for diag in bundle.diagnostics)


def test_unknown_keys_warn(tmp_path: Path):
    home = tmp_path / "home"
    _write_override(
        home,
        """
        mystery:
          value: 1
        """,
    )

    bundle = load_runtime_configuration(home)

    assert any("Unknown configuration key" in diag.message for diag in bundle.diagnostics)


def test_broken_yaml_is_reported(tmp_path: Path):
    home = tmp_path / "home"
    _write_override(home, "remote: [\n")

    bundle = load_runtime_configuration(home)

    assert bundle.status == "invalid"
    assert any("Failed to parse" in diag.message for diag in bundle.diagnostics)


def test_resolve_home_dir_reads_environment(tmp_path: Path):
    assert resolve_home_dir({HOME_ENV: str(tmp_path)}) == tmp_path
    assert resolve_home_dir({}, default="~/.cfgsync") == Path("~/.cfgsync").expanduser()
