from pathlib import Path

from promptmemo.configuration import load_runtime_configuration


def _write_override(home: Path, content: str) -> None:
    cfg_dir = home / "config"
    cfg_dir.mkdir(parents=True, exist_ok=True)
    (cfg_dir / "local.yml").write_text(content)


def test_invalid_types_raise_diagnostics(tmp_path: Path):
    home = tmp_path / "home"
    home.mkdir()
    _write_override(
        home,
        """
        gitlab:
          timeout: "soon"
        """,
    )

    bundle = load_runtime_configuration(home)

    assert bundle.status == "invalid"
    assert any("timeout" in diag.message for diag in bundle.diagnostics)
    assert bundle.merged["gitlab"]["timeout"] == 15


def test_boolean_is_not_accepted_as_number(tmp_path: Path):
    home = tmp_path / "home"
    home.mkdir()
    _write_override(
        home,
        """
        gitlab:
          timeout: true
        """,
    )

    bundle = load_runtime_configuration(home)

    assert bundle.status == "invalid"


def test_numeric_project_id_is_accepted(tmp_path: Path):
    home = tmp_path / "home"
    home.mkdir()
    _write_override(
        home,
        """
        gitlab:
          project_id: 4321
        """,
    )

    bundle = load_runtime_configuration(home)

    assert bundle.status == "ready"
    assert bundle.merged["gitlab"]["project_id"] == 4321


def test_unknown_keys_warn(tmp_path: Path):
    home = tmp_path / "home"
    home.mkdir()
    _write_override(
        home,
        """
        mystery:
          value: 1
        """,
    )

    bundle = load_runtime_configuration(home)

    assert any("Unknown configuration key" in diag.message for diag in bundle.diagnostics)
