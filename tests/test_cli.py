# tests/test_cli.py
from __future__ import annotations

import sys
import textwrap
import uuid
from pathlib import Path

import pytest

from pyretain.cli import EXIT_ERROR, EXIT_EXPECTATION_FAILED, EXIT_OK, main


def _write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s).strip() + "\n", encoding="utf-8")


@pytest.fixture()
def mymod(tmp_path: Path, monkeypatch):
    """A throwaway module with a leaky registry and a clean one."""
    name = f"leaky_{uuid.uuid4().hex[:8]}"
    code = """
    import weakref

    class Session:
        pass

    class Registry:
        def __init__(self):
            self.items = []

    _alive = Session()

    LEAKY = Registry()
    LEAKY.items.append(_alive)

    CLEAN = Registry()
    CLEAN.items.append(weakref.ref(_alive))

    def make_leaky():
        r = Registry()
        r.items.append(Session())
        return r
    """
    _write(tmp_path / f"{name}.py", code)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.delenv("PYRETAIN_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "path", list(sys.path))
    yield name
    sys.modules.pop(name, None)


def _run(argv):
    with pytest.raises(SystemExit) as ei:
        main(argv)
    return ei.value.code


def test_scan_clean_root_passes(mymod, tmp_path, caplog):
    code = _run(["scan", f"{mymod}.Session", f"{mymod}.CLEAN", "--additional-sys-path", str(tmp_path)])
    assert code == EXIT_OK
    assert any("is unreachable" in r.getMessage() for r in caplog.records)


def test_scan_leaky_root_fails(mymod, tmp_path, caplog):
    code = _run(["scan", f"{mymod}.Session", f"{mymod}.LEAKY", "--additional-sys-path", str(tmp_path)])
    assert code == EXIT_EXPECTATION_FAILED
    assert any("Found an instance of" in r.getMessage() for r in caplog.records)


def test_scan_expect_reachable_with_factory(mymod, tmp_path):
    code = _run([
        "scan", f"{mymod}.Session", f"{mymod}.make_leaky",
        "--call", "--expect", "reachable", "--additional-sys-path", str(tmp_path),
    ])
    assert code == EXIT_OK


def test_relative_sys_path_resolves_from_cwd(mymod):
    code = _run(["scan", f"{mymod}.Session", f"{mymod}.CLEAN", "--additional-sys-path", "."])
    assert code == EXIT_OK


def test_unknown_target_is_an_error(mymod, tmp_path, caplog):
    code = _run(["scan", f"{mymod}.Nope", f"{mymod}.CLEAN", "--additional-sys-path", str(tmp_path)])
    assert code == EXIT_ERROR
    assert any("Nope" in r.getMessage() for r in caplog.records)


def test_target_must_be_a_class(mymod, tmp_path):
    code = _run(["scan", f"{mymod}.LEAKY", f"{mymod}.CLEAN", "--additional-sys-path", str(tmp_path)])
    assert code == EXIT_ERROR


def test_call_requires_callable(mymod, tmp_path):
    code = _run(["scan", f"{mymod}.Session", f"{mymod}.CLEAN", "--call", "--additional-sys-path", str(tmp_path)])
    assert code == EXIT_ERROR


def test_bad_scalar_type_flag_is_config_error(mymod, tmp_path):
    code = _run([
        "scan", f"{mymod}.Session", f"{mymod}.CLEAN",
        "--scalar-type", "not_a_module_zzz.T", "--additional-sys-path", str(tmp_path),
    ])
    assert code == EXIT_ERROR


def test_missing_subcommand_is_usage_error():
    assert _run([]) == 2


def test_configure_logger_accepts_level_names():
    import logging

    from pyretain.logconf import configure_logger

    log = configure_logger("debug", name="pyretain.cli.test")
    assert log.name == "pyretain.cli.test"
    assert logging.getLogger("pyretain").level == logging.DEBUG
    configure_logger("no-such-level")
    assert logging.getLogger("pyretain").level == logging.WARNING
