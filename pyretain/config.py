# pyretain/config.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import importlib.resources as ir
import logging
import os

from .errors import ConfigError, TargetResolutionError
from .rt import resolve_type

_log = logging.getLogger("pyretain.config")

_CONFIG_NAMES = ("config.toml", "config.yaml", "config.yml")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# ------------------ Context model ------------------

@dataclass(frozen=True)
class ConfigContext:
    """In-memory representation of the layered configuration."""
    raw: Dict[str, Any]               # full layered mapping with sections (defaults/scan/...)
    project_root: Path                # resolved project root (if any), else CWD
    source_path: Optional[Path]       # project-level config file path, if found (else None)

# ---------- File discovery ----------

def _first_existing(paths: list[Path]) -> Optional[Path]:
    for p in paths:
        if p.is_file():
            return p
    return None

def _find_project_config(start: Path) -> Optional[Path]:
    """
    Return nearest '.pyretain/config.{toml,yaml,yml}' walking upward from 'start'.
    """
    cur = start.resolve()
    for p in [cur, *cur.parents]:
        cand = _first_existing([p / ".pyretain" / n for n in _CONFIG_NAMES])
        if cand:
            _log.info("project config: %s", cand)
            return cand
    return None

def _find_user_config() -> Optional[Path]:
    """
    User-level precedence:
      1) $PYRETAIN_CONFIG            (exact path)
      2) $XDG_CONFIG_HOME/pyretain/config.{toml,yaml,yml}
      3) ~/.config/pyretain/config.{toml,yaml,yml}
      4) ~/.pyretain/config.{toml,yaml,yml}
    """
    env_path = os.getenv("PYRETAIN_CONFIG")
    if env_path:
        env_cand = Path(env_path).expanduser()
        if env_cand.is_file():
            _log.info("user config via PYRETAIN_CONFIG=%s", env_cand)
            return env_cand
        _log.warning("PYRETAIN_CONFIG=%s does not point to a file; ignoring.", env_path)

    xdg_home = os.getenv("XDG_CONFIG_HOME")
    if xdg_home:
        cand = _first_existing([Path(xdg_home) / "pyretain" / n for n in _CONFIG_NAMES])
        if cand:
            _log.info("user config via XDG: %s", cand)
            return cand

    for base in (Path.home() / ".config" / "pyretain", Path.home() / ".pyretain"):
        cand = _first_existing([base / n for n in _CONFIG_NAMES])
        if cand:
            _log.info("user config: %s", cand)
            return cand

    return None

# ---------- Parsers ----------

def _load_toml_text(txt: str) -> Dict[str, Any]:
    try:
        import tomllib  # Python >= 3.11
    except ModuleNotFoundError:
        import tomli as tomllib  # 3.10
    try:
        return tomllib.loads(txt)
    except Exception as exc:
        _log.warning("Failed to parse TOML: %s", exc)
        return {}

def _load_yaml_text(txt: str) -> Dict[str, Any]:
    import yaml  # PyYAML

    try:
        data = yaml.safe_load(txt) or {}
    except Exception as exc:
        _log.warning("Failed to parse YAML: %s", exc)
        return {}
    if not isinstance(data, dict):
        _log.warning("YAML root is not a mapping; ignoring.")
        return {}
    return data

def _parse_config_file(path: Path) -> Dict[str, Any]:
    txt = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix == ".toml":
        return _load_toml_text(txt) or {}
    if suffix in (".yaml", ".yml"):
        return _load_yaml_text(txt) or {}
    _log.warning("Unknown config extension '%s' for %s; ignoring.", suffix, path)
    return {}

# ---------- Merging & coercion ----------

def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge two dicts: values in 'b' override 'a'; nested dicts are merged recursively.
    """
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out

def _coerce_bool(key: str, v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str) and v.strip().lower() in ("1", "true", "yes", "on"):
        return True
    if isinstance(v, str) and v.strip().lower() in ("0", "false", "no", "off", ""):
        return False
    if isinstance(v, int):
        return bool(v)
    raise ConfigError(f"{key}: expected a boolean, got {v!r}")

def _coerce_types(d: Dict[str, Any]) -> Dict[str, Any]:
    """
    Coerce known fields so downstream code gets stable types.
      - Bools: expand_namespaces
      - Lists[str]: scalar_types
      - Upper-case level name: log_level
    """
    out = dict(d)

    if "expand_namespaces" in out and out["expand_namespaces"] is not None:
        out["expand_namespaces"] = _coerce_bool("expand_namespaces", out["expand_namespaces"])

    if "scalar_types" in out:
        v = out["scalar_types"]
        if v is None:
            out["scalar_types"] = []
        elif isinstance(v, str):
            out["scalar_types"] = [v]
        else:
            try:
                out["scalar_types"] = [str(x) for x in v]
            except TypeError as exc:
                raise ConfigError(f"scalar_types: expected a list of dotted names, got {v!r}") from exc

    if "log_level" in out and out["log_level"] is not None:
        level = str(out["log_level"]).upper()
        if level not in _LOG_LEVELS:
            raise ConfigError(f"log_level: unknown level {out['log_level']!r}")
        out["log_level"] = level

    return out

def _effective(section: str, raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    effective = deep_merge(raw['defaults'] or {}, raw[section] or {}), then coerced.
    """
    eff = _deep_merge(raw.get("defaults", {}) or {}, raw.get(section, {}) or {})
    eff = _coerce_types(eff)
    _log.info("Effective config for [%s]: %s", section, eff if eff else "{}")
    return eff

# ---------- Public API ----------

def load_layered_config(start: Optional[Path] = None) -> ConfigContext:
    """
    Layered load:
      base = packaged defaults (pyretain/default_config.toml)
      base <- user-level config (if any)
      base <- nearest project config from `start` (if any)
    """
    # 1) Packaged
    base: Dict[str, Any] = {}
    try:
        txt = ir.files("pyretain").joinpath("default_config.toml").read_text(encoding="utf-8")
        base = _load_toml_text(txt) or {}
    except OSError as exc:
        _log.info("No packaged defaults available: %s", exc)

    # 2) User-level
    user_cfg_path = _find_user_config()
    if user_cfg_path:
        try:
            base = _deep_merge(base, _parse_config_file(user_cfg_path))
        except OSError as exc:
            _log.warning("Failed to read user config %s: %s", user_cfg_path, exc)

    # 3) Project-level
    source_path = None
    project_root = Path.cwd().resolve()
    proj_cfg_path = _find_project_config((start or Path.cwd()).resolve())
    if proj_cfg_path:
        try:
            base = _deep_merge(base, _parse_config_file(proj_cfg_path))
        except OSError as exc:
            _log.warning("Failed to read project config %s: %s", proj_cfg_path, exc)
        source_path = proj_cfg_path
        project_root = proj_cfg_path.parent.parent

    return ConfigContext(raw=base, project_root=project_root, source_path=source_path)

def effective_section(ctx: ConfigContext, section: str) -> Dict[str, Any]:
    return _effective(section, ctx.raw)

# ---------- Typed settings ----------

@dataclass(frozen=True)
class ScanSettings:
    """Scanner knobs resolved from the [scan] section."""
    expand_namespaces: bool = False
    scalar_types: Tuple[type, ...] = ()
    log_level: str = "INFO"

    @classmethod
    def from_section(cls, eff: Dict[str, Any]) -> "ScanSettings":
        eff = _coerce_types(eff)
        types_: list[type] = []
        for name in eff.get("scalar_types") or []:
            try:
                types_.append(resolve_type(name))
            except TargetResolutionError as exc:
                raise ConfigError(f"scalar_types: {exc}") from exc
        return cls(
            expand_namespaces=bool(eff.get("expand_namespaces", False)),
            scalar_types=tuple(types_),
            log_level=eff.get("log_level") or "INFO",
        )

def load_scan_settings(start: Optional[Path] = None) -> ScanSettings:
    ctx = load_layered_config(start)
    return ScanSettings.from_section(effective_section(ctx, "scan"))
