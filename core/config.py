# ================================================================
# File     : config.py
# Purpose  : Configuration management for PimPoodle
# Notes    : JSON file under ~/.pimpoodle; env vars then CLI flags
#            override what is on disk
# ================================================================

import pathlib
from typing import Any, Optional

from core.utils import fncPrintMessage, fncEnsureFolder, fncReadJSON, fncWriteJSON, fncLoadEnv
from engine.models import Visibility

DEFAULT_HOME = pathlib.Path.home() / ".pimpoodle"


# ================================================================
# Function: fncDefaultConfig
# Purpose : Return a default configuration dictionary
# Notes   : Called when config file does not exist
# ================================================================
def fncDefaultConfig() -> dict:
    return {
        "version": "1.0",
        "pimpoodle_home": str(DEFAULT_HOME),
        "reports_dir": str(DEFAULT_HOME / "reports"),
        "debug": False,
        "dashboard": {
            "expiring_window_days": 7,
            "top_limit": 10,
            "privileged_only": False,
        },
        "visibility": {
            "directoryRoles": True,
            "pimGroups": True,
            "unmanagedGroups": True,
        },
        "export": {
            "sections": ["rolePolicies", "accessRights", "groupPolicies"],
        },
    }


# ================================================================
# Function: fncInitConfig
# Purpose : Create or load configuration file
# Notes   : Ensures base folder exists; returns full config dict
# ================================================================
def fncInitConfig(config_path: Optional[str] = None) -> dict:
    path = pathlib.Path(config_path or DEFAULT_HOME / "config.json")

    fncEnsureFolder(path.parent)

    if not path.exists():
        fncPrintMessage(f"No config found at {path}. Creating default...", "warn")
        cfg = fncDefaultConfig()
        fncWriteJSON(str(path), cfg)
        return fncApplyEnvOverrides(cfg)
    return fncLoadConfig(str(path))


# ================================================================
# Function: fncLoadConfig
# Purpose : Load configuration file and apply environment overrides
# Notes   : Missing keys are filled from the defaults
# ================================================================
def fncLoadConfig(config_path: str) -> dict:
    on_disk = fncReadJSON(config_path)
    cfg = fncDefaultConfig()
    for key, val in on_disk.items():
        if isinstance(val, dict) and isinstance(cfg.get(key), dict):
            cfg[key].update(val)
        else:
            cfg[key] = val

    fncPrintMessage(f"Loaded configuration from {config_path}", "debug")
    return fncApplyEnvOverrides(cfg)


def _env_int(name: str, current: Any) -> Any:
    raw = fncLoadEnv(name)
    if raw is None:
        return current
    try:
        return int(raw)
    except ValueError:
        fncPrintMessage(f"Ignoring {name}={raw!r}: not a whole number", "warn")
        return current


# ================================================================
# Function: fncApplyEnvOverrides
# Purpose : Apply PIMPOODLE_* environment variables to the config
# Notes   : Useful in CI/CD or containers
# ================================================================
def fncApplyEnvOverrides(cfg: dict) -> dict:
    dash = cfg.setdefault("dashboard", {})
    dash["expiring_window_days"] = _env_int("PIMPOODLE_EXPIRING_WINDOW_DAYS", dash.get("expiring_window_days", 7))
    dash["top_limit"] = _env_int("PIMPOODLE_TOP_LIMIT", dash.get("top_limit", 10))
    cfg["reports_dir"] = fncLoadEnv("PIMPOODLE_REPORTS_DIR", cfg.get("reports_dir"))

    debug = fncLoadEnv("PIMPOODLE_DEBUG")
    if debug is not None:
        cfg["debug"] = debug.lower() in ("1", "true", "yes", "on")
    return cfg


# ================================================================
# Function: fncUpdateConfigField
# Purpose : Update a specific nested key in the config
# Notes   : Example: fncUpdateConfigField(cfg, "dashboard.top_limit", 5)
# ================================================================
def fncUpdateConfigField(cfg: dict, path: str, value) -> dict:
    parts = path.split(".")
    ref = cfg
    for key in parts[:-1]:
        ref = ref.setdefault(key, {})
    ref[parts[-1]] = value
    fncPrintMessage(f"Updated config field: {path} = {value}", "debug")
    return cfg


# ================================================================
# Function: fncGetSetting
# Purpose : Read a dotted config path with a default
# Notes   : fncGetSetting(cfg, "dashboard.top_limit", 10)
# ================================================================
def fncGetSetting(cfg: dict, path: str, default: Any = None) -> Any:
    cur: Any = cfg
    for part in path.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur[part]
        else:
            return default
    return cur


# ================================================================
# Function: fncApplyCliOverrides
# Purpose : Apply command-line flags to the loaded config
# Notes   : Only flags the user actually passed win over the file
# ================================================================
def fncApplyCliOverrides(cfg: dict, args) -> dict:
    if getattr(args, "debug", False):
        cfg["debug"] = True
    if getattr(args, "window_days", None) is not None:
        fncUpdateConfigField(cfg, "dashboard.expiring_window_days", args.window_days)
    if getattr(args, "top", None) is not None:
        fncUpdateConfigField(cfg, "dashboard.top_limit", args.top)
    if getattr(args, "privileged_only", False):
        fncUpdateConfigField(cfg, "dashboard.privileged_only", True)
    if getattr(args, "out", None):
        cfg["reports_dir"] = args.out

    hidden = {"roles": "directoryRoles", "groups": "pimGroups", "unmanaged": "unmanagedGroups"}
    for item in getattr(args, "hide", None) or []:
        key = hidden.get(item.strip().lower())
        if key is None:
            fncPrintMessage(f"Unknown --hide value '{item}' (use roles, groups, unmanaged)", "warn")
            continue
        fncUpdateConfigField(cfg, f"visibility.{key}", False)
    return cfg


# ================================================================
# Function: fncVisibilityFromConfig
# Purpose : Build the workload visibility mask from config
# Notes   : Anything not set stays visible
# ================================================================
def fncVisibilityFromConfig(cfg: dict) -> Visibility:
    vis = cfg.get("visibility") or {}
    return Visibility(
        directory_roles=bool(vis.get("directoryRoles", True)),
        pim_groups=bool(vis.get("pimGroups", True)),
        unmanaged_groups=bool(vis.get("unmanagedGroups", True)),
    )


# ================================================================
# Function: fncIsDebug
# Purpose : Return whether debug mode is enabled in config
# Notes   : Convenience helper for modules
# ================================================================
def fncIsDebug(cfg: dict) -> bool:
    return bool(cfg.get("debug", False))
