# ================================================================
# File     : module_loader.py
# Purpose  : Dynamically load and execute report modules
# Notes    : Modules live under modules/<provider>/ and expose
#            run(snapshot, args). Provides discovery and run-all.
# ================================================================

import importlib
import pathlib
import traceback
from typing import Any, Dict, List, Optional

from core.utils import fncPrintMessage

MODULES_ROOT = pathlib.Path(__file__).resolve().parent.parent / "modules"


# ================================================================
# Function: fncLoadModule
# Purpose : Dynamically import a module based on provider and name
# Notes   : Returns the imported module or None if not found
# ================================================================
def fncLoadModule(provider: str, module_name: str):
    mod_path = f"modules.{provider}.{module_name}"
    try:
        mod = importlib.import_module(mod_path)
    except ModuleNotFoundError:
        fncPrintMessage(f"Module not found: {provider}/{module_name}", "error")
        return None
    except ImportError as ex:
        fncPrintMessage(f"Failed to import {provider}/{module_name}: {ex}", "error")
        return None
    fncPrintMessage(f"Loaded module: {mod_path}", "debug")
    return mod


# ================================================================
# Function: fncRunModule
# Purpose : Execute a loaded module's main 'run' function
# Notes   : Expects each module to define 'run(snapshot, args)';
#           failures come back as {"error": str}
# ================================================================
def fncRunModule(provider: str, module_name: str, snapshot, args) -> Any:
    mod = fncLoadModule(provider, module_name)
    if not (mod and hasattr(mod, "run")):
        fncPrintMessage(f"Module {module_name} missing 'run' function.", "warn")
        return None
    try:
        fncPrintMessage(f"Starting module: {provider}/{module_name}", "info")
        result = mod.run(snapshot, args)
    except Exception as ex:
        fncPrintMessage(f"Module {module_name} raised an exception: {ex}", "error")
        fncPrintMessage(traceback.format_exc(), "debug")
        return {"error": str(ex)}
    fncPrintMessage(f"Module complete: {provider}/{module_name}", "success")
    return result


# ================================================================
# Function: fncDiscoverModules
# Purpose : Discover available modules for a provider
# Notes   : Ignores __init__.py and files starting with '_'
# ================================================================
def fncDiscoverModules(provider: str) -> List[str]:
    base = MODULES_ROOT / provider
    if not base.is_dir():
        fncPrintMessage(f"No modules directory for provider '{provider}' (expected: {base})", "warn")
        return []

    mods = [
        p.stem for p in sorted(base.iterdir())
        if p.is_file() and p.suffix == ".py" and not p.name.startswith("_")
    ]
    fncPrintMessage(f"Discovered modules for {provider}: {mods}", "debug")
    return mods


# ================================================================
# Function: fncRunAllModules
# Purpose : Run every discovered module for a provider in sequence
# Notes   : Returns { module_name: result_or_error }; skip_list
#           entries come back as {"skipped": True}
# ================================================================
def fncRunAllModules(provider: str, snapshot, args, skip_list: Optional[List[str]] = None) -> Dict[str, Any]:
    skip_list = skip_list or []
    results: Dict[str, Any] = {}
    modules = fncDiscoverModules(provider)

    if not modules:
        fncPrintMessage(f"No modules to run for provider '{provider}'", "warn")
        return results

    fncPrintMessage(f"Running all modules for {provider} (count={len(modules)})", "info")

    for mod_name in modules:
        if mod_name in skip_list:
            fncPrintMessage(f"Skipping module (skip-list): {mod_name}", "debug")
            results[mod_name] = {"skipped": True}
            continue
        results[mod_name] = fncRunModule(provider, mod_name, snapshot, args)

    fncPrintMessage("Completed running all modules.", "success")
    return results
