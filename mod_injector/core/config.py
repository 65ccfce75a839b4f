from pathlib import Path
from pydantic import BaseModel
import os
import sys
import yaml
from mod_injector import __version__
# Optionally load a config.env file so an operator can pin the defaults for
# their machine (log level, support libraries) without exporting variables.
try:
    from dotenv import load_dotenv
    # Allow explicit override of config file path
    cfg_override = os.getenv('MOD_INJECTOR_CONFIG_FILE')
    candidates = []
    if cfg_override:
        candidates.append(Path(cfg_override))
    candidates.append(Path.cwd() / 'config.env')

    for p in candidates:
        try:
            if p and p.exists():
                load_dotenv(str(p))
                break
        except Exception:
            continue
except Exception:
    # If python-dotenv isn't available or load fails, fall back to env vars
    pass

"""Central configuration.

Env vars:
  MOD_INJECTOR_LOG_LEVEL          - logging level for the patcher (default INFO)
  MOD_INJECTOR_SUPPORT_LIBRARIES  - comma separated packages staged next to the hook
  MOD_INJECTOR_PROFILE            - path to a host profile YAML file
  MOD_INJECTOR_MODULES_DIR        - override of the profile's modules directory
  MOD_INJECTOR_TARGET_MODULE      - override of the profile's target module file
  MOD_INJECTOR_INJECTION_SITE     - override of the profile's injection-site class
"""


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(',') if part.strip()]


class PlatformPaths(BaseModel):
    """Per-platform path templates. ``~`` is expanded at use time."""

    windows: str = ''
    macos: str = ''
    linux: str = ''

    def current(self) -> str:
        if sys.platform.startswith('win'):
            raw = self.windows
        elif sys.platform == 'darwin':
            raw = self.macos
        else:
            raw = self.linux
        return os.path.expanduser(raw) if raw else ''


class HostProfile(BaseModel):
    """Where things live inside one host installation."""

    name: str = 'Host Application'
    # Relative to the installation root.
    modules_dir: str = os.getenv('MOD_INJECTOR_MODULES_DIR', 'lib')
    target_module: str = os.getenv('MOD_INJECTOR_TARGET_MODULE', 'hostcore.pyc')
    # Dotted for nested classes, e.g. "Application.Runtime".
    injection_site: str = os.getenv('MOD_INJECTOR_INJECTION_SITE', 'Application')
    mods_dir: str = 'Mods'
    install_location: PlatformPaths = PlatformPaths(
        windows=r'C:\Program Files\Host Application',
        macos='~/Applications/Host Application',
        linux='~/.local/share/host-application',
    )
    save_location: PlatformPaths = PlatformPaths()

    def modules_path(self, install_root: Path) -> Path:
        return Path(install_root) / self.modules_dir

    def target_path(self, install_root: Path) -> Path:
        return self.modules_path(install_root) / self.target_module

    def mods_path(self, install_root: Path) -> Path:
        return Path(install_root) / self.mods_dir


def load_profile(path: Path | str | None) -> HostProfile:
    """Read a host profile from YAML; ``None`` yields the built-in defaults."""
    if not path:
        return HostProfile()
    try:
        data = yaml.safe_load(Path(path).read_text(encoding='utf-8')) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid host profile {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"host profile must be a mapping: {path}")
    return HostProfile(**data)


class Settings(BaseModel):
    app_name: str = 'Mod Injector'
    version: str = __version__
    # Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_level: str = os.getenv('MOD_INJECTOR_LOG_LEVEL', 'INFO')
    profile_path: str | None = os.getenv('MOD_INJECTOR_PROFILE')
    hook_package: str = 'basic_mod_loader'
    hook_module: str = 'basic_mod_loader.entry'
    hook_type: str = 'LoaderEntry'
    hook_method: str = 'begin_mod_loading'
    support_libraries: list[str] = _env_list('MOD_INJECTOR_SUPPORT_LIBRARIES', 'wrapt')

settings = Settings()
