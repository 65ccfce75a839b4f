import sys
import pathlib
import types
import pytest

# Ensure the project root (containing the packages) is on sys.path
PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from basic_mod_loader import entry as loader_entry
from basic_mod_loader.loader import ModLoader, MODULE_PREFIX
from basic_mod_loader.state import LoadState
from mod_injector.locations import locate_package
from mod_injector.patcher import stage
from tests.mod_fixtures import HOST_MODULE, build_host_install, drop_modules


@pytest.fixture
def host_install(tmp_path):
    install = build_host_install(tmp_path)
    yield install
    drop_modules(HOST_MODULE)


@pytest.fixture
def staged_hook(host_install):
    """The real loader package copied into the host module directory."""
    staged = stage(locate_package('basic_mod_loader'), [], host_install.modules_dir)
    return staged[0]


@pytest.fixture
def sentinels(monkeypatch):
    """Shared event log mods can append to via ``import mod_sentinels``."""
    module = types.ModuleType('mod_sentinels')
    module.events = []
    monkeypatch.setitem(sys.modules, 'mod_sentinels', module)
    return module.events


@pytest.fixture
def mods_root(tmp_path, monkeypatch):
    # Loaders add their sibling finder to sys.meta_path.
    monkeypatch.setattr(sys, 'meta_path', list(sys.meta_path))
    root = tmp_path / 'Mods'
    root.mkdir()
    yield root
    drop_modules(MODULE_PREFIX)
    # Plain-name aliases created by sibling imports.
    for name, module in list(sys.modules.items()):
        if getattr(module, '__name__', '').startswith(MODULE_PREFIX + '.'):
            sys.modules.pop(name, None)


@pytest.fixture
def fresh_loader(mods_root):
    return ModLoader(mods_root, LoadState())


@pytest.fixture
def fresh_default_loader(monkeypatch, mods_root):
    """Point ``LoaderEntry`` at a new loader so each test starts not_loaded."""
    loader = ModLoader(mods_root, LoadState())
    monkeypatch.setattr(loader_entry, '_default_loader', loader)
    return loader
