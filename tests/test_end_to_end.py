"""
End-to-end: patch a host install, then start the host in a fresh interpreter.

The host is imported from its module directory exactly the way an
application would, so the staged loader copy (not this checkout) runs.
"""

import json
import os
import subprocess
import sys

import pytest

from mod_injector.cli import start_patching
from mod_injector.core.config import HostProfile
from tests.mod_fixtures import HOST_MODULE, SENTINEL_MOD, write_mod

HOST_SCRIPT = '''
import json, sys
sys.path.insert(0, sys.argv[1])
import {host}
from basic_mod_loader.entry import LoaderEntry
first = list({host}.EVENTS)
LoaderEntry.begin_mod_loading()
print(json.dumps({{
    "events": first,
    "after_second_call": list({host}.EVENTS),
    "loaded": LoaderEntry.is_loaded(),
    "loader_file": sys.modules["basic_mod_loader"].__file__,
}}))
'''.format(host=HOST_MODULE)


def _start_host(install, tmp_path):
    env = {k: v for k, v in os.environ.items() if k != 'BASIC_MOD_LOADER_MODS_DIR'}
    env.pop('PYTHONPATH', None)
    proc = subprocess.run(
        [sys.executable, '-c', HOST_SCRIPT, str(install.modules_dir)],
        cwd=str(tmp_path), env=env, capture_output=True, text=True, timeout=60,
    )
    assert proc.returncode == 0, proc.stderr
    return json.loads(proc.stdout.strip().splitlines()[-1]), proc.stderr


@pytest.fixture
def patched_install(host_install):
    start_patching(host_install.root, HostProfile(), out=lambda line: None)
    return host_install


class TestPatchedHost:
    """The host still starts, and mods run before the injection site's own code."""

    @pytest.mark.timeout(120)
    def test_empty_mods_folder(self, patched_install, tmp_path):
        result, _ = _start_host(patched_install, tmp_path)
        assert result['events'] == ['Application', 'Runtime']
        assert result['loaded'] is True
        assert result['loader_file'].startswith(str(patched_install.modules_dir))
        assert patched_install.mods_root.is_dir()

    @pytest.mark.timeout(120)
    def test_sentinel_mod_runs_once_before_site(self, patched_install, tmp_path):
        write_mod(patched_install.mods_root, 'Sentinel', {
            'sentinel.py': SENTINEL_MOD.format(host=HOST_MODULE, sentinel='SENTINEL'),
        })
        result, _ = _start_host(patched_install, tmp_path)
        assert result['events'] == ['SENTINEL', 'Application', 'Runtime']
        assert result['after_second_call'] == result['events']

    @pytest.mark.timeout(120)
    def test_broken_mod_does_not_stop_the_host(self, patched_install, tmp_path):
        write_mod(patched_install.mods_root, 'A_Broken', {'broken.py': 'raise RuntimeError("bad mod")\n'})
        write_mod(patched_install.mods_root, 'B_Good', {
            'good.py': SENTINEL_MOD.format(host=HOST_MODULE, sentinel='GOOD'),
        })
        result, stderr = _start_host(patched_install, tmp_path)
        assert result['events'] == ['GOOD', 'Application', 'Runtime']
        assert 'bad mod' in stderr

    @pytest.mark.timeout(120)
    def test_forced_repatch_still_runs_mods_once(self, patched_install, tmp_path):
        start_patching(patched_install.root, HostProfile(), force=True, out=lambda line: None)
        write_mod(patched_install.mods_root, 'Sentinel', {
            'sentinel.py': SENTINEL_MOD.format(host=HOST_MODULE, sentinel='SENTINEL'),
        })
        result, _ = _start_host(patched_install, tmp_path)
        assert result['events'].count('SENTINEL') == 1
