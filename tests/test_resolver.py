"""Tests for the search-directory module resolver."""

import pytest

from mod_injector.binary.resolver import ModuleResolver
from mod_injector.errors import StructuralMismatch
from tests.mod_fixtures import compile_source, write_fake_hook


class TestModuleResolver:

    def test_package_submodule(self, tmp_path):
        write_fake_hook(tmp_path)
        resolver = ModuleResolver([tmp_path])
        assert resolver.find('fakehook') == tmp_path / 'fakehook' / '__init__.py'
        assert resolver.find('fakehook.entry') == tmp_path / 'fakehook' / 'entry.py'

    def test_sourceless_module(self, tmp_path):
        compile_source("x = 1\n", tmp_path / 'only_bytecode.pyc')
        resolver = ModuleResolver([tmp_path])
        assert resolver.find('only_bytecode') == tmp_path / 'only_bytecode.pyc'

    def test_source_preferred_over_bytecode(self, tmp_path):
        compile_source("x = 1\n", tmp_path / 'both.pyc', keep_source=True)
        resolver = ModuleResolver([tmp_path])
        assert resolver.find('both') == tmp_path / 'both.py'

    def test_search_order(self, tmp_path):
        first = tmp_path / 'first'
        second = tmp_path / 'second'
        write_fake_hook(first)
        write_fake_hook(second)
        resolver = ModuleResolver([second])
        resolver.add_search_directory(first)
        assert resolver.find('fakehook.entry') == second / 'fakehook' / 'entry.py'
        assert resolver.search_directories == [second, first]

    def test_duplicate_directories_ignored(self, tmp_path):
        resolver = ModuleResolver([tmp_path, tmp_path])
        assert resolver.search_directories == [tmp_path]

    def test_missing_module(self, tmp_path):
        resolver = ModuleResolver([tmp_path])
        assert resolver.find('nothing.here') is None
        assert resolver.find('') is None
        with pytest.raises(StructuralMismatch, match='cannot be resolved'):
            resolver.resolve('nothing.here')

    def test_does_not_use_sys_path(self, tmp_path):
        # pytest is importable in this process, but not from tmp_path.
        assert ModuleResolver([tmp_path]).find('pytest') is None

    def test_read_module(self, tmp_path):
        write_fake_hook(tmp_path)
        with ModuleResolver([tmp_path]).read_module('fakehook.entry') as module:
            assert module.find_type('LoaderEntry').has_method('begin_mod_loading')
