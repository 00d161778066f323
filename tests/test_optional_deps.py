import importlib
import types

import pytest


def test_import_without_optional_dependencies(monkeypatch):
    module = importlib.import_module("catchmap")

    from importlib import metadata as im

    def fake_version(name):
        if name in {"geopy"}:
            raise im.PackageNotFoundError
        return "9999"

    monkeypatch.setattr(im, "version", fake_version)

    with pytest.warns(RuntimeWarning, match="geopy"):
        reloaded = importlib.reload(module)

    assert isinstance(reloaded, types.ModuleType)
    assert hasattr(reloaded, "CatchmentEngine")


def test_import_requires_core_dependencies(monkeypatch):
    module = importlib.import_module("catchmap")

    from importlib import metadata as im

    def fake_version(name):
        if name in {"numpy", "sqlalchemy"}:
            raise im.PackageNotFoundError
        return "9999"

    monkeypatch.setattr(im, "version", fake_version)

    with pytest.raises(ImportError) as excinfo:
        importlib.reload(module)

    assert "numpy" in str(excinfo.value)
    assert "sqlalchemy" in str(excinfo.value)
