"""Tests for meta validation and classification."""

import pytest

from plugin_broker.errors import (
    InvalidSpecError,
    MissingApiVersionError,
    MissingTypeError,
    UnknownApiVersionError,
    UnknownTypeError,
)
from plugin_broker.model import PluginMeta
from plugin_broker.validation import classify_metas, validate_meta, validate_metas


def make_meta(**overrides) -> PluginMeta:
    data = {
        "apiVersion": "v2",
        "id": "a/b/1",
        "type": "Che Plugin",
        "spec": {"containers": [{"name": "c", "image": "i"}]},
    }
    data.update(overrides)
    return PluginMeta.model_validate(data)


def make_extension(**spec) -> PluginMeta:
    return make_meta(type="VS Code extension", spec={"extensions": ["https://x/e.vsix"], **spec})


def test_valid_server_plugin():
    validate_meta(make_meta())


def test_valid_extension_without_container():
    validate_meta(make_extension())


def test_missing_api_version():
    with pytest.raises(MissingApiVersionError):
        validate_meta(make_meta(apiVersion=""))


def test_unknown_api_version():
    with pytest.raises(UnknownApiVersionError) as exc_info:
        validate_meta(make_meta(apiVersion="v1"))
    assert exc_info.value.value == "v1"


def test_missing_type():
    with pytest.raises(MissingTypeError):
        validate_meta(make_meta(type=""))


def test_unknown_type():
    with pytest.raises(UnknownTypeError) as exc_info:
        validate_meta(make_meta(type="Eclipse plugin"))
    assert exc_info.value.plugin_type == "Eclipse plugin"


def test_server_plugin_with_extensions():
    meta = make_meta(spec={"extensions": ["https://x/e.vsix"], "containers": [{"name": "c"}]})
    with pytest.raises(InvalidSpecError, match="spec.extensions"):
        validate_meta(meta)


def test_server_plugin_without_containers():
    with pytest.raises(InvalidSpecError, match="spec.containers"):
        validate_meta(make_meta(spec={}))


def test_extension_without_extensions():
    with pytest.raises(InvalidSpecError, match="must not be empty"):
        validate_meta(make_meta(type="Theia plugin", spec={}))


def test_extension_with_two_containers():
    meta = make_extension(containers=[{"name": "a"}, {"name": "b"}])
    with pytest.raises(InvalidSpecError, match="more than 1 container"):
        validate_meta(meta)


def test_extension_with_endpoints():
    meta = make_extension(endpoints=[{"name": "e", "targetPort": 4000}])
    with pytest.raises(InvalidSpecError, match="endpoints"):
        validate_meta(meta)


def test_validate_metas_first_failure_wins():
    metas = [make_meta(), make_meta(id="bad/type/1", type="Unknown"), make_meta(apiVersion="")]
    with pytest.raises(UnknownTypeError):
        validate_metas(metas)


def test_classify_preserves_order():
    editor = make_meta(id="eclipse/che-theia/next", type="Che Editor")
    java = make_extension()
    plugin = make_meta(id="eclipse/exec/1")
    theia = make_meta(id="x/theia/1", type="theia PLUGIN", spec={"extensions": ["https://x/t.theia"]})

    server, extensions = classify_metas([editor, java, plugin, theia])

    assert [m.id for m in server] == ["eclipse/che-theia/next", "eclipse/exec/1"]
    assert [m.id for m in extensions] == ["a/b/1", "x/theia/1"]
