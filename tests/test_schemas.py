from __future__ import annotations

import pytest

from pixelmerge.schemas import BuildLinkRequest, RenderRequest, is_valid_template_id


def test_render_request_requires_template_id():
    with pytest.raises(ValueError):
        RenderRequest(tokens={"first_name": "Amy"})


def test_render_request_defaults_tokens():
    assert RenderRequest(templateId="tmpl1").tokens == {}
    assert RenderRequest(templateId="tmpl1", tokens=None).tokens == {}


@pytest.mark.parametrize("template_id", ["tmpl1", "spring-sale_2024", "a.b", "0"])
def test_template_id_accepts_path_safe_values(template_id):
    assert is_valid_template_id(template_id)


@pytest.mark.parametrize("template_id", ["", "..", "../etc", "a/b", "-lead", "a b"])
def test_template_id_rejects_unsafe_values(template_id):
    assert not is_valid_template_id(template_id)
    with pytest.raises(ValueError):
        RenderRequest(templateId=template_id)


def test_build_link_request_requires_strings():
    with pytest.raises(ValueError):
        BuildLinkRequest(templateId="tmpl1", platform="generic")

    with pytest.raises(ValueError):
        BuildLinkRequest(base="https://x.test", templateId="tmpl1", platform=5)


def test_build_link_request_normalizes_base():
    payload = BuildLinkRequest(base=" https://x.test/ ", templateId="tmpl1", platform="generic")

    assert payload.base == "https://x.test"


def test_build_link_request_rejects_relative_base():
    with pytest.raises(ValueError):
        BuildLinkRequest(base="x.test", templateId="tmpl1", platform="generic")
