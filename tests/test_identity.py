"""Tests for gallery identity and temporary id templates."""

import pytest

from gallery_manager.exceptions import TemplateParseError
from gallery_manager.services.identity import (
    GalleryIdentity,
    OwnerRef,
    RequestContext,
    owner_primary_key,
    parse_template,
    render_template,
)

from conftest import Post


class TestTemplates:
    """render_template / parse_template pair."""

    def test_render_substitutes_known_placeholders(self):
        result = render_template("{a}-{b}", {"a": "x", "b": "7"})
        assert result == "x-7"

    def test_render_keeps_unknown_placeholders(self):
        assert render_template("{a}-{missing}", {"a": "x"}) == "x-{missing}"

    def test_parse_extracts_index(self):
        values = {"temporaryPrefix": "temp", "combineId": "abc"}
        captured = parse_template(
            "{temporaryPrefix}-{temporaryIndex}-{combineId}",
            values,
            {"temporaryIndex": r"\d+"},
            "temp-12-abc",
        )
        assert captured == {"temporaryIndex": "12"}

    def test_parse_rejects_other_session(self):
        values = {"temporaryPrefix": "temp", "combineId": "abc"}
        with pytest.raises(TemplateParseError):
            parse_template(
                "{temporaryPrefix}-{temporaryIndex}-{combineId}",
                values,
                {"temporaryIndex": r"\d+"},
                "temp-12-other",
            )

    def test_parse_escapes_literal_values(self):
        values = {"combineId": "a.b"}
        with pytest.raises(TemplateParseError):
            parse_template("{temporaryIndex}-{combineId}", values, {"temporaryIndex": r"\d+"}, "1-axb")

    def test_parse_repeated_placeholder_must_match_itself(self):
        template = "{temporaryIndex}/{temporaryIndex}"
        assert parse_template(template, {}, {"temporaryIndex": r"\d+"}, "4/4") == {"temporaryIndex": "4"}
        with pytest.raises(TemplateParseError):
            parse_template(template, {}, {"temporaryIndex": r"\d+"}, "4/5")

    def test_parse_is_inverse_of_render(self):
        template = "{temporaryPrefix}_{temporaryIndex}_{sessionId}"
        values = {"temporaryPrefix": "tmp", "sessionId": "s1"}
        raw = render_template(template, dict(values, temporaryIndex="305"))
        assert parse_template(template, values, {"temporaryIndex": r"\d+"}, raw) == {"temporaryIndex": "305"}


class TestRequestContext:
    def test_combine_prefers_user(self):
        assert RequestContext(user_id="u1", session_id="s1").combine_id == "u1"

    def test_combine_falls_back_to_session(self):
        assert RequestContext(session_id="s1").combine_id == "s1"

    def test_missing_values_render_empty(self):
        assert RequestContext().template_values() == {"userId": "", "sessionId": "", "combineId": ""}


class TestGalleryIdentity:
    """Permanent and temporary identities."""

    def test_temporary_id_from_default_template(self):
        identity = GalleryIdentity(OwnerRef(), RequestContext(session_id="sess"), temporary_index="3")
        assert identity.current() == "temp-3-sess"

    def test_default_temporary_index(self):
        identity = GalleryIdentity(OwnerRef(), RequestContext(session_id="sess"))
        assert identity.temporary_index == "0"
        assert identity.current() == "temp-0-sess"

    def test_custom_template_with_user(self):
        identity = GalleryIdentity(
            OwnerRef(),
            RequestContext(user_id="8", session_id="sess"),
            temporary_prefix="draft",
            temporary_template="{temporaryPrefix}.{userId}.{temporaryIndex}",
            temporary_index="2",
        )
        assert identity.current() == "draft.8.2"

    def test_permanent_scalar_key(self):
        identity = GalleryIdentity(OwnerRef(primary_key=42), RequestContext(session_id="sess"))
        assert identity.current() == "42"
        assert not identity.is_temporary()

    def test_permanent_composite_key_uses_glue(self):
        identity = GalleryIdentity(OwnerRef(primary_key=(3, "en")), pk_glue=":")
        assert identity.current() == "3:en"

    def test_current_is_stable(self):
        identity = GalleryIdentity(OwnerRef(), RequestContext(session_id="sess"), temporary_index="5")
        assert identity.current() == identity.current() == identity.current()

    def test_set_temporary_id_reads_index(self):
        identity = GalleryIdentity(OwnerRef(), RequestContext(session_id="sess"))
        assert identity.set_temporary_id("temp-17-sess") is True
        assert identity.temporary_index == "17"
        assert identity.current() == "temp-17-sess"

    def test_set_temporary_id_failure_keeps_index(self):
        identity = GalleryIdentity(OwnerRef(), RequestContext(session_id="sess"), temporary_index="4")
        assert identity.set_temporary_id("42") is False
        assert identity.set_temporary_id("temp-17-other") is False
        assert identity.temporary_index == "4"

    def test_custom_index_filter(self):
        identity = GalleryIdentity(
            OwnerRef(),
            RequestContext(session_id="sess"),
            temporary_index_filter=r"[a-z]+",
        )
        assert identity.set_temporary_id("temp-widget-sess") is True
        assert identity.temporary_index == "widget"
        assert identity.set_temporary_id("temp-12-sess") is False

    def test_record_and_change_detection(self):
        owner = OwnerRef()
        identity = GalleryIdentity(owner, RequestContext(session_id="sess"), temporary_index="1")
        assert identity.recorded is None
        assert not identity.changed()

        identity.record()
        assert identity.recorded == "temp-1-sess"

        owner.primary_key = 9
        assert identity.changed()
        assert identity.recorded == "temp-1-sess"
        assert identity.current() == "9"


class TestOwnerPrimaryKey:
    """Primary keys of SQLAlchemy owners appear only once persisted."""

    async def test_transient_then_flushed(self, session):
        post = Post(title="draft")
        assert owner_primary_key(post) is None

        session.add(post)
        assert owner_primary_key(post) is None

        await session.flush()
        assert owner_primary_key(post) == post.id

    def test_plain_object(self):
        assert owner_primary_key(OwnerRef(primary_key="abc")) == "abc"
        assert owner_primary_key(object()) is None
