import pytest

from formbridge.errors import ValidationError
from formbridge.fields import hash_value, process_fields
from formbridge.logs import LogSink
from formbridge.site_config import PropertyConfig


def test_missing_required_fields_are_listed_in_declaration_order():
    config = PropertyConfig(required_fields=("name", "email", "message"))
    with pytest.raises(ValidationError) as excinfo:
        process_fields({"name": "A"}, "comments", config)
    assert excinfo.value.missing_fields == ["email", "message"]


def test_default_required_fields_apply_without_config(timeline_fields):
    fields = dict(timeline_fields)
    del fields["email"]
    with pytest.raises(ValidationError) as excinfo:
        process_fields(fields, "timeline", None)
    assert excinfo.value.missing_fields == ["email"]


def test_allowed_fields_drop_everything_else():
    config = PropertyConfig(required_fields=("name",), allowed_fields=("message",))
    processed = process_fields({"name": "A", "message": "hi", "spam": "x"}, "comments", config)
    assert processed == {"name": "A", "message": "hi"}


def test_unrestricted_without_allowed_fields(timeline_fields):
    processed = process_fields({**timeline_fields, "extra": "1"}, "timeline", None)
    assert processed["extra"] == "1"


def test_md5_transform_is_applied():
    config = PropertyConfig(required_fields=("email",), transforms={"email": "md5"})
    processed = process_fields({"email": " A@B.com "}, "comments", config)
    assert processed["email"] == hash_value("a@b.com")
    assert len(processed["email"]) == 32


def test_unknown_transform_leaves_value_unchanged():
    logs = LogSink()
    config = PropertyConfig(required_fields=(), transforms={"email": "rot13"})
    processed = process_fields({"email": "a@b.com"}, "comments", config, logs)
    assert processed["email"] == "a@b.com"
    assert any("Unknown transform" in entry for entry in logs.entries)


def test_hash_is_deterministic_and_case_and_whitespace_insensitive():
    digests = {hash_value("A@B.com"), hash_value(" a@b.com "), hash_value("a@b.com"), hash_value("a@b.com")}
    assert len(digests) == 1


def test_sha256_transform_kind():
    assert hash_value(" X ", "sha256") == hash_value("x", "sha256")
    assert len(hash_value("x", "sha256")) == 64
