"""
Small helpers behind the admin routers.
"""
from types import SimpleNamespace

import pytest

from kaderlearn.routers.admin.audit import apply_changes
from kaderlearn.routers.admin.users import phone_variants


@pytest.mark.unit
class TestPhoneVariants:
    def test_local_number_adds_international(self):
        assert phone_variants("0812") == ["0812", "+62812"]

    def test_international_number_adds_local(self):
        assert phone_variants("+62812") == ["+62812", "0812"]

    def test_bare_country_code(self):
        assert phone_variants("62812") == ["62812", "0812", "+62812"]

    def test_other_text_is_kept_as_is(self):
        assert phone_variants("siti") == ["siti"]


@pytest.mark.unit
class TestApplyChanges:
    def test_only_changed_fields_are_reported(self):
        entity = SimpleNamespace(title="Lama", published=False)
        changes = apply_changes(entity, {"title": "Baru", "published": False})

        assert changes == {"title": {"old": "Lama", "new": "Baru"}}
        assert entity.title == "Baru"

    def test_unknown_fields_are_ignored(self):
        entity = SimpleNamespace(title="Lama")
        assert apply_changes(entity, {"nope": 1}) == {}
        assert not hasattr(entity, "nope")
