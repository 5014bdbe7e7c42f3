# backend/tests/unit/migration/test_resolution.py
import pytest

from tanker.core.resolution import OrderedResolver, Resolved, Unresolved
from tanker.migration import IdMapping, LegacyUserResolver, consolidate_users
from tanker.migration.resolution import normalize_phone
from tests.factories import make_customer, make_driver


def build(users, mapping=None):
    mapping = mapping or IdMapping()
    ids = iter(["p1", "p2", "p3", "p4"])
    people = consolidate_users(users, lambda: next(ids), mapping)
    return LegacyUserResolver(mapping, people), people


@pytest.mark.unit
class TestNormalizePhone:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("+91 98000-00001", "+919800000001"),
            ("(020) 2555 0000", "02025550000"),
            ("", None),
            (None, None),
            ("cust-1", None),
            ("01HV4ZK9Q3", None),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_phone(raw) == expected


@pytest.mark.unit
class TestOrderedResolver:
    def test_first_hit_wins(self):
        resolver = OrderedResolver([("a", lambda k: None), ("b", lambda k: "B"), ("c", lambda k: "C")])
        assert resolver.resolve("x") == Resolved(id="B", via="b")

    def test_miss_lists_every_strategy(self):
        resolver = OrderedResolver([("a", lambda k: None), ("b", lambda k: None)])
        assert resolver.resolve("x") == Unresolved(key="x", tried=("a", "b"))

    def test_empty_key_is_unresolved(self):
        resolver = OrderedResolver([("a", lambda k: "A")])
        assert isinstance(resolver.resolve(None), Unresolved)

    def test_requires_a_strategy(self):
        with pytest.raises(ValueError):
            OrderedResolver([])


@pytest.mark.unit
class TestLegacyUserResolver:
    def test_strategy_order(self):
        resolver, _ = build([make_customer()])
        assert resolver.strategies == ["id_mapping", "phone", "email"]

    def test_legacy_id_resolves_through_mapping(self):
        resolver, _ = build([make_customer(id="u1")])
        assert resolver.resolve("u1") == Resolved(id="p1", via="id_mapping")

    def test_phone_and_email_fallbacks(self):
        resolver, _ = build([make_customer(id="u1")])

        assert resolver.resolve("+91 98000 00001") == Resolved(id="p1", via="phone")
        assert resolver.resolve("ASHA@example.com") == Resolved(id="p1", via="email")
        assert isinstance(resolver.resolve("u9"), Unresolved)

    def test_shared_phone_is_never_used(self):
        resolver, _ = build(
            [
                make_customer(id="u1"),
                make_driver(id="u2", phone="+919800000001"),
            ]
        )

        assert "+919800000001" in resolver.ambiguous_phones
        assert isinstance(resolver.resolve("+919800000001"), Unresolved)
        assert resolver.resolve("ravi@example.com") == Resolved(id="p2", via="email")

    def test_same_person_sharing_a_phone_across_roles_is_not_ambiguous(self):
        resolver, _ = build(
            [make_customer(id="u1"), make_driver(id="u2", email="asha@example.com")]
        )
        assert resolver.ambiguous_phones == set()
        assert resolver.resolve("+919800000001") == Resolved(id="p1", via="phone")

    def test_people_that_failed_to_import_are_skipped(self):
        mapping = IdMapping()
        ids = iter(["p1"])
        people = consolidate_users([make_customer(id="u1")], lambda: next(ids), mapping)
        people[0].imported = False
        mapping.users.clear()

        resolver = LegacyUserResolver(mapping, people)

        assert isinstance(resolver.resolve("asha@example.com"), Unresolved)
