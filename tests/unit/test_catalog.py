import pytest

from streamtester.generators.catalog import FakerCatalog


def test_resolves_namespace_and_method(catalog):
    assert isinstance(catalog.resolve("internet.email")(), str)


def test_camel_case_and_snake_case_resolve_to_the_same_generator(catalog):
    assert catalog.resolve("person.firstName") == catalog.resolve("person.first_name")


@pytest.mark.parametrize(
    "path",
    [
        "person",
        "person.",
        ".first_name",
        "nosuch.method",
        "person.no_such_method",
        "person._private",
    ],
)
def test_unresolvable_paths(catalog, path):
    with pytest.raises(LookupError):
        catalog.resolve(path)


def test_list_types_contains_dotted_names(catalog):
    types = catalog.list_types()
    assert "person.first_name" in types
    assert "misc.uuid4" in types
    assert types == sorted(types)
    assert not any(name.split(".", 1)[1].startswith("_") for name in types)


def test_seed_makes_output_repeatable():
    first = FakerCatalog(seed=42)
    second = FakerCatalog(seed=42)

    assert [first.resolve("person.name")() for _ in range(3)] == [
        second.resolve("person.name")() for _ in range(3)
    ]
    assert first.random.random() == second.random.random()


def test_locale_is_honored():
    catalog = FakerCatalog(locale="de_DE", seed=1)
    assert catalog.faker.locales == ["de_DE"]
