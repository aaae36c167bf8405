import pytest

from conftest import make_entry
from set_splitter.classify import ComponentNameResolver, SetClassifier, base_title


classifier = SetClassifier()
resolver = ComponentNameResolver()


@pytest.mark.parametrize("title,expected", [
    ("Embroidered Set", True),
    ("Co-ord SET in linen", True),
    ("Sunset Maxi Dress", True),  # substring match, pinned as-is
    ("Cotton Kurta", False),
    ("", False),
])
def test_is_set_is_a_substring_test(title, expected):
    assert classifier.is_set(make_entry(1, title)) is expected


@pytest.mark.parametrize("title,body,count", [
    ("Three Piece Lehenga Set - dupatta included", "", 3),
    ("Kurta Set", "A lovely 4-piece outfit", 4),
    ("Two piece co-ord set", "", 2),
    ("Kurta Set", "", 2),
    ("3 piece and 2 piece set", "", 3),
])
def test_piece_count(title, body, count):
    assert classifier.parse_piece_count(make_entry(1, title, body_html=body)) == count


def test_defaults_when_no_keywords():
    entry = make_entry(1, "Embroidered Set")
    assert resolver.resolve(entry, 2) == ["Top", "Bottom"]
    assert resolver.resolve(entry, 3) == ["Top", "Bottom", "Dupatta"]
    assert resolver.resolve(entry, 4) == ["Top", "Bottom", "Dupatta", "Accessory"]


def test_keywords_follow_dictionary_order_not_text_order():
    entry = make_entry(1, "Palazzo and Kurta Set")
    assert resolver.resolve(entry, 2) == ["Top", "Bottom"]


def test_keywords_fill_from_defaults():
    entry = make_entry(1, "Lehenga Set")
    assert resolver.resolve(entry, 3) == ["Lehenga", "Top", "Bottom"]


def test_keywords_read_through_markup():
    entry = make_entry(1, "Festive Set", body_html="<ul><li>Jacket</li><li>Trousers</li></ul>")
    assert resolver.find_categories(entry) == ["bottom", "jacket"]


def test_resolver_is_deterministic():
    entry = make_entry(1, "Kurta Set with Dupatta", body_html="<p>sharara</p>")
    assert all(resolver.resolve(entry, 3) == resolver.resolve(entry, 3) for _ in range(5))


def test_base_title_drops_set_word():
    assert base_title("Embroidered  Kurta Set") == "Embroidered Kurta"
    assert base_title("Sunset Dress") == "Sunset Dress"
