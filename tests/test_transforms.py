import pytest

from dispatch_hub.mapping.transforms import apply_transform, format_address, full_name, phone_digits, phone_last10


def test_phone_digits_strips_separators():
    assert phone_digits("077-123-4567") == "0771234567"


def test_phone_last10_keeps_last_ten_digits():
    assert phone_last10("+962771234567") == "2771234567"


def test_phone_last10_short_number_is_kept_whole():
    assert phone_last10("12-34") == "1234"


@pytest.mark.parametrize("name", ["uppercase", "lowercase", "trim", "phone_digits", "phone_last10", "full_name", "format_address"])
def test_transforms_are_total_on_none(name):
    assert apply_transform(name, None) == ""


def test_case_and_trim():
    assert apply_transform("uppercase", "amman") == "AMMAN"
    assert apply_transform("lowercase", "AMMAN") == "amman"
    assert apply_transform("trim", "  Amman  ") == "Amman"


def test_full_name_from_object_and_string():
    assert full_name({"firstName": "Sara", "lastName": "Haddad"}) == "Sara Haddad"
    assert full_name({"first_name": "Sara"}) == "Sara"
    assert full_name("  Sara   Haddad ") == "Sara Haddad"


def test_format_address_skips_empty_parts():
    addr = {"street": "12 Rainbow St", "city": "Amman", "state": "", "zipCode": "11118", "country": "Jordan"}
    assert format_address(addr) == "12 Rainbow St, Amman, 11118, Jordan"


def test_unknown_transform_passes_value_through():
    assert apply_transform("reverse_words", "a b") == "a b"
    assert apply_transform(None, {"k": 1}) == {"k": 1}


def test_transform_name_is_case_insensitive():
    assert apply_transform(" Phone_Digits ", "(06) 555-01") == "0655501"
