from mqtt_ui_bridge.client.payload import decode_preview, is_likely_json, is_printable


def test_json_object_is_parsed():
    preview = decode_preview(b'{"temp": 21.5}')
    assert preview.is_json is True
    assert preview.json == {"temp": 21.5}
    assert preview.is_text is True
    assert preview.size == 14


def test_json_content_type_enables_parsing_of_scalars():
    assert decode_preview(b"42").is_json is False
    preview = decode_preview(b"42", content_type="application/json")
    assert preview.is_json is True
    assert preview.json == 42


def test_broken_json_falls_back_to_text():
    preview = decode_preview(b"{not json}")
    assert preview.is_json is False
    assert preview.json is None
    assert preview.text == "{not json}"


def test_binary_payload_is_neither_text_nor_json():
    preview = decode_preview(bytes([0xFF, 0xFE, 0x00]))
    assert preview.is_text is False
    assert preview.is_json is False
    assert preview.text is None
    assert preview.size == 3


def test_control_characters_make_text_unprintable():
    preview = decode_preview(b"\x01\x02\x03ok")
    assert preview.is_text is False


def test_helpers():
    assert is_likely_json(b"[1]") is True
    assert is_likely_json(b"") is False
    assert is_printable("line\n\ttab\r") is True
    assert is_printable("") is False
