import pytest

from ritual.libs.json_utils import extract_json_block, loads_llm_json


def test_fenced_array_with_trailing_comma() -> None:
    blob = 'Here you go:\n```json\n[{"title": "Picnic",},]\n```'
    assert loads_llm_json(blob) == [{"title": "Picnic"}]


def test_prose_around_object() -> None:
    assert extract_json_block('Sure! {"a": 1} hope that helps') == '{"a": 1}'


@pytest.mark.parametrize("blob", ["", "no json here", "[{broken"])
def test_unusable_payload_raises_value_error(blob: str) -> None:
    with pytest.raises(ValueError):
        loads_llm_json(blob)
