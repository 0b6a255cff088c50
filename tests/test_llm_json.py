import pytest

from lfa_studio.llm_json import JsonParseError, clean_triple_backticks, load_fault_tolerant_json


class RecordingLlm:
    def __init__(self, answer: str) -> None:
        self.answer = answer
        self.messages = []

    def invoke(self, messages):
        self.messages.append(messages)
        return self.answer


def test_plain_json() -> None:
    assert load_fault_tolerant_json('{"isValid": true, "score": 82}') == {"isValid": True, "score": 82}


def test_code_fences_are_stripped() -> None:
    text = '```json\n{"score": 70, "issues": []}\n```'
    assert clean_triple_backticks(text).strip() == '{"score": 70, "issues": []}'
    assert load_fault_tolerant_json(text) == {"score": 70, "issues": []}


def test_comments_are_ignored() -> None:
    text = '{\n  // overall\n  "score": 55\n}'
    assert load_fault_tolerant_json(text) == {"score": 55}


def test_trailing_commas_are_repaired() -> None:
    assert load_fault_tolerant_json('{"strengths": ["clear", "costed",],}') == {"strengths": ["clear", "costed"]}


def test_unparseable_text_raises() -> None:
    with pytest.raises(JsonParseError):
        load_fault_tolerant_json("I could not assess this design.")


def test_non_text_raises() -> None:
    with pytest.raises(JsonParseError):
        load_fault_tolerant_json(None)


def test_llm_repair_is_the_last_resort() -> None:
    llm = RecordingLlm('{"overallScore": 40, "readiness": "draft"}')
    data = load_fault_tolerant_json("Sorry, I rated the overall score forty", llm=llm)
    assert data == {"overallScore": 40, "readiness": "draft"}
    assert len(llm.messages) == 1
    assert "overall score forty" in llm.messages[0][0].content


def test_llm_repair_not_called_when_parse_succeeds() -> None:
    llm = RecordingLlm("{}")
    load_fault_tolerant_json('{"a": 1}', llm=llm)
    assert llm.messages == []
