import json

from knowledge_interview.domain.models.interview_state import Difficulty
from knowledge_interview.domain.orchestration.workflow.instance_parser import parse_instances

from conftest import instances_json, make_instances


def test_malformed_json_fails_whole_attempt():
    result = parse_instances("Invalid JSON { malformed")

    assert result.ok is False
    assert "not valid JSON" in result.error
    assert result.instances == []


def test_object_instead_of_array_fails():
    result = parse_instances(json.dumps({"question": "x", "answer": "y"}))

    assert result.ok is False
    assert "array" in result.error


def test_valid_reply_is_parsed():
    result = parse_instances(instances_json(3))

    assert result.ok is True
    assert len(result.instances) == 3
    first = result.instances[0]
    assert first.tags == ["react", "node.js", "deployment"]
    assert first.category == "devops"
    assert first.difficulty == Difficulty.INTERMEDIATE
    assert first.confidence_score == 80


def test_code_fences_are_stripped():
    result = parse_instances(f"```json\n{instances_json(2)}\n```")

    assert result.ok is True
    assert len(result.instances) == 2


def test_invalid_candidates_are_dropped():
    candidates = make_instances(4)
    candidates[0]["answer"] = "Too short."
    candidates[1]["tags"] = []
    candidates[1]["category"] = ""
    candidates[2]["question"] = "Why?"

    result = parse_instances(json.dumps(candidates))

    assert result.ok is True
    assert len(result.instances) == 1
    assert result.dropped == 3


def test_category_alone_is_enough_labelling():
    candidates = make_instances(1)
    candidates[0]["tags"] = []

    result = parse_instances(json.dumps(candidates))

    assert result.ok is True
    assert result.instances[0].category == "devops"


def test_no_valid_candidates_fails():
    candidates = make_instances(2)
    for candidate in candidates:
        candidate["answer"] = "short"

    result = parse_instances(json.dumps(candidates))

    assert result.ok is False
    assert result.dropped == 2


def test_minimum_lengths_are_configurable():
    candidates = make_instances(1)
    candidates[0]["answer"] = "A fairly short but acceptable answer."

    assert parse_instances(json.dumps(candidates)).ok is False
    assert parse_instances(json.dumps(candidates), min_answer_length=10).ok is True


def test_whitespace_padding_does_not_satisfy_minimum_lengths():
    candidates = make_instances(2)
    candidates[0]["question"] = "   Why React?" + " " * 30
    candidates[1]["question"] = "  " + candidates[1]["question"] + "  "

    result = parse_instances(json.dumps(candidates))

    assert result.ok is True
    assert result.dropped == 1
    assert result.instances[0].question == candidates[1]["question"].strip()
