"""Tests for follow-up query reformulation."""

from studybot import ChatTurn, GenerationError, QueryReformulator

from .conftest import FakeGenerator

HISTORY = [
    ChatTurn(role="user", content="What are the library opening hours?"),
    ChatTurn(role="assistant", content="The library is open 9h-22h Mon-Fri."),
]


def test_no_rewrite_without_history():
    generator = FakeGenerator(["should not be used"])
    reformulator = QueryReformulator(generator)

    assert reformulator.reformulate("And on Saturday?", []) == "And on Saturday?"
    assert generator.calls == []


def test_no_rewrite_for_long_message():
    generator = FakeGenerator()
    reformulator = QueryReformulator(generator, word_threshold=10)
    message = "Could you please tell me the opening hours of the library on Saturday afternoon"

    assert reformulator.reformulate(message, HISTORY) == message
    assert generator.calls == []


def test_short_follow_up_is_rewritten():
    generator = FakeGenerator(["  What are the library opening hours on Saturday?  "])
    reformulator = QueryReformulator(generator, word_threshold=10)

    result = reformulator.reformulate("And on Saturday?", HISTORY)

    assert result == "What are the library opening hours on Saturday?"
    prompt = generator.calls[0][0]["content"]
    assert "Human: What are the library opening hours?" in prompt
    assert "Assistant: The library is open 9h-22h Mon-Fri." in prompt
    assert "Follow Up Input: And on Saturday?" in prompt


def test_rewrite_uses_its_own_sampling():
    generator = FakeGenerator(["rewritten"])
    reformulator = QueryReformulator(generator)

    captured = []
    original_complete = generator.complete

    def _complete(messages, sampling=None):
        captured.append(sampling)
        return original_complete(messages, sampling)

    generator.complete = _complete
    reformulator.reformulate("And Saturday?", HISTORY)

    assert captured[0] is reformulator.sampling
    assert captured[0].top_p == 1.0


def test_empty_rewrite_falls_back_to_original():
    reformulator = QueryReformulator(FakeGenerator(["   "]))
    assert reformulator.reformulate("And Saturday?", HISTORY) == "And Saturday?"


def test_failure_falls_back_to_original():
    class FailingGenerator(FakeGenerator):
        def complete(self, messages, sampling=None):
            msg = "service down"
            raise GenerationError(msg)

    reformulator = QueryReformulator(FailingGenerator())
    assert reformulator.reformulate("And Saturday?", HISTORY) == "And Saturday?"


def test_prompt_history_is_limited():
    reformulator = QueryReformulator(FakeGenerator(), history_turns=1)
    prompt = reformulator.build_prompt("And Saturday?", HISTORY)

    assert "Human:" not in prompt
    assert "Assistant: The library is open" in prompt
