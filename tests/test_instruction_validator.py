import pytest

from coach_vision.validator import instruction_keyword, matches_instruction


@pytest.mark.parametrize(
    "instruction, keyword",
    [
        ("Tap Continue", "Continue"),
        ('Tap "Get Started".', "Started"),
        ("Open", "Open"),
        ("  tap   Install!  ", "Install"),
        ("Tap the + button", "button"),
        ("", ""),
        ("Tap", "Tap"),
        ("'?!.", ""),
    ],
)
def test_instruction_keyword(instruction, keyword):
    assert instruction_keyword(instruction) == keyword


def test_keyword_is_capped():
    assert instruction_keyword("Tap " + "x" * 50) == "x" * 32


def test_match_is_case_insensitive_containment():
    assert matches_instruction("Tap Continue", "CONTINUE")
    assert matches_instruction("Tap Continue", "Continue to setup")
    assert matches_instruction('Tap "Get Started".', "Get started")


def test_prominent_wrong_button_is_rejected():
    assert not matches_instruction("Tap Open", "Install")
    assert not matches_instruction("Tap Continue", "")


def test_instruction_without_keyword_is_accepted():
    assert matches_instruction("", "Install")
    assert matches_instruction('"..."', "anything")
