import pytest

from fairsplit.utils.parse import command_args, parse_amount, parse_id, parse_usernames, split_pipe_args


@pytest.mark.parametrize("text, expected", [("30", 30.0), ("30.5", 30.5), ("30,50", 30.5), (" 1 000 ", 1000.0)])
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "1.234", "1e3", "-5", "0"])
def test_parse_amount_rejects(text):
    with pytest.raises(ValueError):
        parse_amount(text)


def test_parse_amount_flags():
    assert parse_amount("-5", allow_negative=True) == -5.0
    assert parse_amount("0", allow_zero=True) == 0.0


def test_parse_id():
    assert parse_id("#12") == 12
    assert parse_id(" 7 ") == 7
    assert parse_id("x1") is None


def test_command_args():
    assert command_args("/pay@fairsplit_bot 5 | @bob") == "5 | @bob"
    assert command_args("/balance") == ""


def test_split_pipe_args():
    assert split_pipe_args("/addexpense Ужин | 90 | food") == ["Ужин", "90", "food"]
    assert split_pipe_args("/addexpense") == []


def test_parse_usernames():
    assert parse_usernames("@alice bob @alice x1 @c") == ["alice", "bob"]
