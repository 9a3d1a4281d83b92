import pytest
import yaml

from quasi import quasi_cli
from quasi.quasi_cli import main, format_value


def feed(monkeypatch, lines):
    it = iter(lines)

    def fake_read_line(prompt):
        try:
            return next(it)
        except StopIteration:
            raise EOFError

    monkeypatch.setattr(quasi_cli, "read_line", fake_read_line)


def test_no_arguments_prints_usage(capsys):
    assert main([]) == 1
    assert "usage: quasi" in capsys.readouterr().out


def test_help_exits_cleanly(capsys):
    assert main(["--help"]) == 0
    assert "latex" in capsys.readouterr().out


def test_one_shot_expression(capsys):
    assert main(["latex", "sqrt(x^2 + y^2)"]) == 0
    assert capsys.readouterr().out.strip() == "\\sqrt{x^2 + y^2}"


def test_expression_words_are_joined(capsys):
    assert main(["latex", "a", "+", "b"]) == 0
    assert capsys.readouterr().out.strip() == "a + b"


def test_deriv_with_wrt(capsys):
    assert main(["deriv", "--wrt", "t", "sin(t) * t"]) == 0
    assert capsys.readouterr().out.strip() == "sin(t) + t * cos(t)"


def test_error_goes_to_stderr(capsys):
    assert main(["latex", "a +"]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "ParseError" in captured.err


def test_strict_and_warn_flags(capsys):
    assert main(["latex", "--strict", "foo(x)"]) == 1
    assert "unknown operator: foo" in capsys.readouterr().err
    assert main(["latex", "--warn", "foo(x)"]) == 0
    captured = capsys.readouterr()
    assert captured.err.startswith("warning:")
    assert "\\mathtt{foo}" in captured.out


@pytest.mark.parametrize("argv", [
    ["latex", "--wrt", "t", "x"],
    ["latex", "--data", "rows.yaml", "x"],
    ["deriv", "--wrt"],
    ["latex", "--loud", "x"],
    ["cobol", "x"],
])
def test_bad_options(capsys, argv):
    assert main(argv) == 1
    assert capsys.readouterr().err.startswith("Error:")


def test_subset_reads_data_file(tmp_path, capsys):
    data = tmp_path / "rows.yaml"
    data.write_text(yaml.safe_dump([
        {'name': 'a', 'age': 30},
        {'name': 'b', 'age': 15},
    ]))
    assert main(["subset", "--data", str(data), "age > 18"]) == 0
    out = capsys.readouterr().out
    assert yaml.safe_load(out) == [{'name': 'a', 'age': 30}]


def test_missing_data_file(tmp_path, capsys):
    assert main(["subset", "--data", str(tmp_path / "nope.yaml"), "TRUE"]) == 1
    assert capsys.readouterr().err.startswith("Error:")


def test_repl_runs_lines_until_exit(monkeypatch, capsys):
    feed(monkeypatch, ["x^2", "", "a +", "exit", "never"])
    assert main(["latex"]) == 0
    captured = capsys.readouterr()
    assert "quasi latex" in captured.out
    assert "x^2" in captured.out
    assert "ParseError" in captured.err


def test_repl_exits_on_eof(monkeypatch, capsys):
    feed(monkeypatch, [])
    assert main(["html"]) == 0
    assert "Exiting." in capsys.readouterr().out


def test_format_value():
    assert format_value("text") == "text"
    assert format_value([{'a': 1}]) == "- a: 1"


@pytest.mark.parametrize("content", ["a: 1\n", "42\n", "- 1\n- 2\n"])
def test_data_file_must_hold_records(tmp_path, capsys, content):
    data = tmp_path / "rows.yaml"
    data.write_text(content)
    assert main(["subset", "--data", str(data), "TRUE"]) == 1
    assert "must hold a list of records" in capsys.readouterr().err
