"""
Command line front end.

    quasi latex "sqrt(x^2 + y^2)"
    quasi deriv --wrt t "sin(t) * t"
    quasi subset --data rows.yaml "age >= 18 & city == 'Oslo'"
    quasi html                      # interactive
"""
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from quasi.quasi_interpreter import STRICT, WARN
from quasi.quasi_runtime import ExpressionRunner, ExecutionResult, available_dsls

USAGE = "usage: quasi <dsl> [--strict|--warn] [--wrt NAME] [--data FILE] [expression]"


def read_line(prompt: str) -> str:
    return input(prompt)


def _parse_args(argv: List[str]):
    options: Dict[str, Any] = {}
    rest: List[str] = []
    it = iter(argv)
    for arg in it:
        if arg == "--strict":
            options["strict"] = STRICT
        elif arg == "--warn":
            options["strict"] = WARN
        elif arg in ("--wrt", "--data"):
            value = next(it, None)
            if value is None:
                raise ValueError(f"{arg} needs a value")
            options[arg[2:]] = value
        elif arg.startswith("--"):
            raise ValueError(f"unknown option {arg}")
        else:
            rest.append(arg)
    return options, rest


def _load_data(path: str) -> List[Dict[str, Any]]:
    # JSON is a subset of YAML, so one loader covers both.
    text = Path(path).read_text(encoding="utf-8")
    rows = yaml.safe_load(text) or []
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise ValueError(f"{path} must hold a list of records")
    return rows


def format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return yaml.safe_dump(value, sort_keys=False).rstrip()


def _report(result: ExecutionResult) -> bool:
    """Print a result; returns False on error."""
    for effect in result.side_effects:
        if effect.get('topics') == ['warning']:
            print(f"warning: {effect.get('message', '')}", file=sys.stderr)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return False
    print(format_value(result.value))
    return True


def repl(runner: ExpressionRunner) -> None:
    print(f"quasi {runner.dsl}")
    print("Type 'exit' or press Ctrl+D to quit.")
    while True:
        try:
            line = read_line(">> ").strip()
        except EOFError:
            print("\nExiting.")
            break
        if not line:
            continue
        if line == "exit":
            break
        _report(runner.run(line))


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] in ("-h", "--help"):
        print(USAGE)
        print(f"dsls: {', '.join(available_dsls())}")
        return 0 if argv else 1

    dsl, *rest = argv
    try:
        options, words = _parse_args(rest)
        if dsl != "deriv" and "wrt" in options:
            raise ValueError("--wrt only applies to deriv")
        if "data" in options:
            if dsl != "subset":
                raise ValueError("--data only applies to subset")
            options["data"] = _load_data(options["data"])
        runner = ExpressionRunner(dsl, **options)
    except (ValueError, OSError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not words:
        repl(runner)
        return 0
    return 0 if _report(runner.run(" ".join(words))) else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nExiting.")
