"""
Notify command template parsing
Splits an operator-written command line into arguments and substitutes %TOKEN% values
"""
from typing import Dict, List


class TemplateSyntaxError(ValueError):
    """Command template cannot be split (e.g. unterminated quote)"""


def split_command_template(template: str) -> List[str]:
    """Split on whitespace outside single quotes.

    A single-quoted group is taken literally, quotes removed, and joins any
    characters directly next to it into the same argument. Nothing else is
    interpreted: no variables, globbing, backslash escapes or double quotes.
    """
    args: List[str] = []
    current: List[str] = []
    in_token = False
    in_quote = False

    for ch in template or "":
        if in_quote:
            if ch == "'":
                in_quote = False
            else:
                current.append(ch)
        elif ch == "'":
            in_quote = True
            in_token = True
        elif ch.isspace():
            if in_token:
                args.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(ch)
            in_token = True

    if in_quote:
        raise TemplateSyntaxError(f"unterminated single quote in command template: {template!r}")
    if in_token:
        args.append("".join(current))
    return args


def substitute_tokens(text: str, values: Dict[str, str]) -> str:
    """Replace each %NAME% with its value"""
    for name, value in values.items():
        text = text.replace(f"%{name}%", value)
    return text


def build_command(template: str, values: Dict[str, str]) -> List[str]:
    """Split first, then substitute, so values containing spaces stay one argument"""
    return [substitute_tokens(arg, values) for arg in split_command_template(template)]
