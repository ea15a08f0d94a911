"""GROQ lexer and Pratt parser.

Only used to decide whether an embedded query is syntactically valid; the
parse tree is a plain nested tuple and nothing downstream depends on its
shape beyond ``type_filters``.
"""

import re
from dataclasses import dataclass


class GroqSyntaxError(ValueError):
    """Raised for malformed query text."""

    def __init__(self, message: str, position: int):
        super().__init__(f"{message} at position {position}")
        self.message = message
        self.position = position


@dataclass(frozen=True)
class Token:
    kind: str  # ident, number, string, param, op, eof
    value: str
    position: int


_WHITESPACE = re.compile(r"\s+|//[^\n]*")
_NUMBER = re.compile(r"\d+(\.\d+)?([eE][+-]?\d+)?")
_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_PARAM = re.compile(r"\$[A-Za-z_][A-Za-z0-9_]*")

# Longest first so "..." wins over ".." and "."
_OPERATORS = (
    "...", "..", "==", "!=", "<=", ">=", "=>", "->", "&&", "||", "**", "::",
    "|", ".", ",", ":", "(", ")", "[", "]", "{", "}", "*", "@", "^",
    "+", "-", "/", "%", "<", ">", "!",
)


def tokenize(text: str) -> list[Token]:
    tokens = []
    pos = 0
    length = len(text)
    while pos < length:
        ws = _WHITESPACE.match(text, pos)
        if ws and ws.end() > pos:
            pos = ws.end()
            continue

        char = text[pos]
        if char in "\"'":
            end = pos + 1
            while end < length and text[end] != char:
                end += 2 if text[end] == "\\" else 1
            if end >= length:
                raise GroqSyntaxError("Unterminated string", pos)
            tokens.append(Token("string", text[pos + 1 : end], pos))
            pos = end + 1
            continue

        for kind, pattern in (("number", _NUMBER), ("param", _PARAM), ("ident", _IDENT)):
            match = pattern.match(text, pos)
            if match:
                tokens.append(Token(kind, match.group(0), pos))
                pos = match.end()
                break
        else:
            for op in _OPERATORS:
                if text.startswith(op, pos):
                    tokens.append(Token("op", op, pos))
                    pos += len(op)
                    break
            else:
                raise GroqSyntaxError(f"Unexpected character {char!r}", pos)

    tokens.append(Token("eof", "", length))
    return tokens


# Binding powers for infix operators (left, right)
_INFIX = {
    "|": (10, 11),
    "=>": (20, 19),
    "||": (30, 31),
    "&&": (40, 41),
    "==": (50, 51), "!=": (50, 51), "<": (50, 51), ">": (50, 51),
    "<=": (50, 51), ">=": (50, 51), "in": (50, 51), "match": (50, 51),
    "..": (55, 56), "...": (55, 56),
    "+": (60, 61), "-": (60, 61),
    "*": (70, 71), "/": (70, 71), "%": (70, 71),
    "**": (85, 84),
}
_PREFIX_POWER = 80
_POSTFIX_POWER = 100

LITERAL_KEYWORDS = frozenset({"true", "false", "null"})


class Parser:
    """Pratt parser over the token list."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != "eof":
            self.index += 1
        return token

    def at(self, value: str) -> bool:
        token = self.current
        return token.value == value and token.kind in ("op", "ident")

    def expect(self, value: str) -> Token:
        if not self.at(value):
            raise GroqSyntaxError(
                f"Expected '{value}' but found '{self.current.value or 'end of query'}'",
                self.current.position,
            )
        return self.advance()

    def parse(self):
        if self.current.kind == "eof":
            raise GroqSyntaxError("Empty query", 0)
        node = self.expression(0)
        if self.current.kind != "eof":
            raise GroqSyntaxError(f"Unexpected '{self.current.value}'", self.current.position)
        return node

    def expression(self, min_power: int):
        left = self.prefix()
        while True:
            token = self.current
            if token.kind == "eof":
                break

            if token.kind == "op" and token.value in (".", "[", "{", "->", "(") or (
                token.kind == "ident" and token.value in ("asc", "desc")
            ):
                if _POSTFIX_POWER < min_power:
                    break
                left = self.postfix(left)
                continue

            op = token.value if token.kind in ("op", "ident") else None
            powers = _INFIX.get(op)
            if powers is None:
                break
            left_power, right_power = powers
            if left_power < min_power:
                break
            self.advance()
            right = self.expression(right_power)
            left = ("binary", op, left, right)
        return left

    def prefix(self):
        token = self.advance()
        if token.kind == "number":
            return ("number", token.value)
        if token.kind == "string":
            return ("string", token.value)
        if token.kind == "param":
            return ("param", token.value[1:])
        if token.kind == "ident":
            if token.value in LITERAL_KEYWORDS:
                return ("literal", token.value)
            if self.at("::"):
                self.advance()
                name = self.advance()
                if name.kind != "ident":
                    raise GroqSyntaxError("Expected function name after '::'", name.position)
                return self.call(f"{token.value}::{name.value}")
            if self.at("("):
                return self.call(token.value)
            return ("attribute", token.value)
        if token.kind == "op":
            if token.value in ("*", "@", "^"):
                return ("this", token.value)
            if token.value in ("!", "-", "+"):
                return ("unary", token.value, self.expression(_PREFIX_POWER))
            if token.value == "(":
                inner = self.expression(0)
                self.expect(")")
                return ("group", inner)
            if token.value == "[":
                return ("array", self.sequence("]"))
            if token.value == "{":
                return ("object", self.object_body())
            if token.value == "...":
                return ("spread", None)
        raise GroqSyntaxError(
            f"Unexpected '{token.value or 'end of query'}'", token.position
        )

    def call(self, name: str):
        self.expect("(")
        return ("call", name, self.sequence(")"))

    def sequence(self, closer: str) -> list:
        items = []
        while not self.at(closer):
            if self.current.kind == "eof":
                raise GroqSyntaxError(f"Missing '{closer}'", self.current.position)
            if self.at("..."):
                self.advance()
                items.append(("spread", self.expression(0)))
            else:
                items.append(self.expression(0))
            if not self.at(closer):
                self.expect(",")
        self.expect(closer)
        return items

    def object_body(self) -> list:
        entries = []
        while not self.at("}"):
            if self.current.kind == "eof":
                raise GroqSyntaxError("Missing '}'", self.current.position)
            if self.at("..."):
                self.advance()
                if self.at(",") or self.at("}"):
                    entries.append(("spread", None))
                else:
                    entries.append(("spread", self.expression(0)))
            else:
                value = self.expression(0)
                if self.at(":"):
                    self.advance()
                    entries.append(("pair", value, self.expression(0)))
                else:
                    entries.append(("entry", value))
            if not self.at("}"):
                self.expect(",")
        self.expect("}")
        return entries

    def postfix(self, left):
        token = self.advance()
        if token.value == ".":
            name = self.advance()
            if name.kind != "ident":
                raise GroqSyntaxError("Expected attribute name after '.'", name.position)
            return ("access", left, name.value)
        if token.value == "[":
            if self.at("]"):
                self.advance()
                return ("traverse", left)
            inner = self.expression(0)
            self.expect("]")
            return ("filter", left, inner)
        if token.value == "{":
            return ("projection", left, self.object_body())
        if token.value == "->":
            # `ref->name` is shorthand for `(ref->).name`
            follow = self.current
            if follow.kind == "ident" and follow.value not in _INFIX and follow.value not in ("asc", "desc"):
                self.advance()
                return ("access", ("deref", left), follow.value)
            return ("deref", left)
        if token.value == "(":
            raise GroqSyntaxError("Only named functions can be called", token.position)
        return ("order", left, token.value)


def parse(text: str):
    """Parse a query; raises GroqSyntaxError when it is malformed."""
    return Parser(text).parse()


def validate(text: str) -> str | None:
    """Parse error message, or None when the query parses."""
    try:
        parse(text)
    except GroqSyntaxError as e:
        return str(e)
    return None


_TYPE_FILTER = re.compile(r"""_type\s*==\s*["']([A-Za-z0-9_.-]+)["']|["']([A-Za-z0-9_.-]+)["']\s*==\s*_type""")
_TYPE_IN = re.compile(r"""_type\s+in\s+\[([^\]]*)\]""")


def type_filters(text: str) -> list[str]:
    """Document types named by ``_type == "x"`` / ``_type in [...]`` filters."""
    names = set()
    for match in _TYPE_FILTER.finditer(text):
        names.add(match.group(1) or match.group(2))
    for match in _TYPE_IN.finditer(text):
        names.update(re.findall(r"""["']([A-Za-z0-9_.-]+)["']""", match.group(1)))
    return sorted(names)
