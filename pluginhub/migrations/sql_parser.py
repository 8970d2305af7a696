"""
Split a SQL script into individually executable statements
"""

from typing import List

QUOTE_CHARS = ("'", '"', "`")


def split_sql_statements(sql: str) -> List[str]:
    """
    Split ``sql`` on top-level semicolons.

    A semicolon ends a statement only outside string literals, outside
    comments and at parenthesis depth 0. Strings close on the same quote
    character that opened them. ``--`` line comments and ``/* */`` block
    comments are dropped. Statements are trimmed and empty ones discarded.
    """
    statements: List[str] = []
    buffer: List[str] = []
    quote = None
    depth = 0
    i = 0
    length = len(sql)

    def flush():
        statement = "".join(buffer).strip()
        if statement:
            statements.append(statement)
        buffer.clear()

    while i < length:
        ch = sql[i]
        nxt = sql[i + 1] if i + 1 < length else ""

        if quote is not None:
            buffer.append(ch)
            if ch == quote:
                quote = None
            i += 1
            continue

        if ch == "-" and nxt == "-":
            end = sql.find("\n", i)
            if end == -1:
                break
            buffer.append("\n")
            i = end + 1
            continue

        if ch == "/" and nxt == "*":
            end = sql.find("*/", i + 2)
            if end == -1:
                break
            buffer.append(" ")
            i = end + 2
            continue

        if ch in QUOTE_CHARS:
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        elif ch == ";" and depth == 0:
            flush()
            i += 1
            continue

        buffer.append(ch)
        i += 1

    flush()
    return statements
