"""
Token-level helpers for SQL expression text (check constraints).

Identifier references are located with the sqlglot tokenizer instead of
substring matching, so renaming ``c1`` never touches ``c10`` or ``'c1'``.
"""

from typing import Callable, Dict, List, Optional

import sqlglot
import structlog
from sqlglot.errors import SqlglotError
from sqlglot.tokens import Token, TokenType

logger = structlog.get_logger(__name__)

LITERAL_TOKEN_TYPES = frozenset(
    {
        TokenType.STRING,
        TokenType.NUMBER,
        TokenType.HEX_STRING,
        TokenType.BIT_STRING,
        TokenType.BYTE_STRING,
        TokenType.NATIONAL_STRING,
    }
)


def _tokenize(expression: str, dialect: str) -> Optional[List[Token]]:
    try:
        return sqlglot.tokenize(expression, read=dialect)
    except SqlglotError as e:
        logger.debug("expressions.tokenize_failed", expression=expression, error=str(e))
        return None


def _identifier_tokens(tokens: List[Token]) -> List[Token]:
    """Tokens that can name a column: bare words and quoted identifiers.

    Words followed by "(" are function calls and are excluded.
    """
    result = []
    for i, token in enumerate(tokens):
        if token.token_type in LITERAL_TOKEN_TYPES:
            continue
        if token.token_type != TokenType.IDENTIFIER and not token.text[:1].isalpha() and token.text[:1] != "_":
            continue
        nxt = tokens[i + 1] if i + 1 < len(tokens) else None
        if nxt is not None and nxt.token_type == TokenType.L_PAREN and token.token_type != TokenType.IDENTIFIER:
            continue
        result.append(token)
    return result


def _matches(token: Token, name: str) -> bool:
    if token.token_type == TokenType.IDENTIFIER:
        return token.text == name
    return token.text.lower() == name.lower()


def references_identifier(expression: str, name: str, dialect: str) -> bool:
    """Return True if expression refers to name as an identifier.

    An expression that cannot be tokenized is treated as referencing it.
    """
    tokens = _tokenize(expression, dialect)
    if tokens is None:
        return True
    return any(_matches(t, name) for t in _identifier_tokens(tokens))


def rewrite_identifiers(
    expression: str,
    renames: Dict[str, str],
    dialect: str,
    quote: Callable[[str], str],
) -> str:
    """Replace identifier tokens found in renames, quoting the new names.

    Tokens not found in renames are left byte-for-byte as they were. If the
    expression cannot be tokenized it is returned unchanged.
    """
    if not renames:
        return expression
    tokens = _tokenize(expression, dialect)
    if tokens is None:
        return expression

    pieces = []
    cursor = 0
    for token in _identifier_tokens(tokens):
        new_name = None
        for old, new in renames.items():
            if _matches(token, old):
                new_name = new
                break
        if new_name is None:
            continue
        pieces.append(expression[cursor : token.start])
        pieces.append(quote(new_name))
        cursor = token.end + 1
    pieces.append(expression[cursor:])
    return "".join(pieces)
