from dataclasses import dataclass
from enum import Enum

# ------------------------------
# Token Definitions
# ------------------------------

class TokenType(Enum):
    # Basic tokens
    IDENTIFIER = 'IDENTIFIER'
    NUMBER = 'NUMBER'
    STRING = 'STRING'
    HEREDOC = 'HEREDOC'

    # Keywords
    FOR = 'for'
    IN = 'in'
    IF = 'if'
    NULL = 'null'
    TRUE = 'true'
    FALSE = 'false'

    # Operators
    EQUALS = '='
    PLUS = '+'
    MINUS = '-'
    MULTIPLY = '*'
    DIVIDE = '/'
    MODULO = '%'
    AND = '&&'
    OR = '||'
    NOT = '!'
    QUESTION = '?'
    COLON = ':'
    COMMA = ','
    DOT = '.'
    ELLIPSIS = '...'
    FAT_ARROW = '=>'
    EQUAL_EQUAL = '=='
    NOT_EQUAL = '!='
    GREATER_EQUAL = '>='
    LESS_EQUAL = '<='
    GREATER_THAN = '>'
    LESS_THAN = '<'

    # Delimiters
    LPAREN = '('
    RPAREN = ')'
    LBRACE = '{'
    RBRACE = '}'
    LBRACKET = '['
    RBRACKET = ']'

    # Special
    EOF = 'EOF'


@dataclass
class Token:
    type: TokenType
    value: str
    line: int
    column: int
