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
    TEMPLATE = 'TEMPLATE'

    # Keywords
    IMPORT = 'import'
    EXPORT = 'export'
    CONST = 'const'
    LET = 'let'
    VAR = 'var'
    FOR = 'for'
    OF = 'of'
    IF = 'if'
    ELSE = 'else'
    RETURN = 'return'
    NEW = 'new'
    NULL = 'null'
    UNDEFINED = 'undefined'
    TRUE = 'true'
    FALSE = 'false'

    # Operators
    EQUALS = '='
    PLUS_EQUALS = '+='
    PLUS = '+'
    MINUS = '-'
    MULTIPLY = '*'
    DIVIDE = '/'
    MODULO = '%'
    AND = '&&'
    OR = '||'
    NULLISH = '??'
    NOT = '!'
    QUESTION = '?'
    OPTIONAL_CHAIN = '?.'
    COLON = ':'
    SEMICOLON = ';'
    COMMA = ','
    DOT = '.'
    ELLIPSIS = '...'
    FAT_ARROW = '=>'
    STRICT_EQUAL = '==='
    STRICT_NOT_EQUAL = '!=='
    EQUAL_EQUAL = '=='
    NOT_EQUAL = '!='
    GREATER_EQUAL = '>='
    LESS_EQUAL = '<='
    GREATER_THAN = '>'
    LESS_THAN = '<'
    PIPE = '|'
    AMPERSAND = '&'

    # Delimiters
    LPAREN = '('
    RPAREN = ')'
    LBRACE = '{'
    RBRACE = '}'
    LBRACKET = '['
    RBRACKET = ']'

    # Special
    EOF = 'EOF'


KEYWORDS = {token.value: token for token in (
    TokenType.IMPORT, TokenType.EXPORT, TokenType.CONST, TokenType.LET, TokenType.VAR,
    TokenType.FOR, TokenType.OF, TokenType.IF, TokenType.ELSE, TokenType.RETURN,
    TokenType.NEW, TokenType.NULL, TokenType.UNDEFINED, TokenType.TRUE, TokenType.FALSE,
)}


@dataclass
class Token:
    type: TokenType
    value: str
    line: int
    column: int
