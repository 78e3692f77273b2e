"""Lark grammar for formula expressions.

Supported syntax:
- Arithmetic: + - * / % and ^ (right associative)
- Comparison: = != <> < > <= >=
- Text concatenation: &
- Logic: AND, OR, NOT (case-insensitive)
- Field references: {Field Name} or {field-id}
- Function calls: NAME(arg, ...), including prop("Field Name")
- Literals: numbers, single or double quoted strings, TRUE, FALSE, BLANK
"""

FORMULA_GRAMMAR = r"""
    ?start: expression

    ?expression: disjunction

    ?disjunction: conjunction
        | disjunction "OR"i conjunction -> or_op

    ?conjunction: negation
        | conjunction "AND"i negation -> and_op

    ?negation: comparison
        | "NOT"i negation -> not_op

    ?comparison: concatenation
        | comparison "=" concatenation -> eq
        | comparison "!=" concatenation -> ne
        | comparison "<>" concatenation -> ne
        | comparison "<" concatenation -> lt
        | comparison ">" concatenation -> gt
        | comparison "<=" concatenation -> le
        | comparison ">=" concatenation -> ge

    ?concatenation: sum
        | concatenation "&" sum -> concat

    ?sum: product
        | sum "+" product -> add
        | sum "-" product -> sub

    ?product: exponent
        | product "*" exponent -> mul
        | product "/" exponent -> div
        | product "%" exponent -> mod

    ?exponent: signed
        | signed "^" exponent -> pow

    ?signed: primary
        | "-" signed -> neg
        | "+" signed -> pos

    ?primary: NUMBER -> number
        | STRING -> string
        | BOOLEAN -> boolean
        | FIELD_REF -> field_ref
        | call
        | "(" expression ")"

    call: FUNCTION_NAME "(" [arguments] ")"

    arguments: expression ("," expression)*

    // literals outrank function names so TRUE() is never a call
    BOOLEAN.2: "TRUE"i | "FALSE"i | "BLANK"i

    FIELD_REF.1: "{" /[^}]+/ "}"

    FUNCTION_NAME: /(?!TRUE\b|FALSE\b|BLANK\b)[A-Za-z_][A-Za-z0-9_]*/i

    STRING: /"(\\.|[^"\\])*"/ | /'(\\.|[^'\\])*'/

    // sign is a unary operator, never part of the literal
    NUMBER: /(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?/

    %import common.WS
    %ignore WS
"""
