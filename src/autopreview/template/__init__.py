"""Template language: lexer, nodes, parser, and compiler.

Pipeline: Template Source → Lexer → Parser → node tree → CodeGenerator →
Python source on disk (CompiledUnit).
"""

from autopreview.template.compiler import CodeGenerator, CompiledUnit, TemplateCompiler, unit_id_for
from autopreview.template.lexer import Lexer, Token, TokenType, tokenize
from autopreview.template.parser import Parser, parse

__all__ = [
    "CodeGenerator",
    "CompiledUnit",
    "Lexer",
    "Parser",
    "TemplateCompiler",
    "Token",
    "TokenType",
    "parse",
    "tokenize",
    "unit_id_for",
]
