"""
Source Analysis
===============

Syntax-tree based analyzers for TypeScript and JavaScript sources.
"""

from todoforge.analysis.syntax import SourceAnalyzer, SyntaxTree, is_declaration_name
from todoforge.analysis.imports import UnusedImport, find_unused_imports, remove_unused_imports
from todoforge.analysis.variables import UnusedVariable, UnusedVariableAnalyzer, VariableAnalysis
from todoforge.analysis.stubs import (
    FunctionImplementor,
    FunctionStubDetector,
    ImplementationSynthesizer,
    PurposeInferencer,
    select_implementation,
)
from todoforge.analysis.rename import rename_identifier
