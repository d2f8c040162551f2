"""Static analysis: branch extraction and structural facts.

Two complementary passes feed the permutation synthesizer:

- BranchExtractor walks the *compiled* Python source for every
  ``if``/``unless``/``case`` site and the identifiers each condition reads.
- TemplateStructureAnalyzer walks the *template* for facts the compiled
  form hides: case value sets, loop-variable conditions, computed
  variables and string comparisons.
"""

from autopreview.analysis.branches import BranchExtractor
from autopreview.analysis.facts import (
    BlockConditionalFact,
    BranchSite,
    CaseFact,
    ComputedVariableFact,
    ConditionalBranch,
    StringComparisonFact,
    TemplateFacts,
)
from autopreview.analysis.identifiers import IdentifierCollector, resolve_path
from autopreview.analysis.structure import TemplateStructureAnalyzer, is_computed

__all__ = [
    "BlockConditionalFact",
    "BranchExtractor",
    "BranchSite",
    "CaseFact",
    "ComputedVariableFact",
    "ConditionalBranch",
    "IdentifierCollector",
    "StringComparisonFact",
    "TemplateFacts",
    "TemplateStructureAnalyzer",
    "is_computed",
    "resolve_path",
]
