"""Decision policies.

- policy: the DecisionPolicy contract, payload validation and a rule-based policy
- gemini: model-driven policy over the Gemini REST API
"""

from papertrader.ai.gemini import GeminiPolicy, build_prompt
from papertrader.ai.policy import DecisionPolicy, MomentumPolicy, parse_decision, strip_code_fences

__all__ = [
    "DecisionPolicy",
    "GeminiPolicy",
    "MomentumPolicy",
    "build_prompt",
    "parse_decision",
    "strip_code_fences",
]
