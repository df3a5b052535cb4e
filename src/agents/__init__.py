"""AI Agents package."""

from src.agents.ai_agents import (
    ExtractionError,
    ExtractionResult,
    TransactionExtractor,
    describe_account,
    match_account,
    parse_extraction_json,
    parse_share_trade,
)
from src.agents.prompts import build_extraction_prompt, build_system_prompt

__all__ = [
    "ExtractionError",
    "ExtractionResult",
    "TransactionExtractor",
    "build_extraction_prompt",
    "build_system_prompt",
    "describe_account",
    "match_account",
    "parse_extraction_json",
    "parse_share_trade",
]
