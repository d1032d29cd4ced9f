"""
Smart Parser - Ordered strategy chain with explicit fallback

Architecture:
1. A Strategy is a named callable returning a ParseResult
2. run_strategies tries each in order and stops at the first success
3. A failed strategy's reason becomes a warning on the final result when
   the strategy declares one (the AI strategy does)
4. metadata['strategy'] names the winner, metadata['attempts'] lists every
   strategy tried

Failures inside a strategy never escape: StrategyError and decoder
exceptions are converted into reasons.
"""

import os
import re
import sys
from collections import namedtuple
from typing import List, Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from models import ParseResult
from .ai_parser import AIParser
from .errors import StrategyError
from .patterns import detect_bank
from .pdf_parser import StatementPDFParser

AI_FALLBACK_WARNING = 'AI parse failed, using deterministic parser: {reason}'
UNRECOGNIZED_FORMAT = 'Statement format not recognized; review extracted rows carefully.'

Strategy = namedtuple('Strategy', ['name', 'func', 'fallback_warning'])
Strategy.__new__.__defaults__ = (None,)


def run_strategies(strategies: List[Strategy], debug: bool = False) -> ParseResult:
    """
    Try each strategy in order; return the first successful result.

    Args:
        strategies: Ordered Strategy tuples
        debug: Print each attempt

    Returns:
        The first successful ParseResult, otherwise the last failed one
    """
    attempts = []
    pending_warnings = []
    last_failure: Optional[ParseResult] = None
    last_reason = 'No strategy available'

    for strategy in strategies:
        attempts.append(strategy.name)
        if debug:
            print(f"[DEBUG] Trying strategy '{strategy.name}'", flush=True)

        result = None
        try:
            result = strategy.func()
            if result.success:
                for warning in pending_warnings:
                    result.add_warning(warning)
                result.metadata['strategy'] = strategy.name
                result.metadata['attempts'] = attempts
                return result
            reason = result.errors[0] if result.errors else 'no records extracted'
        except StrategyError as e:
            reason = str(e)
        except Exception as e:
            print(f"[ERROR] Strategy '{strategy.name}' failed: {e}", flush=True)
            reason = str(e) or e.__class__.__name__

        print(f"[WARNING] Strategy '{strategy.name}' failed: {reason}", flush=True)
        last_reason = reason
        if result is not None:
            last_failure = result
        if strategy.fallback_warning:
            pending_warnings.append(strategy.fallback_warning.format(reason=reason))

    final = last_failure or ParseResult.failure(last_reason)
    for warning in pending_warnings:
        final.add_warning(warning)
    final.metadata['attempts'] = attempts
    return final


class SmartParser:
    """
    Statement text to transactions: AI first when requested, then the
    deterministic grammars.

    Usage:
        parser = SmartParser()
        result = parser.parse_statement_text(text, use_ai=True)
    """

    def __init__(self, ai_parser: AIParser = None, debug: bool = False):
        self.ai_parser = ai_parser or AIParser(debug=debug)
        self.pdf_parser = StatementPDFParser(debug=debug)
        self.debug = debug

    def statement_strategies(self, text: str, use_ai: bool = False) -> List[Strategy]:
        """Ordered fallback chain for one statement's text."""
        strategies = []
        if use_ai:
            strategies.append(Strategy('ai', lambda: self.ai_parser.parse_statement(text),
                                       AI_FALLBACK_WARNING))
        if re.search(r'Virgin Money', text or '', re.I):
            strategies.append(Strategy('virgin_money', lambda: self.pdf_parser.parse_virgin_money(text)))
        else:
            strategies.append(Strategy('generic', lambda: self.pdf_parser.parse_generic(text)))
            strategies.append(Strategy('virgin_money', lambda: self.pdf_parser.parse_virgin_money(text)))
        return strategies

    def parse_statement_text(self, text: str, use_ai: bool = False) -> ParseResult:
        result = run_strategies(self.statement_strategies(text, use_ai), debug=self.debug)
        result.metadata['sourceType'] = 'pdf'
        if not result.success or not result.metadata.get('bank'):
            result.metadata['bank'] = detect_bank(text) or 'Unknown'
        if result.metadata['bank'] == 'Unknown' and result.metadata.get('strategy') != 'ai':
            result.add_warning(UNRECOGNIZED_FORMAT)
        return result


def smart_parse(text: str, use_ai: bool = False) -> ParseResult:
    """Convenience: run the statement chain over already-extracted text"""
    return SmartParser().parse_statement_text(text, use_ai=use_ai)
