"""
AI-Assisted Parser - Statement extraction through a chat-completions model

The model is a black box that returns text which may or may not be JSON.
Everything it returns is validated and mapped into the same Transaction
shape the deterministic grammars produce; categories outside the closed
enumerations are discarded so the engine re-infers them.

Failures raise StrategyError subclasses. The strategy chain catches them and
falls back to the deterministic parser, so nothing here aborts an import.
"""

import json
import os
import re
import sys
from datetime import date
from typing import Dict, List, Optional

import requests

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from config import (OPENROUTER_API_KEY, AI_API_URL, AI_MODEL, AI_TIMEOUT, AI_MAX_TOKENS,
                    AI_MAX_SECTION_CHARS, AI_LOW_CONFIDENCE)
from models import ParseResult, Transaction
from classifiers.keyword_classifier import (EXPENSE_CATEGORIES, INCOME_CATEGORIES,
                                            DEFAULT_CLASSIFIER)
from classifiers.classification_engine import normalize_confidence
from .errors import AIUnavailableError, AIResponseError
from .patterns import detect_bank, parse_date_string, parse_number, parse_statement_date, to_iso
from .pdf_parser import extract_pdf_section

CODE_FENCE = re.compile(r'```(?:json)?\s*', re.I)


def extract_json_object(text: str) -> Optional[Dict]:
    """
    Pull the first JSON object out of a model response.

    Markdown fences are stripped, then the whole text is tried, then each
    '{' is scanned for a brace-balanced candidate that parses.
    """
    if not text or not text.strip():
        return None
    stripped = CODE_FENCE.sub('', text).strip()

    try:
        value = json.loads(stripped)
        if isinstance(value, dict):
            return value
    except ValueError:
        pass

    for start, ch in enumerate(stripped):
        if ch != '{':
            continue
        candidate = _balanced_object(stripped, start)
        if candidate is not None:
            return candidate
    return None


def _balanced_object(text: str, start: int) -> Optional[Dict]:
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == '\\':
            if in_string:
                escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                try:
                    value = json.loads(text[start:i + 1])
                except ValueError:
                    return None
                return value if isinstance(value, dict) else None
    return None


class AIClient:
    """Minimal OpenRouter-compatible chat-completions client"""

    def __init__(self, api_key: str = None, model: str = None, url: str = None,
                 timeout: int = None):
        self.api_key = OPENROUTER_API_KEY if api_key is None else api_key
        self.model = model or AI_MODEL
        self.url = url or AI_API_URL
        self.timeout = timeout or AI_TIMEOUT

    def is_available(self) -> bool:
        return bool(self.api_key)

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """
        Send one chat request and return the raw message content.

        Raises:
            AIUnavailableError: no API key, or the request could not be sent
            AIResponseError: non-2xx status or an empty response
        """
        if not self.is_available():
            raise AIUnavailableError('AI client not configured')

        try:
            response = requests.post(
                self.url,
                headers={
                    'Authorization': f'Bearer {self.api_key}',
                    'Content-Type': 'application/json',
                },
                json={
                    'model': self.model,
                    'messages': [
                        {'role': 'system', 'content': system_prompt},
                        {'role': 'user', 'content': user_prompt},
                    ],
                    'max_tokens': AI_MAX_TOKENS,
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AIUnavailableError(f'Could not reach AI service: {e}')

        if not response.ok:
            raise AIResponseError(f'AI API error: {response.status_code}')

        try:
            content = response.json()['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError):
            content = None
        if not content:
            raise AIResponseError('No content in AI response')
        return content

    def complete_json(self, system_prompt: str, user_prompt: str) -> Dict:
        content = self.complete(system_prompt, user_prompt)
        data = extract_json_object(content)
        if data is None:
            raise AIResponseError('AI response was not valid JSON')
        return data


def build_statement_prompt(statement_date: Optional[str]) -> str:
    """System prompt embedding the closed category enumerations."""
    expense = ', '.join(c for c in EXPENSE_CATEGORIES if c != 'Other')
    income = ', '.join(c for c in INCOME_CATEGORIES if c != 'Other')
    return f"""You are a UK bank statement parser. Extract ALL transactions and return ONLY valid JSON.

Return this structure:
{{
  "transactions": [
    {{"date": "YYYY-MM-DD", "description": "string", "amount": 12.34,
      "direction": "debit" | "credit", "balance": 123.45, "category": "string", "confidence": 0.9}}
  ]
}}

CATEGORY RULES (avoid "Other"):
For DEBITS (expenses), use one of: {expense}
For CREDITS (income), use one of: {income}
- Supermarkets, restaurants, takeaways -> Food & Dining
- TfL, trains, Uber, petrol, parking -> Transportation
- Streaming, cinema, gym, games -> Entertainment
- Pharmacy, NHS, dentist, optician -> Healthcare
- Gas, electric, water, broadband, phone, council tax -> Utilities
- Rent, mortgage -> Housing
- Salary, wages, BACS credits from employers -> Salary
ONLY use "Other" when the category is truly unidentifiable.

Other rules:
- Amount is an absolute value (never negative). Use "direction" for debit/credit.
- If balance is missing, omit it.
- If the year is missing, use the statement date ({statement_date or 'unknown'}) to infer it.
- Only include actual transactions; ignore headings, notes and page markers.
- Confidence: 0-1 indicating extraction certainty.
- Return ONLY JSON, no markdown."""


class AIParser:
    """Statement extraction via the AI client, validated into Transactions"""

    def __init__(self, client: AIClient = None, debug: bool = False):
        self.client = client or AIClient()
        self.classifier = DEFAULT_CLASSIFIER
        self.debug = debug

    def is_available(self) -> bool:
        return self.client.is_available()

    def parse_statement(self, text: str) -> ParseResult:
        """
        Extract transactions from statement text.

        Args:
            text: Full extracted statement text

        Returns:
            ParseResult with source='ai' transactions

        Raises:
            StrategyError: on any failure, for the caller to fall back
        """
        statement = parse_statement_date(text)
        statement_iso = statement.isoformat() if statement else None

        section = extract_pdf_section(text)[:AI_MAX_SECTION_CHARS]
        print(f"[INFO] Sending {len(section)} characters to AI model {self.client.model}", flush=True)
        data = self.client.complete_json(build_statement_prompt(statement_iso),
                                         f"Statement text:\n{section}")

        items = data.get('transactions')
        if not isinstance(items, list):
            raise AIResponseError('AI response has no transactions array')

        result = ParseResult(metadata={'sourceType': 'pdf', 'bank': detect_bank(text) or 'Unknown'})
        if statement_iso:
            result.metadata['statementDate'] = statement_iso

        for index, item in enumerate(items):
            transaction = self._validate_item(item, index, statement, result)
            if transaction is not None:
                result.records.append(transaction)

        if not result.records:
            raise AIResponseError('AI did not return any transactions')

        self._recheck_directions(result.records)
        result.derive_date_range()
        result.success = True
        print(f"[INFO] AI extracted {len(result.records)} transactions", flush=True)
        return result

    def _validate_item(self, item, index: int, statement: Optional[date],
                       result: ParseResult) -> Optional[Transaction]:
        """Map one untyped JSON value into a Transaction, or None with a warning."""
        if not isinstance(item, dict):
            result.add_warning(f"AI item {index + 1}: not an object - skipped")
            return None

        description = str(item.get('description') or '').strip()

        amount = parse_number(item.get('amount'))
        if amount is None:
            result.add_warning(f"AI item {index + 1}: invalid amount - skipped")
            return None

        raw_date = str(item.get('date') or '').strip()
        parsed_date = parse_date_string(raw_date,
                                        default_year=statement.year if statement else None,
                                        statement_month=statement.month if statement else None)
        if parsed_date is None:
            result.add_warning(f"AI item {index + 1}: invalid date '{raw_date}' - skipped")
            return None

        warnings = []
        direction = str(item.get('direction') or '').strip().lower()
        if direction not in ('debit', 'credit'):
            if amount < 0:
                direction = 'debit'
            else:
                direction = self.classifier.infer_direction(description)
                if direction is None:
                    direction = 'debit'
                    warnings.append('Direction inferred')

        category = item.get('category')
        allowed = self.classifier.categories_for('statement', direction)
        if category not in allowed:
            category = ''

        confidence = normalize_confidence(item.get('confidence'))
        if confidence is not None and confidence < AI_LOW_CONFIDENCE:
            warnings.append(f"Low AI confidence ({confidence:.2f})")

        balance = item.get('balance')
        balance = float(balance) if isinstance(balance, (int, float)) and not isinstance(balance, bool) else None

        return Transaction(
            description=description,
            amount=abs(amount),
            date=to_iso(parsed_date),
            category=category,
            confidence=confidence,
            warnings=warnings,
            source_snippet=json.dumps(item, default=str)[:240],
            direction=direction,
            balance=balance,
            source='ai',
        )

    def _recheck_directions(self, transactions: List[Transaction]):
        """Correct the model's direction where consecutive balances contradict it."""
        previous = None
        for transaction in transactions:
            if transaction.balance is None:
                continue
            if previous is not None:
                delta = round(transaction.balance - previous, 2)
                if abs(abs(delta) - transaction.amount) < 0.01 and delta != 0:
                    expected = 'credit' if delta > 0 else 'debit'
                    if transaction.direction != expected:
                        if self.debug:
                            print(f"[DEBUG] Direction corrected for {transaction.description}", flush=True)
                        transaction.direction = expected
                        transaction.add_warning('Direction corrected from running balance')
                        if transaction.category not in self.classifier.categories_for('statement', expected):
                            transaction.category = ''
                    if 'Direction inferred' in transaction.warnings:
                        transaction.warnings.remove('Direction inferred')
            previous = transaction.balance
