"""
Email Parser Module - Contacts, prices, dates and follow-ups from emails

Three modes:
- regex: deterministic pattern extraction, no network
- ai: the chat-completions client only; its failure is the result
- auto: AI first, regex as fallback, through the same strategy chain used
  for statements

Every mode produces EmailFact records plus metadata['topics'] and
metadata['summary'].
"""

import os
import re
import sys
from datetime import date
from typing import Dict, List, Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from models import EmailFact, ParseResult
from classifiers.classification_engine import ClassificationEngine, normalize_confidence
from classifiers.keyword_classifier import DEFAULT_CLASSIFIER
from .ai_parser import AIClient
from .errors import AIResponseError, EmptyEmailError, ExtractionError, StrategyError
from .patterns import (extract_amounts, extract_dates, extract_emails, extract_phones,
                       extract_sender_company, extract_signature_name, parse_date_string,
                       parse_number, to_iso)
from .smart_parser import Strategy, run_strategies

EMAIL_MODES = ('auto', 'ai', 'regex')
EMPTY_EMAIL_ERROR = 'Email content is required'
AI_EMAIL_FALLBACK = 'AI parse failed, using regex parser: {reason}'
DATE_NOT_NORMALISED = 'Date could not be normalised'
NO_EMAIL_FACTS = 'No contacts, prices, dates or follow-ups found in email.'
AI_FACT_CONFIDENCE = 0.7

PRICE_TYPES = ('quote', 'estimate', 'mention')
DATE_TYPES = ('proposed_visit', 'start_date', 'completion', 'deadline', 'other')

CONTEXT_CHARS = 50
MAX_FOLLOW_UPS = 5
MAX_TOPICS = 5

FOLLOW_UP_KEYWORDS = (
    'please confirm', 'let me know', 'get back to', 'send over', 'send through',
    'give me a call', 'call me', 'email me', 'awaiting', 'waiting for',
    'need to', 'should', 'will need',
)

# Ordered; the first match wins
DATE_TYPE_RULES = (
    (re.compile(r'visit|come|see you|meet'), 'proposed_visit'),
    (re.compile(r'start|begin|commence'), 'start_date'),
    (re.compile(r'complete|finish|done'), 'completion'),
    (re.compile(r'deadline|\bby\b|before'), 'deadline'),
)


def _context(text: str, start: int, end: int) -> str:
    snippet = text[max(0, start - CONTEXT_CHARS):min(len(text), end + CONTEXT_CHARS)]
    return re.sub(r'\s+', ' ', snippet).strip()


def classify_price(context: str) -> str:
    lower = context.lower()
    if 'quote' in lower or 'price' in lower:
        return 'quote'
    if 'estimate' in lower or 'approx' in lower or 'around' in lower:
        return 'estimate'
    return 'mention'


def classify_date(context: str) -> str:
    lower = context.lower()
    for pattern, date_type in DATE_TYPE_RULES:
        if pattern.search(lower):
            return date_type
    return 'other'


def build_email_prompt(today: date) -> str:
    return f"""You are an email parsing assistant for property improvement projects. Extract structured information from contractor/supplier emails.

You MUST respond with ONLY valid JSON. No explanations, no markdown, just pure JSON.

Required JSON structure:
{{
  "contacts": [{{"name": "", "company": "", "phone": "", "email": "", "role": ""}}],
  "prices": [{{"description": "What the price is for", "amount": 0.00, "currency": "GBP",
              "type": "quote" | "estimate" | "mention"}}],
  "dates": [{{"description": "What the date refers to", "date": "YYYY-MM-DD",
             "type": "proposed_visit" | "start_date" | "completion" | "deadline" | "other"}}],
  "followUps": [{{"action": "Action item or commitment", "dueDate": "YYYY-MM-DD if mentioned"}}],
  "topics": ["topic1", "topic2"],
  "summary": "One sentence summary of the email"
}}

Rules:
- Extract contacts from email signatures and headers
- Look for phone numbers in formats like 07xxx, 0800, +44
- Extract any monetary amounts mentioned (assume GBP if no currency specified)
- For vague dates like "Wednesday 7th" or "next week", calculate from today's date: {today.isoformat()}
- Topics should be 1-3 word tags describing main subjects
- Be conservative - only extract clear, explicit information
- Return empty arrays [] if no data found for a category
- Return ONLY the JSON object, nothing else"""


class EmailParser:
    """
    Extract structured facts from contractor/supplier emails.

    Usage:
        parser = EmailParser()
        result = parser.parse(body, subject='Bathroom quote', mode='regex')
    """

    def __init__(self, client: AIClient = None, engine: ClassificationEngine = None,
                 debug: bool = False):
        self.client = client or AIClient()
        self.engine = engine or ClassificationEngine(debug=debug)
        self.classifier = DEFAULT_CLASSIFIER
        self.debug = debug

    def parse(self, email_content: str, subject: str = None, sender: str = None,
              mode: str = 'auto', reference: date = None) -> ParseResult:
        """
        Parse one email.

        Args:
            email_content: Message body
            subject: Optional subject line
            sender: Optional sender header
            mode: 'auto', 'ai' or 'regex'
            reference: Date used to resolve yearless dates

        Returns:
            ParseResult whose records are EmailFacts

        Raises:
            EmptyEmailError: body is empty
            ExtractionError: unknown mode
        """
        if not email_content or not email_content.strip():
            raise EmptyEmailError(EMPTY_EMAIL_ERROR)
        mode = (mode or 'auto').lower()
        if mode not in EMAIL_MODES:
            raise ExtractionError(f"Unknown email parse mode '{mode}'. Use one of: {', '.join(EMAIL_MODES)}")

        if mode == 'regex':
            result = self.parse_regex(email_content, subject, sender, reference)
            result.metadata['strategy'] = 'regex'
        elif mode == 'ai':
            try:
                result = self.parse_ai(email_content, subject, sender)
            except StrategyError as e:
                print(f"[WARNING] AI email parse failed: {e}", flush=True)
                result = ParseResult.failure(str(e))
            result.metadata['strategy'] = 'ai'
        else:
            result = run_strategies([
                Strategy('ai', lambda: self.parse_ai(email_content, subject, sender), AI_EMAIL_FALLBACK),
                Strategy('regex', lambda: self.parse_regex(email_content, subject, sender, reference)),
            ], debug=self.debug)

        result.metadata['sourceType'] = 'email'
        result.metadata['method'] = result.metadata.get('strategy')
        if result.success:
            self.engine.process(result, 'email')
        return result

    # ----------------------------------------------------------------- regex

    def parse_regex(self, email_content: str, subject: str = None, sender: str = None,
                    reference: date = None) -> ParseResult:
        full_text = '\n'.join(part for part in (subject, sender, email_content) if part)
        topics = self.classifier.detect_topics(full_text, limit=MAX_TOPICS)

        contacts = self.extract_contacts(full_text)
        prices = self.extract_prices(email_content)
        dates = self.extract_dates(email_content, reference)
        follow_ups = self.extract_follow_ups(email_content)

        result = ParseResult(records=contacts + prices + dates + follow_ups)
        for record in result.records:
            self._label(record, topics)
        result.metadata['topics'] = topics
        result.metadata['summary'] = self.summarize(contacts, prices, dates, topics)
        result.success = True
        if not result.records:
            result.add_warning(NO_EMAIL_FACTS)
        print(f"[INFO] Email parsed by regex: {len(contacts)} contacts, {len(prices)} prices, "
              f"{len(dates)} dates, {len(follow_ups)} follow-ups", flush=True)
        return result

    def extract_contacts(self, text: str) -> List[EmailFact]:
        name = extract_signature_name(text)
        company = extract_sender_company(text)
        phones = extract_phones(text)
        emails = extract_emails(text)
        phone = phones[0]['display'] if phones else None
        email = emails[0] if emails else None

        if not name:
            if not (phone or email):
                return []
            name = email.split('@')[0] if email else 'Unknown Contact'

        confidence = 0.5
        if company:
            confidence += 0.1
        if phone:
            confidence += 0.15
        if email:
            confidence += 0.15
        return [EmailFact(
            description=name,
            kind='contact',
            name=name,
            company=company,
            phone=phone,
            email=email,
            confidence=round(confidence, 2),
            source_snippet=text[:240],
        )]

    def extract_prices(self, text: str) -> List[EmailFact]:
        """Currency mentions, one per distinct amount."""
        facts = []
        seen = set()
        for found in extract_amounts(text):
            amount = found['amount']
            if amount <= 0 or amount in seen:
                continue
            seen.add(amount)
            context = _context(text, found['start'], found['end'])
            price_type = classify_price(context)
            facts.append(EmailFact(
                description=f"Price mentioned: {found['text']}",
                amount=amount,
                kind='price',
                price_type=price_type,
                confidence=0.75 if price_type != 'mention' else 0.6,
                source_snippet=context,
            ))
        return facts

    def extract_dates(self, text: str, reference: date = None) -> List[EmailFact]:
        facts = []
        for found in extract_dates(text, reference):
            context = _context(text, found['start'], found['end'])
            fact = EmailFact(
                description=f"Date mentioned: {found['text']}",
                date=found['iso'],
                kind='date',
                date_type=classify_date(context),
                confidence=0.7 if found['iso'] else 0.5,
                source_snippet=context,
            )
            if not found['iso']:
                fact.add_warning(DATE_NOT_NORMALISED)
            facts.append(fact)
        return facts

    def extract_follow_ups(self, text: str) -> List[EmailFact]:
        """Sentences carrying a follow-up keyword, at most one per line."""
        facts = []
        for line in text.split('\n'):
            lower = line.lower()
            keyword = next((k for k in FOLLOW_UP_KEYWORDS if k in lower), None)
            if keyword is None:
                continue
            sentence = next((s.strip() for s in re.split(r'[.!?]', line) if keyword in s.lower()), '')
            if 10 < len(sentence) < 200:
                facts.append(EmailFact(
                    description=sentence,
                    kind='follow_up',
                    confidence=0.6,
                    source_snippet=line.strip(),
                ))
        return facts[:MAX_FOLLOW_UPS]

    @staticmethod
    def summarize(contacts: List[EmailFact], prices: List[EmailFact], dates: List[EmailFact],
                  topics: List[str]) -> str:
        parts = []
        if contacts:
            contact = contacts[0]
            company = f" ({contact.company})" if contact.company else ''
            parts.append(f"Email from {contact.name}{company}")
        if topics:
            parts.append(f"regarding {' and '.join(topics[:2])}")
        if prices:
            parts.append(f"mentioning £{prices[0].amount:,.2f}")
        if dates:
            parts.append('with date reference')
        return ' '.join(parts) + '.' if parts else 'Email content parsed.'

    def _label(self, record: EmailFact, topics: List[str]):
        own = self.classifier.detect_topics(f"{record.description} {record.source_snippet}", limit=1)
        if own:
            record.category = own[0]
        elif topics:
            record.category = topics[0]
        else:
            record.category = 'general'

    # -------------------------------------------------------------------- AI

    def parse_ai(self, email_content: str, subject: str = None, sender: str = None) -> ParseResult:
        """
        Extract facts with the AI client.

        Raises:
            StrategyError: client unavailable, request failed, or unusable JSON
        """
        header = '\n'.join(filter(None, (
            f"Subject: {subject}" if subject else '',
            f"From: {sender}" if sender else '',
        )))
        user_prompt = (f"Parse this email and extract structured data. Return only the JSON object.\n\n"
                       f"{header}\n\nEmail content:\n{email_content}")
        data = self.client.complete_json(build_email_prompt(date.today()), user_prompt)

        result = ParseResult()
        for item in self._list(data, 'contacts'):
            name = str(item.get('name') or '').strip()
            if not name:
                continue
            result.records.append(EmailFact(
                description=name, kind='contact', name=name,
                company=item.get('company') or None, phone=item.get('phone') or None,
                email=item.get('email') or None, role=item.get('role') or None,
                confidence=normalize_confidence(item.get('confidence')) or AI_FACT_CONFIDENCE,
                source_snippet=str(item)[:240],
            ))

        for index, item in enumerate(self._list(data, 'prices')):
            amount = parse_number(item.get('amount'))
            if amount is None:
                result.add_warning(f"AI price {index + 1}: invalid amount - skipped")
                continue
            price_type = item.get('type') if item.get('type') in PRICE_TYPES else 'mention'
            result.records.append(EmailFact(
                description=str(item.get('description') or '').strip(), amount=abs(amount),
                kind='price', price_type=price_type, confidence=AI_FACT_CONFIDENCE,
                source_snippet=str(item)[:240],
            ))

        for item in self._list(data, 'dates'):
            raw = str(item.get('date') or '').strip()
            parsed = parse_date_string(raw)
            date_type = item.get('type') if item.get('type') in DATE_TYPES else 'other'
            description = str(item.get('description') or '').strip() or f"Date mentioned: {raw}"
            fact = EmailFact(description=description, date=to_iso(parsed), kind='date',
                             date_type=date_type, confidence=AI_FACT_CONFIDENCE,
                             source_snippet=str(item)[:240])
            if parsed is None:
                fact.add_warning(DATE_NOT_NORMALISED)
                if raw and raw not in fact.description:
                    fact.description = f"{fact.description} ({raw})"
            result.records.append(fact)

        for item in self._list(data, 'followUps')[:MAX_FOLLOW_UPS]:
            action = str(item.get('action') or '').strip()
            if not action:
                continue
            due = parse_date_string(str(item.get('dueDate') or ''))
            result.records.append(EmailFact(description=action, date=to_iso(due), kind='follow_up',
                                            confidence=AI_FACT_CONFIDENCE, source_snippet=str(item)[:240]))

        topics = [str(t).strip().lower() for t in data.get('topics') or [] if str(t).strip()][:MAX_TOPICS]
        for record in result.records:
            self._label(record, topics if topics and topics[0] in self.classifier.categories_for('email') else [])

        if not result.records and not data.get('summary'):
            raise AIResponseError('AI returned no email data')

        result.metadata['topics'] = topics
        result.metadata['summary'] = str(data.get('summary') or 'No summary available')
        result.success = True
        if not result.records:
            result.add_warning(NO_EMAIL_FACTS)
        print(f"[INFO] Email parsed by AI: {len(result.records)} facts", flush=True)
        return result

    @staticmethod
    def _list(data: Dict, key: str) -> List[Dict]:
        value = data.get(key)
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]


def parse_email(email_content: str, subject: Optional[str] = None, sender: Optional[str] = None,
                mode: str = 'regex') -> ParseResult:
    """Convenience: parse one email with a default parser"""
    return EmailParser().parse(email_content, subject, sender, mode)
